from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional, Tuple, Union

from rna_ali_fold.energies.data.yaml_io import read_yaml
from rna_ali_fold.errors import ParameterFileError
from rna_ali_fold.rules.pair_types import CANONICAL_TYPES, PAIR_DISTANCE, PAIR_LABELS, REVERSE_TYPE

logger = logging.getLogger(__name__)

DEFAULT_RIBOSUM_FILE: Final[Path] = Path(__file__).resolve().parents[1] / "data" / "ribosum_pairs.yaml"


@dataclass(frozen=True, slots=True)
class SubstitutionMatrix:
    """
    Score of two rows forming two pair types at the same column pair.

    The covariation bonus of a column pair is the sum of `score(type_s, type_t)`
    over all unordered row pairs `s < t`. Index 0 (and 7) are not pair types
    and always score 0.

    Attributes
    ----------
    name : str
        Label reported in the log.
    scores : Tuple[Tuple[float, ...], ...]
        8 x 8 table indexed by `PairType`.
    """
    name: str
    scores: Tuple[Tuple[float, ...], ...]

    def score(self, type_k: int, type_l: int) -> float:
        return self.scores[type_k][type_l]

    @classmethod
    def hamming(cls) -> SubstitutionMatrix:
        """Number of bases in which the two pair types differ; conserved pairs score 0."""
        scores = tuple(
            tuple(float(PAIR_DISTANCE[k][l]) if k < 7 and l < 7 else 0.0 for l in range(8))
            for k in range(8)
        )
        return cls(name="hamming", scores=scores)

    @classmethod
    def load(cls, yaml_path: Optional[Union[str, Path]] = None) -> SubstitutionMatrix:
        """
        Reads a RIBOSUM-style matrix over the six canonical pair types.

        Parameters
        ----------
        yaml_path : Optional[Union[str, Path]]
            YAML file with `pair_order` (a permutation of CG, GC, GU, UG, AU,
            UA) and a 6 x 6 `matrix`. The bundled matrix when None.

        Returns
        -------
        SubstitutionMatrix
            The table, re-indexed by `PairType`.

        Raises
        ------
        ParameterFileError
            If the file is unreadable, the order is not a permutation of the
            canonical types, or the matrix is not a symmetric 6 x 6 table
            that is invariant under reading both pairs from the other strand.
        """
        path = Path(yaml_path) if yaml_path is not None else DEFAULT_RIBOSUM_FILE
        data = read_yaml(path)

        order = data.get("pair_order")
        labels = [PAIR_LABELS[t] for t in CANONICAL_TYPES]
        if not isinstance(order, list) or sorted(str(x).upper() for x in order) != sorted(labels):
            raise ParameterFileError(f"'{path}': pair_order must list each of {', '.join(labels)} once.")
        types = [PAIR_LABELS.index(str(x).upper()) for x in order]

        rows = data.get("matrix")
        if not isinstance(rows, list) or len(rows) != 6 or any(not isinstance(r, list) or len(r) != 6 for r in rows):
            raise ParameterFileError(f"'{path}': matrix must be a 6 x 6 table.")

        scores = [[0.0] * 8 for _ in range(8)]
        try:
            for a, row in enumerate(rows):
                for b, value in enumerate(row):
                    scores[types[a]][types[b]] = float(value)
        except (TypeError, ValueError) as exc:
            raise ParameterFileError(f"'{path}': matrix entries must be numbers: {exc}") from exc

        for k in CANONICAL_TYPES:
            for l in CANONICAL_TYPES:
                if scores[k][l] != scores[l][k]:
                    raise ParameterFileError(f"'{path}': matrix is not symmetric at {PAIR_LABELS[k]}/{PAIR_LABELS[l]}.")
                if scores[k][l] != scores[REVERSE_TYPE[k]][REVERSE_TYPE[l]]:
                    raise ParameterFileError(
                        f"'{path}': {PAIR_LABELS[k]}/{PAIR_LABELS[l]} scores differ from the reversed pairs."
                    )

        name = str(data.get("name", path.stem))
        logger.debug(f"Loaded substitution matrix '{name}' from {path}")
        return cls(name=name, scores=tuple(tuple(row) for row in scores))


HAMMING: Final[SubstitutionMatrix] = SubstitutionMatrix.hamming()
