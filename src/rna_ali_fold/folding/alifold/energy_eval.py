from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from rna_ali_fold.errors import InputError
from rna_ali_fold.energies.energy_model import AlignmentEnergyModel
from rna_ali_fold.energies.energy_ops import GQUAD_MAX_LINKER, GQUAD_MIN_LAYERS, GQUAD_MIN_LINKER
from rna_ali_fold.folding.dangles import DanglePolicy, LoopStem
from rna_ali_fold.folding.gquad import GquadLayout
from rna_ali_fold.rules.constraints import SoftConstraints
from rna_ali_fold.rules.covariation import CovariationMatrix
from rna_ali_fold.structures.pairing import parse_dot_bracket

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EnergyDecomposition:
    """
    Free energy of a consensus structure split into its two contributions.

    Attributes
    ----------
    loop_energy : float
        Nearest-neighbour loop energies summed over rows, in dcal/mol
        (soft-constraint bias included).
    covariation : float
        Row-summed covariation adjustment, in dcal/mol; negative values
        favour the structure.
    n_seq : int
        Number of rows the sums run over.
    """
    loop_energy: float
    covariation: float
    n_seq: int

    @property
    def total(self) -> float:
        """Row-summed total energy in dcal/mol."""
        return self.loop_energy + self.covariation

    @property
    def energy_kcal(self) -> float:
        """Average loop energy per sequence in kcal/mol."""
        return self.loop_energy / (100.0 * self.n_seq)

    @property
    def covariance_kcal(self) -> float:
        """Covariation contribution per sequence in kcal/mol."""
        return self.covariation / (100.0 * self.n_seq)

    @property
    def total_kcal(self) -> float:
        return self.total / (100.0 * self.n_seq)


@dataclass(slots=True)
class StructureEvaluator:
    """
    Scores a fixed consensus structure with the model of a fold.

    The evaluator decomposes a structure into loops and sums their energies
    independently of the DP arrays, so its result can be compared with the
    optimum reported by the MFE fill.

    Attributes
    ----------
    energy_model : AlignmentEnergyModel
        Row-summed loop energies.
    covariation : CovariationMatrix
        Covariation scores; the admissibility rules are not applied.
    policy : DanglePolicy
        Dangle strategy of the fold.
    soft : Optional[SoftConstraints]
        Exterior unpaired bias, if any.
    """
    energy_model: AlignmentEnergyModel
    covariation: CovariationMatrix
    policy: DanglePolicy
    soft: Optional[SoftConstraints] = None

    def evaluate(self, structure: str, circular: bool = False) -> EnergyDecomposition:
        """
        Evaluates a dot-bracket structure.

        Parameters
        ----------
        structure : str
            Dot-bracket string, G-quadruplex layers written as `+`.
        circular : bool
            Close the exterior loop across the `n -> 1` junction.

        Returns
        -------
        EnergyDecomposition
            Loop and covariation energies.

        Raises
        ------
        InputError
            If the structure length differs from the alignment length, the
            brackets are unbalanced, or a G-quadruplex is malformed or not
            in the exterior loop.
        """
        model = self.energy_model
        n = model.length
        if len(structure) != n:
            raise InputError(f"Structure has length {len(structure)} but the alignment has {n} columns.")

        pt, runs = parse_dot_bracket(structure)
        quads = _group_gquad_runs(runs)
        if quads and circular:
            raise InputError("G-quadruplexes are not supported in circular structures.")

        in_quad = [False] * (n + 2)
        for quad in quads:
            for k in range(quad.start, quad.end + 1):
                if pt[k]:
                    raise InputError(f"Column {k} is both paired and part of a G-quadruplex.")
                in_quad[k] = True

        loop_energy = 0
        covariation = 0
        for i in range(1, n + 1):
            j = pt[i]
            if j <= i:
                continue
            covariation -= self.covariation.raw_score(i, j) * model.n_seq
            loop_energy += self._pair_loop_energy(pt, i, j, in_quad)

        if circular:
            loop_energy += self._circular_exterior_energy(pt)
        else:
            loop_energy += self._exterior_energy(pt, quads, in_quad)

        logger.debug(f"Evaluated {structure}: loops={loop_energy}, covariation={covariation}")

        return EnergyDecomposition(loop_energy=loop_energy, covariation=covariation, n_seq=model.n_seq)

    # ---------- Loops closed by a pair ----------

    def _pair_loop_energy(self, pt: Sequence[int], i: int, j: int, in_quad: Sequence[bool]) -> float:
        model = self.energy_model
        branches: List[Tuple[int, int]] = []
        unpaired = 0
        p = i + 1
        while p < j:
            if in_quad[p]:
                raise InputError(f"G-quadruplex at column {p} lies inside the pair ({i}, {j}).")
            if pt[p] > p:
                branches.append((p, pt[p]))
                p = pt[p] + 1
            else:
                unpaired += 1
                p += 1

        if not branches:
            return model.hairpin(i, j)
        if len(branches) == 1:
            return model.interior(i, j, *branches[0])

        closing = LoopStem((i, j), j - 1, i + 1, pt[j - 1] == 0, pt[i + 1] == 0)
        inner = [LoopStem((p, q), p - 1, q + 1, pt[p - 1] == 0, pt[q + 1] == 0) for p, q in branches]
        energy = self.policy.multiloop_energy(
            closing,
            inner,
            lambda st, five, three: model.ml_closing(i, j, five, three),
            lambda st, five, three: model.ml_stem(st.pair[0], st.pair[1], five, three),
        )
        return energy + model.ml_unpaired(unpaired)

    # ---------- Exterior loop ----------

    def _exterior_energy(self, pt: Sequence[int], quads: Sequence[GquadLayout], in_quad: Sequence[bool]) -> float:
        model = self.energy_model
        n = model.length
        stems: List[LoopStem] = []
        energy = 0
        k = 1
        while k <= n:
            if in_quad[k]:
                k += 1
                continue
            if pt[k] > k:
                l = pt[k]
                stems.append(LoopStem(
                    (k, l),
                    k - 1 if k > 1 else None,
                    l + 1 if l < n else None,
                    k > 1 and pt[k - 1] == 0 and not in_quad[k - 1],
                    l < n and pt[l + 1] == 0 and not in_quad[l + 1],
                ))
                k = l + 1
                continue
            if self.soft is not None:
                energy += self.soft.unpaired_energy(k, model.n_seq)
            k += 1

        energy += self.policy.loop_stems_energy(
            stems,
            lambda st, five, three: model.exterior_stem(st.pair[0], st.pair[1], five, three),
        )
        for quad in quads:
            energy += model.gquad(quad.layers, quad.linker_total)

        return energy

    def _circular_exterior_energy(self, pt: Sequence[int]) -> float:
        model = self.energy_model
        n = model.length
        outer: List[Tuple[int, int]] = []
        unpaired = 0
        k = 1
        while k <= n:
            if pt[k] > k:
                outer.append((k, pt[k]))
                k = pt[k] + 1
            else:
                unpaired += 1
                k += 1

        if not outer:
            return 0
        if len(outer) == 1:
            return model.hairpin_circular(*outer[0])
        if len(outer) == 2:
            (i, j), (p, q) = outer
            return model.interior_circular(i, j, p, q)

        stems = [
            LoopStem(
                (i, j),
                i - 1 if i > 1 else None,
                j + 1 if j < n else None,
                i > 1 and pt[i - 1] == 0,
                j < n and pt[j + 1] == 0,
            )
            for i, j in outer
        ]
        energy = model.params.ml_closing * model.n_seq + model.ml_unpaired(unpaired)
        energy += self.policy.loop_stems_energy(
            stems,
            lambda st, five, three: model.ml_stem(st.pair[0], st.pair[1], five, three),
        )
        return energy


def _group_gquad_runs(runs: Sequence[Tuple[int, int]]) -> List[GquadLayout]:
    """
    Groups maximal `+` runs into G-quadruplexes of four equally long layers.

    Raises
    ------
    InputError
        If the runs do not form whole quadruplexes with admissible linkers.
    """
    if len(runs) % 4:
        raise InputError(f"Found {len(runs)} G-runs; G-quadruplexes need four runs each.")

    quads: List[GquadLayout] = []
    for idx in range(0, len(runs), 4):
        group = runs[idx:idx + 4]
        layers = group[0][1] - group[0][0] + 1
        if layers < GQUAD_MIN_LAYERS or any(last - first + 1 != layers for first, last in group):
            raise InputError(f"G-quadruplex starting at column {group[0][0]} has unequal or too short layers.")
        linkers = [group[m + 1][0] - group[m][1] - 1 for m in range(3)]
        if any(not GQUAD_MIN_LINKER <= lk <= GQUAD_MAX_LINKER for lk in linkers):
            raise InputError(f"G-quadruplex starting at column {group[0][0]} has a linker outside 1..15.")
        quads.append(GquadLayout(group[0][0], layers, *linkers))

    return quads
