from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from rna_ali_fold.energies.energy_ops import (
    boltzmann_weight,
    build_boltzmann_parameters,
    exp_stem_energy,
    gquad_energy,
    hairpin_energy,
    interior_loop_energy,
    stem_energy,
)
from rna_ali_fold.energies.energy_types import INF, BoltzmannParameters, EnergyParameters
from rna_ali_fold.rules.pair_types import REVERSE_TYPE, PairMatrix, PairType, is_gu_type
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.utils.nucleotide_utils import OUT_OF_RANGE_CODE

GQUAD_CODE = 3  # encoded G


@dataclass(frozen=True, slots=True)
class AlignmentEnergyModel:
    """
    Loop energies of an alignment, summed over its rows.

    Every method returns an integer in dcal/mol summed over all rows (or
    `INF`). Rows whose bases cannot pair at a given column pair are scored
    with the neutral nonstandard pair class. Covariation is not included;
    the folding engines add it per pair.

    Parameters
    ----------
    alignment : Alignment
        The alignment to score.
    params : EnergyParameters
        Single-sequence energy tables.
    pair_matrix : PairMatrix
        Base-pair lookup.
    no_closing_gu : bool
        Forbid hairpins and interior loops closed by pairs that are GU or UG
        in every canonically pairing row. Stacks remain allowed.
    """
    alignment: Alignment
    params: EnergyParameters
    pair_matrix: PairMatrix
    no_closing_gu: bool = False
    _type_cache: Dict[Tuple[int, int], Tuple[int, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    @property
    def n_seq(self) -> int:
        return self.alignment.n_seq

    @property
    def length(self) -> int:
        return self.alignment.length

    # ---------- Pair types ----------

    def row_types(self, base_i: int, base_j: int) -> Tuple[int, ...]:
        """Pair type of `(i, j)` in every row; unpairable rows are `PairType.NS`."""
        key = (base_i, base_j)
        types = self._type_cache.get(key)
        if types is None:
            lookup = self.pair_matrix.pair_type
            types = tuple(
                lookup(enc[base_i], enc[base_j]) or PairType.NS for enc in self.alignment.encoding
            )
            self._type_cache[key] = types
        return types

    def closes_with_gu_only(self, base_i: int, base_j: int) -> bool:
        """True if every canonically pairing row forms a GU or UG pair at `(i, j)`."""
        canonical = [t for t in self.row_types(base_i, base_j) if 0 < t < PairType.NS]
        return bool(canonical) and all(is_gu_type(t) for t in canonical)

    def _flank(self, enc: Sequence[int], base_k: Optional[int]) -> int:
        if base_k is None:
            return OUT_OF_RANGE_CODE
        return enc[base_k]

    def _wrapped(self, enc: Sequence[int], base_k: int) -> int:
        n = self.length
        if base_k < 1:
            return enc[base_k + n]
        if base_k > n:
            return enc[base_k - n]
        return enc[base_k]

    # ---------- Loops closed by a pair ----------

    def hairpin(self, base_i: int, base_j: int) -> float:
        """Hairpin loop closed by `(i, j)`."""
        if self.no_closing_gu and self.closes_with_gu_only(base_i, base_j):
            return INF
        size = base_j - base_i - 1
        total = 0
        for s, ptype in enumerate(self.row_types(base_i, base_j)):
            enc = self.alignment.encoding[s]
            loop_seq = self.alignment.rows[s][base_i - 1:base_j] if size == 4 else None
            energy = hairpin_energy(size, ptype, enc[base_i + 1], enc[base_j - 1], loop_seq, self.params)
            if energy == INF:
                return INF
            total += energy
        return total

    def interior(self, base_i: int, base_j: int, base_p: int, base_q: int) -> float:
        """Stack, bulge or interior loop closed by `(i, j)` and enclosing `(p, q)`."""
        n1 = base_p - base_i - 1
        n2 = base_j - base_q - 1
        if self.no_closing_gu and n1 + n2 > 0:
            if self.closes_with_gu_only(base_i, base_j) or self.closes_with_gu_only(base_p, base_q):
                return INF
        outer = self.row_types(base_i, base_j)
        inner = self.row_types(base_p, base_q)
        total = 0
        for s, enc in enumerate(self.alignment.encoding):
            total += interior_loop_energy(
                n1, n2, outer[s], REVERSE_TYPE[inner[s]],
                enc[base_i + 1], enc[base_j - 1], enc[base_p - 1], enc[base_q + 1],
                self.params,
            )
        return total

    # ---------- Stems in exterior loops and multiloops ----------

    def exterior_stem(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> int:
        """Exterior-loop stem `(i, j)` with optional 5' and 3' flanking columns."""
        total = 0
        for s, ptype in enumerate(self.row_types(base_i, base_j)):
            enc = self.alignment.encoding[s]
            total += stem_energy(ptype, self._flank(enc, five), self._flank(enc, three), True, self.params)
        return total

    def ml_stem(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> int:
        """Multiloop branch `(i, j)` with optional flanking columns, including the branch penalty."""
        total = 0
        for s, ptype in enumerate(self.row_types(base_i, base_j)):
            enc = self.alignment.encoding[s]
            total += stem_energy(ptype, self._flank(enc, five), self._flank(enc, three), False, self.params)
        return total

    def ml_closing(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> int:
        """
        Closing pair `(i, j)` of a multiloop, seen from inside the loop.

        The pair is reversed, so its 5' flank is column `j - 1` and its 3'
        flank is column `i + 1` when dangles apply.
        """
        total = self.params.ml_closing * self.n_seq
        for s, ptype in enumerate(self.row_types(base_i, base_j)):
            enc = self.alignment.encoding[s]
            total += stem_energy(
                REVERSE_TYPE[ptype], self._flank(enc, five), self._flank(enc, three), False, self.params
            )
        return total

    def ml_unpaired(self, count: int) -> int:
        """Penalty of `count` unpaired columns inside a multiloop."""
        return self.params.ml_base * count * self.n_seq

    # ---------- G-quadruplexes ----------

    def all_g(self, base_k: int) -> bool:
        """True if every row has a G at column `k`."""
        return all(enc[base_k] == GQUAD_CODE for enc in self.alignment.encoding)

    def gquad(self, layers: int, linker_total: int) -> int:
        """G-quadruplex of the given geometry, summed over rows."""
        return gquad_energy(layers, linker_total, self.params) * self.n_seq

    # ---------- Circular exterior loop ----------

    def hairpin_circular(self, base_i: int, base_j: int) -> float:
        """Exterior loop of a circular alignment closed by the single pair `(i, j)`."""
        n = self.length
        if self.no_closing_gu and self.closes_with_gu_only(base_i, base_j):
            return INF
        size = n - base_j + base_i - 1
        total = 0
        for s, ptype in enumerate(self.row_types(base_i, base_j)):
            enc = self.alignment.encoding[s]
            row = self.alignment.rows[s]
            loop_seq = row[base_j - 1:] + row[:base_i] if size == 4 else None
            energy = hairpin_energy(
                size, REVERSE_TYPE[ptype],
                self._wrapped(enc, base_j + 1), self._wrapped(enc, base_i - 1),
                loop_seq, self.params,
            )
            if energy == INF:
                return INF
            total += energy
        return total

    def interior_circular(self, base_i: int, base_j: int, base_p: int, base_q: int) -> float:
        """Exterior loop of a circular alignment closed by exactly two pairs `(i, j) < (p, q)`."""
        n = self.length
        n1 = base_p - base_j - 1
        n2 = base_i - 1 + n - base_q
        if self.no_closing_gu and n1 + n2 > 0:
            if self.closes_with_gu_only(base_i, base_j) or self.closes_with_gu_only(base_p, base_q):
                return INF
        first = self.row_types(base_i, base_j)
        second = self.row_types(base_p, base_q)
        total = 0
        for s, enc in enumerate(self.alignment.encoding):
            total += interior_loop_energy(
                n1, n2, REVERSE_TYPE[first[s]], REVERSE_TYPE[second[s]],
                self._wrapped(enc, base_j + 1), self._wrapped(enc, base_i - 1),
                self._wrapped(enc, base_p - 1), self._wrapped(enc, base_q + 1),
                self.params,
            )
        return total


@dataclass(frozen=True, slots=True)
class AlignmentBoltzmannModel:
    """
    Boltzmann-weighted counterpart of `AlignmentEnergyModel`.

    Weights are `exp(-10 · E / kt)` where `E` is the row-summed energy and
    `kt` is the thermal energy times the number of rows, so each weight is
    the Boltzmann factor of the per-row average energy.

    Parameters
    ----------
    model : AlignmentEnergyModel
        The energy model whose loops are weighted.
    bz : BoltzmannParameters
        Precomputed factor tables at `kt`.
    """
    model: AlignmentEnergyModel
    bz: BoltzmannParameters

    @classmethod
    def from_model(cls, model: AlignmentEnergyModel, kt_single: float) -> AlignmentBoltzmannModel:
        """Build the weighted model from the single-sequence thermal energy in cal/mol."""
        return cls(model=model, bz=build_boltzmann_parameters(model.params, kt_single * model.n_seq))

    @property
    def kt(self) -> float:
        return self.bz.kt

    def weight(self, energy: float) -> float:
        return boltzmann_weight(energy, self.bz.kt)

    def exp_hairpin(self, base_i: int, base_j: int) -> float:
        return self.weight(self.model.hairpin(base_i, base_j))

    def exp_interior(self, base_i: int, base_j: int, base_p: int, base_q: int) -> float:
        return self.weight(self.model.interior(base_i, base_j, base_p, base_q))

    def _exp_stems(self, types: Sequence[int], five: Optional[int], three: Optional[int], is_exterior: bool) -> float:
        weight = 1.0
        for s, ptype in enumerate(types):
            enc = self.model.alignment.encoding[s]
            si1 = OUT_OF_RANGE_CODE if five is None else enc[five]
            sj1 = OUT_OF_RANGE_CODE if three is None else enc[three]
            weight *= exp_stem_energy(ptype, si1, sj1, is_exterior, self.bz)
        return weight

    def exp_exterior_stem(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> float:
        return self._exp_stems(self.model.row_types(base_i, base_j), five, three, True)

    def exp_ml_stem(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> float:
        return self._exp_stems(self.model.row_types(base_i, base_j), five, three, False)

    def exp_ml_closing(self, base_i: int, base_j: int, five: Optional[int], three: Optional[int]) -> float:
        types = [REVERSE_TYPE[t] for t in self.model.row_types(base_i, base_j)]
        return self._exp_stems(types, five, three, False) * self.bz.ml_closing ** self.model.n_seq

    def exp_ml_unpaired(self, count: int) -> float:
        return self.bz.ml_base ** (count * self.model.n_seq)

    def exp_covariation(self, bonus: int) -> float:
        """Weight of a covariation bonus given in row-summed dcal/mol (a bonus lowers the energy)."""
        return math.exp(10.0 * bonus / self.bz.kt)

    def exp_gquad(self, layers: int, linker_total: int) -> float:
        return self.weight(self.model.gquad(layers, linker_total))
