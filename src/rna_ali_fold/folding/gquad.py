from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel, AlignmentEnergyModel
from rna_ali_fold.energies.energy_ops import (
    GQUAD_MAX_LAYERS,
    GQUAD_MAX_LINKER,
    GQUAD_MAX_SPAN,
    GQUAD_MIN_LAYERS,
    GQUAD_MIN_LINKER,
    GQUAD_MIN_SPAN,
)
from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.rules.constraints import HardConstraints
from rna_ali_fold.structures.tri_matrix import TriMatrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GquadLayout:
    """
    Geometry of one G-quadruplex starting at column `start`.

    The four G-runs have `layers` columns each and are separated by linkers
    of `l1`, `l2` and `l3` columns.
    """
    start: int
    layers: int
    l1: int
    l2: int
    l3: int

    @property
    def end(self) -> int:
        return self.start + 4 * self.layers + self.l1 + self.l2 + self.l3 - 1

    @property
    def linker_total(self) -> int:
        return self.l1 + self.l2 + self.l3

    def layer_columns(self) -> List[int]:
        """Columns of the four G-runs, in 5' to 3' order."""
        cols: List[int] = []
        run_start = self.start
        for linker in (self.l1, self.l2, self.l3, 0):
            cols.extend(range(run_start, run_start + self.layers))
            run_start += self.layers + linker
        return cols


def iter_gquad_layouts(base_i: int, base_j: int) -> Iterator[GquadLayout]:
    """
    Enumerate every G-quadruplex geometry that spans exactly `i..j`.

    Layouts are yielded by increasing layer count, then increasing `l1`, then
    increasing `l2`.
    """
    span = base_j - base_i + 1
    if span < GQUAD_MIN_SPAN or span > GQUAD_MAX_SPAN:
        return
    for layers in range(GQUAD_MIN_LAYERS, GQUAD_MAX_LAYERS + 1):
        linker_total = span - 4 * layers
        if linker_total < 3 * GQUAD_MIN_LINKER:
            break
        if linker_total > 3 * GQUAD_MAX_LINKER:
            continue
        for l1 in range(GQUAD_MIN_LINKER, GQUAD_MAX_LINKER + 1):
            for l2 in range(GQUAD_MIN_LINKER, GQUAD_MAX_LINKER + 1):
                l3 = linker_total - l1 - l2
                if GQUAD_MIN_LINKER <= l3 <= GQUAD_MAX_LINKER:
                    yield GquadLayout(base_i, layers, l1, l2, l3)


def _g_run_lengths(model: AlignmentEnergyModel) -> List[int]:
    """`runs[k]` = number of consecutive all-G columns starting at column `k`."""
    n = model.length
    runs = [0] * (n + 2)
    for k in range(n, 0, -1):
        runs[k] = runs[k + 1] + 1 if model.all_g(k) else 0
    return runs


def _layout_fits(runs: List[int], layout: GquadLayout) -> bool:
    run_start = layout.start
    for linker in (layout.l1, layout.l2, layout.l3, 0):
        if runs[run_start] < layout.layers:
            return False
        run_start += layout.layers + linker
    return True


def _candidate_spans(model: AlignmentEnergyModel, hard: HardConstraints) -> Iterator[Tuple[int, int, List[int]]]:
    n = model.length
    runs = _g_run_lengths(model)
    for i in range(1, n + 1):
        if runs[i] < GQUAD_MIN_LAYERS:
            continue
        for j in range(i + GQUAD_MIN_SPAN - 1, min(n, i + GQUAD_MAX_SPAN - 1) + 1):
            if runs[j] == 0 or not hard.unpaired_range_ok(i, j):
                continue
            yield i, j, runs


@dataclass(frozen=True, slots=True)
class GquadTable:
    """
    Minimal G-quadruplex energy for every span, with the optimal layouts.

    Attributes
    ----------
    energies : TriMatrix
        `INF` where no G-quadruplex fits.
    layouts : Dict[Tuple[int, int], GquadLayout]
        Optimal layout per span with a finite energy.
    """
    energies: TriMatrix
    layouts: Dict[Tuple[int, int], GquadLayout]

    def get(self, base_i: int, base_j: int) -> float:
        return self.energies.get(base_i, base_j)


def build_gquad_table(model: AlignmentEnergyModel, hard: HardConstraints) -> GquadTable:
    """
    Fill the MFE G-quadruplex table.

    A layout is admissible only if every row has a G at every layer column
    and every column of the span may stay unpaired.
    """
    energies: TriMatrix = TriMatrix(model.length, INF)
    layouts: Dict[Tuple[int, int], GquadLayout] = {}
    for i, j, runs in _candidate_spans(model, hard):
        best: Optional[GquadLayout] = None
        best_energy = INF
        for layout in iter_gquad_layouts(i, j):
            if not _layout_fits(runs, layout):
                continue
            energy = model.gquad(layout.layers, layout.linker_total)
            if energy < best_energy:
                best, best_energy = layout, energy
        if best is not None:
            energies.set(i, j, best_energy)
            layouts[(i, j)] = best

    logger.debug(f"G-quadruplex table: {len(layouts)} admissible spans")

    return GquadTable(energies=energies, layouts=layouts)


def build_gquad_weights(bmodel: AlignmentBoltzmannModel, hard: HardConstraints, scale: List[float]) -> TriMatrix:
    """
    Fill the partition-function G-quadruplex table.

    `G[i, j]` is the scaled sum of Boltzmann weights of all admissible layouts spanning `i..j`.
    """
    model = bmodel.model
    weights: TriMatrix = TriMatrix(model.length, 0.0)
    for i, j, runs in _candidate_spans(model, hard):
        total = 0.0
        for layout in iter_gquad_layouts(i, j):
            if _layout_fits(runs, layout):
                total += bmodel.exp_gquad(layout.layers, layout.linker_total)
        if total > 0.0:
            weights.set(i, j, total * scale[j - i + 1])
    return weights


def fitting_layouts(model: AlignmentEnergyModel, base_i: int, base_j: int) -> List[GquadLayout]:
    """All admissible layouts spanning `i..j`, in enumeration order."""
    runs = _g_run_lengths(model)
    return [layout for layout in iter_gquad_layouts(base_i, base_j) if _layout_fits(runs, layout)]
