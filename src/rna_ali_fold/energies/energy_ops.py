from __future__ import annotations
import math
from typing import Optional

from rna_ali_fold.energies.energy_types import (
    INF,
    N_BASES,
    N_PAIR_TYPES,
    BoltzmannParameters,
    EnergyParameters,
)
from rna_ali_fold.utils.energy_utils import loop_size_energy

# Pair types above this index carry the terminal AU/GU penalty.
_LAST_GC_TYPE = 2

# G-quadruplex geometry.
GQUAD_MIN_LAYERS = 2
GQUAD_MAX_LAYERS = 7
GQUAD_MIN_LINKER = 1
GQUAD_MAX_LINKER = 15
GQUAD_MIN_SPAN = 4 * GQUAD_MIN_LAYERS + 3 * GQUAD_MIN_LINKER
GQUAD_MAX_SPAN = 4 * GQUAD_MAX_LAYERS + 3 * GQUAD_MAX_LINKER


def terminal_penalty(ptype: int, params: EnergyParameters) -> int:
    """Terminal AU/GU penalty of a helix end, 0 for GC and CG."""
    return params.terminal_au if ptype > _LAST_GC_TYPE else 0


def hairpin_energy(
    size: int,
    ptype: int,
    si1: int,
    sj1: int,
    loop_seq: Optional[str],
    params: EnergyParameters,
) -> float:
    """
    Free energy of a hairpin loop in one sequence.

    Parameters
    ----------
    size : int
        Number of unpaired columns in the loop.
    ptype : int
        Pair type of the closing pair `(i, j)`.
    si1, sj1 : int
        Encoded bases at `i + 1` and `j - 1`.
    loop_seq : Optional[str]
        The closing pair plus loop, used for the tetraloop bonus when `size == 4`.
    params : EnergyParameters
        Energy tables.

    Returns
    -------
    float
        Energy in dcal/mol, or `INF` if the loop is too small.

    Notes
    -----
    Triloops receive the terminal AU/GU penalty instead of a mismatch term.
    """
    energy = loop_size_energy(params.hairpin, size, params.lxc)
    if energy == INF:
        return INF

    if size == 4 and loop_seq is not None:
        energy += params.tetraloops.get(loop_seq, 0)

    if size == 3:
        return energy + terminal_penalty(ptype, params)

    return energy + params.mismatch_hairpin[ptype][si1][sj1]


def interior_loop_energy(
    n1: int,
    n2: int,
    ptype: int,
    type_2: int,
    si1: int,
    sj1: int,
    sp1: int,
    sq1: int,
    params: EnergyParameters,
) -> float:
    """
    Free energy of a stack, bulge or interior loop in one sequence.

    Parameters
    ----------
    n1, n2 : int
        Unpaired columns on the 5' side (`p - i - 1`) and the 3' side (`j - q - 1`).
    ptype : int
        Pair type of the outer pair `(i, j)`.
    type_2 : int
        Reversed pair type of the inner pair, i.e. the type of `(q, p)`.
    si1, sj1 : int
        Encoded bases at `i + 1` and `j - 1`.
    sp1, sq1 : int
        Encoded bases at `p - 1` and `q + 1`.
    params : EnergyParameters
        Energy tables.

    Returns
    -------
    float
        Energy in dcal/mol.
    """
    n_large, n_small = (n1, n2) if n1 >= n2 else (n2, n1)

    # --- Stack ---
    if n_large == 0:
        return params.stack[ptype][type_2]

    # --- Bulge ---
    if n_small == 0:
        energy = loop_size_energy(params.bulge, n_large, params.lxc)
        if n_large == 1:
            return energy + params.stack[ptype][type_2]
        return energy + terminal_penalty(ptype, params) + terminal_penalty(type_2, params)

    # --- Interior loop ---
    energy = loop_size_energy(params.interior, n_large + n_small, params.lxc)
    energy += min(params.max_ninio, (n_large - n_small) * params.ninio)
    energy += params.mismatch_interior[ptype][si1][sj1]
    energy += params.mismatch_interior[type_2][sq1][sp1]

    return energy


def stem_energy(ptype: int, si1: int, sj1: int, is_exterior: bool, params: EnergyParameters) -> int:
    """
    Energy of a stem end facing the exterior loop or a multiloop.

    Parameters
    ----------
    ptype : int
        Pair type of the stem's terminal pair, oriented from the loop.
    si1 : int
        Encoded 5' flanking base, or a negative value if there is none.
    sj1 : int
        Encoded 3' flanking base, or a negative value if there is none.
    is_exterior : bool
        Use the exterior tables; otherwise use the multiloop tables and add
        the per-branch multiloop penalty.
    params : EnergyParameters
        Energy tables.

    Returns
    -------
    int
        Mismatch or dangle contribution plus the terminal penalty, in dcal/mol.
    """
    energy = 0
    if si1 >= 0 and sj1 >= 0:
        table = params.mismatch_exterior if is_exterior else params.mismatch_multi
        energy += table[ptype][si1][sj1]
    elif si1 >= 0:
        energy += params.dangle5[ptype][si1]
    elif sj1 >= 0:
        energy += params.dangle3[ptype][sj1]

    energy += terminal_penalty(ptype, params)

    if not is_exterior:
        energy += params.ml_intern

    return energy


def boltzmann_weight(energy: float, kt: float) -> float:
    """Return `exp(-10 · energy / kt)` for an energy in dcal/mol, 0 for `INF`."""
    if energy == INF:
        return 0.0
    return math.exp(-10.0 * energy / kt)


def build_boltzmann_parameters(params: EnergyParameters, kt: float) -> BoltzmannParameters:
    """
    Precompute the Boltzmann factors of the stem-level tables.

    Parameters
    ----------
    params : EnergyParameters
        Energy tables.
    kt : float
        Thermal energy in cal/mol, multiplied by the number of alignment rows.

    Returns
    -------
    BoltzmannParameters
        The factor tables.
    """
    def _mismatch(table):
        return tuple(
            tuple(tuple(boltzmann_weight(table[t][a][b], kt) for b in range(N_BASES)) for a in range(N_BASES))
            for t in range(N_PAIR_TYPES)
        )

    def _dangle(table):
        return tuple(tuple(boltzmann_weight(table[t][a], kt) for a in range(N_BASES)) for t in range(N_PAIR_TYPES))

    return BoltzmannParameters(
        kt=kt,
        mismatch_exterior=_mismatch(params.mismatch_exterior),
        mismatch_multi=_mismatch(params.mismatch_multi),
        dangle5=_dangle(params.dangle5),
        dangle3=_dangle(params.dangle3),
        terminal=tuple(boltzmann_weight(terminal_penalty(t, params), kt) for t in range(N_PAIR_TYPES)),
        ml_intern=boltzmann_weight(params.ml_intern, kt),
        ml_closing=boltzmann_weight(params.ml_closing, kt),
        ml_base=boltzmann_weight(params.ml_base, kt),
    )


def exp_stem_energy(ptype: int, si1: int, sj1: int, is_exterior: bool, bz: BoltzmannParameters) -> float:
    """
    Boltzmann factor of `stem_energy` with the same arguments.

    Built from the precomputed factor tables, so that
    `exp_stem_energy(...) == boltzmann_weight(stem_energy(...), bz.kt)`
    up to floating-point rounding.
    """
    weight = 1.0
    if si1 >= 0 and sj1 >= 0:
        table = bz.mismatch_exterior if is_exterior else bz.mismatch_multi
        weight *= table[ptype][si1][sj1]
    elif si1 >= 0:
        weight *= bz.dangle5[ptype][si1]
    elif sj1 >= 0:
        weight *= bz.dangle3[ptype][sj1]

    weight *= bz.terminal[ptype]

    if not is_exterior:
        weight *= bz.ml_intern

    return weight


def gquad_energy(layers: int, linker_total: int, params: EnergyParameters) -> int:
    """
    Free energy of one G-quadruplex in one sequence.

    `alpha · (layers − 1) + trunc(beta · ln(linker_total − 2))`.
    """
    return params.gquad_alpha * (layers - 1) + int(params.gquad_beta * math.log(linker_total - 2))
