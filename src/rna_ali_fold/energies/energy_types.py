from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Mapping, Tuple

# Sentinel for forbidden table entries and unreachable DP cells.
INF = math.inf

# Maximal number of unpaired columns in an interior loop.
MAXLOOP = 30

# Number of pair types (including NONE and NS) and base codes (including N).
N_PAIR_TYPES = 8
N_BASES = 5

# Indexed by pair type.
PairVector = Tuple[float, ...]
# Indexed [pair type][pair type].
PairPairTable = Tuple[Tuple[float, ...], ...]
# Indexed [pair type][base].
DangleTable = Tuple[Tuple[float, ...], ...]
# Indexed [pair type][base][base].
MismatchTable = Tuple[Tuple[Tuple[float, ...], ...], ...]
# Indexed by loop size 0..MAXLOOP.
LoopTable = Tuple[float, ...]


@dataclass(frozen=True, slots=True)
class EnergyParameters:
    """
    Immutable nearest-neighbour energy tables at one temperature.

    All energies are integers in dcal/mol (`INF` for forbidden entries) and
    apply to a single sequence. The folding engines sum them over the rows of
    an alignment.

    Parameters
    ----------
    temperature : float
        Temperature in °C the tables were rescaled to.
    stack : PairPairTable
        Stacking energy `stack[type][type_2]` of the outer pair type and the
        reversed type of the inner pair.
    hairpin, bulge, interior : LoopTable
        Loop-length energies up to `MAXLOOP`; longer loops are extrapolated with `lxc`.
    mismatch_hairpin, mismatch_interior : MismatchTable
        Terminal mismatches inside hairpins and interior loops, indexed
        `[type][base 3' of i][base 5' of j]`.
    mismatch_exterior, mismatch_multi : MismatchTable
        Mismatches of stems in the exterior loop and in multiloops, indexed
        `[type][5' flank][3' flank]`.
    dangle5, dangle3 : DangleTable
        Single-base dangles on the 5' and 3' side of a pair.
    ml_base, ml_closing, ml_intern : int
        Multiloop penalties per unpaired base, for closing the loop and per branch.
    ninio, max_ninio : int
        Interior-loop asymmetry penalty per nucleotide and its cap.
    terminal_au : int
        Penalty for terminal pairs other than GC/CG.
    lxc : float
        Jacobson–Stockmayer coefficient for loops longer than `MAXLOOP`.
    tetraloops : Mapping[str, int]
        Hairpin bonuses keyed by the 6-nt closing pair plus loop.
    gquad_alpha, gquad_beta : int
        G-quadruplex stacking and linker coefficients.
    """
    temperature: float
    stack: PairPairTable
    hairpin: LoopTable
    bulge: LoopTable
    interior: LoopTable
    mismatch_hairpin: MismatchTable
    mismatch_interior: MismatchTable
    mismatch_exterior: MismatchTable
    mismatch_multi: MismatchTable
    dangle5: DangleTable
    dangle3: DangleTable
    ml_base: int
    ml_closing: int
    ml_intern: int
    ninio: int
    max_ninio: int
    terminal_au: int
    lxc: float
    tetraloops: Mapping[str, int]
    gquad_alpha: int
    gquad_beta: int


@dataclass(frozen=True, slots=True)
class BoltzmannParameters:
    """
    Boltzmann factors of the stem-level energy tables.

    Every factor equals `exp(-10 · E / kt)` of the matching entry of
    `EnergyParameters`, with `INF` mapped to 0. `kt` is in cal/mol and
    already multiplied by the number of alignment rows, so factors of
    per-row energies can be multiplied across rows.

    Parameters
    ----------
    kt : float
        Thermal energy in cal/mol times the number of rows.
    mismatch_exterior, mismatch_multi : MismatchTable
        Factors of the exterior and multiloop mismatch tables.
    dangle5, dangle3 : DangleTable
        Factors of the dangle tables.
    terminal : PairVector
        Factor of the terminal AU/GU penalty per pair type.
    ml_intern, ml_closing, ml_base : float
        Factors of the multiloop penalties.
    """
    kt: float
    mismatch_exterior: MismatchTable
    mismatch_multi: MismatchTable
    dangle5: DangleTable
    dangle3: DangleTable
    terminal: PairVector
    ml_intern: float
    ml_closing: float
    ml_base: float
