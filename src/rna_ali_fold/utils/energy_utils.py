from __future__ import annotations
from math import log
from typing import Optional, Sequence

# Ideal Gas Constant in cal mol⁻¹ K⁻¹
GAS_CONSTANT_CAL = 1.98717

# 0 °C in Kelvin and the reference temperature of the tabulated free energies.
K0 = 273.15
T37_K = 310.15


def to_kelvin(temp_c: float) -> float:
    """Convert a temperature in degrees Celsius to Kelvin."""
    return temp_c + K0


def thermal_energy_cal(temp_c: float) -> float:
    """
    Return RT in cal/mol at the given temperature.

    Boltzmann weights of energies stored in dcal/mol are computed as
    `exp(-10 * E / RT)`.
    """
    return to_kelvin(temp_c) * GAS_CONSTANT_CAL


def rescale_free_energy(dg37: Optional[int], dh: Optional[int], temp_k: float) -> Optional[int]:
    """
    Rescale a tabulated ΔG(37 °C) to another temperature.

    Uses the two-state relation `ΔG(T) = ΔH − (ΔH − ΔG37) · T / T37`, with
    the result rounded to the nearest integer of the dcal/mol grid.

    Parameters
    ----------
    dg37 : int or None
        Free energy at 37 °C in dcal/mol. `None` marks a forbidden entry.
    dh : int or None
        Enthalpy in dcal/mol. `None` means the entry is temperature invariant.
    temp_k : float
        Target temperature in Kelvin.

    Returns
    -------
    Optional[int]
        The rescaled free energy, or `None` if `dg37` is `None`.
    """
    if dg37 is None:
        return None
    if dh is None:
        return dg37

    return int(round(dh - (dh - dg37) * temp_k / T37_K))


def loop_size_energy(table: Sequence[float], size: int, lxc: float) -> float:
    """
    Look up a loop-length energy, extrapolating beyond the tabulated range.

    Sizes past the end of `table` use the Jacobson–Stockmayer extrapolation
    `E(n) = E(max) + trunc(lxc · ln(n / max))` anchored at the last entry.

    Parameters
    ----------
    table : Sequence[float]
        Loop-length energies indexed by loop size.
    size : int
        Requested loop size.
    lxc : float
        Extrapolation coefficient in dcal/mol.

    Returns
    -------
    float
        The loop energy (an int, or `inf` for forbidden sizes).
    """
    max_size = len(table) - 1
    if size <= max_size:
        return table[size]

    return table[max_size] + int(lxc * log(size / max_size))
