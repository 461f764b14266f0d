from __future__ import annotations
from typing import Optional

__all__ = [
    "AliFoldError",
    "InputError",
    "StructureTooShort",
    "ParameterFileError",
    "NoSolution",
    "ConstraintConflict",
    "NumericOverflow",
    "InvariantViolation",
]


class AliFoldError(Exception):
    """Base class for every error raised by the alignment folding engines."""


class InputError(AliFoldError, ValueError):
    """
    Raised for fatal input problems detected before any computation starts.

    Typical causes are an empty alignment, rows of unequal length, a structure
    constraint whose length does not match the alignment, or an invalid
    model configuration value.
    """


class StructureTooShort(InputError):
    """Raised when the alignment is too short to hold a single hairpin."""

    def __init__(self, length: int, min_length: int):
        super().__init__(
            f"Alignment of length {length} is too short to fold; at least {min_length} columns are required."
        )
        self.length = length
        self.min_length = min_length


class ParameterFileError(InputError):
    """Raised when an energy parameter file cannot be read or parsed."""


class NoSolution(AliFoldError):
    """
    Raised when the hard constraints leave no admissible structure.

    The exterior-loop energy of the full alignment remains at the infinite
    sentinel after the fill, so no structure can be backtracked.
    """


class ConstraintConflict(AliFoldError):
    """
    Describes a structure constraint that forces a pair the covariation model rejects.

    Conflicts are resolved in favour of the constraint whenever at least one
    row can form the forced pair; the conflict is then logged and returned on
    `MfeResult.conflicts`. When no row can form the pair, the pair stays
    forbidden and the fold ends in `NoSolution`.
    """

    def __init__(self, base_i: int, base_j: int, reason: str):
        super().__init__(f"Constrained pair ({base_i}, {base_j}) conflicts with the alignment: {reason}")
        self.base_i = base_i
        self.base_j = base_j
        self.reason = reason


class NumericOverflow(AliFoldError, ArithmeticError):
    """
    Raised when the partition function leaves the representable floating range.

    The error is recoverable: the caller may retry the ensemble computation
    with `suggested_scale_factor` passed as the new `pf_scale_factor`.
    """

    def __init__(self, message: str, suggested_scale_factor: Optional[float] = None):
        super().__init__(message)
        self.suggested_scale_factor = suggested_scale_factor


class InvariantViolation(AliFoldError, RuntimeError):
    """Raised on internal inconsistencies such as a backtrack energy mismatch."""
