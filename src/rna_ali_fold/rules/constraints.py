from __future__ import annotations
from dataclasses import dataclass
from enum import IntFlag
from typing import Final, List, Optional, Sequence, Tuple

from rna_ali_fold.errors import InputError
from rna_ali_fold.structures.tri_matrix import TriMatrix

# Minimum number of unpaired columns required in a hairpin loop.
MIN_HAIRPIN_UNPAIRED: Final[int] = 3

CONSTRAINT_SYMBOLS: Final[str] = ".()x|<>"


class LoopContext(IntFlag):
    """
    Loop contexts in which a base pair may appear.

    A pair is admissible in a context only if the matching bit is set in
    its hard-constraint mask. `*_ENC` bits refer to the pair being enclosed
    by the loop rather than closing it.
    """
    NONE = 0
    EXT_LOOP = 1
    HP_LOOP = 2
    INT_LOOP = 4
    INT_LOOP_ENC = 8
    MB_LOOP = 16
    MB_LOOP_ENC = 32
    ALL = 63


def hairpin_size(i: int, j: int) -> int:
    """Number of unpaired columns inside a hairpin closed by `(i, j)`."""
    return j - i - 1


def is_min_hairpin_size(i: int, j: int, min_unpaired: int = MIN_HAIRPIN_UNPAIRED) -> bool:
    """True if a pair `(i, j)` encloses at least `min_unpaired` columns."""
    return hairpin_size(i, j) >= min_unpaired


@dataclass(frozen=True, slots=True)
class HardConstraints:
    """
    Per-pair loop-context masks plus per-column unpairing permissions.

    Attributes
    ----------
    seq_len : int
        Number of alignment columns.
    contexts : TriMatrix[int]
        `LoopContext` mask for every pair `(i, j)`, `i < j`.
    unpaired : Tuple[bool, ...]
        1-based; `unpaired[k]` is True if column `k` may stay unpaired.
    forced_pairs : Tuple[Tuple[int, int], ...]
        Pairs required by the constraint string.
    """
    seq_len: int
    contexts: TriMatrix
    unpaired: Tuple[bool, ...]
    forced_pairs: Tuple[Tuple[int, int], ...] = ()
    _blocked_prefix: Tuple[int, ...] = ()

    @classmethod
    def unconstrained(cls, seq_len: int) -> HardConstraints:
        """Constraints that admit every pair in every context."""
        return cls._freeze(seq_len, TriMatrix(seq_len, int(LoopContext.ALL)), [True] * (seq_len + 1), [])

    @classmethod
    def from_dot_bracket(cls, constraint: str, seq_len: int) -> HardConstraints:
        """
        Build hard constraints from a dot-bracket constraint string.

        Symbols
        -------
        `.`  no constraint.
        `()` the two columns must pair with each other.
        `x`  the column must stay unpaired.
        `|`  the column must pair, partner unrestricted.
        `<`  the column must pair with a downstream partner.
        `>`  the column must pair with an upstream partner.

        Parameters
        ----------
        constraint : str
            Constraint string, one symbol per column.
        seq_len : int
            Number of alignment columns.

        Returns
        -------
        HardConstraints
            The frozen constraint set.

        Raises
        ------
        InputError
            If the length differs from `seq_len`, a symbol is unknown, or the
            brackets are unbalanced.
        """
        if len(constraint) != seq_len:
            raise InputError(
                f"Structure constraint has length {len(constraint)} but the alignment has {seq_len} columns."
            )

        contexts: TriMatrix = TriMatrix(seq_len, int(LoopContext.ALL))
        unpaired = [True] * (seq_len + 1)
        forced: List[Tuple[int, int]] = []
        stack: List[int] = []

        for idx, ch in enumerate(constraint, start=1):
            if ch not in CONSTRAINT_SYMBOLS:
                raise InputError(f"Unknown constraint symbol '{ch}' at position {idx}.")
            if ch == "(":
                stack.append(idx)
            elif ch == ")":
                if not stack:
                    raise InputError(f"Unbalanced ')' at position {idx} in structure constraint.")
                forced.append((stack.pop(), idx))
        if stack:
            raise InputError(f"Unbalanced '(' at position {stack[-1]} in structure constraint.")

        # --- Single-column symbols ---
        for idx, ch in enumerate(constraint, start=1):
            if ch == "x":
                _forbid_all_pairs_of(contexts, seq_len, idx)
            elif ch == "|":
                unpaired[idx] = False
            elif ch == "<":
                unpaired[idx] = False
                for k in range(1, idx):
                    contexts.set(k, idx, int(LoopContext.NONE))
            elif ch == ">":
                unpaired[idx] = False
                for l in range(idx + 1, seq_len + 1):
                    contexts.set(idx, l, int(LoopContext.NONE))

        # --- Forced pairs: forbid competitors and crossing pairs ---
        for base_i, base_j in forced:
            unpaired[base_i] = False
            unpaired[base_j] = False
            for k in range(1, seq_len + 1):
                for l in range(k + 1, seq_len + 1):
                    if (k, l) == (base_i, base_j):
                        continue
                    shares_column = k in (base_i, base_j) or l in (base_i, base_j)
                    crosses = k < base_i < l < base_j or base_i < k < base_j < l
                    if shares_column or crosses:
                        contexts.set(k, l, int(LoopContext.NONE))

        return cls._freeze(seq_len, contexts, unpaired, forced)

    @classmethod
    def _freeze(
        cls,
        seq_len: int,
        contexts: TriMatrix,
        unpaired: List[bool],
        forced: List[Tuple[int, int]],
    ) -> HardConstraints:
        blocked = [0] * (seq_len + 1)
        for k in range(1, seq_len + 1):
            blocked[k] = blocked[k - 1] + (0 if unpaired[k] else 1)
        return cls(
            seq_len=seq_len,
            contexts=contexts,
            unpaired=tuple(unpaired),
            forced_pairs=tuple(sorted(forced)),
            _blocked_prefix=tuple(blocked),
        )

    def allows(self, base_i: int, base_j: int, context: LoopContext) -> bool:
        """True if pair `(i, j)` is admissible in `context`."""
        return bool(self.contexts.get(base_i, base_j) & context)

    def pair_allowed(self, base_i: int, base_j: int) -> bool:
        """True if pair `(i, j)` is admissible in at least one context."""
        return self.contexts.get(base_i, base_j) != LoopContext.NONE

    def unpaired_ok(self, base_k: int) -> bool:
        """True if column `k` may stay unpaired."""
        return self.unpaired[base_k]

    def unpaired_range_ok(self, start: int, end: int) -> bool:
        """True if every column in `start..end` may stay unpaired (empty ranges pass)."""
        if end < start:
            return True
        return self._blocked_prefix[end] == self._blocked_prefix[start - 1]


def _forbid_all_pairs_of(contexts: TriMatrix, seq_len: int, idx: int) -> None:
    for k in range(1, idx):
        contexts.set(k, idx, int(LoopContext.NONE))
    for l in range(idx + 1, seq_len + 1):
        contexts.set(idx, l, int(LoopContext.NONE))


@dataclass(frozen=True, slots=True)
class SoftConstraints:
    """
    Pseudo-energy bonuses for leaving columns unpaired in the exterior loop.

    Attributes
    ----------
    unpaired_bias : Tuple[float, ...]
        1-based per-column bias in kcal/mol (index 0 is unused). Negative
        values favour the column being unpaired.
    """
    unpaired_bias: Tuple[float, ...]

    @classmethod
    def none(cls, seq_len: int) -> SoftConstraints:
        """No bias on any column."""
        return cls(unpaired_bias=(0.0,) * (seq_len + 1))

    @classmethod
    def from_values(cls, values: Sequence[float], seq_len: Optional[int] = None) -> SoftConstraints:
        """
        Build soft constraints from one kcal/mol value per column.

        Raises
        ------
        InputError
            If the number of values differs from `seq_len`.
        """
        if seq_len is not None and len(values) != seq_len:
            raise InputError(
                f"Soft constraint has {len(values)} values but the alignment has {seq_len} columns."
            )
        return cls(unpaired_bias=(0.0,) + tuple(float(v) for v in values))

    @property
    def is_empty(self) -> bool:
        return not any(self.unpaired_bias)

    def unpaired_energy(self, base_k: int, n_seq: int) -> int:
        """Bias of column `k` in row-summed dcal/mol."""
        return int(round(self.unpaired_bias[base_k] * 100)) * n_seq
