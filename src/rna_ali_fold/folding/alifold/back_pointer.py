from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional, Tuple

__all__ = ["AliFoldBacktrackOp", "AliFoldBackPointer"]

Interval = Tuple[int, int]


class AliFoldBacktrackOp(Enum):
    """
    Defines all backtrack operations of the alignment MFE recursions.

    NONE               : Not set yet.
    EXT_UNPAIRED       : f5[j] left column j unpaired (continue with f5[j-1]).
    EXT_STEM           : f5[j] attached the stem `inner` after the prefix f5[prefix].
    EXT_GQUAD          : f5[j] ended with a G-quadruplex spanning `inner`.
    HAIRPIN            : c[i,j] closes a hairpin.
    INTERIOR           : c[i,j] closes a stack, bulge or interior loop around `inner`.
    MULTI              : c[i,j] closes a multiloop split into fML `segments`.
    STACK_ONLY         : c[i,j] stacks on the unrestricted cc[i+1,j-1] (no lonely pairs).
    ML_UNPAIRED_LEFT   : fML[i,j] left column i unpaired (use fML[i+1,j]).
    ML_UNPAIRED_RIGHT  : fML[i,j] left column j unpaired (use fML[i,j-1]).
    ML_STEM            : fML[i,j] is a single branch `inner` plus absorbed flanks.
    ML_SPLIT           : fML[i,j] split into fML[i,k-1] + fML[k,j].
    """
    NONE = auto()
    EXT_UNPAIRED = auto()
    EXT_STEM = auto()
    EXT_GQUAD = auto()
    HAIRPIN = auto()
    INTERIOR = auto()
    MULTI = auto()
    STACK_ONLY = auto()
    ML_UNPAIRED_LEFT = auto()
    ML_UNPAIRED_RIGHT = auto()
    ML_STEM = auto()
    ML_SPLIT = auto()


@dataclass(frozen=True, slots=True)
class AliFoldBackPointer:
    """
    Stores the information needed to backtrack a single step of the MFE fill.

    Attributes
    ----------
    operation : AliFoldBacktrackOp
        The recursion rule that was optimal for this cell.
    inner : Optional[Interval]
        The stem pair, inner pair or G-quadruplex span the rule refers to.
    split_k : Optional[int]
        Split point of `ML_SPLIT`.
    prefix : Optional[int]
        `f5` index the exterior traceback continues from.
    segments : Optional[Tuple[Interval, Interval]]
        The two fML segments of a multiloop.
    note : Optional[str]
        Dangle variant of the chosen rule (e.g. "5'", "both").
    """
    operation: AliFoldBacktrackOp = AliFoldBacktrackOp.NONE
    inner: Optional[Interval] = None
    split_k: Optional[int] = None
    prefix: Optional[int] = None
    segments: Optional[Tuple[Interval, Interval]] = None
    note: Optional[str] = None
