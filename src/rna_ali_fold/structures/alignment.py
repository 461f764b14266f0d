from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from rna_ali_fold.errors import InputError
from rna_ali_fold.utils.nucleotide_utils import (
    NUCLEOTIDE_LETTERS,
    encode_base,
    encode_row,
    is_gap,
    mark_end_gaps,
    normalize_base,
)

IUPAC_BY_MASK = "-ACMGRSVUWYHKDBN"


@dataclass(frozen=True, slots=True)
class Alignment:
    """
    An immutable multiple alignment of RNA sequences over a common column axis.

    Rows are stored normalised: upper case, `T` mapped to `U` and `.` mapped to
    `-`. Columns are addressed 1-based throughout the package; `encoding[s][k]`
    is the numeric code of row `s` at column `k`, with out-of-range sentinels at
    index 0 and `length + 1`.

    Attributes
    ----------
    rows : Tuple[str, ...]
        The aligned sequences, all of equal length.
    names : Tuple[str, ...]
        Row identifiers, same length as `rows`.
    encoding : Tuple[Tuple[int, ...], ...]
        Per-row numeric encodings, derived from `rows`.
    """
    rows: Tuple[str, ...]
    names: Tuple[str, ...]
    encoding: Tuple[Tuple[int, ...], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.rows:
            raise InputError("Alignment contains no sequences.")
        length = len(self.rows[0])
        if length == 0:
            raise InputError("Alignment rows are empty.")
        for idx, row in enumerate(self.rows):
            if len(row) != length:
                raise InputError(
                    f"Alignment row {idx + 1} has length {len(row)}, expected {length}."
                )
        if len(self.names) != len(self.rows):
            raise InputError("Number of names does not match the number of alignment rows.")

        object.__setattr__(self, "encoding", tuple(tuple(encode_row(row)) for row in self.rows))

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[str],
        names: Optional[Sequence[str]] = None,
        *,
        end_gaps: bool = False,
    ) -> Alignment:
        """
        Build an alignment from raw row strings.

        Parameters
        ----------
        rows : Sequence[str]
            Aligned sequences. Whitespace is stripped.
        names : Optional[Sequence[str]]
            Optional row names. Defaults to `seq1`, `seq2`, ...
        end_gaps : bool
            If True, leading and trailing gaps of every row are marked with `~`
            so that pairs involving them are excluded from covariation tallies.

        Returns
        -------
        Alignment
            The normalised alignment.

        Raises
        ------
        InputError
            If the alignment is empty or ragged.
        """
        normalized: List[str] = []
        for row in rows:
            chars = "".join(normalize_base(ch) for ch in row.strip())
            if end_gaps:
                chars = mark_end_gaps(chars)
            normalized.append(chars)

        if names is None:
            names = [f"seq{idx + 1}" for idx in range(len(normalized))]

        return cls(rows=tuple(normalized), names=tuple(names))

    @property
    def n_seq(self) -> int:
        """Number of rows N."""
        return len(self.rows)

    @property
    def length(self) -> int:
        """Number of columns L."""
        return len(self.rows[0])

    def column(self, base_k: int) -> str:
        """Return the characters of column `k` (1-based), one per row."""
        return "".join(row[base_k - 1] for row in self.rows)

    def consensus(self) -> str:
        """
        Majority-vote consensus sequence.

        Gaps take part in the vote; a column whose most frequent symbol is a gap
        is written as `_`. Ties are broken in the order gap, A, C, G, U.
        """
        symbols: List[str] = []
        for k in range(1, self.length + 1):
            counts = Counter(encode_base(ch) for ch in self.column(k))
            best = max(range(5), key=lambda code: (counts.get(code, 0), -code))
            symbols.append(NUCLEOTIDE_LETTERS[best])

        return "".join(symbols)

    def consensus_mis(self) -> str:
        """
        Most informative sequence in IUPAC notation.

        A nucleotide contributes to the IUPAC symbol of a column when it occurs
        there more often than its overall frequency in the alignment. The symbol
        is written in lower case when gaps are over-represented in the column.
        """
        n_cols = self.length
        background = Counter()
        per_column: List[Counter] = []
        for k in range(1, n_cols + 1):
            counts = Counter(encode_base(ch) for ch in self.column(k))
            per_column.append(counts)
            background.update(counts)

        symbols: List[str] = []
        for counts in per_column:
            mask = 0
            for code in range(4, 0, -1):
                mask <<= 1
                if counts.get(code, 0) * n_cols > background.get(code, 0):
                    mask += 1
            symbol = IUPAC_BY_MASK[mask]
            if counts.get(0, 0) * n_cols > background.get(0, 0):
                symbol = symbol.lower()
            symbols.append(symbol)

        return "".join(symbols)

    def is_gap_at(self, row: int, base_k: int) -> bool:
        """True if row `row` (0-based) has a gap or end gap at column `k`."""
        return is_gap(self.rows[row][base_k - 1])
