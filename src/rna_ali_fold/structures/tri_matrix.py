from __future__ import annotations
import math

from typing import Generic, TypeVar, List, Tuple, Iterator, Optional

INF = math.inf

T = TypeVar("T")


class TriMatrix(Generic[T]):
    """
    A memory-efficient, upper-triangular matrix over 1-based alignment columns.

    Only cells with `i - 1 <= j` are stored. Cells on the sub-diagonal
    `j == i - 1` represent empty segments; they are initialised with `empty`
    (or `fill` when `empty` is None) so recursions can address `[i, i - 1]`
    without special cases. Row `n + 1` exists and holds only the empty cell
    `[n + 1, n]`.

    Parameters
    ----------
    seq_len : int
        Number of alignment columns `n`.
    fill : T
        Initial value of every non-empty cell.
    empty : Optional[T]
        Value of the empty-segment cells. Defaults to `fill`.
    """
    __slots__ = ("_seq_len", "_rows")

    def __init__(self, seq_len: int, fill: T, empty: Optional[T] = None):
        self._seq_len = seq_len
        empty_value = fill if empty is None else empty
        # Row i stores columns i-1 .. n, i.e. offset = j - i + 1.
        self._rows: List[List[T]] = [[]]
        for i in range(1, seq_len + 2):
            row = [fill] * (seq_len - i + 2)
            row[0] = empty_value
            self._rows.append(row)

    @property
    def size(self) -> int:
        """Returns the number of columns n that defines the matrix dimensions."""
        return self._seq_len

    @property
    def shape(self) -> Tuple[int, int]:
        """Returns the matrix shape as a tuple `(n, n)`."""
        return self._seq_len, self._seq_len

    def _offset(self, base_i: int, base_j: int) -> int:
        """Calculates the column offset within a row and validates indices."""
        if base_i < 1 or base_i > self._seq_len + 1 or base_j > self._seq_len or base_j < base_i - 1:
            raise IndexError(f"TriMatrix invalid index: (i={base_i}, j={base_j}) for n={self._seq_len}")
        return base_j - base_i + 1

    def get(self, base_i: int, base_j: int) -> T:
        """
        Retrieves the value at cell `(i, j)`.

        Parameters
        ----------
        base_i : int
            The row index (1-based column).
        base_j : int
            The column index (1-based column), `j >= i - 1`.

        Returns
        -------
        T
            The value stored at the specified cell.
        """
        return self._rows[base_i][self._offset(base_i, base_j)]

    def set(self, base_i: int, base_j: int, value: T) -> None:
        """
        Sets the `value` at cell `(i, j)`.

        Parameters
        ----------
        base_i : int
            The row index (1-based column).
        base_j : int
            The column index (1-based column).
        value : T
            The value to store in the cell.
        """
        self._rows[base_i][self._offset(base_i, base_j)] = value

    def add(self, base_i: int, base_j: int, value: T) -> None:
        """Adds `value` to the cell `(i, j)` in place."""
        row = self._rows[base_i]
        offset = self._offset(base_i, base_j)
        row[offset] = row[offset] + value

    def iter_upper_indices(self, min_span: int = 1) -> Iterator[Tuple[int, int]]:
        """
        Yields `(i, j)` in order of increasing span `j - i + 1`.

        Every cell is visited after all cells it strictly contains, which is
        the order the inside recursions require.

        Parameters
        ----------
        min_span : int
            Smallest span to visit, by default 1.

        Yields
        ------
        Iterator[Tuple[int, int]]
            An iterator over the `(i, j)` index tuples.
        """
        n = self._seq_len
        for span in range(min_span, n + 1):
            for i in range(1, n - span + 2):
                yield i, i + span - 1
