from __future__ import annotations
from typing import Final, List, Mapping, Sequence

# Numeric base codes used by every energy table. Gaps and unknown symbols map to 0.
NUCLEOTIDE_CODES: Final[Mapping[str, int]] = {"A": 1, "C": 2, "G": 3, "U": 4}
NUCLEOTIDE_LETTERS: Final[str] = "_ACGU"

GAP_CHARS: Final[frozenset] = frozenset("-._~")
END_GAP_CHAR: Final[str] = "~"

# Encoded value outside the alignment (column 0 and column L + 1).
OUT_OF_RANGE_CODE: Final[int] = -1


def normalize_base(base_raw: str) -> str:
    """
    Upper-case a nucleotide base and map T->U so RNA logic can be applied uniformly.

    Parameters
    ----------
    base_raw : str
        Raw single-character nucleotide base.

    Returns
    -------
    str
        Normalized base in {A, U, G, C, N, ...}. Gap characters are returned
        unchanged, except `.` which becomes `-`.
    """
    if not isinstance(base_raw, str):
        return base_raw

    if len(base_raw) != 1:
        return base_raw

    if base_raw == ".":
        return "-"

    base_norm = base_raw.upper()

    return "U" if base_norm == "T" else base_norm


def is_gap(symbol: str) -> bool:
    """Return True for gap and end-gap characters."""
    return symbol in GAP_CHARS


def encode_base(base: str) -> int:
    """
    Map a single alignment character to its numeric code.

    Parameters
    ----------
    base : str
        One alignment character.

    Returns
    -------
    int
        1-4 for A, C, G, U and 0 for gaps or any other symbol.
    """
    return NUCLEOTIDE_CODES.get(normalize_base(base), 0)


def encode_row(row: Sequence[str]) -> List[int]:
    """
    Encode an alignment row into a 1-based list with out-of-range sentinels.

    The returned list has length `len(row) + 2`. Index 0 and index `len(row) + 1`
    hold `OUT_OF_RANGE_CODE`, so neighbours of the first and last column can be
    looked up without bounds checks.

    Parameters
    ----------
    row : Sequence[str]
        One alignment row.

    Returns
    -------
    List[int]
        Encoded row, with column `k` stored at index `k`.
    """
    encoded = [OUT_OF_RANGE_CODE]
    encoded.extend(encode_base(ch) for ch in row)
    encoded.append(OUT_OF_RANGE_CODE)

    return encoded


def mark_end_gaps(row: str) -> str:
    """
    Replace leading and trailing gaps of a row with the end-gap symbol `~`.

    Example
    -------
    >>> mark_end_gaps("--AC-GU--")
    '~~AC-GU~~'
    """
    chars = list(row)
    for idx, ch in enumerate(chars):
        if ch != "-":
            break
        chars[idx] = END_GAP_CHAR
    for idx in range(len(chars) - 1, 0, -1):
        if chars[idx] not in ("-", END_GAP_CHAR):
            break
        chars[idx] = END_GAP_CHAR

    return "".join(chars)
