from __future__ import annotations
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from rna_ali_fold.errors import InputError
from rna_ali_fold.structures.alignment import Alignment

logger = logging.getLogger(__name__)


def parse_clustal(lines: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Parse Clustal W formatted text into row names and sequences.

    Blocks are concatenated per name in order of first appearance. Conservation
    lines (starting with whitespace) and blank lines are skipped.
    """
    order: List[str] = []
    chunks: Dict[str, List[str]] = {}
    lines = iter(lines)
    header = next(lines, "")
    if not header.startswith("CLUSTAL"):
        raise InputError("Clustal input must start with a 'CLUSTAL' header line.")

    for line in lines:
        if not line.strip() or line[0].isspace():
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        name, chunk = fields[0], fields[1]
        if name not in chunks:
            order.append(name)
            chunks[name] = []
        chunks[name].append(chunk)

    return order, ["".join(chunks[name]) for name in order]


def parse_fasta(lines: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Parse aligned FASTA text into row names and sequences."""
    names: List[str] = []
    seqs: List[List[str]] = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith(";"):
            continue
        if line.startswith(">"):
            names.append(line[1:].split()[0] if len(line) > 1 else f"seq{len(names) + 1}")
            seqs.append([])
            continue
        if not seqs:
            raise InputError("FASTA input contains sequence data before the first header.")
        seqs[-1].append(line)

    return names, ["".join(parts) for parts in seqs]


def read_alignment(path: Union[str, Path], *, end_gaps: bool = False) -> Alignment:
    """
    Read a multiple alignment in Clustal W or aligned FASTA format.

    Parameters
    ----------
    path : Union[str, Path]
        Path to the alignment file.
    end_gaps : bool
        Mark leading and trailing gaps as end gaps.

    Returns
    -------
    Alignment
        The parsed alignment.

    Raises
    ------
    InputError
        If the file cannot be read, the format is not recognised, or the rows
        are inconsistent.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputError(f"Cannot read alignment file '{path}': {exc}") from exc

    lines = text.splitlines()
    first = next((line for line in lines if line.strip()), "")
    if first.startswith("CLUSTAL"):
        names, rows = parse_clustal(lines[lines.index(first):])
    elif first.startswith(">"):
        names, rows = parse_fasta(lines)
    else:
        raise InputError(f"Unrecognised alignment format in '{path}' (expected Clustal W or FASTA).")

    logger.debug(f"Read {len(rows)} sequences from {path}")

    return Alignment.from_rows(rows, names, end_gaps=end_gaps)
