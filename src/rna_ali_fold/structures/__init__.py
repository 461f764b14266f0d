from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.structures.alignment_io import read_alignment
from rna_ali_fold.structures.pairing import (
    Pair,
    make_pair_table,
    pair_table_to_pairs,
    is_valid_pair_table,
    parse_dot_bracket,
    pairs_to_dotbracket,
    dotbracket_to_pairs,
    base_pair_distance,
)
from rna_ali_fold.structures.tri_matrix import TriMatrix, INF

__all__ = [
    "Alignment",
    "read_alignment",
    "Pair",
    "make_pair_table",
    "pair_table_to_pairs",
    "is_valid_pair_table",
    "parse_dot_bracket",
    "pairs_to_dotbracket",
    "dotbracket_to_pairs",
    "base_pair_distance",
    "TriMatrix",
    "INF",
]
