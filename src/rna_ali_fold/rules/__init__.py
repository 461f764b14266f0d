from rna_ali_fold.rules.constraints import (
    MIN_HAIRPIN_UNPAIRED,
    HardConstraints,
    LoopContext,
    SoftConstraints,
    hairpin_size,
    is_min_hairpin_size,
)
from rna_ali_fold.rules.covariation import (
    CovariationMatrix,
    PairTally,
    build_covariation_matrix,
    covariation_score,
    tally_pair,
)
from rna_ali_fold.rules.pair_types import (
    PAIR_LABELS,
    REVERSE_TYPE,
    PairMatrix,
    PairType,
    parse_nonstandard_pairs,
)
from rna_ali_fold.rules.substitution import DEFAULT_RIBOSUM_FILE, HAMMING, SubstitutionMatrix

__all__ = [
    "MIN_HAIRPIN_UNPAIRED",
    "HardConstraints",
    "LoopContext",
    "SoftConstraints",
    "hairpin_size",
    "is_min_hairpin_size",
    "CovariationMatrix",
    "PairTally",
    "build_covariation_matrix",
    "covariation_score",
    "tally_pair",
    "PAIR_LABELS",
    "REVERSE_TYPE",
    "PairMatrix",
    "PairType",
    "parse_nonstandard_pairs",
    "DEFAULT_RIBOSUM_FILE",
    "HAMMING",
    "SubstitutionMatrix",
]
