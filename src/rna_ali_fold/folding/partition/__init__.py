from rna_ali_fold.folding.partition.pf_state import PartitionState, make_pf_state
from rna_ali_fold.folding.partition.pf_recurrences import PartitionFunctionEngine, estimate_pf_scale
from rna_ali_fold.folding.partition.pf_outside import PairProbability, compute_pair_probabilities, probability_list
from rna_ali_fold.folding.partition.stochastic import SampledStructure, StochasticSampler, sample_structures
from rna_ali_fold.folding.partition.centroid import CentroidResult, centroid_structure
from rna_ali_fold.folding.partition.pair_statistics import PMIN, PairInfo, pair_statistics, positional_entropy

__all__ = [
    "PartitionState",
    "make_pf_state",
    "PartitionFunctionEngine",
    "estimate_pf_scale",
    "PairProbability",
    "compute_pair_probabilities",
    "probability_list",
    "SampledStructure",
    "StochasticSampler",
    "sample_structures",
    "CentroidResult",
    "centroid_structure",
    "PMIN",
    "PairInfo",
    "pair_statistics",
    "positional_entropy",
]
