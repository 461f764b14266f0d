from rna_ali_fold.folding.fold_config import AliFoldConfig, DangleModel
from rna_ali_fold.folding.dangles import DanglePolicy, make_dangle_policy

__all__ = [
    "AliFoldConfig",
    "DangleModel",
    "DanglePolicy",
    "make_dangle_policy",
]
