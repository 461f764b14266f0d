from rna_ali_fold.utils.energy_utils import (
    rescale_free_energy,
    loop_size_energy,
    thermal_energy_cal,
    to_kelvin,
)
from rna_ali_fold.utils.nucleotide_utils import (
    normalize_base,
    encode_base,
    encode_row,
    is_gap,
    mark_end_gaps,
)

__all__ = [
    "rescale_free_energy",
    "loop_size_energy",
    "thermal_energy_cal",
    "to_kelvin",
    "normalize_base",
    "encode_base",
    "encode_row",
    "is_gap",
    "mark_end_gaps",
]
