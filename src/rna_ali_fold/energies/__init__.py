from rna_ali_fold.energies.energy_loader import DEFAULT_PARAMETER_FILE, EnergyParameterLoader
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel, AlignmentEnergyModel
from rna_ali_fold.energies.energy_ops import (
    build_boltzmann_parameters,
    exp_stem_energy,
    hairpin_energy,
    interior_loop_energy,
    stem_energy,
)
from rna_ali_fold.energies.energy_types import INF, MAXLOOP, BoltzmannParameters, EnergyParameters

__all__ = [
    "DEFAULT_PARAMETER_FILE",
    "EnergyParameterLoader",
    "AlignmentBoltzmannModel",
    "AlignmentEnergyModel",
    "build_boltzmann_parameters",
    "exp_stem_energy",
    "hairpin_energy",
    "interior_loop_energy",
    "stem_energy",
    "INF",
    "MAXLOOP",
    "BoltzmannParameters",
    "EnergyParameters",
]
