from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional, Union

from rna_ali_fold.errors import InputError
from rna_ali_fold.rules.constraints import MIN_HAIRPIN_UNPAIRED
from rna_ali_fold.energies.energy_types import MAXLOOP


class DangleModel(IntEnum):
    """
    Treatment of unpaired bases adjacent to stems in exterior and multiloops.

    NONE       : No dangle or mismatch contributions.
    MIXED      : Each unpaired base may dangle on at most one adjacent stem.
    DOUBLE     : Both flanking bases always contribute, paired or not.
    MIXED_COAX : Accepted for compatibility; folded as `MIXED` since
                 coaxial stacking is not modelled.
    """
    NONE = 0
    MIXED = 1
    DOUBLE = 2
    MIXED_COAX = 3


@dataclass(frozen=True, slots=True)
class AliFoldConfig:
    """
    Immutable model and run configuration of an alignment fold.

    Build variants with `dataclasses.replace`.

    Attributes
    ----------
    temperature : float
        Folding temperature in °C.
    dangles : DangleModel
        Dangle treatment, see `DangleModel`. Defaults to `DOUBLE` as in
        RNAalifold; `MIXED` is selected with `dangles=1`.
    no_lonely_pairs : bool
        Forbid helices of length one.
    no_gu : bool
        Forbid GU and UG pairs.
    no_closing_gu : bool
        Forbid GU-closed hairpins and interior loops.
    nonstandard_pairs : str
        Comma-separated extra pairs, e.g. ``"GA,-UU"``.
    parameter_file : Optional[Path]
        YAML energy parameters; the bundled set when None.
    tetraloops : bool
        Apply the tabulated tetraloop bonuses.
    circular : bool
        Treat the alignment as circular.
    compute_partition_function : bool
        Compute the ensemble, pair probabilities and centroid.
    pf_scale_factor : float
        Multiplier of the MFE in the partition-function scale estimate.
    stochastic_samples : int
        Number of structures to sample from the ensemble.
    sample_seed : Optional[int]
        Seed of the sampling generator.
    sample_energies : bool
        Evaluate the energy of every sampled structure.
    cv_fact, nc_fact : float
        Weights of the covariation bonus and the non-compatibility penalty.
    ribosum : bool
        Score covariation with a RIBOSUM-style substitution matrix instead
        of the Hamming distance between pair types.
    ribosum_file : Optional[Path]
        YAML substitution matrix; the bundled one when None. Setting it
        implies `ribosum`.
    gquad : bool
        Allow G-quadruplexes in the exterior loop.
    end_gaps : bool
        Mark leading and trailing gaps as end gaps.
    mis : bool
        Report the most informative consensus sequence instead of the majority vote.
    min_loop_size : int
        Minimal hairpin size.
    max_loop_size : int
        Maximal number of unpaired columns in an interior loop.
    probability_cutoff : float
        Pairs below this probability are dropped from the probability list.
    verbose : bool
        Show progress bars.
    """
    temperature: float = 37.0
    dangles: DangleModel = DangleModel.DOUBLE
    no_lonely_pairs: bool = False
    no_gu: bool = False
    no_closing_gu: bool = False
    nonstandard_pairs: str = ""
    parameter_file: Optional[Union[str, Path]] = None
    tetraloops: bool = True
    circular: bool = False
    compute_partition_function: bool = False
    pf_scale_factor: float = 1.07
    stochastic_samples: int = 0
    sample_seed: Optional[int] = None
    sample_energies: bool = False
    cv_fact: float = 1.0
    nc_fact: float = 1.0
    ribosum: bool = False
    ribosum_file: Optional[Union[str, Path]] = None
    gquad: bool = False
    end_gaps: bool = False
    mis: bool = False
    min_loop_size: int = MIN_HAIRPIN_UNPAIRED
    max_loop_size: int = MAXLOOP
    probability_cutoff: float = 1e-6
    verbose: bool = False

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "dangles", DangleModel(int(self.dangles)))
        except ValueError as exc:
            raise InputError(f"Dangle model must be one of 0, 1, 2, 3, got {self.dangles!r}.") from exc
        if self.ribosum_file is not None:
            object.__setattr__(self, "ribosum", True)

        if not -273.15 < self.temperature < 200.0:
            raise InputError(f"Temperature {self.temperature} °C is outside the supported range.")
        if self.pf_scale_factor <= 0:
            raise InputError("pf_scale_factor must be positive.")
        if self.stochastic_samples < 0:
            raise InputError("stochastic_samples must not be negative.")
        if self.min_loop_size < 0:
            raise InputError("min_loop_size must not be negative.")
        if not 0 < self.max_loop_size <= MAXLOOP:
            raise InputError(f"max_loop_size must lie in 1..{MAXLOOP}.")
        if not 0.0 <= self.probability_cutoff < 1.0:
            raise InputError("probability_cutoff must lie in [0, 1).")

    @property
    def wants_ensemble(self) -> bool:
        """True if the partition function has to be computed."""
        return self.compute_partition_function or self.stochastic_samples > 0
