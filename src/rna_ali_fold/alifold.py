from __future__ import annotations
import dataclasses
import logging
import math
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from rna_ali_fold.errors import (
    ConstraintConflict,
    InputError,
    InvariantViolation,
    NoSolution,
    StructureTooShort,
)
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel, AlignmentEnergyModel
from rna_ali_fold.energies.energy_types import INF, EnergyParameters
from rna_ali_fold.folding.alifold import (
    AliFoldEngine,
    AliFoldState,
    EnergyDecomposition,
    StructureEvaluator,
    fill_circular,
    make_fold_state,
    traceback_alifold,
)
from rna_ali_fold.folding.common_traceback import TraceResult
from rna_ali_fold.folding.dangles import DanglePolicy, make_dangle_policy
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.folding.partition import (
    CentroidResult,
    PairInfo,
    PairProbability,
    PartitionFunctionEngine,
    SampledStructure,
    centroid_structure,
    compute_pair_probabilities,
    pair_statistics,
    probability_list,
    sample_structures,
)
from rna_ali_fold.rules.constraints import HardConstraints, SoftConstraints
from rna_ali_fold.rules.covariation import CovariationMatrix, build_covariation_matrix
from rna_ali_fold.rules.pair_types import PairMatrix, parse_nonstandard_pairs
from rna_ali_fold.rules.substitution import HAMMING, SubstitutionMatrix
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.utils.energy_utils import thermal_energy_cal

logger = logging.getLogger(__name__)

# Float slack allowed above an MFE frequency of 1.
FREQUENCY_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class MfeResult:
    """
    Minimum free energy consensus structure of an alignment.

    Attributes
    ----------
    consensus : str
        Consensus sequence (majority vote or most informative sequence).
    structure : str
        Dot-bracket MFE structure.
    pair_table : Tuple[int, ...]
        1-based pair table of `structure`.
    energy : float
        Per-sequence MFE in kcal/mol, covariation included.
    decomposition : EnergyDecomposition
        Loop and covariation parts of `energy`.
    trace : TraceResult
        Pairs and G-quadruplexes of the structure.
    circular : bool
        True if the alignment was folded as a circular molecule.
    conflicts : Tuple[ConstraintConflict, ...]
        Constrained pairs admitted against the covariation rules, or left
        forbidden because no row can form them.
    """
    consensus: str
    structure: str
    pair_table: Tuple[int, ...]
    energy: float
    decomposition: EnergyDecomposition
    trace: TraceResult
    circular: bool = False
    conflicts: Tuple[ConstraintConflict, ...] = ()


@dataclass(frozen=True, slots=True)
class EnsembleResult:
    """
    Boltzmann ensemble of an alignment.

    Attributes
    ----------
    ensemble_energy : float
        Per-sequence ensemble free energy in kcal/mol.
    mfe_frequency : float
        Equilibrium frequency of the MFE structure, in `(0, 1]`.
    pf_scale : float
        Per-column scale factor used for the partition function.
    probabilities : List[PairProbability]
        Pairs above the probability cutoff.
    centroid : Optional[CentroidResult]
        Centroid structure, when pair probabilities were computed for a
        linear alignment.
    centroid_energy : Optional[EnergyDecomposition]
        Energy of the centroid structure.
    pair_infos : List[PairInfo]
        Ranked statistics of the probable pairs.
    samples : List[SampledStructure]
        Stochastically drawn structures.
    """
    ensemble_energy: float
    mfe_frequency: float
    pf_scale: float
    probabilities: List[PairProbability] = field(default_factory=list)
    centroid: Optional[CentroidResult] = None
    centroid_energy: Optional[EnergyDecomposition] = None
    pair_infos: List[PairInfo] = field(default_factory=list)
    samples: List[SampledStructure] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AliFoldResult:
    """The MFE result and, when requested, the ensemble result of one fold."""
    mfe: MfeResult
    ensemble: Optional[EnsembleResult] = None


@dataclass(frozen=True, slots=True)
class FoldContext:
    """
    Everything the folding engines share for one alignment and configuration.

    Built once per fold by `prepare_fold`; the engines never modify it.
    """
    alignment: Alignment
    config: AliFoldConfig
    params: EnergyParameters
    pair_matrix: PairMatrix
    energy_model: AlignmentEnergyModel
    covariation: CovariationMatrix
    hard: HardConstraints
    soft: SoftConstraints
    policy: DanglePolicy

    def evaluator(self, policy: Optional[DanglePolicy] = None) -> StructureEvaluator:
        """Structure evaluator of this fold, optionally under another dangle policy."""
        return StructureEvaluator(
            energy_model=self.energy_model,
            covariation=self.covariation,
            policy=policy if policy is not None else self.policy,
            soft=self.soft,
        )


def min_alignment_length(config: AliFoldConfig) -> int:
    """Shortest alignment the folder accepts: `2 · turn + 2` columns."""
    return 2 * config.min_loop_size + 2


def prepare_fold(
    alignment: Alignment,
    config: AliFoldConfig,
    *,
    constraint: Optional[str] = None,
    soft_constraint: Optional[Sequence[float]] = None,
    params: Optional[EnergyParameters] = None,
) -> FoldContext:
    """
    Validates the input and builds the models shared by all engines.

    Parameters
    ----------
    alignment : Alignment
        The alignment to fold.
    config : AliFoldConfig
        Model configuration.
    constraint : Optional[str]
        Dot-bracket hard constraint.
    soft_constraint : Optional[Sequence[float]]
        Per-column unpaired bias in kcal/mol.
    params : Optional[EnergyParameters]
        Energy parameters; loaded from `config.parameter_file` (or the
        bundled set) at `config.temperature` when None.
        Tetraloop bonuses are dropped when `config.tetraloops` is off.

    Returns
    -------
    FoldContext
        The shared models.

    Raises
    ------
    StructureTooShort
        If the alignment is shorter than `min_alignment_length`.
    InputError
        On inconsistent options, malformed constraints or an unreadable
        substitution matrix.
    """
    n = alignment.length
    min_length = min_alignment_length(config)
    if n < min_length:
        raise StructureTooShort(n, min_length)

    if config.circular:
        if soft_constraint is not None:
            raise InputError("Soft constraints are not supported for circular alignments.")
        if config.gquad:
            raise InputError("G-quadruplexes are not supported for circular alignments.")
        if config.no_lonely_pairs:
            logger.warning("Lonely pairs are only pruned by covariation in the circular exterior loop")

    if params is None:
        params = EnergyParameterLoader().load(yaml_path=config.parameter_file, temperature=config.temperature)
    if not config.tetraloops:
        params = dataclasses.replace(params, tetraloops={})

    if config.ribosum:
        matrix = SubstitutionMatrix.load(config.ribosum_file)
        logger.info(f"Scoring covariation with substitution matrix '{matrix.name}'")
    else:
        matrix = HAMMING

    pair_matrix = PairMatrix.build(
        no_gu=config.no_gu,
        nonstandard=parse_nonstandard_pairs(config.nonstandard_pairs),
    )
    hard = HardConstraints.from_dot_bracket(constraint, n) if constraint else HardConstraints.unconstrained(n)
    soft = SoftConstraints.from_values(soft_constraint, n) if soft_constraint is not None else SoftConstraints.none(n)

    covariation = build_covariation_matrix(
        alignment,
        pair_matrix,
        cv_fact=config.cv_fact,
        nc_fact=config.nc_fact,
        no_lonely_pairs=config.no_lonely_pairs,
        hard_constraints=hard,
        min_loop_size=config.min_loop_size,
        matrix=matrix,
    )

    return FoldContext(
        alignment=alignment,
        config=config,
        params=params,
        pair_matrix=pair_matrix,
        energy_model=AlignmentEnergyModel(alignment, params, pair_matrix, no_closing_gu=config.no_closing_gu),
        covariation=covariation,
        hard=hard,
        soft=soft,
        policy=make_dangle_policy(config),
    )


def fold_mfe(context: FoldContext) -> Tuple[MfeResult, AliFoldState]:
    """
    Runs the MFE fill and backtrack and verifies the result.

    Returns
    -------
    Tuple[MfeResult, AliFoldState]
        The MFE result and the filled state.

    Raises
    ------
    NoSolution
        If no structure satisfies the constraints.
    InvariantViolation
        If the evaluator disagrees with the optimum of the fill.
    """
    config = context.config
    n_seq = context.alignment.n_seq

    engine = AliFoldEngine(
        energy_model=context.energy_model,
        covariation=context.covariation,
        hard=context.hard,
        soft=context.soft,
        policy=context.policy,
        config=config,
    )
    state = make_fold_state(context.alignment.length)
    engine.fill_all_matrices(state)
    if config.circular:
        fill_circular(engine, state)

    if state.mfe_energy == INF:
        conflicts = "; ".join(str(c) for c in context.covariation.conflicts)
        raise NoSolution(
            "No structure satisfies the constraints." + (f" Conflicts: {conflicts}" if conflicts else "")
        )

    trace = traceback_alifold(state)
    decomposition = context.evaluator().evaluate(trace.dot_bracket, circular=config.circular)
    if not math.isclose(decomposition.total, state.mfe_energy, abs_tol=1e-6):
        raise InvariantViolation(
            f"Backtracked structure {trace.dot_bracket} evaluates to {decomposition.total} "
            f"but the fill reported {state.mfe_energy} (row-summed dcal/mol)."
        )

    consensus = context.alignment.consensus_mis() if config.mis else context.alignment.consensus()
    result = MfeResult(
        consensus=consensus,
        structure=trace.dot_bracket,
        pair_table=tuple(trace.pair_table()),
        energy=state.mfe_energy / (100.0 * n_seq),
        decomposition=decomposition,
        trace=trace,
        circular=config.circular,
        conflicts=context.covariation.conflicts,
    )
    return result, state


def fold_ensemble(context: FoldContext, mfe: MfeResult) -> EnsembleResult:
    """
    Computes the partition function and everything derived from it.

    Parameters
    ----------
    context : FoldContext
        Shared models of the fold.
    mfe : MfeResult
        The MFE result, used for scaling and the MFE frequency.

    Returns
    -------
    EnsembleResult
        Ensemble energy, MFE frequency and, as configured, pair
        probabilities, centroid, pair statistics and samples.

    Raises
    ------
    NumericOverflow
        If the partition function leaves the floating range.
    """
    config = context.config
    ensemble_policy = context.policy.ensemble_policy()
    boltzmann_model = AlignmentBoltzmannModel.from_model(context.energy_model, thermal_energy_cal(config.temperature))

    engine = PartitionFunctionEngine(
        boltzmann_model=boltzmann_model,
        covariation=context.covariation,
        hard=context.hard,
        soft=context.soft,
        policy=ensemble_policy,
        config=config,
    )
    state = engine.fill_all_matrices(mfe.energy)
    ensemble_energy = engine.ensemble_energy(state)

    # The MFE structure is weighted with the dangles the ensemble uses.
    ensemble_evaluator = context.evaluator(ensemble_policy)
    mfe_in_ensemble = ensemble_evaluator.evaluate(mfe.structure, circular=config.circular).total_kcal
    mfe_frequency = math.exp((ensemble_energy - mfe_in_ensemble) / engine.kt_kcal)
    if mfe_frequency > 1.0 + FREQUENCY_TOLERANCE:
        raise InvariantViolation(
            f"MFE frequency {mfe_frequency} exceeds 1: ensemble energy {ensemble_energy} kcal/mol "
            f"lies above the MFE structure's {mfe_in_ensemble} kcal/mol."
        )
    mfe_frequency = min(1.0, mfe_frequency)
    logger.info(f"Ensemble energy {ensemble_energy:.2f} kcal/mol, MFE frequency {mfe_frequency:.6f}")

    probabilities: List[PairProbability] = []
    centroid = None
    centroid_energy = None
    pair_infos: List[PairInfo] = []
    if config.compute_partition_function:
        probs = compute_pair_probabilities(engine, state)
        probabilities = probability_list(probs, config.probability_cutoff)
        # No centroid for circular alignments.
        if not config.circular:
            centroid = centroid_structure(probs)
            centroid_energy = context.evaluator().evaluate(centroid.structure)
        pair_infos = pair_statistics(
            context.alignment,
            context.pair_matrix,
            probs,
            [p.as_tuple() for p in mfe.trace.pairs],
        )

    samples: List[SampledStructure] = []
    if config.stochastic_samples > 0:
        # Samples are scored under the dangles they were drawn with.
        samples = sample_structures(
            engine,
            state,
            config.stochastic_samples,
            seed=config.sample_seed,
            evaluate=(
                (lambda db: ensemble_evaluator.evaluate(db, circular=config.circular).total_kcal)
                if config.sample_energies else None
            ),
        )

    return EnsembleResult(
        ensemble_energy=ensemble_energy,
        mfe_frequency=mfe_frequency,
        pf_scale=state.pf_scale,
        probabilities=probabilities,
        centroid=centroid,
        centroid_energy=centroid_energy,
        pair_infos=pair_infos,
        samples=samples,
    )


def fold_alignment(
    alignment: Alignment,
    config: Optional[AliFoldConfig] = None,
    *,
    constraint: Optional[str] = None,
    soft_constraint: Optional[Sequence[float]] = None,
    params: Optional[EnergyParameters] = None,
) -> AliFoldResult:
    """
    Folds an alignment into its consensus secondary structure.

    Parameters
    ----------
    alignment : Alignment
        The alignment to fold.
    config : Optional[AliFoldConfig]
        Model configuration; defaults to `AliFoldConfig()`.
    constraint : Optional[str]
        Dot-bracket hard constraint over `. x | < > ( )`.
    soft_constraint : Optional[Sequence[float]]
        Per-column unpaired bias in kcal/mol.
    params : Optional[EnergyParameters]
        Energy parameters; loaded from the configuration when None.

    Returns
    -------
    AliFoldResult
        The MFE result and, if requested, the ensemble result.
    """
    config = config if config is not None else AliFoldConfig()
    start_time = time.perf_counter()

    logger.info("=" * 60)
    logger.info(f"Folding alignment of {alignment.n_seq} sequences, {alignment.length} columns")
    logger.info("=" * 60)

    context = prepare_fold(
        alignment, config, constraint=constraint, soft_constraint=soft_constraint, params=params
    )
    mfe, _ = fold_mfe(context)
    logger.info(
        f"MFE {mfe.energy:.2f} kcal/mol ({mfe.decomposition.energy_kcal:.2f} + "
        f"{mfe.decomposition.covariance_kcal:.2f}): {mfe.structure}"
    )

    ensemble = fold_ensemble(context, mfe) if config.wants_ensemble else None

    elapsed = time.perf_counter() - start_time
    logger.info(f"Fold completed in {elapsed:.2f}s")

    return AliFoldResult(mfe=mfe, ensemble=ensemble)


def fold_circular(
    alignment: Alignment,
    config: Optional[AliFoldConfig] = None,
    *,
    constraint: Optional[str] = None,
    params: Optional[EnergyParameters] = None,
) -> MfeResult:
    """
    Folds a circular alignment; the exterior loop closes across the `n -> 1` junction.

    Returns
    -------
    MfeResult
        The circular MFE result.
    """
    config = dataclasses.replace(config if config is not None else AliFoldConfig(), circular=True)
    context = prepare_fold(alignment, config, constraint=constraint, params=params)
    mfe, _ = fold_mfe(context)
    return mfe


def evaluate_structure(
    alignment: Alignment,
    structure: str,
    config: Optional[AliFoldConfig] = None,
    *,
    soft_constraint: Optional[Sequence[float]] = None,
    params: Optional[EnergyParameters] = None,
) -> EnergyDecomposition:
    """
    Evaluates a consensus structure on an alignment.

    Parameters
    ----------
    alignment : Alignment
        The alignment.
    structure : str
        Dot-bracket structure, G-quadruplex layers as `+`.
    config : Optional[AliFoldConfig]
        Model configuration; `circular` closes the exterior loop.
    soft_constraint : Optional[Sequence[float]]
        Per-column unpaired bias in kcal/mol.
    params : Optional[EnergyParameters]
        Energy parameters; loaded from the configuration when None.

    Returns
    -------
    EnergyDecomposition
        Loop and covariation energies of the structure.
    """
    config = config if config is not None else AliFoldConfig()
    context = prepare_fold(alignment, config, soft_constraint=soft_constraint, params=params)
    return context.evaluator().evaluate(structure, circular=config.circular)
