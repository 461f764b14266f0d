"""
Unit tests for stochastic backtracking.

Samples are drawn with a seeded `numpy.random.Generator`, so every test
below is deterministic.
"""
import pytest

from rna_ali_fold.alifold import fold_mfe, prepare_fold
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.folding.partition import PartitionFunctionEngine, StochasticSampler, sample_structures
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.utils.energy_utils import thermal_energy_cal

HAIRPIN_ROWS = ["GGGGAAACCCC", "GGGGAAACCCC"]


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


@pytest.fixture
def filled(params):
    """
    Provides a function returning `(context, engine, state)` after the inside pass.
    """
    def _run(rows, **config_kwargs):
        config = AliFoldConfig(**config_kwargs)
        context = prepare_fold(Alignment.from_rows(rows), config, params=params)
        mfe, _ = fold_mfe(context)
        engine = PartitionFunctionEngine(
            boltzmann_model=AlignmentBoltzmannModel.from_model(
                context.energy_model, thermal_energy_cal(config.temperature)
            ),
            covariation=context.covariation,
            hard=context.hard,
            soft=context.soft,
            policy=context.policy.ensemble_policy(),
            config=config,
        )
        return context, engine, engine.fill_all_matrices(mfe.energy)

    return _run


# ---------------------- Tests ----------------------
def test_same_seed_same_samples(filled):
    """
    Tests that two runs with the same seed draw identical structures.
    """
    _, engine, state = filled(HAIRPIN_ROWS)

    first = sample_structures(engine, state, 10, seed=42)
    second = sample_structures(engine, state, 10, seed=42)

    assert [s.structure for s in first] == [s.structure for s in second]
    assert [s.probability for s in first] == [s.probability for s in second]


def test_samples_use_admitted_pairs_only(filled):
    """
    Tests that sampled structures are well formed and use admitted pairs.
    """
    context, engine, state = filled(HAIRPIN_ROWS)

    for sample in sample_structures(engine, state, 20, seed=3):
        assert len(sample.structure) == 11
        assert 0.0 < sample.probability <= 1.0
        assert sample.energy is None
        for pair in sample.trace.pairs:
            assert context.covariation.is_allowed(*pair.as_tuple())


def test_samples_carry_energies_on_request(filled):
    """
    Tests that the evaluation callback supplies the energy of every sample.
    """
    context, engine, state = filled(HAIRPIN_ROWS)
    evaluator = context.evaluator()

    samples = sample_structures(
        engine, state, 5, seed=1, evaluate=lambda db: evaluator.evaluate(db).total_kcal
    )

    for sample in samples:
        assert sample.energy == pytest.approx(evaluator.evaluate(sample.structure).total_kcal)


def test_sampler_reuses_its_generator(filled):
    """
    Tests that consecutive draws of one sampler continue the same random stream.
    """
    _, engine, state = filled(HAIRPIN_ROWS)

    sampler = StochasticSampler(engine, state, seed=5)
    draws = [sampler.sample()[0].dot_bracket for _ in range(4)]

    assert draws == [s.structure for s in sample_structures(engine, state, 4, seed=5)]


def test_gquad_samples(filled):
    """
    Tests that a dominant G-quadruplex is drawn with its layout.
    """
    _, engine, state = filled(["GGAGGAGGAGG", "GGAGGAGGAGG"], gquad=True)

    for sample in sample_structures(engine, state, 5, seed=9):
        assert sample.structure == "++.++.++.++"
        assert len(sample.trace.gquads) == 1
        assert sample.trace.gquads[0].layers == 2
