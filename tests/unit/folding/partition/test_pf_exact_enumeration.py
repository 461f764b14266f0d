"""
Checks the partition function against exhaustive enumeration.

For short alignments every nested structure over the admitted pairs can be
listed and evaluated. The ensemble energy, every pair probability and the
probability of each sampled structure must then match the explicit
Boltzmann sums.
"""
import math
from collections import defaultdict
from functools import lru_cache

import pytest

from rna_ali_fold.alifold import fold_mfe, prepare_fold
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel
from rna_ali_fold.folding.common_traceback import build_trace_result
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.folding.partition import (
    PartitionFunctionEngine,
    compute_pair_probabilities,
    sample_structures,
)
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.utils.energy_utils import thermal_energy_cal

ALIGNMENTS = {
    "hairpin": ["GGGGAAACCCC", "GGGGAAACCCC"],
    # Compensatory outer pair and room for a two-branch multiloop.
    "multiloop": ["GGAAACGAAACC", "CGAAACGAAACG"],
}

# Circular alignments; the last one closes the exterior loop with three branches.
CIRCULAR_ALIGNMENTS = {
    "hairpin": ["GGGGAAACCCC", "GGGGAAACCCC"],
    "two_hairpins": ["GGGAAACCCAGGGAAACCCA", "GGGAAACCCAGGGAAACCCA"],
    "three_hairpins": ["GGAAACCGGAAACCGGAAACC", "GGAAACCGGAAACCGGAAACC"],
}


def _enumerate_pair_sets(seq_len, allowed_pairs):
    """
    Lists every nested set of pairs drawn from `allowed_pairs`.
    """
    partners = defaultdict(list)
    for i, j in allowed_pairs:
        partners[i].append(j)

    @lru_cache(maxsize=None)
    def segment(i, j):
        if i > j:
            return ((),)
        result = list(segment(i + 1, j))
        for k in partners[i]:
            if k > j:
                continue
            for inner in segment(i + 1, k - 1):
                for rest in segment(k + 1, j):
                    result.append(((i, k),) + inner + rest)
        return tuple(result)

    return segment(1, seq_len)


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


@pytest.fixture
def ensemble(params):
    """
    Provides a function returning the filled engine and the enumerated
    ensemble `{dot_bracket: (pairs, weight)}` of an alignment.
    """
    def _build(rows, dangles, circular=False):
        config = AliFoldConfig(dangles=dangles, compute_partition_function=True, circular=circular)
        context = prepare_fold(Alignment.from_rows(rows), config, params=params)
        mfe, _ = fold_mfe(context)

        policy = context.policy.ensemble_policy()
        engine = PartitionFunctionEngine(
            boltzmann_model=AlignmentBoltzmannModel.from_model(
                context.energy_model, thermal_energy_cal(config.temperature)
            ),
            covariation=context.covariation,
            hard=context.hard,
            soft=context.soft,
            policy=policy,
            config=config,
        )
        state = engine.fill_all_matrices(mfe.energy)

        # Weight every nested structure with the dangles of the ensemble.
        evaluator = context.evaluator(policy)
        n = context.alignment.length
        structures = {}
        for pairs in _enumerate_pair_sets(n, context.covariation.allowed_pairs()):
            dot_bracket = build_trace_result(n, pairs).dot_bracket
            energy = evaluator.evaluate(dot_bracket, circular=circular).total_kcal
            structures[dot_bracket] = (set(pairs), math.exp(-energy / engine.kt_kcal))

        return context, engine, state, structures

    return _build


# ---------------------- Tests ----------------------
@pytest.mark.parametrize("name", sorted(ALIGNMENTS))
@pytest.mark.parametrize("dangles", [0, 1, 2])
def test_ensemble_energy_matches_enumeration(ensemble, name, dangles):
    """
    Tests that `-kT · ln Z` equals the explicit sum over all structures.
    """
    _, engine, state, structures = ensemble(ALIGNMENTS[name], dangles)

    z = sum(weight for _, weight in structures.values())
    expected = -engine.kt_kcal * math.log(z)

    assert engine.ensemble_energy(state) == pytest.approx(expected, abs=1e-8)


@pytest.mark.parametrize("name", sorted(ALIGNMENTS))
@pytest.mark.parametrize("dangles", [0, 2])
def test_pair_probabilities_match_enumeration(ensemble, name, dangles):
    """
    Tests every pair probability against the summed weight of the structures containing it.
    """
    context, engine, state, structures = ensemble(ALIGNMENTS[name], dangles)
    probs = compute_pair_probabilities(engine, state)

    z = sum(weight for _, weight in structures.values())
    for i, j in context.covariation.allowed_pairs():
        expected = sum(weight for pairs, weight in structures.values() if (i, j) in pairs) / z
        assert probs.get(i, j) == pytest.approx(expected, abs=1e-9), (i, j)


@pytest.mark.parametrize("name", sorted(ALIGNMENTS))
def test_sample_probabilities_are_boltzmann_weights(ensemble, name):
    """
    Tests that the probability reported for each sample is its Boltzmann weight over `Z`.
    """
    _, engine, state, structures = ensemble(ALIGNMENTS[name], 2)
    z = sum(weight for _, weight in structures.values())

    samples = sample_structures(engine, state, 25, seed=11)

    for sample in samples:
        _, weight = structures[sample.structure]
        assert sample.probability == pytest.approx(weight / z, rel=1e-6)


# ---------------------- Circular alignments ----------------------
@pytest.mark.parametrize("name", sorted(CIRCULAR_ALIGNMENTS))
@pytest.mark.parametrize("dangles", [0, 2])
def test_circular_ensemble_matches_enumeration(ensemble, name, dangles):
    """
    Tests the circular partition function and pair probabilities against
    the structures weighted with their circular energies.
    """
    context, engine, state, structures = ensemble(CIRCULAR_ALIGNMENTS[name], dangles, circular=True)
    z = sum(weight for _, weight in structures.values())

    assert state.circular is not None
    assert engine.ensemble_energy(state) == pytest.approx(-engine.kt_kcal * math.log(z), abs=1e-8)

    probs = compute_pair_probabilities(engine, state)
    for i, j in context.covariation.allowed_pairs():
        expected = sum(weight for pairs, weight in structures.values() if (i, j) in pairs) / z
        assert probs.get(i, j) == pytest.approx(expected, abs=1e-9), (i, j)


def test_three_branch_circle_has_multiloop_closures(ensemble):
    """
    Tests that the three-hairpin circle gets weight from the multiloop closure.
    """
    _, _, state, structures = ensemble(CIRCULAR_ALIGNMENTS["three_hairpins"], 2, circular=True)

    assert state.circular.z_multi > 0.0
    assert state.circular.z_open > 0.0
    assert "((...))((...))((...))" in structures


def test_circular_sample_probabilities_are_boltzmann_weights(ensemble):
    """
    Tests that circular samples carry their Boltzmann weight over `Z`.
    """
    _, engine, state, structures = ensemble(CIRCULAR_ALIGNMENTS["three_hairpins"], 2, circular=True)
    z = sum(weight for _, weight in structures.values())

    samples = sample_structures(engine, state, 25, seed=5)

    for sample in samples:
        _, weight = structures[sample.structure]
        assert sample.probability == pytest.approx(weight / z, rel=1e-6)
