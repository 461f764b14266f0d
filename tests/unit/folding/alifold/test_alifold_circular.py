"""
Unit tests for the circular exterior-loop closure.

After the linear fill, the exterior loop of a circular alignment is closed
across the `n -> 1` junction as an open chain, a hairpin, an interior loop
or a multiloop.
"""
import math

import pytest

from rna_ali_fold.alifold import fold_mfe, prepare_fold
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.folding.alifold import (
    AliFoldEngine,
    fill_circular,
    make_fold_state,
    traceback_alifold,
)
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.structures.alignment import Alignment


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


@pytest.fixture
def circular_fill(params):
    """
    Provides a function that runs the linear fill plus the circular closure.
    """
    def _run(rows, **config_kwargs):
        config = AliFoldConfig(circular=True, **config_kwargs)
        context = prepare_fold(Alignment.from_rows(rows), config, params=params)
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
        summary = fill_circular(engine, state)
        return context, state, summary

    return _run


# ---------------------- Closures ----------------------
def test_unpairable_alignment_stays_open(circular_fill):
    """
    Tests that an alignment without admissible pairs folds to the open chain.
    """
    _, state, summary = circular_fill(["AAAAAAAA", "AAAAAAAA"])

    assert summary.kind == "open"
    assert summary.energy == 0
    assert state.mfe_energy == 0
    assert math.isinf(summary.fc_hairpin)
    assert traceback_alifold(state).dot_bracket == "........"


def test_closure_is_minimum_of_alternatives(circular_fill):
    """
    Tests that the reported optimum is the best of the open chain and the three closures.
    """
    _, state, summary = circular_fill(["GGGGAAACCCCAAAAA", "GGGGAAACCCCAAAAA"])

    assert summary.energy == min(0, summary.fc_hairpin, summary.fc_interior, summary.fc_multi)
    assert state.circular is summary


def test_traceback_matches_circular_evaluation(circular_fill):
    """
    Tests that the traced structure evaluates, as a circular structure, to the optimum.
    """
    context, state, summary = circular_fill(["GGGGAAACCCCAAAAA", "GGGGAAACCCCAAAAA"])

    trace = traceback_alifold(state)
    decomposition = context.evaluator().evaluate(trace.dot_bracket, circular=True)

    assert decomposition.total == pytest.approx(summary.energy)
    if summary.kind == "open":
        assert trace.pairs == []
    else:
        assert trace.pairs


def test_short_exterior_loop_closes_as_hairpin(circular_fill):
    """
    Tests a helix whose exterior loop across the junction holds three columns
    (16, 1, 2), which is closed by the outermost pair like a triloop.
    """
    rotated = "AACCCCAAAAAGGGGA"
    _, state, summary = circular_fill([rotated, rotated])

    # Per row: helix -570 plus the GC-closed triloop 540.
    assert summary.fc_hairpin == -60
    assert summary.kind != "open"
    assert summary.energy == min(summary.fc_hairpin, summary.fc_interior, summary.fc_multi)


@pytest.mark.parametrize("dangles", [0, 2])
def test_fold_mfe_circular_passes_energy_check(params, dangles):
    """
    Tests that the full circular fold verifies its traceback against the evaluator.
    """
    config = AliFoldConfig(circular=True, dangles=dangles)
    rows = ["GGGAAACCCAGGGAAACCCA", "GGGAAACCCAGGGAAACCCA"]
    context = prepare_fold(Alignment.from_rows(rows), config, params=params)

    mfe, state = fold_mfe(context)

    assert mfe.circular
    assert mfe.energy == pytest.approx(state.mfe_energy / 200.0)
    assert len(mfe.structure) == 20
