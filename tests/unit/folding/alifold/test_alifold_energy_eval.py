"""
Unit tests for the fixed-structure energy evaluator.

The evaluator decomposes a dot-bracket structure into loops and must agree
with the loop energies of the alignment model and with the covariation
scores, independently of any DP array.
"""
import pytest

from rna_ali_fold.alifold import prepare_fold
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.errors import InputError
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.structures.alignment import Alignment

HAIRPIN_ROWS = ["GGGGAAACCCC", "GGGGAAACCCC"]


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


@pytest.fixture
def evaluator_factory(params):
    """
    Provides a factory for the evaluator of an alignment and configuration.
    """
    def _create(rows, config=None, soft_constraint=None):
        context = prepare_fold(
            Alignment.from_rows(rows),
            config or AliFoldConfig(),
            soft_constraint=soft_constraint,
            params=params,
        )
        return context, context.evaluator()

    return _create


# ---------------------- Linear structures ----------------------
def test_helix_energy(evaluator_factory):
    """
    Tests the helix of the hairpin alignment: triloop plus three GC stacks per row.
    """
    _, evaluator = evaluator_factory(HAIRPIN_ROWS)

    result = evaluator.evaluate("((((...))))")

    assert result.loop_energy == -900
    assert result.covariation == 0
    assert result.total == -900
    assert result.energy_kcal == pytest.approx(-4.5)
    assert result.total_kcal == pytest.approx(-4.5)


def test_open_chain_is_zero(evaluator_factory):
    """
    Tests that the unpaired structure has zero energy without soft constraints.
    """
    _, evaluator = evaluator_factory(HAIRPIN_ROWS)

    assert evaluator.evaluate("...........").total == 0


def test_covariation_contribution(evaluator_factory):
    """
    Tests that a compensatory pair contributes `-pscore · N`.
    """
    _, evaluator = evaluator_factory(["GGGGAAACCCC", "CGGGAAACCCG"])

    result = evaluator.evaluate("((((...))))")

    assert result.covariation == -200
    assert result.covariance_kcal == pytest.approx(-1.0)


def test_soft_constraints_apply_to_exterior_unpaired_columns(evaluator_factory):
    """
    Tests that the unpaired bias is added for exterior unpaired columns only.
    """
    _, evaluator = evaluator_factory(HAIRPIN_ROWS, soft_constraint=[-0.5] * 11)

    assert evaluator.evaluate("...........").total == 11 * -50 * 2
    # Loop-internal unpaired columns carry no bias.
    assert evaluator.evaluate("((((...))))").total == -900


def test_multiloop_matches_model_terms(evaluator_factory):
    """
    Tests a multiloop without dangles against the model's loop terms.
    """
    rows = ["GGAAACGAAACC", "GGAAACGAAACC"]
    context, evaluator = evaluator_factory(rows, AliFoldConfig(dangles=0))
    model = context.energy_model

    result = evaluator.evaluate("((...)(...))")

    expected = (
        model.hairpin(2, 6)
        + model.hairpin(7, 11)
        + model.ml_closing(1, 12, None, None)
        + model.ml_stem(2, 6, None, None)
        + model.ml_stem(7, 11, None, None)
        + model.exterior_stem(1, 12, None, None)
    )
    assert result.loop_energy == expected


def test_gquad_structure(evaluator_factory, params):
    """
    Tests that `+` runs are scored as a G-quadruplex in the exterior loop.
    """
    quad = "GGAGGAGGAGG"
    _, evaluator = evaluator_factory([quad, quad], AliFoldConfig(gquad=True))

    result = evaluator.evaluate("++.++.++.++")

    assert result.loop_energy == 2 * params.gquad_alpha
    assert result.total_kcal == pytest.approx(-18.0)


# ---------------------- Errors ----------------------
@pytest.mark.parametrize(
    "structure",
    [
        "((((...)))",       # length mismatch
        "((((...)))...",    # unbalanced
        "+++.++.++.++.",    # unequal layers
        "++.++.++.....",    # three runs
        "(++.++.++.++)",    # quadruplex inside a pair
    ],
)
def test_invalid_structures_raise(evaluator_factory, structure):
    """
    Tests that malformed structures raise `InputError`.
    """
    _, evaluator = evaluator_factory(["CGGAGGAGGAGGG", "CGGAGGAGGAGGG"])

    with pytest.raises(InputError):
        evaluator.evaluate(structure)


# ---------------------- Circular structures ----------------------
def test_circular_two_pair_exterior_loop(evaluator_factory):
    """
    Tests that two outer pairs close a circular interior loop.
    """
    rows = ["GAAACGAAACAA", "GAAACGAAACAA"]
    context, evaluator = evaluator_factory(rows)
    model = context.energy_model

    result = evaluator.evaluate("(...)(...)..", circular=True)

    expected = model.hairpin(1, 5) + model.hairpin(6, 10) + model.interior_circular(1, 5, 6, 10)
    assert result.loop_energy == expected


def test_circular_single_pair_exterior_loop(evaluator_factory):
    """
    Tests that a single outer pair closes a circular hairpin.
    """
    rows = ["GAAACAAAA", "GAAACAAAA"]
    context, evaluator = evaluator_factory(rows)
    model = context.energy_model

    result = evaluator.evaluate("(...)....", circular=True)

    assert result.loop_energy == model.hairpin(1, 5) + model.hairpin_circular(1, 5)


def test_circular_rejects_gquads(evaluator_factory):
    """
    Tests that G-quadruplexes are not evaluated on circular structures.
    """
    quad = "GGAGGAGGAGG"
    _, evaluator = evaluator_factory([quad, quad])

    with pytest.raises(InputError):
        evaluator.evaluate("++.++.++.++", circular=True)
