"""
Unit tests for the alignment energy model and its Boltzmann counterpart.

Loop energies are summed over the rows of the alignment, with rows that
cannot pair scored as the neutral nonstandard class.
"""
import math

import pytest

from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.energies.energy_model import AlignmentBoltzmannModel, AlignmentEnergyModel
from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.rules.pair_types import PairMatrix, PairType
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.utils.energy_utils import thermal_energy_cal


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


@pytest.fixture
def hairpin_model(params):
    """
    Energy model of two identical GGGGAAACCCC rows.
    """
    alignment = Alignment.from_rows(["GGGGAAACCCC", "GGGGAAACCCC"])
    return AlignmentEnergyModel(alignment, params, PairMatrix.build())


def _model(params, rows, **kwargs):
    return AlignmentEnergyModel(Alignment.from_rows(rows), params, PairMatrix.build(), **kwargs)


# ---------------------- Pair types ----------------------
def test_row_types_use_ns_for_unpairable_rows(params):
    """
    Tests that each row gets its pair type and rows that cannot pair become NS.
    """
    model = _model(params, ["GAAAAC", "AAAAAC", "CAAAAG"])

    assert model.row_types(1, 6) == (PairType.GC, PairType.NS, PairType.CG)


def test_closes_with_gu_only(params):
    """
    Tests the GU-only check ignores rows that cannot pair.
    """
    assert _model(params, ["GAAAAU", "UAAAAG"]).closes_with_gu_only(1, 6)
    assert _model(params, ["GAAAAU", "AAAAAA"]).closes_with_gu_only(1, 6)
    assert not _model(params, ["GAAAAU", "GAAAAC"]).closes_with_gu_only(1, 6)
    assert not _model(params, ["AAAAAA"]).closes_with_gu_only(1, 6)


# ---------------------- Loops ----------------------
def test_hairpin_and_stack_are_row_summed(hairpin_model):
    """
    Tests a triloop hairpin and the stack below it, each counted twice.
    """
    # GC closing pair, triloop: 540 per row.
    assert hairpin_model.hairpin(4, 8) == 1080
    # (3, 9) on (4, 8): stack[GC][CG] = -330 per row.
    assert hairpin_model.interior(3, 9, 4, 8) == -660


def test_tetraloop_bonus_is_applied_per_row(params):
    """
    Tests that a tetraloop bonus is looked up from each row's own sequence.
    """
    model = _model(params, ["GGAAAC", "GGAAAC"])
    mismatch = params.mismatch_hairpin[PairType.GC][3][1]

    assert model.hairpin(1, 6) == 2 * (560 - 300 + mismatch)


def test_no_closing_gu(params):
    """
    Tests that GU-only closing pairs forbid hairpins and loops but not stacks.
    """
    model = _model(params, ["GGAAAUC", "GGAAAUC"], no_closing_gu=True)

    assert model.hairpin(2, 6) == INF
    # (1, 7) stacks directly on the GU pair (2, 6).
    assert model.interior(1, 7, 2, 6) != INF

    relaxed = _model(params, ["GGAAAUC", "GGAAAUC"])
    assert relaxed.hairpin(2, 6) != INF


def test_stem_terms(hairpin_model, params):
    """
    Tests exterior stems, multiloop branches and multiloop closing pairs.
    """
    # GC pairs carry no terminal penalty.
    assert hairpin_model.exterior_stem(1, 11, None, None) == 0
    assert hairpin_model.ml_stem(1, 11, None, None) == 2 * params.ml_intern
    assert hairpin_model.ml_closing(1, 11, None, None) == 2 * (params.ml_closing + params.ml_intern)
    assert hairpin_model.ml_unpaired(3) == 3 * 2 * params.ml_base

    # A 3' dangle on (2, 10) from column 11 (C).
    expected = 2 * params.dangle3[PairType.GC][2]
    assert hairpin_model.exterior_stem(2, 10, None, 11) == expected


def test_gquad_terms(params):
    """
    Tests the all-G check and the row-summed quadruplex energy.
    """
    model = _model(params, ["GGAGGAGGAGG", "GGAGGAGGAGG"])

    assert model.all_g(1)
    assert not model.all_g(3)
    assert model.gquad(2, 3) == 2 * params.gquad_alpha


# ---------------------- Boltzmann model ----------------------
def test_boltzmann_model_matches_energies(hairpin_model):
    """
    Tests that weights equal `exp(-10 · E / (kT · N))` of the row-summed energies.
    """
    kt_single = thermal_energy_cal(37.0)
    bz_model = AlignmentBoltzmannModel.from_model(hairpin_model, kt_single)

    assert bz_model.kt == pytest.approx(2 * kt_single)
    assert bz_model.exp_hairpin(4, 8) == pytest.approx(math.exp(-10 * 1080 / (2 * kt_single)))
    assert bz_model.exp_interior(3, 9, 4, 8) == pytest.approx(bz_model.weight(-660))

    for five, three in ((None, None), (None, 11), (1, None)):
        assert bz_model.exp_exterior_stem(2, 10, five, three) == pytest.approx(
            bz_model.weight(hairpin_model.exterior_stem(2, 10, five, three))
        )
        assert bz_model.exp_ml_stem(2, 10, five, three) == pytest.approx(
            bz_model.weight(hairpin_model.ml_stem(2, 10, five, three))
        )

    assert bz_model.exp_ml_closing(1, 11, 10, 2) == pytest.approx(
        bz_model.weight(hairpin_model.ml_closing(1, 11, 10, 2))
    )
    assert bz_model.exp_ml_unpaired(4) == pytest.approx(bz_model.weight(hairpin_model.ml_unpaired(4)))


def test_covariation_weight_lowers_energy(hairpin_model):
    """
    Tests that a positive covariation bonus raises the weight.
    """
    bz_model = AlignmentBoltzmannModel.from_model(hairpin_model, thermal_energy_cal(37.0))

    assert bz_model.exp_covariation(0) == 1.0
    assert bz_model.exp_covariation(200) == pytest.approx(bz_model.weight(-200))
    assert bz_model.exp_covariation(200) > 1.0
