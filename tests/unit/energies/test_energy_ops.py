"""
Unit tests for single-sequence loop energy functions.

Expected values are composed from the loaded tables so that the tests check
which terms each loop type combines rather than re-stating the tables.
"""
import math

import pytest

from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.energies.energy_ops import (
    GQUAD_MAX_SPAN,
    GQUAD_MIN_SPAN,
    boltzmann_weight,
    build_boltzmann_parameters,
    exp_stem_energy,
    gquad_energy,
    hairpin_energy,
    interior_loop_energy,
    stem_energy,
    terminal_penalty,
)
from rna_ali_fold.energies.energy_types import INF
from rna_ali_fold.rules.pair_types import PairType
from rna_ali_fold.utils.energy_utils import thermal_energy_cal
from rna_ali_fold.utils.nucleotide_utils import OUT_OF_RANGE_CODE, encode_base

A, C, G, U = (encode_base(b) for b in "ACGU")


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


# ---------------------- Hairpins ----------------------
def test_terminal_penalty(params):
    """
    Tests that only AU/UA/GU/UG helix ends are penalised.
    """
    assert terminal_penalty(PairType.CG, params) == 0
    assert terminal_penalty(PairType.GC, params) == 0
    assert terminal_penalty(PairType.AU, params) == params.terminal_au
    assert terminal_penalty(PairType.UG, params) == params.terminal_au


def test_hairpin_too_small_is_forbidden(params):
    """
    Tests that hairpins with fewer than three unpaired bases are infinite.
    """
    assert hairpin_energy(2, PairType.GC, A, A, None, params) == INF


def test_triloop_uses_terminal_penalty(params):
    """
    Tests that triloops add the terminal penalty instead of a mismatch.
    """
    assert hairpin_energy(3, PairType.GC, G, C, None, params) == 540
    assert hairpin_energy(3, PairType.AU, G, C, None, params) == 540 + params.terminal_au


def test_hairpin_mismatch_and_tetraloop(params):
    """
    Tests that larger hairpins add the terminal mismatch and tetraloops their bonus.
    """
    mismatch = params.mismatch_hairpin[PairType.GC][G][A]
    assert hairpin_energy(4, PairType.GC, G, A, None, params) == 560 + mismatch
    assert hairpin_energy(4, PairType.GC, G, A, "GGAAAC", params) == 560 - 300 + mismatch
    # Unknown tetraloops get no bonus.
    assert hairpin_energy(4, PairType.GC, G, A, "GCCCCC", params) == 560 + mismatch


def test_long_hairpin_is_extrapolated(params):
    """
    Tests the logarithmic extrapolation past the tabulated loop sizes.
    """
    expected = params.hairpin[30] + int(params.lxc * math.log(31 / 30))
    expected += params.mismatch_hairpin[PairType.GC][A][A]

    assert hairpin_energy(31, PairType.GC, A, A, None, params) == expected


# ---------------------- Interior loops ----------------------
def test_stack(params):
    """
    Tests that a loop without unpaired bases is a stacking energy.
    """
    assert interior_loop_energy(0, 0, PairType.GC, PairType.CG, A, A, A, A, params) == -330


def test_bulges(params):
    """
    Tests that single-base bulges keep the stack, longer ones add terminal penalties.
    """
    single = interior_loop_energy(1, 0, PairType.GC, PairType.CG, A, A, A, A, params)
    assert single == params.bulge[1] + params.stack[PairType.GC][PairType.CG]

    double = interior_loop_energy(0, 2, PairType.AU, PairType.UA, A, A, A, A, params)
    assert double == params.bulge[2] + 2 * params.terminal_au


def test_interior_loop_terms(params):
    """
    Tests the interior loop: size term, asymmetry and both terminal mismatches.
    """
    mismatches = params.mismatch_interior[PairType.GC][A][G] + params.mismatch_interior[PairType.CG][U][C]

    symmetric = interior_loop_energy(1, 1, PairType.GC, PairType.CG, A, G, C, U, params)
    assert symmetric == params.interior[2] + mismatches

    asymmetric = interior_loop_energy(1, 3, PairType.GC, PairType.CG, A, G, C, U, params)
    assert asymmetric == params.interior[4] + 2 * params.ninio + mismatches

    # The asymmetry penalty is capped.
    capped = interior_loop_energy(1, 10, PairType.GC, PairType.CG, A, G, C, U, params)
    assert capped == params.interior[11] + params.max_ninio + mismatches


# ---------------------- Stems ----------------------
def test_stem_energy_flank_variants(params):
    """
    Tests mismatch, single dangles and no dangles on an exterior stem.
    """
    none = OUT_OF_RANGE_CODE
    assert stem_energy(PairType.AU, none, none, True, params) == params.terminal_au
    assert stem_energy(PairType.GC, A, none, True, params) == params.dangle5[PairType.GC][A]
    assert stem_energy(PairType.GC, none, U, True, params) == params.dangle3[PairType.GC][U]
    assert stem_energy(PairType.GC, A, U, True, params) == params.mismatch_exterior[PairType.GC][A][U]


def test_multiloop_stem_adds_branch_penalty(params):
    """
    Tests that multiloop stems add `ml_intern` and use the multiloop mismatches.
    """
    none = OUT_OF_RANGE_CODE
    assert stem_energy(PairType.GC, none, none, False, params) == params.ml_intern
    assert stem_energy(PairType.GC, A, U, False, params) == (
        params.mismatch_multi[PairType.GC][A][U] + params.ml_intern
    )


# ---------------------- Boltzmann factors ----------------------
def test_boltzmann_weight():
    """
    Tests `exp(-10 · E / kt)` and the zero weight of forbidden energies.
    """
    assert boltzmann_weight(0, 600.0) == 1.0
    assert boltzmann_weight(INF, 600.0) == 0.0
    assert boltzmann_weight(-60, 600.0) == pytest.approx(math.e)


@pytest.mark.parametrize("ptype", [PairType.CG, PairType.AU, PairType.UG])
@pytest.mark.parametrize("is_exterior", [True, False])
def test_exp_stem_matches_stem_energy(params, ptype, is_exterior):
    """
    Tests that the factor tables reproduce the weight of `stem_energy` for every flank combination.
    """
    kt = thermal_energy_cal(37.0) * 2
    bz = build_boltzmann_parameters(params, kt)

    for si1 in (OUT_OF_RANGE_CODE, A, G):
        for sj1 in (OUT_OF_RANGE_CODE, C, U):
            expected = boltzmann_weight(stem_energy(ptype, si1, sj1, is_exterior, params), kt)
            assert exp_stem_energy(ptype, si1, sj1, is_exterior, bz) == pytest.approx(expected)


# ---------------------- G-quadruplexes ----------------------
def test_gquad_energy(params):
    """
    Tests `alpha · (L − 1) + trunc(beta · ln(linker − 2))`.
    """
    assert gquad_energy(2, 3, params) == -1800
    assert gquad_energy(3, 6, params) == -3600 + int(1200 * math.log(4))
    assert GQUAD_MIN_SPAN == 11
    assert GQUAD_MAX_SPAN == 73
