"""
Unit tests for the YAML energy parameter loader.

The bundled parameter file is loaded once per module; error cases use small
hand-written files under `tmp_path`.
"""
import pytest

from rna_ali_fold.energies.energy_loader import DEFAULT_PARAMETER_FILE, EnergyParameterLoader
from rna_ali_fold.energies.energy_types import INF, MAXLOOP, N_BASES
from rna_ali_fold.errors import ParameterFileError
from rna_ali_fold.rules.pair_types import PairType
from rna_ali_fold.utils.nucleotide_utils import encode_base


# ---------------------- Fixtures ----------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C.
    """
    return EnergyParameterLoader().load()


# ---------------------- Bundled parameters ----------------------
def test_default_file_is_bundled():
    """
    Tests that the default parameter file ships with the package.
    """
    assert DEFAULT_PARAMETER_FILE.is_file()
    assert DEFAULT_PARAMETER_FILE.suffix == ".yaml"


def test_stack_table(params):
    """
    Tests stacking energies indexed by pair type, and the neutral rows for NS and NONE.
    """
    assert params.stack[PairType.GC][PairType.CG] == -330
    assert params.stack[PairType.GC][PairType.GC] == -340
    assert params.stack[PairType.CG][PairType.CG] == -240

    # Nonstandard pairs are scored with neutral entries, NONE is forbidden.
    assert params.stack[PairType.NS][PairType.GC] == 0
    assert params.stack[PairType.NONE][PairType.GC] == INF


def test_loop_tables(params):
    """
    Tests the loop-length tables, including forbidden small hairpins.
    """
    assert len(params.hairpin) == MAXLOOP + 1
    assert params.hairpin[0] == INF and params.hairpin[2] == INF
    assert params.hairpin[3] == 540
    assert params.hairpin[4] == 560
    assert params.hairpin[5] == 570
    assert params.bulge[1] == 380
    assert params.interior[2] == 100


def test_scalars(params):
    """
    Tests the multiloop, terminal, asymmetry and G-quadruplex scalars.
    """
    assert (params.ml_base, params.ml_closing, params.ml_intern) == (0, 930, -90)
    assert params.terminal_au == 50
    assert (params.ninio, params.max_ninio) == (60, 300)
    assert (params.gquad_alpha, params.gquad_beta) == (-1800, 1200)


def test_mismatch_tables(params):
    """
    Tests a hairpin mismatch entry and that exterior and multiloop mismatches
    are derived from the dangles when the file does not define them.
    """
    g, c = encode_base("G"), encode_base("C")
    assert params.mismatch_hairpin[PairType.GC][g][c] == -290

    for ptype in (PairType.CG, PairType.AU):
        for b5 in range(N_BASES):
            for b3 in range(N_BASES):
                expected = params.dangle5[ptype][b5] + params.dangle3[ptype][b3]
                assert params.mismatch_exterior[ptype][b5][b3] == expected
                assert params.mismatch_multi[ptype][b5][b3] == expected


def test_tetraloops(params):
    """
    Tests that tetraloop bonuses are keyed by the 6-nt closing pair plus loop.
    """
    assert params.tetraloops["GGAAAC"] == -300
    assert all(len(key) == 6 for key in params.tetraloops)


# ---------------------- Temperature ----------------------
def test_temperature_rescaling():
    """
    Tests `ΔG(T) = ΔH − (ΔH − ΔG37) · T / T37` at 60 °C.
    """
    hot = EnergyParameterLoader().load(temperature=60.0)

    assert hot.temperature == 60.0
    # CG/CG: dH -1060, dG37 -240.
    assert hot.stack[PairType.CG][PairType.CG] == -179
    # Triloop: dH 130, dG37 540.
    assert hot.hairpin[3] == 570
    # beta has an enthalpy of 0, so it still scales with temperature.
    assert hot.gquad_beta != 1200


# ---------------------- Errors ----------------------
def test_wrong_suffix_raises(tmp_path):
    """
    Tests that only YAML files are accepted.
    """
    path = tmp_path / "params.json"
    path.write_text("{}")

    with pytest.raises(ParameterFileError):
        EnergyParameterLoader().load(path)


def test_missing_file_raises(tmp_path):
    """
    Tests that an unreadable file raises `ParameterFileError`.
    """
    with pytest.raises(ParameterFileError):
        EnergyParameterLoader().load(tmp_path / "missing.yaml")


def test_invalid_yaml_raises(tmp_path):
    """
    Tests that a YAML syntax error raises `ParameterFileError`.
    """
    path = tmp_path / "broken.yaml"
    path.write_text("stack: [1, 2\n")

    with pytest.raises(ParameterFileError):
        EnergyParameterLoader().load(path)


def test_missing_section_raises(tmp_path):
    """
    Tests that a file without the stacking table is rejected.
    """
    path = tmp_path / "partial.yaml"
    path.write_text("metadata:\n  temperature_kelvin: 310.15\nhairpin:\n  dg37: [1, 2]\n")

    with pytest.raises(ParameterFileError):
        EnergyParameterLoader().load(path)


def test_bad_pair_order_raises(tmp_path):
    """
    Tests that a pair order not listing the six canonical pairs is rejected.
    """
    path = tmp_path / "order.yaml"
    path.write_text("pair_order: [CG, CG, GU, UG, AU, UA]\n")

    with pytest.raises(ParameterFileError):
        EnergyParameterLoader().load(path)
