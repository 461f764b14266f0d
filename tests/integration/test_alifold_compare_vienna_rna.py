"""
Integration tests comparing the alignment folding engine against ViennaRNA's RNAalifold.

Each alignment is written as a Clustal W file, folded by both programs, and
the consensus structures and MFEs are compared within small tolerances that
allow for differences between the bundled parameter set and ViennaRNA's.

Attributes
----------
pytestmark : list
    Marks all tests in this module as 'integration' and skips them if the
    'RNAalifold' command-line tool is not found in the system's PATH.
"""
from __future__ import annotations

# --- Standard Library Imports ---
import re
import shutil
import subprocess
from typing import List, Tuple

# --- Third-Party Imports ---
import pytest

# --- Local Application Imports ---
from rna_ali_fold.alifold import fold_alignment
from rna_ali_fold.energies.energy_loader import EnergyParameterLoader
from rna_ali_fold.structures import dotbracket_to_pairs
from rna_ali_fold.structures.alignment_io import read_alignment

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("RNAalifold") is None, reason="RNAalifold (ViennaRNA) not found on PATH"),
]

TEST_ALIGNMENTS: List[List[str]] = [
    ["GGGGAAACCCC", "GGGGAAACCCC"],
    ["GGGGAAACCCC", "CGGGAAACCCG"],
    ["GCAUCUAUGC", "GCAUCUAUGC", "GCAUCUAUGC"],
    ["GGGAAAUCCC", "GGGAAAUCCU", "GAGAAAUCUC"],
    ["GGCGAACGCC", "GGCGAAUGCC", "GGCAAUUGCC"],
    ["GGGAAACCCAAAGGGUUUCCC", "GGGAAACCCAAAGGGUUUCCC"],
    ["GCGAAUCCGAUUGGCUAAGCG", "GCGAAUCCGAUUGGCUAAGCG"],
    ["GGAUCCGAAGGCUCGAUCC", "GGAUCCGAAGGCUCGAUCC"],
]


# --------------------------
# Test Helper Functions
# --------------------------
def write_clustal(path, rows: List[str]) -> None:
    """
    Writes the rows as a single-block Clustal W alignment.
    """
    lines = ["CLUSTAL W (1.83) multiple sequence alignment", ""]
    lines.extend(f"seq{k}    {row}" for k, row in enumerate(rows, start=1))
    path.write_text("\n".join(lines) + "\n")


def bp_distance(dot_bracket_1: str, dot_bracket_2: str) -> int:
    """
    Number of base pairs found in exactly one of the two structures.
    """
    return len(set(dotbracket_to_pairs(dot_bracket_1)) ^ set(dotbracket_to_pairs(dot_bracket_2)))


def run_rnaalifold(path) -> Tuple[str, float]:
    """
    Calls RNAalifold on an alignment file and parses the consensus structure and MFE.

    Returns
    -------
    Tuple[str, float]
        The consensus dot-bracket string and the MFE in kcal/mol.
    """
    process = subprocess.run(
        ["RNAalifold", "--noPS", str(path)],
        text=True,
        capture_output=True,
        check=True,
        cwd=str(path.parent),
    )
    # The output is the consensus sequence, then the structure with its energy.
    lines = process.stdout.strip().splitlines()
    assert len(lines) >= 2, f"Unexpected RNAalifold output:\n{process.stdout}"
    result_line = lines[1]

    match = re.match(r"\s*([().]+)\s+\(\s*([-+]?[\d.]+)\s*=", result_line)
    assert match, f"Could not parse RNAalifold line: {result_line!r}"
    return match.group(1), float(match.group(2))


# --------------------------
# Pytest Fixtures
# --------------------------
@pytest.fixture(scope="module")
def params():
    """
    The bundled parameter set at 37 °C, loaded once per module.
    """
    return EnergyParameterLoader().load()


@pytest.mark.parametrize("rows", TEST_ALIGNMENTS)
def test_alifold_vs_vienna(rows, params, tmp_path):
    """
    Compares the consensus MFE structure and energy against RNAalifold.
    """
    # --- 1. Run our engine ---
    path = tmp_path / "alignment.aln"
    write_clustal(path, rows)
    mfe = fold_alignment(read_alignment(path), params=params).mfe

    # --- 2. Run RNAalifold as the reference ---
    vienna_structure, vienna_mfe = run_rnaalifold(path)
    assert len(vienna_structure) == len(mfe.structure)

    # --- 3. Compare ---
    tolerance_bp = 1
    distance = bp_distance(mfe.structure, vienna_structure)
    assert distance <= tolerance_bp, (
        f"Structure mismatch for {rows}\n"
        f"Our prediction : {mfe.structure} ({mfe.energy:.2f})\n"
        f"RNAalifold     : {vienna_structure} ({vienna_mfe:.2f})"
    )

    tolerance_energy = 2.0
    assert abs(mfe.energy - vienna_mfe) <= tolerance_energy, (
        f"Energy mismatch for {rows}: ours {mfe.energy:.2f}, RNAalifold {vienna_mfe:.2f} kcal/mol"
    )
