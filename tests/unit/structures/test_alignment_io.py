"""
Unit tests for reading alignments in Clustal W and aligned FASTA format.
"""
import pytest

from rna_ali_fold.errors import InputError
from rna_ali_fold.structures.alignment_io import parse_clustal, parse_fasta, read_alignment


# ---------------------- Fixtures ----------------------
@pytest.fixture
def clustal_text() -> str:
    """
    A two-block Clustal W alignment of two sequences with a conservation line.
    """
    return (
        "CLUSTAL W (1.83) multiple sequence alignment\n"
        "\n"
        "seq1    GGGGAAA\n"
        "seq2    GGGGAAA\n"
        "        *******\n"
        "\n"
        "seq1    CCCC\n"
        "seq2    CCCU\n"
    )


@pytest.fixture
def fasta_text() -> str:
    """
    An aligned FASTA file with wrapped lines, lower case and a `.` gap.
    """
    return (
        ">s1 first sequence\n"
        "GGGG\n"
        "AAACCCC\n"
        ">s2\n"
        "gggg.aaCCCC\n"
    )


# ---------------------- Tests ----------------------
def test_parse_clustal_concatenates_blocks(clustal_text):
    """
    Tests that blocks are joined per name and conservation lines are skipped.
    """
    names, rows = parse_clustal(clustal_text.splitlines())

    assert names == ["seq1", "seq2"]
    assert rows == ["GGGGAAACCCC", "GGGGAAACCCU"]


def test_parse_clustal_requires_header():
    """
    Tests that Clustal input without the `CLUSTAL` header is rejected.
    """
    with pytest.raises(InputError):
        parse_clustal(["seq1 ACGU"])


def test_parse_fasta_joins_wrapped_lines(fasta_text):
    """
    Tests that FASTA records spanning several lines are joined and names are the first word.
    """
    names, rows = parse_fasta(fasta_text.splitlines())

    assert names == ["s1", "s2"]
    assert rows == ["GGGGAAACCCC", "gggg.aaCCCC"]


def test_read_alignment_detects_format(tmp_path, clustal_text, fasta_text):
    """
    Tests that `read_alignment` recognises both formats and normalises rows.
    """
    aln_path = tmp_path / "example.aln"
    aln_path.write_text(clustal_text)
    fa_path = tmp_path / "example.fa"
    fa_path.write_text(fasta_text)

    clustal = read_alignment(aln_path)
    fasta = read_alignment(fa_path)

    assert clustal.rows == ("GGGGAAACCCC", "GGGGAAACCCU")
    assert fasta.rows == ("GGGGAAACCCC", "GGGG-AACCCC")
    assert fasta.names == ("s1", "s2")


def test_read_alignment_end_gaps(tmp_path):
    """
    Tests that the end-gap flag is forwarded to the alignment.
    """
    path = tmp_path / "gaps.fa"
    path.write_text(">a\n--GGAAACC-\n>b\nAGGGAAACCU\n")

    alignment = read_alignment(path, end_gaps=True)

    assert alignment.rows[0] == "~~GGAAACC~"


def test_read_alignment_errors(tmp_path):
    """
    Tests that missing files and unknown formats raise `InputError`.
    """
    with pytest.raises(InputError):
        read_alignment(tmp_path / "missing.fa")

    path = tmp_path / "plain.txt"
    path.write_text("ACGU\nACGU\n")
    with pytest.raises(InputError):
        read_alignment(path)
