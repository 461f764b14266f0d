#!/usr/bin/env python3
"""
Fold a multiple sequence alignment into its consensus secondary structure.

The alignment is read from a FASTA or Clustal file. The minimum free energy
structure is always computed; the partition function, pair probabilities,
centroid and stochastic samples are computed on request.

Examples:
  - rna-ali-fold alignment.aln
  - rna-ali-fold -p -d2 --noLP alignment.fa
  - rna-ali-fold --stochBT 10 --seed 42 --stochBT_en alignment.aln
  - rna-ali-fold --json -C "((....))" alignment.fa
  - rna-ali-fold -r --circ -p alignment.fa

"""

# --- Standard Library Imports ---
from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import Optional

# --- Local Application Imports ---
from rna_ali_fold.alifold import AliFoldResult, fold_alignment
from rna_ali_fold.errors import AliFoldError, InputError, NumericOverflow
from rna_ali_fold.folding.fold_config import AliFoldConfig
from rna_ali_fold.rules.pair_types import PAIR_LABELS
from rna_ali_fold.structures.alignment import Alignment
from rna_ali_fold.structures.alignment_io import read_alignment
from rna_ali_fold.utils.logging_utils import DEFAULT_LOG_DIR, level_for_verbosity, setup_logger

# Set up module logger
logger = logging.getLogger(__name__)

# Number of ranked pairs printed in text mode.
MAX_LISTED_PAIRS = 30


# --------------------------
# Logging Configuration
# --------------------------
def setup_cli_logging(verbose_level: int, log_file: Optional[str] = None) -> None:
    """
    Configures logging for the command line run.

    Parameters
    ----------
    verbose_level : int
        The verbosity level: 0 for WARNING, 1 for INFO, 2 for DEBUG.
    log_file : Optional[str]
        The path to a specific log file. If not provided, a default timestamped
        log file is created in `var/log/` when verbosity is > 0.
    """
    log_level = level_for_verbosity(verbose_level)
    should_log_to_file = (verbose_level > 0) or (log_file is not None)

    # Module loggers of the package propagate to the package logger.
    logger_names = ["rna_ali_fold"]
    if not __name__.startswith("rna_ali_fold"):
        logger_names.append(__name__)

    for logger_name in logger_names:
        setup_logger(
            logger_name,
            level=log_level,
            log_file=log_file,
            enable_file_logging=should_log_to_file,
        )
    if should_log_to_file and log_file is None:
        logger.info(f"Logs will be saved to: {DEFAULT_LOG_DIR.resolve()}")


# --------------------------
# Helpers
# --------------------------
def build_config(cli_args: argparse.Namespace) -> AliFoldConfig:
    """Translates the parsed command line into an `AliFoldConfig`."""
    return AliFoldConfig(
        temperature=cli_args.temperature,
        dangles=cli_args.dangles,
        no_lonely_pairs=cli_args.noLP,
        no_gu=cli_args.noGU,
        no_closing_gu=cli_args.noClosingGU,
        nonstandard_pairs=cli_args.nsp or "",
        parameter_file=cli_args.parameter_file,
        tetraloops=not cli_args.noTetra,
        circular=cli_args.circ,
        compute_partition_function=cli_args.partfunc,
        pf_scale_factor=cli_args.pf_scale,
        stochastic_samples=cli_args.stochBT,
        sample_seed=cli_args.seed,
        sample_energies=cli_args.stochBT_en,
        cv_fact=cli_args.cfactor,
        nc_fact=cli_args.nfactor,
        ribosum=cli_args.ribosum_scoring,
        ribosum_file=cli_args.ribosum_file,
        gquad=cli_args.gquad,
        end_gaps=cli_args.endgaps,
        mis=cli_args.mis,
        verbose=cli_args.verbose > 0,
    )


def format_text(result: AliFoldResult) -> str:
    """Renders a fold result in the classic RNAalifold text layout."""
    mfe = result.mfe
    dec = mfe.decomposition
    lines = [
        mfe.consensus,
        f"{mfe.structure} ({mfe.energy:6.2f} = {dec.energy_kcal:6.2f} + {dec.covariance_kcal:6.2f})",
    ]

    ensemble = result.ensemble
    if ensemble is None:
        return "\n".join(lines)

    lines.append(f" free energy of ensemble = {ensemble.ensemble_energy:6.2f} kcal/mol")
    lines.append(f" frequency of mfe structure in ensemble {ensemble.mfe_frequency:g}")

    if ensemble.centroid is not None and ensemble.centroid_energy is not None:
        cen = ensemble.centroid_energy
        lines.append(
            f"{ensemble.centroid.structure} {{{cen.total_kcal:6.2f} = {cen.energy_kcal:6.2f} + "
            f"{cen.covariance_kcal:6.2f} d={ensemble.centroid.distance:.2f}}}"
        )

    for sample in ensemble.samples:
        if sample.energy is not None:
            lines.append(f"{sample.structure} {sample.energy:6.2f} {sample.probability:.6g}")
        else:
            lines.append(sample.structure)

    if ensemble.pair_infos:
        lines.append("")
        for info in ensemble.pair_infos[:MAX_LISTED_PAIRS]:
            types = " ".join(
                f"{PAIR_LABELS[t]}:{info.type_counts[t]}" for t in range(1, 7) if info.type_counts[t]
            )
            mark = "+" if info.in_mfe else " "
            lines.append(
                f"{info.base_i:4d} {info.base_j:4d} {info.non_compatible:2d} {info.gapped:2d} "
                f"{100.0 * info.probability:5.1f}% {info.entropy:7.3f} {types} {mark}"
            )

    return "\n".join(lines)


def result_to_json(alignment: Alignment, result: AliFoldResult) -> dict:
    """Converts a fold result into a JSON-serialisable dictionary."""
    mfe = result.mfe
    payload = {
        "n_sequences": alignment.n_seq,
        "length": alignment.length,
        "consensus": mfe.consensus,
        "structure": mfe.structure,
        "circular": mfe.circular,
        "mfe_kcal_per_mol": mfe.energy,
        "energy_kcal_per_mol": mfe.decomposition.energy_kcal,
        "covariance_kcal_per_mol": mfe.decomposition.covariance_kcal,
        "conflicts": [
            {"i": c.base_i, "j": c.base_j, "reason": c.reason} for c in mfe.conflicts
        ],
    }
    ensemble = result.ensemble
    if ensemble is not None:
        payload["ensemble"] = {
            "free_energy_kcal_per_mol": ensemble.ensemble_energy,
            "mfe_frequency": ensemble.mfe_frequency,
            "centroid": ensemble.centroid.structure if ensemble.centroid else None,
            "centroid_distance": ensemble.centroid.distance if ensemble.centroid else None,
            "pair_probabilities": [[p.base_i, p.base_j, p.probability] for p in ensemble.probabilities],
            "pairs": [
                {
                    "i": info.base_i,
                    "j": info.base_j,
                    "probability": info.probability,
                    "entropy": info.entropy,
                    "type_counts": list(info.type_counts),
                    "in_mfe": info.in_mfe,
                }
                for info in ensemble.pair_infos
            ],
            "samples": [
                {"structure": s.structure, "probability": s.probability, "energy": s.energy}
                for s in ensemble.samples
            ],
        }
    return payload


# --------------------------
# Command-Line Interface
# --------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Predict the consensus secondary structure of an RNA alignment.")
    parser.add_argument("alignment", help="Alignment file in FASTA or Clustal format.")

    # Model options
    parser.add_argument("-T", "--temp", dest="temperature", type=float, default=37.0,
                        help="Temperature in °C (default: 37.0).")
    parser.add_argument("-d", "--dangles", type=int, choices=[0, 1, 2, 3], default=2,
                        help="Dangle model (default: 2).")
    parser.add_argument("--noLP", action="store_true", help="Forbid lonely pairs.")
    parser.add_argument("--noGU", action="store_true", help="Forbid GU pairs.")
    parser.add_argument("--noClosingGU", action="store_true", help="Forbid GU pairs closing a loop.")
    parser.add_argument("--nsp", default=None, help="Allow nonstandard pairs, e.g. 'GA,-UU'.")
    parser.add_argument("-P", "--paramFile", dest="parameter_file", default=None,
                        help="Energy parameter YAML (defaults to the bundled set).")
    parser.add_argument("--noTetra", action="store_true", help="Do not apply the tetraloop bonuses.")
    parser.add_argument("--circ", action="store_true", help="Fold as a circular alignment.")
    parser.add_argument("-g", "--gquad", action="store_true", help="Allow G-quadruplexes.")
    parser.add_argument("-C", "--constraint", default=None, help="Dot-bracket hard constraint.")

    # Covariation options
    parser.add_argument("--cfactor", type=float, default=1.0, help="Weight of the covariation term (default: 1.0).")
    parser.add_argument("--nfactor", type=float, default=1.0,
                        help="Weight of the non-compatibility penalty (default: 1.0).")
    parser.add_argument("-r", "--ribosum_scoring", action="store_true",
                        help="Score covariation with the bundled RIBOSUM-style matrix.")
    parser.add_argument("-R", "--ribosum_file", default=None,
                        help="Score covariation with a substitution matrix from this YAML file.")
    parser.add_argument("--endgaps", action="store_true", help="Exclude end gaps from the covariation tallies.")
    parser.add_argument("--mis", action="store_true", help="Output the most informative consensus sequence.")

    # Ensemble options
    parser.add_argument("-p", "--partfunc", action="store_true",
                        help="Compute the partition function and pair probabilities.")
    parser.add_argument("-S", "--pfScale", dest="pf_scale", type=float, default=1.07,
                        help="Scale factor of the partition function estimate (default: 1.07).")
    parser.add_argument("--stochBT", type=int, default=0, help="Number of structures to sample.")
    parser.add_argument("--stochBT_en", action="store_true", help="Report energies of sampled structures.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for stochastic sampling.")

    # Output and logging
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of human-readable text.")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity (-v=INFO, -vv=DEBUG)")
    parser.add_argument("--log-file", default=None,
                        help="Path to log file (default: var/log/<logger>_TIMESTAMP.log if verbose)")

    return parser


def main(argv=None) -> int:
    """
    Parses command-line arguments and runs the fold.

    Returns
    -------
    int
        0 on success, 2 on invalid input, 1 on a folding failure.
    """
    cli_args = build_parser().parse_args(argv)
    setup_cli_logging(cli_args.verbose, cli_args.log_file)

    # --- Input ---
    try:
        config = build_config(cli_args)
        alignment = read_alignment(cli_args.alignment, end_gaps=config.end_gaps)
    except (InputError, OSError) as e:
        logger.error(f"Invalid input: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2

    # --- Fold ---
    try:
        result = fold_alignment(alignment, config, constraint=cli_args.constraint)
    except InputError as e:
        logger.error(f"Invalid input: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except NumericOverflow as e:
        logger.error(f"Partition function failed: {e}")
        hint = f" (try -S {e.suggested_scale_factor:.3f})" if e.suggested_scale_factor else ""
        print(f"Partition function failed: {e}{hint}", file=sys.stderr)
        return 1
    except AliFoldError as e:
        logger.error(f"Folding failed: {e}", exc_info=True)
        print(f"Folding failed: {e}", file=sys.stderr)
        return 1

    # --- Output ---
    for conflict in result.mfe.conflicts:
        print(f"Warning: {conflict}", file=sys.stderr)
    if cli_args.json:
        print(json.dumps(result_to_json(alignment, result), indent=2))
    else:
        print(format_text(result))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
