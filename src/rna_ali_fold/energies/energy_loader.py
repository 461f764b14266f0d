from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from rna_ali_fold.energies.data.yaml_io import read_yaml
from rna_ali_fold.energies.data.parsers import (
    derive_mismatch_from_dangles,
    get_pair_order,
    get_temperature_kelvin,
    parse_dangles,
    parse_gquad,
    parse_loop_table,
    parse_mismatch,
    parse_ml_params,
    parse_ninio,
    parse_scalar,
    parse_stack,
    parse_tetraloops,
)
from rna_ali_fold.energies.energy_types import EnergyParameters
from rna_ali_fold.errors import ParameterFileError
from rna_ali_fold.utils.energy_utils import to_kelvin

logger = logging.getLogger(__name__)

DEFAULT_PARAMETER_FILE = Path(__file__).resolve().parents[1] / "data" / "rna_turner2004_reduced.yaml"


class EnergyParameterLoader:
    """
    Loads nearest-neighbour energy tables from a YAML file.

    The loader reads free energies at the reference temperature plus optional
    enthalpies, and returns an immutable `EnergyParameters` bundle rescaled
    to the requested temperature.
    """
    def load(self, yaml_path: str | Path | None = None, temperature: float = 37.0) -> EnergyParameters:
        """
        Load a parameter bundle.

        Parameters
        ----------
        yaml_path : str | Path | None
            Path to the YAML parameter file. Defaults to the bundled reduced
            Turner 2004 set.
        temperature : float
            Folding temperature in °C.

        Returns
        -------
        EnergyParameters
            Tables in dcal/mol at `temperature`.

        Raises
        ------
        ParameterFileError
            If the file cannot be read or a section is malformed.

        Notes
        -----
        - Rescaling uses `ΔG(T) = ΔH − (ΔH − ΔG37) · T / T37` per entry.
        - Missing exterior and multiloop mismatch tables are derived from
          the dangle tables.
        """
        path = Path(yaml_path) if yaml_path is not None else DEFAULT_PARAMETER_FILE
        data = read_yaml(path)
        logger.debug(f"Loading energy parameters from {path} at {temperature:.2f} °C")

        try:
            return self._build(data, temperature)
        except ParameterFileError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError, IndexError) as exc:
            raise ParameterFileError(f"Malformed parameter file '{path}': {exc}") from exc

    def _build(self, data: Dict[str, Any], temperature: float) -> EnergyParameters:
        reference_k = get_temperature_kelvin(data)
        if abs(reference_k - 310.15) > 1e-6:
            logger.warning(f"Parameter file reference temperature is {reference_k} K; rescaling assumes 310.15 K")
        temp_k = to_kelvin(temperature)
        pair_order = get_pair_order(data)

        # --- Pair and loop tables ---
        stack = parse_stack(data, pair_order, temp_k)
        hairpin = parse_loop_table(data, "hairpin", temp_k)
        bulge = parse_loop_table(data, "bulge", temp_k)
        interior = parse_loop_table(data, "interior", temp_k)

        # --- Dangles and mismatches ---
        dangle5 = parse_dangles(data, "dangle5", pair_order, temp_k)
        dangle3 = parse_dangles(data, "dangle3", pair_order, temp_k)
        mismatch_hairpin = parse_mismatch(data, "mismatch_hairpin", pair_order, temp_k)
        mismatch_interior = parse_mismatch(data, "mismatch_interior", pair_order, temp_k)
        if mismatch_hairpin is None or mismatch_interior is None:
            raise ParameterFileError("Parameter file must define mismatch_hairpin and mismatch_interior.")
        derived = derive_mismatch_from_dangles(dangle5, dangle3)
        mismatch_exterior = parse_mismatch(data, "mismatch_exterior", pair_order, temp_k) or derived
        mismatch_multi = parse_mismatch(data, "mismatch_multi", pair_order, temp_k) or derived

        # --- Scalars ---
        ml_base, ml_closing, ml_intern = parse_ml_params(data, temp_k)
        ninio, max_ninio = parse_ninio(data, temp_k)
        gquad_alpha, gquad_beta = parse_gquad(data, temp_k)

        return EnergyParameters(
            temperature=temperature,
            stack=stack,
            hairpin=hairpin,
            bulge=bulge,
            interior=interior,
            mismatch_hairpin=mismatch_hairpin,
            mismatch_interior=mismatch_interior,
            mismatch_exterior=mismatch_exterior,
            mismatch_multi=mismatch_multi,
            dangle5=dangle5,
            dangle3=dangle3,
            ml_base=ml_base,
            ml_closing=ml_closing,
            ml_intern=ml_intern,
            ninio=ninio,
            max_ninio=max_ninio,
            terminal_au=parse_scalar(data, "terminal_au", temp_k),
            lxc=float(data.get("lxc", 107.856)) * temp_k / 310.15,
            tetraloops=parse_tetraloops(data, temp_k),
            gquad_alpha=gquad_alpha,
            gquad_beta=gquad_beta,
        )
