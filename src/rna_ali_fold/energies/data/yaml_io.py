from __future__ import annotations
from pathlib import Path
from typing import Any, Dict

import yaml

from rna_ali_fold.errors import ParameterFileError


def read_yaml(path: str | Path) -> Dict[str, Any]:
    """
    Read and parse a YAML parameter file.

    Raises
    ------
    ParameterFileError
        If the file has the wrong suffix, cannot be read, or is not valid YAML.
    """
    path_obj = Path(path)
    if path_obj.suffix.lower() not in {".yml", ".yaml"}:
        raise ParameterFileError(f"Only YAML parameter files are supported, got '{path_obj.name}'.")

    try:
        data = yaml.safe_load(path_obj.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ParameterFileError(f"Cannot read parameter file '{path_obj}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ParameterFileError(f"Parameter file '{path_obj}' is not valid YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ParameterFileError(f"Parameter file '{path_obj}' must contain a mapping at the top level.")

    return data
