from __future__ import annotations
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from rna_ali_fold.energies.energy_types import (
    INF,
    MAXLOOP,
    N_BASES,
    N_PAIR_TYPES,
    DangleTable,
    LoopTable,
    MismatchTable,
    PairPairTable,
)
from rna_ali_fold.errors import ParameterFileError
from rna_ali_fold.rules.pair_types import PAIR_LABELS, PairType
from rna_ali_fold.utils.energy_utils import rescale_free_energy

DEFAULT_PAIR_ORDER: Tuple[str, ...] = ("CG", "GC", "GU", "UG", "AU", "UA")


# ---------- Top-level config helpers ----------

def get_temperature_kelvin(data: Mapping[str, Any]) -> float:
    """
    Return the reference temperature (Kelvin) of the tabulated free energies.

    Notes
    -----
    Prefer metadata.temperature_kelvin, else top-level temperature_kelvin,
    else default 310.15 K.
    """
    metadata = data.get("metadata") or {}
    temp_k = metadata.get("temperature_kelvin") or data.get("temperature_kelvin") or 310.15

    return float(temp_k)


def get_pair_order(data: Mapping[str, Any]) -> Tuple[int, ...]:
    """
    Map the file's `pair_order` onto `PairType` indices.

    Raises
    ------
    ParameterFileError
        If the order does not list the six canonical pairs exactly once.
    """
    labels = data.get("pair_order") or DEFAULT_PAIR_ORDER
    try:
        order = tuple(PAIR_LABELS.index(str(label).upper()) for label in labels)
    except ValueError as exc:
        raise ParameterFileError(f"Unknown pair label in pair_order: {labels}") from exc
    if sorted(order) != [1, 2, 3, 4, 5, 6]:
        raise ParameterFileError(f"pair_order must list the six canonical pairs once, got {labels}.")

    return order


def _section(data: Mapping[str, Any], key: str, required: bool = True) -> Optional[Mapping[str, Any]]:
    block = data.get(key)
    if block is None:
        if required:
            raise ParameterFileError(f"Parameter file is missing the '{key}' section.")
        return None
    if not isinstance(block, Mapping) or "dg37" not in block:
        raise ParameterFileError(f"Section '{key}' must be a mapping with a 'dg37' entry.")
    return block


def _scaled(dg37: Any, dh: Any, temp_k: float) -> float:
    """Rescale one table entry; `None` (YAML null) becomes `INF`."""
    try:
        value = rescale_free_energy(
            None if dg37 is None else int(dg37),
            None if dh is None else int(dh),
            temp_k,
        )
    except (TypeError, ValueError) as exc:
        raise ParameterFileError(f"Invalid energy entry dg37={dg37!r}, dh={dh!r}.") from exc

    return INF if value is None else value


def _scaled_seq(dg37: Sequence[Any], dh: Optional[Sequence[Any]], temp_k: float, expected: int, where: str) -> List[float]:
    if not isinstance(dg37, Sequence) or len(dg37) != expected:
        raise ParameterFileError(f"'{where}' must have {expected} entries.")
    if dh is not None and (not isinstance(dh, Sequence) or len(dh) != expected):
        raise ParameterFileError(f"Enthalpies of '{where}' must have {expected} entries.")

    return [_scaled(dg37[k], None if dh is None else dh[k], temp_k) for k in range(expected)]


# ---------- Table parsers ----------

def parse_scalar(data: Mapping[str, Any], key: str, temp_k: float) -> int:
    """Parse a `{dg37, dh}` scalar such as `terminal_au`."""
    block = _section(data, key)
    value = _scaled(block["dg37"], block.get("dh"), temp_k)
    if value == INF:
        raise ParameterFileError(f"'{key}' may not be null.")

    return int(value)


def parse_stack(data: Mapping[str, Any], pair_order: Tuple[int, ...], temp_k: float) -> PairPairTable:
    """
    Parse the 6x6 stacking table into an 8x8 table indexed by `PairType`.

    Rows and columns for `NONE` are `INF`; rows and columns for the
    nonstandard class are 0.
    """
    block = _section(data, "stack")
    dg37, dh = block["dg37"], block.get("dh")
    table = [[INF] * N_PAIR_TYPES for _ in range(N_PAIR_TYPES)]
    for t in range(1, N_PAIR_TYPES):
        table[PairType.NS][t] = 0
        table[t][PairType.NS] = 0

    for label_idx, t1 in enumerate(pair_order):
        label = PAIR_LABELS[t1]
        row = _scaled_seq(dg37.get(label), None if dh is None else dh.get(label), temp_k, 6, f"stack.{label}")
        for col_idx, t2 in enumerate(pair_order):
            table[t1][t2] = row[col_idx]

    return tuple(tuple(row) for row in table)


def parse_loop_table(data: Mapping[str, Any], key: str, temp_k: float) -> LoopTable:
    """Parse a loop-length table with entries for sizes 0..MAXLOOP."""
    block = _section(data, key)
    return tuple(_scaled_seq(block["dg37"], block.get("dh"), temp_k, MAXLOOP + 1, key))


def parse_dangles(data: Mapping[str, Any], key: str, pair_order: Tuple[int, ...], temp_k: float) -> DangleTable:
    """Parse a `[pair][base]` dangle table; `NONE` and nonstandard rows are 0."""
    block = _section(data, key)
    dg37, dh = block["dg37"], block.get("dh")
    table = [[0] * N_BASES for _ in range(N_PAIR_TYPES)]
    for t in pair_order:
        label = PAIR_LABELS[t]
        table[t] = _scaled_seq(dg37.get(label), None if dh is None else dh.get(label), temp_k, N_BASES, f"{key}.{label}")

    return tuple(tuple(row) for row in table)


def parse_mismatch(
    data: Mapping[str, Any],
    key: str,
    pair_order: Tuple[int, ...],
    temp_k: float,
) -> Optional[MismatchTable]:
    """
    Parse a `[pair][base][base]` mismatch table.

    Returns None when the section is absent so the caller can derive it.
    """
    block = _section(data, key, required=False)
    if block is None:
        return None
    dg37, dh = block["dg37"], block.get("dh")
    table = [[[0] * N_BASES for _ in range(N_BASES)] for _ in range(N_PAIR_TYPES)]
    for t in pair_order:
        label = PAIR_LABELS[t]
        rows = dg37.get(label)
        rows_dh = None if dh is None else dh.get(label)
        if not isinstance(rows, Sequence) or len(rows) != N_BASES:
            raise ParameterFileError(f"'{key}.{label}' must be a {N_BASES}x{N_BASES} matrix.")
        for b in range(N_BASES):
            table[t][b] = _scaled_seq(
                rows[b], None if rows_dh is None else rows_dh[b], temp_k, N_BASES, f"{key}.{label}[{b}]"
            )

    return tuple(tuple(tuple(row) for row in block_t) for block_t in table)


def derive_mismatch_from_dangles(dangle5: DangleTable, dangle3: DangleTable) -> MismatchTable:
    """Build a `[pair][5' flank][3' flank]` mismatch table as dangle5 + dangle3."""
    return tuple(
        tuple(
            tuple(dangle5[t][b5] + dangle3[t][b3] for b3 in range(N_BASES))
            for b5 in range(N_BASES)
        )
        for t in range(N_PAIR_TYPES)
    )


def parse_ml_params(data: Mapping[str, Any], temp_k: float) -> Tuple[int, int, int]:
    """Parse the multiloop `(base, closing, intern)` penalties."""
    block = data.get("ml_params")
    if not isinstance(block, Mapping):
        raise ParameterFileError("Parameter file is missing the 'ml_params' section.")

    return (
        parse_scalar(block, "base", temp_k),
        parse_scalar(block, "closing", temp_k),
        parse_scalar(block, "intern", temp_k),
    )


def parse_ninio(data: Mapping[str, Any], temp_k: float) -> Tuple[int, int]:
    """Parse the asymmetry penalty and its cap."""
    block = _section(data, "ninio")
    value = int(_scaled(block["dg37"], block.get("dh"), temp_k))
    cap = block.get("max", 300)

    return value, int(cap)


def parse_tetraloops(data: Mapping[str, Any], temp_k: float) -> Mapping[str, int]:
    """Parse the special-hairpin bonuses keyed by 6-nt sequence."""
    block = data.get("tetraloops") or {}
    out = {}
    for seq, entry in block.items():
        seq = str(seq).upper().replace("T", "U")
        if len(seq) != 6:
            raise ParameterFileError(f"Tetraloop key '{seq}' must have 6 nucleotides.")
        if isinstance(entry, Mapping):
            out[seq] = int(_scaled(entry.get("dg37"), entry.get("dh"), temp_k))
        else:
            out[seq] = int(entry)

    return out


def parse_gquad(data: Mapping[str, Any], temp_k: float) -> Tuple[int, int]:
    """Parse the G-quadruplex `(alpha, beta)` coefficients."""
    block = data.get("gquad")
    if not isinstance(block, Mapping):
        raise ParameterFileError("Parameter file is missing the 'gquad' section.")

    return parse_scalar(block, "alpha", temp_k), parse_scalar(block, "beta", temp_k)
