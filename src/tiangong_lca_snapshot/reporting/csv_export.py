"""CSV rendering of the solver's indicator-by-process matrix."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from tiangong_lca_snapshot.core.models import SolverResult

from .indicators import METHOD_EN_BY_INDEX

BYTE_ORDER_MARK = "\ufeff"
HEADER_LABEL = "method_en"
_QUOTE_TRIGGERS = (",", '"', "\n", "\r")


def escape_csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    if any(trigger in text for trigger in _QUOTE_TRIGGERS):
        return '"' + text.replace('"', '""') + '"'
    return text


def _as_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


def resolve_method_label(indicator: Any, row_index: int, method_names: Mapping[int, str]) -> str:
    """Map a numeric (or numeric string) indicator to its display name, else keep it as-is."""
    position = _as_index(indicator)
    if position is not None and method_names.get(position):
        return method_names[position]
    if indicator is None:
        return method_names.get(row_index, "")
    return str(indicator)


def encode_result_csv(
    result: SolverResult | Mapping[str, Any],
    labels: Sequence[str] | None = None,
    *,
    method_names: Mapping[int, str] | None = None,
) -> str:
    """Render a BOM-prefixed CSV with one row per indicator and one column per process."""
    if not isinstance(result, SolverResult):
        result = SolverResult.from_payload(result)
    names = METHOD_EN_BY_INDEX if method_names is None else method_names
    process_index = result.process_index
    columns = list(labels) if labels is not None and len(labels) == len(process_index) else process_index

    lines = [",".join(escape_csv_cell(cell) for cell in [HEADER_LABEL, *columns])]
    for row_index, indicator in enumerate(result.indicator_index):
        row_values = result.values[row_index] if row_index < len(result.values) else []
        cells = [escape_csv_cell(resolve_method_label(indicator, row_index, names))]
        for column_index in range(len(columns)):
            value = row_values[column_index] if column_index < len(row_values) else None
            cells.append(escape_csv_cell(value))
        lines.append(",".join(cells))
    return BYTE_ORDER_MARK + "\n".join(lines)


__all__ = ["encode_result_csv", "escape_csv_cell", "resolve_method_label"]
