"""Reporting helpers: process labels and CSV export of solver results."""

from .csv_export import encode_result_csv, escape_csv_cell
from .indicators import METHOD_EN_BY_INDEX
from .labels import parse_allocation_fraction, resolve_process_labels

__all__ = [
    "METHOD_EN_BY_INDEX",
    "encode_result_csv",
    "escape_csv_cell",
    "parse_allocation_fraction",
    "resolve_process_labels",
]
