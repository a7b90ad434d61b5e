"""Shared core utilities for the Tiangong LCA snapshot exporter."""

from .config import Settings, get_settings
from .exceptions import (
    DatasetFetchError,
    InconsistentUnitsError,
    InvariantError,
    LoadError,
    SnapshotExportError,
    SolverRequestError,
)
from .logging import configure_logging, get_logger
from .models import (
    DatasetRecord,
    DatasetRef,
    ExchangeRecord,
    FetchResult,
    FlowPropertyRecord,
    FlowRecord,
    LinkRecord,
    ModelInfo,
    ProcessRecord,
    Snapshot,
    SolverResult,
    UnitGroupRecord,
    UnitRecord,
)

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "SnapshotExportError",
    "LoadError",
    "InvariantError",
    "InconsistentUnitsError",
    "DatasetFetchError",
    "SolverRequestError",
    "DatasetRef",
    "DatasetRecord",
    "FetchResult",
    "ModelInfo",
    "ProcessRecord",
    "ExchangeRecord",
    "FlowRecord",
    "FlowPropertyRecord",
    "UnitGroupRecord",
    "UnitRecord",
    "LinkRecord",
    "Snapshot",
    "SolverResult",
]
