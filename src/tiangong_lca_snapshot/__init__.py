"""Tiangong LCA lifecycle-model snapshot exporter."""

from .core.config import Settings, get_settings
from .core.exceptions import (
    DatasetFetchError,
    InconsistentUnitsError,
    InvariantError,
    LoadError,
    SnapshotExportError,
    SolverRequestError,
)
from .core.models import Snapshot, SolverResult
from .reporting import encode_result_csv, resolve_process_labels
from .snapshot import build_snapshot
from .solver import LciaSolverClient, run_solver_for_model, run_solver_for_model_with_snapshot

__all__ = [
    "Settings",
    "get_settings",
    "Snapshot",
    "SolverResult",
    "SnapshotExportError",
    "LoadError",
    "InvariantError",
    "InconsistentUnitsError",
    "DatasetFetchError",
    "SolverRequestError",
    "build_snapshot",
    "resolve_process_labels",
    "encode_result_csv",
    "LciaSolverClient",
    "run_solver_for_model",
    "run_solver_for_model_with_snapshot",
]
