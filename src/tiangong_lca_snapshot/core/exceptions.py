"""Custom exception hierarchy for the snapshot export workflow."""

from __future__ import annotations


class SnapshotExportError(Exception):
    """Base error for the Tiangong LCA snapshot exporter."""


class LoadError(SnapshotExportError):
    """Raised when the root lifecycle model cannot be loaded."""


class InvariantError(SnapshotExportError):
    """Raised when the assembled snapshot violates a structural invariant."""


class InconsistentUnitsError(SnapshotExportError):
    """Raised when co-products of one process resolve to different unit groups."""

    def __init__(self, process_uuid: str) -> None:
        super().__init__(f"Inconsistent product units for process: {process_uuid}")
        self.process_uuid = process_uuid


class DatasetFetchError(SnapshotExportError):
    """Raised when a remote dataset lookup fails at the transport level."""


class SolverRequestError(SnapshotExportError):
    """Raised when the LCIA solver responds with a non-success status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        message = f"LCIA solver request failed ({status_code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
