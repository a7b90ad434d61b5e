"""HTTP client for the LCIA solver service."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from tiangong_lca_snapshot.core.config import Settings, get_settings
from tiangong_lca_snapshot.core.exceptions import SolverRequestError
from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import Snapshot, SolverResult
from tiangong_lca_snapshot.gateway.base import DatasetGateway
from tiangong_lca_snapshot.snapshot.assembler import build_snapshot

LOGGER = get_logger(__name__)


class LciaSolverClient:
    """POST snapshots to the solver and parse its indicator matrix."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    def resolve_endpoint(self, endpoint: str | None = None) -> str:
        if endpoint and endpoint.strip():
            return endpoint
        return self._settings.solver_url

    async def solve(self, snapshot: Snapshot, endpoint: str | None = None) -> SolverResult:
        url = self.resolve_endpoint(endpoint)
        client = self._ensure_client()
        LOGGER.info(
            "solver.request",
            url=url,
            model_id=snapshot.model.model_id,
            processes=len(snapshot.processes),
        )
        response = await client.post(url, json={"snapshot": snapshot.as_dict()})
        if not response.is_success:
            detail = response.text
            LOGGER.error("solver.request_failed", url=url, status=response.status_code)
            raise SolverRequestError(response.status_code, detail)
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise SolverRequestError(response.status_code, "Unexpected solver response body")
        result = SolverResult.from_payload(payload)
        LOGGER.info(
            "solver.response",
            indicators=len(result.indicator_index),
            processes=len(result.process_index),
            issues=len(result.issues or []),
        )
        return result

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.resolved_solver_timeout())
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LciaSolverClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def run_solver_for_model_with_snapshot(
    model_id: str,
    model_version: str,
    commit_tag: str | None = None,
    *,
    gateway: DatasetGateway,
    endpoint: str | None = None,
    settings: Settings | None = None,
    solver: LciaSolverClient | None = None,
) -> tuple[Snapshot, SolverResult]:
    """Export the model snapshot, send it to the solver and return both."""
    resolved_settings = settings or get_settings()
    snapshot = await build_snapshot(
        model_id,
        model_version,
        commit_tag,
        gateway=gateway,
        settings=resolved_settings,
    )
    if solver is not None:
        return snapshot, await solver.solve(snapshot, endpoint)
    async with LciaSolverClient(resolved_settings) as client:
        result = await client.solve(snapshot, endpoint)
    return snapshot, result


async def run_solver_for_model(
    model_id: str,
    model_version: str,
    commit_tag: str | None = None,
    **kwargs: Any,
) -> SolverResult:
    _, result = await run_solver_for_model_with_snapshot(model_id, model_version, commit_tag, **kwargs)
    return result


__all__ = ["LciaSolverClient", "run_solver_for_model", "run_solver_for_model_with_snapshot"]
