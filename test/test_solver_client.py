from __future__ import annotations

import json
from typing import Any

import anyio
import httpx
import pytest

from tiangong_lca_snapshot.core.config import DEFAULT_SOLVER_URL, Settings
from tiangong_lca_snapshot.core.exceptions import LoadError, SolverRequestError
from tiangong_lca_snapshot.core.models import FetchResult, ModelInfo, Snapshot, SolverResult
from tiangong_lca_snapshot.solver.client import (
    LciaSolverClient,
    run_solver_for_model,
    run_solver_for_model_with_snapshot,
)

SNAPSHOT = Snapshot(model=ModelInfo(model_id="model-1", export_time="2025-01-01T00:00:00.000Z"))
SOLVER_BODY = {
    "indicator_index": [0],
    "process_index": ["proc-1"],
    "values": [[1.5]],
    "issues": ["singular matrix avoided"],
}


def _client(handler: Any, requests: list[httpx.Request]) -> LciaSolverClient:
    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return LciaSolverClient(Settings(), http_client=http_client)


def test_solve_posts_snapshot_to_default_endpoint() -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _request: httpx.Response(200, json=SOLVER_BODY), requests)

    result = anyio.run(client.solve, SNAPSHOT)

    assert isinstance(result, SolverResult)
    assert result.values == [[1.5]]
    assert result.issues == ["singular matrix avoided"]
    assert len(requests) == 1
    assert str(requests[0].url) == DEFAULT_SOLVER_URL
    assert requests[0].method == "POST"
    assert json.loads(requests[0].content) == {"snapshot": SNAPSHOT.as_dict()}


def test_solve_uses_custom_endpoint_and_ignores_blank_one() -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _request: httpx.Response(200, json=SOLVER_BODY), requests)

    async def _run() -> None:
        await client.solve(SNAPSHOT, "http://example.com/v1/lcia")
        await client.solve(SNAPSHOT, "   ")

    anyio.run(_run)

    assert [str(request.url) for request in requests] == ["http://example.com/v1/lcia", DEFAULT_SOLVER_URL]


def test_solve_raises_with_status_and_body() -> None:
    client = _client(lambda _request: httpx.Response(500, text="boom"), [])

    with pytest.raises(SolverRequestError, match=r"LCIA solver request failed \(500\): boom") as excinfo:
        anyio.run(client.solve, SNAPSHOT)
    assert excinfo.value.status_code == 500


def test_solve_error_without_body_omits_detail() -> None:
    client = _client(lambda _request: httpx.Response(503), [])

    with pytest.raises(SolverRequestError) as excinfo:
        anyio.run(client.solve, SNAPSHOT)
    assert str(excinfo.value) == "LCIA solver request failed (503)"


class EmptyModelGateway:
    def __init__(self, *, available: bool = True) -> None:
        self.available = available

    async def get_lifecycle_model_detail(self, model_id: str, version: str) -> FetchResult:
        if not self.available:
            return FetchResult.failed()
        return FetchResult(success=True, data={"id": model_id, "version": version, "json": {"lifeCycleModelDataSet": {}}})

    async def get_process_detail(self, process_id: str, version: str) -> FetchResult:
        return FetchResult.failed()

    async def get_flow_detail(self, flow_id: str, version: str) -> FetchResult:
        return FetchResult.failed()

    async def get_flow_property_detail(self, flow_property_id: str, version: str) -> FetchResult:
        return FetchResult.failed()

    async def get_unit_group_detail(self, unit_group_id: str, version: str) -> FetchResult:
        return FetchResult.failed()


def test_run_solver_for_model_with_snapshot_returns_both() -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _request: httpx.Response(200, json=SOLVER_BODY), requests)

    async def _run() -> tuple[Snapshot, SolverResult]:
        return await run_solver_for_model_with_snapshot(
            "model-1",
            "01.00.000",
            "v2",
            gateway=EmptyModelGateway(),
            settings=Settings(),
            solver=client,
        )

    snapshot, result = anyio.run(_run)

    assert snapshot.model.model_id == "model-1"
    assert snapshot.model.tiangong_commit == "v2"
    assert snapshot.processes == ()
    assert result.process_index == ["proc-1"]
    assert json.loads(requests[0].content)["snapshot"]["model"]["model_id"] == "model-1"


def test_run_solver_for_model_skips_solver_when_model_missing() -> None:
    requests: list[httpx.Request] = []
    client = _client(lambda _request: httpx.Response(200, json=SOLVER_BODY), requests)

    async def _run() -> SolverResult:
        return await run_solver_for_model(
            "model-1",
            "01.00.000",
            gateway=EmptyModelGateway(available=False),
            settings=Settings(),
            solver=client,
        )

    with pytest.raises(LoadError):
        anyio.run(_run)
    assert requests == []
