from __future__ import annotations

import json
from typing import Any, Mapping

import anyio
import httpx
import pytest
from mcp import types

from tiangong_lca_snapshot.core.config import Settings
from tiangong_lca_snapshot.core.exceptions import DatasetFetchError
from tiangong_lca_snapshot.core.json_utils import parse_json_response
from tiangong_lca_snapshot.core.models import DatasetRecord, DatasetRef
from tiangong_lca_snapshot.gateway import mcp_client as mcp_client_module
from tiangong_lca_snapshot.gateway.database import DatabaseDatasetGateway
from tiangong_lca_snapshot.snapshot.fetchers import fetch_batch


class FakeMCPClient:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    async def invoke_json_tool(self, server_name: str, tool_name: str, arguments: Mapping[str, Any]) -> Any:
        self.calls.append((server_name, tool_name, dict(arguments)))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True


def _gateway(responses: list[Any], **overrides: Any) -> tuple[DatabaseDatasetGateway, FakeMCPClient]:
    fake = FakeMCPClient(responses)
    settings = Settings(retry_backoff=0.1, **overrides)
    return DatabaseDatasetGateway(settings, mcp_client=fake), fake


def test_select_returns_record_from_json_column() -> None:
    document = {"processDataSet": {"processInformation": {}}}
    gateway, fake = _gateway([{"data": [{"id": "proc-1", "version": "01.00.000", "json": document}]}])

    result = anyio.run(gateway.get_process_detail, "proc-1", "01.00.000")

    assert result.success is True
    assert result.data == DatasetRecord(id="proc-1", json=document, version="01.00.000")
    assert fake.calls == [
        (
            "tiangong_lca_remote",
            "Database_CRUD_Tool",
            {"operation": "select", "table": "processes", "id": "proc-1", "version": "01.00.000"},
        )
    ]


def test_select_parses_json_ordered_strings_and_omits_blank_version() -> None:
    document = {"flowDataSet": {}}
    gateway, fake = _gateway([{"data": {"id": "flow-1", "json_ordered": json.dumps(document)}}])

    result = anyio.run(gateway.get_flow_detail, "flow-1", "")

    assert result.data == DatasetRecord(id="flow-1", json=document, version=None)
    assert "version" not in fake.calls[0][2]
    assert fake.calls[0][2]["table"] == "flows"


def test_empty_select_reports_failure() -> None:
    gateway, _fake = _gateway([{"data": []}])

    result = anyio.run(gateway.get_unit_group_detail, "ug-1", "")

    assert result.success is False
    assert result.data is None


def test_transport_error_reports_failure_without_retry() -> None:
    gateway, fake = _gateway([DatasetFetchError("boom")])

    result = anyio.run(gateway.get_flow_property_detail, "fp-1", "")

    assert result.success is False
    assert len(fake.calls) == 1


def test_timeouts_are_retried() -> None:
    record = {"data": [{"id": "model-1", "json": {"lifeCycleModelDataSet": {}}}]}
    gateway, fake = _gateway([httpx.ReadTimeout("slow"), record], max_retries=2)

    result = anyio.run(gateway.get_lifecycle_model_detail, "model-1", "")

    assert result.success is True
    assert [call[2]["table"] for call in fake.calls] == ["lifecyclemodels", "lifecyclemodels"]


def test_exhausted_timeouts_report_failure() -> None:
    gateway, fake = _gateway([TimeoutError("slow")], max_retries=1)

    result = anyio.run(gateway.get_process_detail, "proc-1", "")

    assert result.success is False
    assert len(fake.calls) == 1


def test_aclose_closes_mcp_client() -> None:
    gateway, fake = _gateway([])

    anyio.run(gateway.aclose)

    assert fake.closed is True


def test_parse_json_response_accepts_fenced_payloads() -> None:
    assert parse_json_response('```json\n{"data": []}\n```') == {"data": []}
    with pytest.raises(DatasetFetchError):
        parse_json_response("not json")


def test_connection_errors_report_failure() -> None:
    request = httpx.Request("POST", "http://127.0.0.1:8765/mcp")
    gateway, fake = _gateway(
        [
            httpx.ConnectError("connection refused", request=request),
            anyio.ClosedResourceError(),
            RuntimeError("Cannot invoke MCP tool on a closed client"),
        ]
    )

    async def _run() -> list[bool]:
        results = []
        for flow_id in ("flow-1", "flow-2", "flow-3"):
            results.append((await gateway.get_flow_detail(flow_id, "")).success)
        return results

    assert anyio.run(_run) == [False, False, False]
    assert len(fake.calls) == 3


class TaskBoundTransport:
    """Stands in for ``streamablehttp_client`` and records which tasks enter and leave its cancel scope."""

    opened: list["TaskBoundTransport"] = []

    def __init__(self, url: str, headers: Mapping[str, str] | None = None, timeout: float = 30) -> None:
        self.url = url
        self.headers = headers
        self.timeout = timeout
        self.entered_by: Any = None
        self.exited_by: Any = None
        self._scope = anyio.CancelScope()
        TaskBoundTransport.opened.append(self)

    async def __aenter__(self) -> tuple[Any, Any, Any]:
        self.entered_by = anyio.get_current_task().id
        self._scope.__enter__()
        return object(), object(), lambda: None

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.exited_by = anyio.get_current_task().id
        self._scope.__exit__(exc_type, exc, tb)
        return False


class FakeSession:
    opened: list["FakeSession"] = []

    def __init__(self, read_stream: Any, write_stream: Any) -> None:
        FakeSession.opened.append(self)
        self.entered_by: Any = None
        self.exited_by: Any = None
        self.tool_calls: list[dict[str, Any]] = []

    async def __aenter__(self) -> "FakeSession":
        self.entered_by = anyio.get_current_task().id
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.exited_by = anyio.get_current_task().id
        return False

    async def initialize(self) -> None:
        await anyio.sleep(0.01)

    async def call_tool(self, name: str, arguments: Mapping[str, Any]) -> types.CallToolResult:
        self.tool_calls.append(dict(arguments))
        await anyio.sleep(0.01)
        body = {"data": [{"id": arguments["id"], "json": {"flowDataSet": {}}}]}
        return types.CallToolResult(content=[types.TextContent(type="text", text=json.dumps(body))])


def test_concurrent_fetches_share_one_session_owned_by_one_task(monkeypatch) -> None:
    TaskBoundTransport.opened.clear()
    FakeSession.opened.clear()
    monkeypatch.setattr(mcp_client_module, "streamablehttp_client", TaskBoundTransport)
    monkeypatch.setattr(mcp_client_module, "ClientSession", FakeSession)
    settings = Settings(mcp_base_url="http://127.0.0.1:8765/mcp", mcp_api_key="token")
    refs = [DatasetRef("flow-1"), DatasetRef("flow-2"), DatasetRef("flow-3", "01.00.000")]

    async def _run() -> dict[str, DatasetRecord]:
        async with DatabaseDatasetGateway(settings) as gateway:
            first = await fetch_batch("flows", refs, gateway.get_flow_detail, limiter=anyio.CapacityLimiter(3))
            second = await fetch_batch("flows", refs[:1], gateway.get_flow_detail, limiter=anyio.CapacityLimiter(3))
        return {**first, **second}

    records = anyio.run(_run)

    assert sorted(records) == ["flow-1", "flow-2", "flow-3"]
    assert records["flow-3"].json == {"flowDataSet": {}}
    assert len(TaskBoundTransport.opened) == 1
    transport = TaskBoundTransport.opened[0]
    assert transport.exited_by is not None
    assert transport.exited_by == transport.entered_by
    session = FakeSession.opened[0]
    assert session.exited_by == session.entered_by == transport.entered_by
    assert len(session.tool_calls) == 4
    assert transport.url == "http://127.0.0.1:8765/mcp"
    assert transport.headers == {"Authorization": "Bearer token"}


def test_gateway_used_outside_context_reports_failure(monkeypatch) -> None:
    monkeypatch.setattr(mcp_client_module, "streamablehttp_client", TaskBoundTransport)
    monkeypatch.setattr(mcp_client_module, "ClientSession", FakeSession)
    gateway = DatabaseDatasetGateway(Settings(mcp_base_url="http://127.0.0.1:8765/mcp"))

    result = anyio.run(gateway.get_flow_detail, "flow-1", "")

    assert result.success is False
