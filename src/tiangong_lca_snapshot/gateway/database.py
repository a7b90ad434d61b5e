"""Dataset detail lookups over the Tiangong ``Database_CRUD_Tool`` MCP tool."""

from __future__ import annotations

import json
from typing import Any, Mapping

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from tiangong_lca_snapshot.core.config import Settings, get_settings
from tiangong_lca_snapshot.core.exceptions import DatasetFetchError
from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import DatasetRecord, FetchResult

from .mcp_client import AsyncMCPToolClient

LOGGER = get_logger(__name__)

TIMEOUT_ERRORS = (httpx.TimeoutException, TimeoutError)

LIFECYCLE_MODEL_TABLE = "lifecyclemodels"
PROCESS_TABLE = "processes"
FLOW_TABLE = "flows"
FLOW_PROPERTY_TABLE = "flowproperties"
UNIT_GROUP_TABLE = "unitgroups"


class DatabaseDatasetGateway:
    """Fetch single dataset rows by ``id``/``version``.

    Any transport or payload problem is logged and reported as an unsuccessful
    ``FetchResult``; callers decide whether the missing record matters. Enter the
    gateway with ``async with`` so its MCP sessions have a task group to run in.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        mcp_client: AsyncMCPToolClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_mcp = mcp_client is None
        self._mcp = mcp_client or AsyncMCPToolClient(self._settings)
        self._server_name = self._settings.database_service_name
        self._tool_name = self._settings.database_tool_name
        self._max_attempts = max(1, self._settings.max_retries)

    async def get_lifecycle_model_detail(self, model_id: str, version: str) -> FetchResult:
        return await self._select(LIFECYCLE_MODEL_TABLE, model_id, version)

    async def get_process_detail(self, process_id: str, version: str) -> FetchResult:
        return await self._select(PROCESS_TABLE, process_id, version)

    async def get_flow_detail(self, flow_id: str, version: str) -> FetchResult:
        return await self._select(FLOW_TABLE, flow_id, version)

    async def get_flow_property_detail(self, flow_property_id: str, version: str) -> FetchResult:
        return await self._select(FLOW_PROPERTY_TABLE, flow_property_id, version)

    async def get_unit_group_detail(self, unit_group_id: str, version: str) -> FetchResult:
        return await self._select(UNIT_GROUP_TABLE, unit_group_id, version)

    async def aclose(self) -> None:
        await self._mcp.aclose()

    async def __aenter__(self) -> "DatabaseDatasetGateway":
        if self._owns_mcp:
            await self._mcp.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_mcp:
            await self._mcp.__aexit__(exc_type, exc, tb)
        else:
            await self.aclose()

    async def _select(self, table: str, record_id: str, version: str) -> FetchResult:
        payload: dict[str, Any] = {"operation": "select", "table": table, "id": record_id}
        if version:
            payload["version"] = version
        try:
            raw = await self._invoke_with_retry(payload)
            record = _extract_record(raw, record_id)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "gateway.fetch_failed",
                table=table,
                id=record_id,
                version=version or None,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return FetchResult.failed()
        if record is None:
            LOGGER.warning("gateway.record_missing", table=table, id=record_id, version=version or None)
            return FetchResult.failed()
        LOGGER.debug("gateway.fetch_ok", table=table, id=record.id, version=record.version)
        return FetchResult(success=True, data=record)

    async def _invoke_with_retry(self, payload: Mapping[str, Any]) -> Any:
        retryer = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=max(self._settings.retry_backoff, 0.1),
                min=0.5,
                max=8,
            ),
            retry=retry_if_exception_type(TIMEOUT_ERRORS),
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                return await self._mcp.invoke_json_tool(self._server_name, self._tool_name, payload)
        return None


def _extract_record(raw: Any, requested_id: str) -> DatasetRecord | None:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise DatasetFetchError("Database_CRUD_Tool returned malformed JSON") from exc
    if not isinstance(raw, Mapping):
        return None
    data = raw.get("data")
    rows = data if isinstance(data, list) else [data] if isinstance(data, Mapping) else []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        document = None
        for key in ("json", "json_ordered"):
            candidate = row.get(key)
            if isinstance(candidate, str):
                try:
                    candidate = json.loads(candidate)
                except json.JSONDecodeError:
                    continue
            if isinstance(candidate, Mapping):
                document = candidate
                break
        if document is None:
            continue
        record_id = str(row.get("id") or requested_id)
        version = row.get("version")
        return DatasetRecord(id=record_id, json=document, version=str(version) if version else None)
    return None


__all__ = ["DatabaseDatasetGateway"]
