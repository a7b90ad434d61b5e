"""Async session client built on the official python MCP client SDK.

Each server session lives in its own worker task inside the client's task
group; the transport and session context managers are entered and exited by
that worker only. Tool calls from any task share the running session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

import anyio
import httpx
from anyio.abc import TaskGroup, TaskStatus
from mcp import ClientSession, McpError, types
from mcp.client.streamable_http import streamablehttp_client

from tiangong_lca_snapshot.core.config import Settings, get_settings
from tiangong_lca_snapshot.core.exceptions import DatasetFetchError
from tiangong_lca_snapshot.core.json_utils import parse_json_response
from tiangong_lca_snapshot.core.logging import get_logger

LOGGER = get_logger(__name__)

SESSION_GONE_ERRORS = (anyio.ClosedResourceError, anyio.BrokenResourceError, anyio.EndOfStream)


@dataclass
class _ServerConnection:
    session: ClientSession
    stop: anyio.Event = field(default_factory=anyio.Event)
    closed: bool = False


class AsyncMCPToolClient:
    """Shares one MCP session per server across concurrent tool calls.

    Use as ``async with AsyncMCPToolClient(...) as client``; sessions are opened
    lazily on the first call to each server and torn down on exit.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connections: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._connection_configs = (
            dict(connections) if connections is not None else self._settings.mcp_service_configs()
        )
        self._connections: dict[str, _ServerConnection] = {}
        self._connect_lock = anyio.Lock()
        self._task_group: TaskGroup | None = None
        self._closed = False
        LOGGER.debug(
            "mcp_tool_client.initialized",
            servers=list(self._connection_configs.keys()),
        )

    # Public API -----------------------------------------------------------------

    async def invoke_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call a remote MCP tool and return its structured or textual payload."""
        if self._closed:
            raise DatasetFetchError("Cannot invoke MCP tool on a closed client")
        connection = await self._ensure_connection(server_name)
        payload_args = dict(arguments or {})
        LOGGER.debug(
            "mcp_tool_client.invoke",
            server=server_name,
            tool=tool_name,
            keys=list(payload_args.keys()),
        )
        try:
            result = await connection.session.call_tool(tool_name, payload_args)
        except httpx.TimeoutException:
            raise
        except (McpError, httpx.HTTPError, *SESSION_GONE_ERRORS) as exc:
            raise DatasetFetchError(f"MCP tool '{tool_name}' call failed") from exc

        if result.isError:
            message = "\n".join(_text_blocks(result)) or "unknown error"
            raise DatasetFetchError(
                f"MCP tool '{tool_name}' on '{server_name}' reported an error: {message}"
            )

        if result.structuredContent is not None:
            return result.structuredContent
        texts = _text_blocks(result)
        if len(texts) == 1:
            return texts[0]
        return texts or ""

    async def invoke_json_tool(
        self,
        server_name: str,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> Any:
        """Invoke a tool and return structured JSON data."""
        payload = await self.invoke_tool(server_name, tool_name, arguments)
        if payload is None:
            return None
        if isinstance(payload, (dict, list)):
            return payload
        if isinstance(payload, str):
            raw = payload.strip()
            if not raw:
                return None
            return parse_json_response(raw)
        raise DatasetFetchError(
            f"MCP tool '{tool_name}' on '{server_name}' returned non-JSON payload"
        )

    async def aclose(self) -> None:
        """Ask every session worker to shut down."""
        if self._closed:
            return
        self._closed = True
        for connection in self._connections.values():
            connection.stop.set()
        self._connections.clear()

    async def __aenter__(self) -> "AsyncMCPToolClient":
        if self._closed:
            raise RuntimeError("Cannot re-enter a closed AsyncMCPToolClient")
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool | None:
        task_group, self._task_group = self._task_group, None
        await self.aclose()
        if task_group is None:
            return None
        return await task_group.__aexit__(exc_type, exc, tb)

    # Internal helpers -----------------------------------------------------------

    async def _ensure_connection(self, server_name: str) -> _ServerConnection:
        async with self._connect_lock:
            connection = self._connections.get(server_name)
            if connection is not None and not connection.closed:
                return connection
            if self._task_group is None:
                raise DatasetFetchError(
                    "AsyncMCPToolClient must be entered with 'async with' before invoking tools"
                )
            config = self._server_config(server_name)
            try:
                connection = await self._task_group.start(self._run_session, server_name, config)
            except Exception as exc:  # pylint: disable=broad-except
                raise DatasetFetchError(f"Unable to open MCP session for '{server_name}'") from exc
            self._connections[server_name] = connection
            LOGGER.debug("mcp_tool_client.session_opened", server=server_name)
            return connection

    def _server_config(self, server_name: str) -> dict[str, Any]:
        config = self._connection_configs.get(server_name)
        if not config:
            raise DatasetFetchError(f"MCP server '{server_name}' is not configured")
        transport = config.get("transport", "streamable_http")
        if transport != "streamable_http":
            raise DatasetFetchError(f"Unsupported MCP transport '{transport}' for '{server_name}'")
        if not config.get("url"):
            raise DatasetFetchError(f"MCP server '{server_name}' is missing a URL")
        timeout = config.get("timeout") or self._settings.request_timeout or 30
        return {"url": config["url"], "headers": config.get("headers"), "timeout": float(timeout)}

    async def _run_session(
        self,
        server_name: str,
        config: Mapping[str, Any],
        *,
        task_status: TaskStatus[_ServerConnection] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        connection: _ServerConnection | None = None
        try:
            async with streamablehttp_client(
                config["url"],
                headers=config["headers"],
                timeout=config["timeout"],
            ) as (read_stream, write_stream, _):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    connection = _ServerConnection(session=session)
                    task_status.started(connection)
                    await connection.stop.wait()
        except Exception as exc:  # pylint: disable=broad-except
            if connection is None:
                raise
            # A dropped session must not cancel the caller's task group.
            LOGGER.warning("mcp_tool_client.session_failed", server=server_name, error=str(exc))
        finally:
            if connection is not None:
                connection.closed = True
                LOGGER.debug("mcp_tool_client.session_closed", server=server_name)


def _text_blocks(result: types.CallToolResult) -> list[str]:
    return [
        content.text
        for content in result.content
        if isinstance(content, types.TextContent) and content.text
    ]


__all__ = ["AsyncMCPToolClient"]
