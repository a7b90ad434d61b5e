"""Application configuration primitives."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRETS_PATH = Path(".secrets/secrets.toml")
DEFAULT_SOLVER_URL = "http://127.0.0.1:8000/v1/lcia"


def _authorization_header(api_key: str | None) -> dict[str, str]:
    if not api_key:
        return {}
    return {"Authorization": f"Bearer {api_key}"}


class Settings(BaseSettings):
    """Central configuration for the snapshot exporter."""

    mcp_base_url: HttpUrl = "https://lcamcp.tiangong.earth/mcp"
    mcp_api_key: str | None = None
    mcp_transport: Literal["streamable_http"] = "streamable_http"
    database_service_name: str = "tiangong_lca_remote"
    database_tool_name: str = "Database_CRUD_Tool"

    solver_url: str = DEFAULT_SOLVER_URL
    solver_timeout: float | None = None

    request_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    max_concurrency: int = 8
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    preferred_languages: tuple[str, ...] = ("zh", "zh-cn", "en")

    model_config = SettingsConfigDict(env_prefix="LCA_", env_file=(), extra="ignore")

    def database_mcp_config(self) -> dict[str, Any]:
        """Return the MCP configuration block for the dataset database service."""
        config: dict[str, Any] = {
            "transport": self.mcp_transport,
            "url": str(self.mcp_base_url),
        }
        headers = _authorization_header(self.mcp_api_key)
        if headers:
            config["headers"] = headers
        if self.request_timeout and self.request_timeout > 0:
            config["timeout"] = float(self.request_timeout)
        return config

    def mcp_service_configs(self) -> dict[str, dict[str, Any]]:
        """Return a mapping of MCP service names to their configuration blocks."""
        service_name = self.database_service_name or "tiangong_lca_remote"
        return {service_name: self.database_mcp_config()}

    def resolved_solver_timeout(self) -> float:
        timeout = self.solver_timeout or self.request_timeout
        return float(timeout) if timeout and timeout > 0 else 30.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    overrides = _load_settings_overrides()
    return Settings(**overrides)


def _load_settings_overrides(secrets_path: Path = DEFAULT_SECRETS_PATH) -> dict[str, Any]:
    """Load configuration overrides from the secrets TOML file."""
    if not secrets_path.exists():
        return {}
    data = _read_toml(secrets_path)
    overrides: dict[str, Any] = {}

    database_cfg = _extract_section(data, "tiangong_lca_remote", "mcp", "database")
    if database_cfg:
        overrides.update(
            {
                "mcp_base_url": database_cfg.get("url"),
                "mcp_transport": database_cfg.get("transport"),
                "database_service_name": database_cfg.get("service_name"),
                "database_tool_name": database_cfg.get("tool_name"),
            }
        )
        api_key = _sanitize_api_key(database_cfg.get("api_key") or database_cfg.get("authorization"))
        if api_key is not None:
            overrides["mcp_api_key"] = api_key
        timeout_value = _coerce_float(database_cfg.get("timeout"))
        if timeout_value is not None:
            overrides["request_timeout"] = timeout_value

    solver_cfg = _extract_section(data, "lca_solver", "solver")
    if solver_cfg:
        overrides["solver_url"] = solver_cfg.get("url")
        timeout_value = _coerce_float(solver_cfg.get("timeout"))
        if timeout_value is not None:
            overrides["solver_timeout"] = timeout_value

    general_cfg = data.get("lca") or {}
    overrides.update(
        {key: value for key, value in general_cfg.items() if key in Settings.model_fields}
    )
    return {key: value for key, value in overrides.items() if value is not None}


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _extract_section(data: dict[str, Any], *candidates: str) -> dict[str, Any] | None:
    for key in candidates:
        section = data.get(key)
        if isinstance(section, dict):
            return section
    return None


def _sanitize_api_key(value: str | None) -> str | None:
    if not value:
        return None
    token = value.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token or None


def _coerce_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None
    return None
