"""Remote dataset lookups feeding the snapshot exporter."""

from .base import DatasetGateway, ReferenceUnitGroupLookup
from .database import DatabaseDatasetGateway
from .mcp_client import AsyncMCPToolClient

__all__ = [
    "AsyncMCPToolClient",
    "DatabaseDatasetGateway",
    "DatasetGateway",
    "ReferenceUnitGroupLookup",
]
