"""Protocols describing the remote dataset lookups the exporter depends on."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from tiangong_lca_snapshot.core.models import DatasetRef, FetchResult


class DatasetGateway(Protocol):
    """Detail lookups; each call reports failure through ``FetchResult.success``."""

    async def get_lifecycle_model_detail(self, model_id: str, version: str) -> FetchResult: ...

    async def get_process_detail(self, process_id: str, version: str) -> FetchResult: ...

    async def get_flow_detail(self, flow_id: str, version: str) -> FetchResult: ...

    async def get_flow_property_detail(self, flow_property_id: str, version: str) -> FetchResult: ...

    async def get_unit_group_detail(self, unit_group_id: str, version: str) -> FetchResult: ...


@runtime_checkable
class ReferenceUnitGroupLookup(Protocol):
    """Optional batched shortcut resolving flow properties to their reference unit groups.

    ``FetchResult.data`` is a list of ``{"id", "name", "refUnitGroupId", "version"}`` mappings.
    """

    async def get_reference_unit_groups(self, refs: Sequence[DatasetRef]) -> FetchResult: ...
