"""Snapshot assembly: staged fetching, fallback resolution and integrity checks."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

import anyio

from tiangong_lca_snapshot.core.config import Settings, get_settings
from tiangong_lca_snapshot.core.exceptions import InvariantError, LoadError
from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import (
    DatasetRecord,
    DatasetRef,
    ExchangeRecord,
    FlowPropertyRecord,
    FlowRecord,
    LinkRecord,
    ModelInfo,
    ProcessRecord,
    Snapshot,
    UnitGroupRecord,
    UnitRecord,
)
from tiangong_lca_snapshot.gateway.base import DatasetGateway, ReferenceUnitGroupLookup

from .documents import get_nested, localized_text, text_or_none
from .extractors import (
    FlowDraft,
    extract_flow,
    extract_flow_property,
    extract_process,
    extract_unit_group,
)
from .fetchers import as_record, fetch_batch, fetch_optional
from .loader import plan_model, resolve_links
from .resolution import UnitGroupContext, resolve_flow_unit_group

LOGGER = get_logger(__name__)


def _export_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _merge_refs(target: dict[str, DatasetRef], refs: Iterable[DatasetRef]) -> None:
    for ref in refs:
        target.setdefault(ref.id, ref)


async def build_snapshot(
    model_id: str,
    model_version: str,
    commit_tag: str | None = None,
    *,
    gateway: DatasetGateway,
    settings: Settings | None = None,
) -> Snapshot:
    """Fetch a lifecycle model and its dependencies and flatten them into a ``Snapshot``.

    Raises ``LoadError`` when the model itself cannot be fetched and
    ``InvariantError`` when an exchange or link depends on a dataset that did
    not make it into the snapshot.
    """
    resolved_settings = settings or get_settings()
    languages = tuple(resolved_settings.preferred_languages)
    limiter = anyio.CapacityLimiter(max(1, resolved_settings.max_concurrency))
    LOGGER.info("snapshot.build_start", model_id=model_id, model_version=model_version)

    load_message = f"Failed to load lifecycle model {model_id} ({model_version})"
    try:
        model_result = await gateway.get_lifecycle_model_detail(model_id, model_version)
    except Exception as exc:  # pylint: disable=broad-except
        raise LoadError(load_message) from exc
    model_record = as_record(model_result, DatasetRef(id=model_id, version=model_version))
    if model_record is None:
        raise LoadError(load_message)
    model_dataset = model_record.json.get("lifeCycleModelDataSet") or {}

    plan = plan_model(model_dataset)
    links = resolve_links(plan)

    process_records = await fetch_batch(
        "processes", plan.process_refs, gateway.get_process_detail, limiter=limiter
    )
    processes: list[ProcessRecord] = []
    exchanges: list[ExchangeRecord] = []
    flow_refs: dict[str, DatasetRef] = {}
    for ref in plan.process_refs:
        record = process_records.get(ref.id)
        if record is None:
            continue
        extraction = extract_process(record, languages)
        processes.append(extraction.process)
        exchanges.extend(extraction.exchanges)
        _merge_refs(flow_refs, extraction.flow_refs)

    flow_records = await fetch_batch(
        "flows", list(flow_refs.values()), gateway.get_flow_detail, limiter=limiter
    )
    flow_drafts: list[FlowDraft] = []
    property_refs: dict[str, DatasetRef] = {}
    for ref in flow_refs.values():
        record = flow_records.get(ref.id)
        if record is None:
            continue
        draft = extract_flow(record, languages)
        flow_drafts.append(draft)
        _merge_refs(property_refs, draft.property_refs)

    property_records, lookup_entries = await _fetch_flow_properties(
        gateway, list(property_refs.values()), limiter
    )
    flow_properties: list[FlowPropertyRecord] = []
    unit_group_by_property: dict[str, str] = {}
    unit_group_refs: dict[str, DatasetRef] = {}
    for ref in property_refs.values():
        merged = extract_flow_property(
            ref, property_records.get(ref.id), lookup_entries.get(ref.id), languages
        )
        if merged is None:
            continue
        flow_property, unit_group_ref = merged
        flow_properties.append(flow_property)
        if flow_property.unit_group_uuid:
            unit_group_by_property[flow_property.flow_property_uuid] = flow_property.unit_group_uuid
        if unit_group_ref is not None:
            _merge_refs(unit_group_refs, [unit_group_ref])

    unit_group_records = await fetch_batch(
        "unit_groups", list(unit_group_refs.values()), gateway.get_unit_group_detail, limiter=limiter
    )
    unit_groups: list[UnitGroupRecord] = []
    units_by_group: dict[str, list[UnitRecord]] = {}
    for ref in unit_group_refs.values():
        record = unit_group_records.get(ref.id)
        if record is None:
            continue
        extraction = extract_unit_group(record, languages)
        unit_groups.append(extraction.unit_group)
        units_by_group[extraction.unit_group.unit_group_uuid] = extraction.units

    flow_properties = detach_unfetched_unit_groups(flow_properties, unit_groups)

    flows = resolve_flows(flow_drafts, unit_group_by_property, unit_groups)
    units = collect_referenced_units(flows, unit_groups, units_by_group)
    check_integrity(processes, exchanges, flows, links)

    snapshot = Snapshot(
        model=_model_info(model_id, model_dataset, commit_tag, languages),
        processes=tuple(processes),
        flows=tuple(flows),
        exchanges=tuple(exchanges),
        flow_properties=tuple(flow_properties),
        unit_groups=tuple(unit_groups),
        units=tuple(units),
        links=tuple(links),
    )
    LOGGER.info(
        "snapshot.build_complete",
        model_id=model_id,
        processes=len(snapshot.processes),
        exchanges=len(snapshot.exchanges),
        flows=len(snapshot.flows),
        flow_properties=len(snapshot.flow_properties),
        unit_groups=len(snapshot.unit_groups),
        units=len(snapshot.units),
        links=len(snapshot.links),
    )
    return snapshot


async def _fetch_flow_properties(
    gateway: DatasetGateway,
    refs: Sequence[DatasetRef],
    limiter: anyio.CapacityLimiter,
) -> tuple[dict[str, DatasetRecord], dict[str, Mapping[str, Any]]]:
    """Run the detail fan-out and the optional batched unit-group lookup side by side."""
    outcome: dict[str, Any] = {"records": {}, "lookup": None}

    async def _details() -> None:
        outcome["records"] = await fetch_batch(
            "flow_properties", refs, gateway.get_flow_property_detail, limiter=limiter
        )

    async def _lookup() -> None:
        if not refs or not isinstance(gateway, ReferenceUnitGroupLookup):
            return
        outcome["lookup"] = await fetch_optional(lambda: gateway.get_reference_unit_groups(refs))

    async with anyio.create_task_group() as task_group:
        task_group.start_soon(_details)
        task_group.start_soon(_lookup)

    lookup_entries: dict[str, Mapping[str, Any]] = {}
    for item in outcome["lookup"] or []:
        if isinstance(item, Mapping):
            item_id = text_or_none(item.get("id"))
            if item_id:
                lookup_entries[item_id] = item
    return outcome["records"], lookup_entries


def resolve_flows(
    drafts: Sequence[FlowDraft],
    unit_group_by_property: Mapping[str, str],
    unit_groups: Sequence[UnitGroupRecord],
) -> list[FlowRecord]:
    reference_unit_by_group = {group.unit_group_uuid: group.reference_unit_uuid for group in unit_groups}
    context = UnitGroupContext(
        unit_group_by_property=unit_group_by_property,
        known_unit_groups=frozenset(reference_unit_by_group),
    )
    flows: list[FlowRecord] = []
    for draft in drafts:
        unit_group_id = resolve_flow_unit_group(
            draft.reference_property_id, draft.candidate_property_ids, context
        )
        if unit_group_id is None and draft.candidate_property_ids:
            LOGGER.debug("snapshot.flow_unit_group_unresolved", flow_uuid=draft.flow_uuid)
        flows.append(
            FlowRecord(
                flow_uuid=draft.flow_uuid,
                flow_name=draft.flow_name,
                flow_type=draft.flow_type,
                default_unit_uuid=reference_unit_by_group.get(unit_group_id) if unit_group_id else None,
                unit_group_uuid=unit_group_id,
            )
        )
    return flows


def detach_unfetched_unit_groups(
    flow_properties: Sequence[FlowPropertyRecord],
    unit_groups: Sequence[UnitGroupRecord],
) -> list[FlowPropertyRecord]:
    """Clear unit-group pointers whose unit group never made it into the snapshot."""
    fetched = {group.unit_group_uuid for group in unit_groups}
    return [
        item
        if item.unit_group_uuid is None or item.unit_group_uuid in fetched
        else replace(item, unit_group_uuid=None)
        for item in flow_properties
    ]


def collect_referenced_units(
    flows: Sequence[FlowRecord],
    unit_groups: Sequence[UnitGroupRecord],
    units_by_group: Mapping[str, Sequence[UnitRecord]],
) -> list[UnitRecord]:
    """Materialise units only for unit groups used by at least one flow."""
    referenced = {flow.unit_group_uuid for flow in flows if flow.unit_group_uuid}
    units: list[UnitRecord] = []
    for group in unit_groups:
        if group.unit_group_uuid in referenced:
            units.extend(units_by_group.get(group.unit_group_uuid, ()))
    return units


def check_integrity(
    processes: Sequence[ProcessRecord],
    exchanges: Sequence[ExchangeRecord],
    flows: Sequence[FlowRecord],
    links: Sequence[LinkRecord],
) -> None:
    flow_ids = {flow.flow_uuid for flow in flows}
    process_ids = {process.process_uuid for process in processes}
    for exchange in exchanges:
        if exchange.flow_uuid is not None and exchange.flow_uuid not in flow_ids:
            raise InvariantError(
                f"Exchange flow_uuid not found in flows: {exchange.flow_uuid} "
                f"(process {exchange.process_uuid})"
            )
    for link in links:
        if link.flow_uuid is not None and link.flow_uuid not in flow_ids:
            raise InvariantError(f"Link flow_uuid not found in flows: {link.flow_uuid}")
        for endpoint in (link.provider_process_uuid, link.consumer_process_uuid):
            if endpoint not in process_ids:
                raise InvariantError(f"Link process not found in processes: {endpoint}")


def _model_info(
    model_id: str,
    model_dataset: Mapping[str, Any],
    commit_tag: str | None,
    languages: Iterable[str],
) -> ModelInfo:
    data_set_information = get_nested(model_dataset, ("lifeCycleModelInformation", "dataSetInformation")) or {}
    return ModelInfo(
        model_id=model_id,
        export_time=_export_timestamp(),
        model_uuid=text_or_none(data_set_information.get("common:UUID")),
        model_name=localized_text(data_set_information.get("name"), languages),
        tiangong_commit=commit_tag,
        schema_version=text_or_none(model_dataset.get("@version")),
    )


__all__ = [
    "build_snapshot",
    "check_integrity",
    "collect_referenced_units",
    "detach_unfetched_unit_groups",
    "resolve_flows",
]
