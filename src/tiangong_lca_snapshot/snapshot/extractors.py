"""Per-dataset extraction from process, flow, flow-property and unit-group documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from tiangong_lca_snapshot.core.exceptions import InvariantError
from tiangong_lca_snapshot.core.models import (
    DatasetRecord,
    DatasetRef,
    ExchangeRecord,
    FlowPropertyRecord,
    ProcessRecord,
    UnitGroupRecord,
    UnitRecord,
)

from .documents import (
    first_of,
    flag_is_set,
    get_nested,
    localized_text,
    numeric_or_none,
    parse_reference,
    read_value,
    text_or_none,
    to_list,
)
from .resolution import (
    exchange_flow_ref,
    parse_flow_property_entries,
    select_exchange_amount,
    select_reference_exchange,
    select_reference_flow_property,
)


@dataclass(slots=True)
class ProcessExtraction:
    process: ProcessRecord
    exchanges: list[ExchangeRecord] = field(default_factory=list)
    flow_refs: list[DatasetRef] = field(default_factory=list)


@dataclass(slots=True)
class FlowDraft:
    """A flow awaiting unit-group resolution."""

    flow_uuid: str
    flow_name: str | None
    flow_type: str | None
    reference_property_id: str | None
    candidate_property_ids: list[str] = field(default_factory=list)
    property_refs: list[DatasetRef] = field(default_factory=list)


@dataclass(slots=True)
class UnitGroupExtraction:
    unit_group: UnitGroupRecord
    units: list[UnitRecord] = field(default_factory=list)


def extract_process(record: DatasetRecord, languages: Iterable[str]) -> ProcessExtraction:
    dataset = record.json.get("processDataSet") or {}
    process_id = record.id
    info = dataset.get("processInformation") or {}
    process_name = localized_text(get_nested(info, ("dataSetInformation", "name")), languages)
    declared_reference = text_or_none(
        first_of(get_nested(info, ("quantitativeReference", "referenceToReferenceFlow")))
    )

    raw_exchanges = [
        item for item in to_list(get_nested(dataset, ("exchanges", "exchange"))) if isinstance(item, Mapping)
    ]
    reference_exchange = select_reference_exchange(raw_exchanges, declared_reference)
    reference_ref = exchange_flow_ref(reference_exchange) if reference_exchange is not None else None
    reference_flow_id = reference_ref.id if reference_ref is not None else None

    extraction = ProcessExtraction(
        process=ProcessRecord(
            process_uuid=process_id,
            process_name=process_name,
            reference_product_flow_uuid=reference_flow_id,
        )
    )
    for exchange in raw_exchanges:
        flow_ref = exchange_flow_ref(exchange)
        flow_id = flow_ref.id if flow_ref is not None else None
        if flow_ref is not None:
            extraction.flow_refs.append(flow_ref)
        amount = select_exchange_amount(exchange)
        if amount is None:
            raise InvariantError(
                f"Exchange amount invalid for process {process_id} flow {flow_id or 'unknown'}"
            )
        is_reference_product = flag_is_set(exchange.get("quantitativeReference")) or (
            flow_id is not None and flow_id == reference_flow_id
        )
        extraction.exchanges.append(
            ExchangeRecord(
                exchange_id=text_or_none(exchange.get("@dataSetInternalID")),
                process_uuid=process_id,
                flow_uuid=flow_id,
                direction=text_or_none(exchange.get("exchangeDirection")),
                amount=amount,
                is_reference_product=is_reference_product,
                allocation_fraction=_allocation_fraction(exchange),
            )
        )
    return extraction


def _allocation_fraction(exchange: Mapping[str, Any]) -> str | float | None:
    allocation = first_of(get_nested(exchange, ("allocations", "allocation")))
    if not isinstance(allocation, Mapping):
        return None
    raw = read_value(allocation.get("@allocatedFraction"))
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        return None
    if isinstance(raw, int):
        return float(raw)
    return raw


def extract_flow(record: DatasetRecord, languages: Iterable[str]) -> FlowDraft:
    dataset = record.json.get("flowDataSet") or {}
    info = dataset.get("flowInformation") or {}
    declared_property = text_or_none(
        first_of(get_nested(info, ("quantitativeReference", "referenceToReferenceFlowProperty")))
    )
    entries = parse_flow_property_entries(dataset)
    reference_entry = select_reference_flow_property(entries, declared_property)

    draft = FlowDraft(
        flow_uuid=record.id,
        flow_name=localized_text(get_nested(info, ("dataSetInformation", "name")), languages),
        flow_type=text_or_none(get_nested(dataset, ("modellingAndValidation", "LCIMethod", "typeOfDataSet"))),
        reference_property_id=reference_entry.ref.id
        if reference_entry is not None and reference_entry.ref is not None
        else None,
    )
    for entry in entries:
        if entry.ref is None or entry.ref.id in draft.candidate_property_ids:
            continue
        draft.candidate_property_ids.append(entry.ref.id)
        draft.property_refs.append(entry.ref)
    return draft


def extract_flow_property(
    ref: DatasetRef,
    record: DatasetRecord | None,
    lookup: Mapping[str, Any] | None,
    languages: Iterable[str],
) -> tuple[FlowPropertyRecord, DatasetRef | None] | None:
    """Merge the batched lookup entry and the detail document for one flow property.

    Returns ``None`` when neither source knows the property.
    """
    if record is None and lookup is None:
        return None
    info: Mapping[str, Any] = {}
    if record is not None:
        info = get_nested(record.json, ("flowPropertyDataSet", "flowPropertiesInformation")) or {}
    document_unit_group = parse_reference(
        get_nested(info, ("quantitativeReference", "referenceToReferenceUnitGroup"))
    )
    lookup_unit_group = text_or_none(lookup.get("refUnitGroupId")) if lookup else None

    unit_group_id = lookup_unit_group or (document_unit_group.id if document_unit_group else None)
    unit_group_ref = None
    if unit_group_id:
        version = document_unit_group.version if document_unit_group and document_unit_group.id == unit_group_id else None
        unit_group_ref = DatasetRef(id=unit_group_id, version=version)

    name = localized_text(lookup.get("name"), languages) if lookup else None
    if name is None:
        name = localized_text(get_nested(info, ("dataSetInformation", "common:name")), languages)

    return (
        FlowPropertyRecord(
            flow_property_uuid=ref.id,
            flow_property_name=name,
            unit_group_uuid=unit_group_id,
        ),
        unit_group_ref,
    )


def extract_unit_group(record: DatasetRecord, languages: Iterable[str]) -> UnitGroupExtraction:
    dataset = record.json.get("unitGroupDataSet") or {}
    info = dataset.get("unitGroupInformation") or {}
    unit_group_id = record.id
    extraction = UnitGroupExtraction(
        unit_group=UnitGroupRecord(
            unit_group_uuid=unit_group_id,
            unit_group_name=localized_text(get_nested(info, ("dataSetInformation", "common:name")), languages),
            reference_unit_uuid=text_or_none(
                first_of(get_nested(info, ("quantitativeReference", "referenceToReferenceUnit")))
            ),
        )
    )
    for unit in to_list(get_nested(dataset, ("units", "unit"))):
        if not isinstance(unit, Mapping):
            continue
        unit_id = text_or_none(unit.get("@dataSetInternalID"))
        if not unit_id:
            continue
        extraction.units.append(
            UnitRecord(
                unit_uuid=unit_id,
                unit_group_uuid=unit_group_id,
                unit_name=localized_text(unit.get("name"), languages),
                conversion_factor_to_reference=numeric_or_none(unit.get("meanValue")),
            )
        )
    return extraction


__all__ = [
    "FlowDraft",
    "ProcessExtraction",
    "UnitGroupExtraction",
    "extract_flow",
    "extract_flow_property",
    "extract_process",
    "extract_unit_group",
]
