"""Unit-qualified process labels for solver results."""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from tiangong_lca_snapshot.core.exceptions import InconsistentUnitsError
from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import (
    ExchangeRecord,
    FlowRecord,
    ProcessRecord,
    Snapshot,
    SolverResult,
    UnitRecord,
)
from tiangong_lca_snapshot.snapshot.resolution import first_match

LOGGER = get_logger(__name__)


def normalize_id(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def parse_allocation_fraction(value: Any) -> float | None:
    """Accept ``0.1``, ``"0.1"`` or ``"10%"``; anything unparsable means no allocation."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    scale = 1.0
    if text.endswith("%"):
        text = text[:-1].strip()
        scale = 100.0
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number / scale


@dataclass(slots=True)
class _SnapshotIndex:
    flows: dict[str, FlowRecord]
    reference_unit_by_group: dict[str, str | None]
    units: dict[tuple[str, str], UnitRecord]
    group_by_unit: dict[str, str]
    exchanges_by_process: dict[str, list[ExchangeRecord]]

    @classmethod
    def build(cls, snapshot: Snapshot) -> "_SnapshotIndex":
        exchanges_by_process: dict[str, list[ExchangeRecord]] = defaultdict(list)
        for exchange in snapshot.exchanges:
            exchanges_by_process[normalize_id(exchange.process_uuid)].append(exchange)
        group_by_unit: dict[str, str] = {}
        for unit in snapshot.units:
            group_by_unit.setdefault(normalize_id(unit.unit_uuid), normalize_id(unit.unit_group_uuid))
        return cls(
            flows={normalize_id(flow.flow_uuid): flow for flow in snapshot.flows},
            reference_unit_by_group={
                normalize_id(group.unit_group_uuid): (
                    normalize_id(group.reference_unit_uuid) if group.reference_unit_uuid is not None else None
                )
                for group in snapshot.unit_groups
            },
            units={
                (normalize_id(unit.unit_group_uuid), normalize_id(unit.unit_uuid)): unit
                for unit in snapshot.units
            },
            group_by_unit=group_by_unit,
            exchanges_by_process=dict(exchanges_by_process),
        )


def _flow_of_exchange_id(exchanges: Sequence[ExchangeRecord], reference_id: str | None) -> str | None:
    if not reference_id:
        return None
    for exchange in exchanges:
        if normalize_id(exchange.exchange_id) == reference_id:
            return normalize_id(exchange.flow_uuid) or None
    return None


def _flow_of_reference_flow(exchanges: Sequence[ExchangeRecord], reference_id: str | None) -> str | None:
    if not reference_id:
        return None
    for exchange in exchanges:
        if normalize_id(exchange.flow_uuid) == reference_id:
            return reference_id
    return None


def _flow_of_flagged_exchange(exchanges: Sequence[ExchangeRecord], _reference_id: str | None) -> str | None:
    for exchange in exchanges:
        if exchange.is_reference_product:
            return normalize_id(exchange.flow_uuid) or None
    return None


REFERENCE_FLOW_RULES = (
    _flow_of_exchange_id,
    _flow_of_reference_flow,
    _flow_of_flagged_exchange,
)


def _is_allocated_product(exchange: ExchangeRecord) -> bool:
    fraction = parse_allocation_fraction(exchange.allocation_fraction)
    return fraction is not None and fraction != 0


def _ensure_consistent_product_units(
    process_id: str,
    exchanges: Sequence[ExchangeRecord],
    flows: Mapping[str, FlowRecord],
) -> None:
    products = [exchange for exchange in exchanges if _is_allocated_product(exchange)]
    if len(products) <= 1:
        return
    unit_groups = set()
    for exchange in products:
        flow = flows.get(normalize_id(exchange.flow_uuid)) if exchange.flow_uuid else None
        if flow is not None and flow.unit_group_uuid:
            unit_groups.add(normalize_id(flow.unit_group_uuid))
    if len(unit_groups) > 1:
        LOGGER.error(
            "labels.inconsistent_units",
            process_uuid=process_id,
            unit_groups=sorted(unit_groups),
        )
        raise InconsistentUnitsError(process_id)


def _resolve_unit_name(
    process: ProcessRecord,
    exchanges: Sequence[ExchangeRecord],
    index: _SnapshotIndex,
) -> str | None:
    reference_id = (
        normalize_id(process.reference_product_flow_uuid)
        if process.reference_product_flow_uuid is not None
        else None
    )
    flow_id = first_match(REFERENCE_FLOW_RULES, exchanges, reference_id)
    if not flow_id:
        return None
    flow = index.flows.get(flow_id)
    if flow is None:
        return None
    default_unit = normalize_id(flow.default_unit_uuid) if flow.default_unit_uuid is not None else None
    group_id = normalize_id(flow.unit_group_uuid) if flow.unit_group_uuid else None
    if group_id is None and default_unit:
        group_id = index.group_by_unit.get(default_unit)
    if group_id is None:
        return None
    unit_id = index.reference_unit_by_group.get(group_id) or default_unit
    if not unit_id:
        return None
    unit = index.units.get((group_id, unit_id))
    return unit.unit_name if unit is not None and unit.unit_name else None


def _process_index(result: SolverResult | Mapping[str, Any]) -> list[Any]:
    if isinstance(result, SolverResult):
        return list(result.process_index)
    return list(result.get("process_index") or [])


def resolve_process_labels(snapshot: Snapshot, result: SolverResult | Mapping[str, Any]) -> list[str]:
    """Build ``"<name> (per <unit>, <uuid>)"`` labels in solver ``process_index`` order.

    Raises ``InconsistentUnitsError`` when a process's allocated co-products do not
    share one unit group.
    """
    index = _SnapshotIndex.build(snapshot)
    names: dict[str, str | None] = {}
    unit_names: dict[str, str | None] = {}
    for process in snapshot.processes:
        process_id = normalize_id(process.process_uuid)
        exchanges = index.exchanges_by_process.get(process_id, [])
        _ensure_consistent_product_units(process_id, exchanges, index.flows)
        names[process_id] = process.process_name
        unit_names[process_id] = _resolve_unit_name(process, exchanges, index)

    labels: list[str] = []
    for raw_id in _process_index(result):
        process_id = normalize_id(raw_id)
        unit_label = f"per {unit_names.get(process_id) or '-'}"
        name = names.get(process_id)
        if name:
            labels.append(f"{name} ({unit_label}, {process_id})")
        else:
            labels.append(f"{process_id} ({unit_label})")
    return labels


__all__ = ["normalize_id", "parse_allocation_fraction", "resolve_process_labels"]
