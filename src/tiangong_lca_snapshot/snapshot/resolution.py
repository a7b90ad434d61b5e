"""Ranked reference-resolution rules.

Each resolution site is a tuple of small pure rules; a rule returns a match or
``None`` and the first rule that matches wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Collection, Mapping, Sequence

from tiangong_lca_snapshot.core.models import DatasetRef

from .documents import flag_is_set, numeric_or_none, parse_reference, text_or_none, to_list

Rule = Callable[..., Any]


def first_match(rules: Sequence[Rule], *args: Any) -> Any:
    for rule in rules:
        match = rule(*args)
        if match is not None:
            return match
    return None


# Reference exchange ----------------------------------------------------------


def exchange_flow_ref(exchange: Mapping[str, Any]) -> DatasetRef | None:
    return parse_reference(exchange.get("referenceToFlowDataSet"))


def _exchange_by_declared_flow(
    exchanges: Sequence[Mapping[str, Any]], declared_id: str | None
) -> Mapping[str, Any] | None:
    if not declared_id:
        return None
    for exchange in exchanges:
        ref = exchange_flow_ref(exchange)
        if ref is not None and ref.id == declared_id:
            return exchange
    return None


def _exchange_by_declared_internal_id(
    exchanges: Sequence[Mapping[str, Any]], declared_id: str | None
) -> Mapping[str, Any] | None:
    if not declared_id:
        return None
    for exchange in exchanges:
        if text_or_none(exchange.get("@dataSetInternalID")) == declared_id:
            return exchange
    return None


def _exchange_by_quantitative_flag(
    exchanges: Sequence[Mapping[str, Any]], _declared_id: str | None
) -> Mapping[str, Any] | None:
    for exchange in exchanges:
        if flag_is_set(exchange.get("quantitativeReference")):
            return exchange
    return None


REFERENCE_EXCHANGE_RULES: tuple[Rule, ...] = (
    _exchange_by_declared_flow,
    _exchange_by_declared_internal_id,
    _exchange_by_quantitative_flag,
)


def select_reference_exchange(
    exchanges: Sequence[Mapping[str, Any]], declared_id: str | None
) -> Mapping[str, Any] | None:
    """Return the exchange carrying the process's reference product, if any."""
    return first_match(REFERENCE_EXCHANGE_RULES, exchanges, declared_id)


# Exchange amount -------------------------------------------------------------


def select_exchange_amount(exchange: Mapping[str, Any]) -> float | None:
    """Prefer a computed ``resultingAmount``; zero means "not computed" and falls back to ``meanAmount``."""
    resulting = numeric_or_none(exchange.get("resultingAmount"))
    if resulting is not None and resulting != 0:
        return resulting
    return numeric_or_none(exchange.get("meanAmount"))


# Flow property ---------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class FlowPropertyEntry:
    internal_id: str | None
    ref: DatasetRef | None
    flagged: bool = False


def parse_flow_property_entries(flow_dataset: Mapping[str, Any]) -> list[FlowPropertyEntry]:
    properties = flow_dataset.get("flowProperties")
    raw_entries = to_list(properties.get("flowProperty")) if isinstance(properties, Mapping) else []
    entries: list[FlowPropertyEntry] = []
    for raw in raw_entries:
        if not isinstance(raw, Mapping):
            continue
        entries.append(
            FlowPropertyEntry(
                internal_id=text_or_none(raw.get("@dataSetInternalID")),
                ref=parse_reference(raw.get("referenceToFlowPropertyDataSet")),
                flagged=flag_is_set(raw.get("quantitativeReference")),
            )
        )
    return entries


def _property_by_declared_internal_id(
    entries: Sequence[FlowPropertyEntry], declared_id: str | None
) -> FlowPropertyEntry | None:
    if declared_id is None:
        return None
    for entry in entries:
        if entry.internal_id is not None and entry.internal_id == declared_id:
            return entry
    return None


def _property_by_flag(
    entries: Sequence[FlowPropertyEntry], _declared_id: str | None
) -> FlowPropertyEntry | None:
    for entry in entries:
        if entry.flagged:
            return entry
    return None


def _property_single_candidate(
    entries: Sequence[FlowPropertyEntry], _declared_id: str | None
) -> FlowPropertyEntry | None:
    if len(entries) == 1:
        return entries[0]
    return None


REFERENCE_FLOW_PROPERTY_RULES: tuple[Rule, ...] = (
    _property_by_declared_internal_id,
    _property_by_flag,
    _property_single_candidate,
)


def select_reference_flow_property(
    entries: Sequence[FlowPropertyEntry], declared_id: str | None
) -> FlowPropertyEntry | None:
    return first_match(REFERENCE_FLOW_PROPERTY_RULES, entries, declared_id)


# Unit group ------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class UnitGroupContext:
    unit_group_by_property: Mapping[str, str]
    known_unit_groups: Collection[str]


def _unit_group_from_reference_property(
    reference_property_id: str | None,
    _candidate_ids: Sequence[str],
    context: UnitGroupContext,
) -> str | None:
    if not reference_property_id:
        return None
    unit_group_id = context.unit_group_by_property.get(reference_property_id)
    if unit_group_id and unit_group_id in context.known_unit_groups:
        return unit_group_id
    return None


def _unit_group_by_uniqueness(
    _reference_property_id: str | None,
    candidate_ids: Sequence[str],
    context: UnitGroupContext,
) -> str | None:
    distinct: list[str] = []
    for property_id in candidate_ids:
        unit_group_id = context.unit_group_by_property.get(property_id)
        if unit_group_id and unit_group_id in context.known_unit_groups and unit_group_id not in distinct:
            distinct.append(unit_group_id)
    if len(distinct) == 1:
        return distinct[0]
    return None


UNIT_GROUP_RULES: tuple[Rule, ...] = (
    _unit_group_from_reference_property,
    _unit_group_by_uniqueness,
)


def resolve_flow_unit_group(
    reference_property_id: str | None,
    candidate_ids: Sequence[str],
    context: UnitGroupContext,
) -> str | None:
    return first_match(UNIT_GROUP_RULES, reference_property_id, candidate_ids, context)


__all__ = [
    "FlowPropertyEntry",
    "UnitGroupContext",
    "exchange_flow_ref",
    "first_match",
    "parse_flow_property_entries",
    "resolve_flow_unit_group",
    "select_exchange_amount",
    "select_reference_exchange",
    "select_reference_flow_property",
]
