"""Lifecycle-model loading: process instances, internal IDs and instance links."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from tiangong_lca_snapshot.core.logging import get_logger
from tiangong_lca_snapshot.core.models import DatasetRef, LinkRecord

from .documents import get_nested, parse_reference, text_or_none, to_list

LOGGER = get_logger(__name__)

PROCESS_INSTANCE_PATH = ("lifeCycleModelInformation", "technology", "processes", "processInstance")


@dataclass(slots=True)
class ModelPlan:
    """Process instances of a model and the references they point at."""

    instances: list[Mapping[str, Any]] = field(default_factory=list)
    process_refs: list[DatasetRef] = field(default_factory=list)
    internal_to_uuid: dict[str, str] = field(default_factory=dict)


def instance_internal_id(instance: Mapping[str, Any]) -> str | None:
    return text_or_none(instance.get("@dataSetInternalID")) or text_or_none(instance.get("@id"))


def downstream_internal_id(downstream: Mapping[str, Any]) -> str | None:
    return text_or_none(downstream.get("@id")) or text_or_none(downstream.get("@dataSetInternalID"))


def plan_model(model_dataset: Mapping[str, Any]) -> ModelPlan:
    plan = ModelPlan()
    seen: set[str] = set()
    for instance in to_list(get_nested(model_dataset, PROCESS_INSTANCE_PATH)):
        if not isinstance(instance, Mapping):
            continue
        plan.instances.append(instance)
        ref = parse_reference(instance.get("referenceToProcess"))
        if ref is None:
            continue
        if ref.id not in seen:
            seen.add(ref.id)
            plan.process_refs.append(ref)
        internal_id = instance_internal_id(instance)
        if internal_id:
            plan.internal_to_uuid[internal_id] = ref.id
    return plan


def resolve_links(plan: ModelPlan) -> list[LinkRecord]:
    """Derive provider -> consumer links; unresolvable downstream instances are dropped."""
    links: list[LinkRecord] = []
    dropped = 0
    for instance in plan.instances:
        provider = parse_reference(instance.get("referenceToProcess"))
        for output_exchange in to_list(get_nested(instance, ("connections", "outputExchange"))):
            if not isinstance(output_exchange, Mapping):
                continue
            flow_uuid = text_or_none(output_exchange.get("@flowUUID"))
            for downstream in _downstream_entries(output_exchange.get("downstreamProcess")):
                consumer_internal_id = downstream_internal_id(downstream)
                if provider is None or not consumer_internal_id:
                    continue
                consumer_uuid = plan.internal_to_uuid.get(consumer_internal_id)
                if not consumer_uuid:
                    dropped += 1
                    continue
                links.append(
                    LinkRecord(
                        consumer_process_uuid=consumer_uuid,
                        provider_process_uuid=provider.id,
                        flow_uuid=flow_uuid,
                    )
                )
    if dropped:
        LOGGER.debug("snapshot.links_dropped", count=dropped)
    return links


def _downstream_entries(value: Any) -> Iterable[Mapping[str, Any]]:
    return [entry for entry in to_list(value) if isinstance(entry, Mapping)]


__all__ = ["ModelPlan", "plan_model", "resolve_links"]
