"""Shared data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping


@dataclass(slots=True, frozen=True)
class DatasetRef:
    id: str
    version: str | None = None


@dataclass(slots=True, frozen=True)
class DatasetRecord:
    """A dataset row returned by the remote store: identity plus parsed JSON document."""

    id: str
    json: Mapping[str, Any]
    version: str | None = None


@dataclass(slots=True, frozen=True)
class FetchResult:
    success: bool
    data: Any = None

    @classmethod
    def failed(cls) -> "FetchResult":
        return cls(success=False)


@dataclass(slots=True, frozen=True)
class ModelInfo:
    model_id: str
    export_time: str
    model_uuid: str | None = None
    model_name: str | None = None
    tiangong_commit: str | None = None
    schema_version: str | None = None


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    process_uuid: str
    process_name: str | None = None
    reference_product_flow_uuid: str | None = None


@dataclass(slots=True, frozen=True)
class ExchangeRecord:
    process_uuid: str
    exchange_id: str | None = None
    flow_uuid: str | None = None
    direction: str | None = None
    amount: float = 0.0
    is_reference_product: bool = False
    allocation_fraction: str | float | None = None


@dataclass(slots=True, frozen=True)
class FlowRecord:
    flow_uuid: str
    flow_name: str | None = None
    flow_type: str | None = None
    default_unit_uuid: str | None = None
    unit_group_uuid: str | None = None


@dataclass(slots=True, frozen=True)
class FlowPropertyRecord:
    flow_property_uuid: str
    flow_property_name: str | None = None
    unit_group_uuid: str | None = None


@dataclass(slots=True, frozen=True)
class UnitGroupRecord:
    unit_group_uuid: str
    unit_group_name: str | None = None
    reference_unit_uuid: str | None = None


@dataclass(slots=True, frozen=True)
class UnitRecord:
    unit_uuid: str
    unit_group_uuid: str
    unit_name: str | None = None
    conversion_factor_to_reference: float | None = None


@dataclass(slots=True, frozen=True)
class LinkRecord:
    consumer_process_uuid: str
    provider_process_uuid: str
    flow_uuid: str | None = None


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Flattened, cross-referenced export of a lifecycle model."""

    model: ModelInfo
    processes: tuple[ProcessRecord, ...] = ()
    flows: tuple[FlowRecord, ...] = ()
    exchanges: tuple[ExchangeRecord, ...] = ()
    flow_properties: tuple[FlowPropertyRecord, ...] = ()
    unit_groups: tuple[UnitGroupRecord, ...] = ()
    units: tuple[UnitRecord, ...] = ()
    links: tuple[LinkRecord, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, tuple):
                payload[key] = list(value)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Snapshot":
        model = payload.get("model") or {}
        return cls(
            model=ModelInfo(**model),
            processes=tuple(ProcessRecord(**item) for item in payload.get("processes") or []),
            flows=tuple(FlowRecord(**item) for item in payload.get("flows") or []),
            exchanges=tuple(ExchangeRecord(**item) for item in payload.get("exchanges") or []),
            flow_properties=tuple(
                FlowPropertyRecord(**item) for item in payload.get("flow_properties") or []
            ),
            unit_groups=tuple(UnitGroupRecord(**item) for item in payload.get("unit_groups") or []),
            units=tuple(UnitRecord(**item) for item in payload.get("units") or []),
            links=tuple(LinkRecord(**item) for item in payload.get("links") or []),
        )


@dataclass(slots=True)
class SolverResult:
    indicator_index: list[Any] = field(default_factory=list)
    process_index: list[Any] = field(default_factory=list)
    values: list[list[Any]] = field(default_factory=list)
    mmr_path: str | None = None
    issues: list[str] | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SolverResult":
        return cls(
            indicator_index=list(payload.get("indicator_index") or []),
            process_index=list(payload.get("process_index") or []),
            values=[list(row or []) for row in payload.get("values") or []],
            mmr_path=payload.get("mmr_path"),
            issues=payload.get("issues"),
        )
