"""Lifecycle-model snapshot export."""

from .assembler import build_snapshot, check_integrity
from .loader import ModelPlan, plan_model, resolve_links
from .resolution import (
    select_exchange_amount,
    select_reference_exchange,
    select_reference_flow_property,
)

__all__ = [
    "ModelPlan",
    "build_snapshot",
    "check_integrity",
    "plan_model",
    "resolve_links",
    "select_exchange_amount",
    "select_reference_exchange",
    "select_reference_flow_property",
]
