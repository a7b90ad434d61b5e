from __future__ import annotations

from tiangong_lca_snapshot.core.models import DatasetRef
from tiangong_lca_snapshot.snapshot.resolution import (
    FlowPropertyEntry,
    UnitGroupContext,
    parse_flow_property_entries,
    resolve_flow_unit_group,
    select_exchange_amount,
    select_reference_exchange,
    select_reference_flow_property,
)


def _exchange(internal_id: str, flow_id: str, **extra: object) -> dict[str, object]:
    return {
        "@dataSetInternalID": internal_id,
        "referenceToFlowDataSet": {"@refObjectId": flow_id},
        **extra,
    }


def test_reference_exchange_prefers_declared_flow_id() -> None:
    exchanges = [_exchange("0", "flow-a"), _exchange("1", "flow-b", quantitativeReference=True)]

    assert select_reference_exchange(exchanges, "flow-a") is exchanges[0]


def test_reference_exchange_matches_internal_id_then_flag() -> None:
    exchanges = [_exchange("0", "flow-a"), _exchange("1", "flow-b", quantitativeReference="true")]

    assert select_reference_exchange(exchanges, "0") is exchanges[0]
    assert select_reference_exchange(exchanges, "missing") is exchanges[1]
    assert select_reference_exchange(exchanges, None) is exchanges[1]
    assert select_reference_exchange([_exchange("0", "flow-a")], None) is None


def test_exchange_amount_prefers_non_zero_resulting_amount() -> None:
    assert select_exchange_amount({"resultingAmount": "2.5", "meanAmount": "1"}) == 2.5
    assert select_exchange_amount({"resultingAmount": 0, "meanAmount": "1"}) == 1.0
    assert select_exchange_amount({"resultingAmount": "bad", "meanAmount": {"value": 4}}) == 4.0
    assert select_exchange_amount({"resultingAmount": 0}) is None
    assert select_exchange_amount({}) is None


def test_flow_property_entries_parse_single_mapping() -> None:
    entries = parse_flow_property_entries(
        {
            "flowProperties": {
                "flowProperty": {
                    "@dataSetInternalID": "0",
                    "referenceToFlowPropertyDataSet": {"@refObjectId": "fp-1", "@version": "01.00.000"},
                }
            }
        }
    )

    assert entries == [FlowPropertyEntry(internal_id="0", ref=DatasetRef("fp-1", "01.00.000"), flagged=False)]


def test_reference_flow_property_rules() -> None:
    mass = FlowPropertyEntry(internal_id="0", ref=DatasetRef("fp-mass"))
    volume = FlowPropertyEntry(internal_id="1", ref=DatasetRef("fp-volume"), flagged=True)
    lone = FlowPropertyEntry(internal_id=None, ref=DatasetRef("fp-lone"))

    assert select_reference_flow_property([mass, volume], "0") is mass
    assert select_reference_flow_property([mass, volume], "9") is volume
    assert select_reference_flow_property([lone], None) is lone
    assert select_reference_flow_property([mass, lone], None) is None


def test_unit_group_from_reference_property_requires_known_group() -> None:
    context = UnitGroupContext(
        unit_group_by_property={"fp-mass": "ug-mass", "fp-volume": "ug-volume"},
        known_unit_groups={"ug-volume"},
    )

    assert resolve_flow_unit_group("fp-volume", ["fp-volume"], context) == "ug-volume"
    assert resolve_flow_unit_group("fp-mass", ["fp-mass", "fp-volume"], context) == "ug-volume"
    assert resolve_flow_unit_group("fp-mass", ["fp-mass"], context) is None


def test_unit_group_by_uniqueness_needs_one_distinct_group() -> None:
    context = UnitGroupContext(
        unit_group_by_property={"fp-a": "ug-1", "fp-b": "ug-1", "fp-c": "ug-2"},
        known_unit_groups={"ug-1", "ug-2"},
    )

    assert resolve_flow_unit_group(None, ["fp-a", "fp-b"], context) == "ug-1"
    assert resolve_flow_unit_group(None, ["fp-a", "fp-c"], context) is None
    assert resolve_flow_unit_group(None, [], context) is None
