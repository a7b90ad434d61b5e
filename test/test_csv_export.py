from __future__ import annotations

from tiangong_lca_snapshot.core.models import SolverResult
from tiangong_lca_snapshot.reporting.csv_export import (
    encode_result_csv,
    escape_csv_cell,
    resolve_method_label,
)
from tiangong_lca_snapshot.reporting.indicators import METHOD_EN_BY_INDEX


def test_csv_uses_method_names() -> None:
    csv_text = encode_result_csv(
        {
            "indicator_index": [0, 1],
            "process_index": ["proc-1", "proc-2"],
            "values": [[1, 2], [3, 4]],
        }
    )

    assert csv_text == "\ufeffmethod_en,proc-1,proc-2\nAcidification,1,2\nClimate change,3,4"


def test_csv_escapes_cells() -> None:
    csv_text = encode_result_csv(
        SolverResult(indicator_index=["ind,1", 'ind"2'], process_index=["proc-1"], values=[[5], [6]])
    )

    assert csv_text == '\ufeffmethod_en,proc-1\n"ind,1",5\n"ind""2",6'


def test_csv_uses_labels_when_counts_match() -> None:
    result = {"indicator_index": [0], "process_index": ["proc-1"], "values": [[7]]}

    assert (
        encode_result_csv(result, ["Process A (per kg, proc-1)"])
        == '\ufeffmethod_en,"Process A (per kg, proc-1)"\nAcidification,7'
    )
    assert encode_result_csv(result, ["a", "b"]) == "\ufeffmethod_en,proc-1\nAcidification,7"


def test_csv_accepts_custom_method_names_and_numeric_strings() -> None:
    result = {"indicator_index": ["1", 7], "process_index": ["p"], "values": [[0.5], [None]]}

    csv_text = encode_result_csv(result, method_names={1: "GWP"})

    assert csv_text == "\ufeffmethod_en,p\nGWP,0.5\n7,"


def test_escape_csv_cell() -> None:
    assert escape_csv_cell(None) == ""
    assert escape_csv_cell(True) == "true"
    assert escape_csv_cell(2.0) == "2"
    assert escape_csv_cell(1.5e-3) == "0.0015"
    assert escape_csv_cell("line\nbreak") == '"line\nbreak"'
    assert escape_csv_cell("carriage\r") == '"carriage\r"'


def test_resolve_method_label_falls_back_to_raw_indicator() -> None:
    assert resolve_method_label(1, 0, METHOD_EN_BY_INDEX) == "Climate change"
    assert resolve_method_label("1.0", 0, METHOD_EN_BY_INDEX) == "Climate change"
    assert resolve_method_label(999, 0, METHOD_EN_BY_INDEX) == "999"
    assert resolve_method_label("custom", 0, METHOD_EN_BY_INDEX) == "custom"
