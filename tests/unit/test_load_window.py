from __future__ import annotations

import logging
from decimal import Decimal

from salesdrop.models.record import Record, ValueKind
from salesdrop.models.table_schema import LoadWindowSpec, TableSchema
from salesdrop.services.coordinator import bind_row, bind_value, compute_window, is_numeric_type

SPEC = LoadWindowSpec(date_column="SALES_DATE", store_column="ORG_CODE_NAME")


def _records(*rows: dict) -> list[Record]:
    return [Record(row_number=i, values=v) for i, v in enumerate(rows, start=1)]


def test_window_spans_min_max_and_distinct_stores():
    recs = _records(
        {"SALES_DATE": "26 Nov 2025", "ORG_CODE_NAME": "STORE B"},
        {"SALES_DATE": "2025-11-24", "ORG_CODE_NAME": "STORE A"},
        {"SALES_DATE": "25-11-2025", "ORG_CODE_NAME": "STORE B"},
    )
    window = compute_window(recs, SPEC)
    assert window is not None
    assert (window.min_date, window.max_date) == ("2025-11-24", "2025-11-26")
    assert window.stores == ("STORE B", "STORE A")


def test_window_none_without_dates_or_window_config():
    recs = _records({"SALES_DATE": "", "ORG_CODE_NAME": "A"})
    assert compute_window(recs, SPEC) is None
    assert compute_window(recs, None) is None


def test_unresolvable_dates_do_not_widen_window(caplog):
    recs = _records(
        {"SALES_DATE": "2025-01-10", "ORG_CODE_NAME": "A"},
        {"SALES_DATE": "01/31/2025", "ORG_CODE_NAME": "A"},
    )
    with caplog.at_level(logging.WARNING, logger="salesdrop.services.coordinator"):
        window = compute_window(recs, SPEC)
    assert (window.min_date, window.max_date) == ("2025-01-10", "2025-01-10")
    assert any("could not be normalized" in r.getMessage() for r in caplog.records)


def test_candidate_columns_first_present_wins():
    spec = LoadWindowSpec(
        date_column="SALES_DATE",
        store_column="ORG_CODE_NAME",
        date_candidates=("SALES_DATE", "Tanggal"),
        store_candidates=("ORG_CODE_NAME", "Gudang"),
    )
    recs = _records(
        {"SALES_DATE": "", "Tanggal": "01-02-2025", "Gudang": "G1"},
        {"SALES_DATE": "2025-02-03", "Tanggal": "01-01-2020", "ORG_CODE_NAME": "S1", "Gudang": "G2"},
    )
    window = compute_window(recs, spec)
    assert (window.min_date, window.max_date) == ("2025-02-01", "2025-02-03")
    assert window.stores == ("G1", "S1")


SCHEMA = TableSchema(
    name="T",
    columns={"QTY": "NUMERIC", "D": "DATE", "NOTE": "TEXT", "AMT": "NUMERIC", "PHONE": "VARCHAR(20)"},
    numeric_columns=frozenset({"QTY"}),
    date_columns=frozenset({"D"}),
)
LIVE = {"QTY": "numeric", "D": "date", "NOTE": "text", "AMT": "numeric", "PHONE": "character varying"}


def test_bind_value_classification_tiers():
    assert bind_value("QTY", "1.234,5", SCHEMA, LIVE).value == Decimal("1234.5")
    assert bind_value("D", "5 Mei 2025", SCHEMA, LIVE).value == "2025-05-05"
    # スキーマ未宣言だが実テーブルは numeric
    live_num = bind_value("AMT", "55,000.50", SCHEMA, LIVE)
    assert (live_num.kind, live_num.value) == (ValueKind.NUMERIC, Decimal("55000.50"))
    phone = bind_value("PHONE", "8.13E+10", SCHEMA, LIVE)
    assert (phone.kind, phone.value) == (ValueKind.TEXT, "81300000000")


def test_bind_value_schema_lists_beat_live_metadata():
    live = dict(LIVE, D="integer")
    assert bind_value("D", "25-11-2025", SCHEMA, live).kind is ValueKind.DATE


def test_bind_value_blank_is_null_regardless_of_type():
    for col in ("QTY", "D", "NOTE", "AMT"):
        assert bind_value(col, "  ", SCHEMA, LIVE).kind is ValueKind.NULL


def test_bind_row_drops_undeclared_columns_in_record_order():
    rec = Record(row_number=1, values={"NOTE": "hi", "EXTRA": "x", "QTY": "2"})
    row = bind_row(rec, SCHEMA, LIVE)
    assert list(row) == ["NOTE", "QTY"]


def test_is_numeric_type():
    assert is_numeric_type("double precision")
    assert is_numeric_type("integer")
    assert is_numeric_type("numeric")
    assert not is_numeric_type("character varying")
    assert not is_numeric_type(None)
