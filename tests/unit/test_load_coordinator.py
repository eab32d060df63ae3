from __future__ import annotations

import json
import logging
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

import pytest

from salesdrop.config.loader import ConfigurationError
from salesdrop.logging.error_log import ErrorLogBuffer
from salesdrop.models.record import Record
from salesdrop.services.coordinator import LoadCoordinator

TABLE = "SNJ_SRP_DETAIL"


def _records(*rows: dict) -> list[Record]:
    return [Record(row_number=i, values=v) for i, v in enumerate(rows, start=1)]


def _row(bill: str, day: str = "25 Nov 2025", store: str = "STORE A", **extra) -> dict:
    return {"BILL_NO": bill, "SALES_DATE": day, "ORG_CODE_NAME": store, "QTY": "1,5", "NET_AMOUNT": "15.000,00", **extra}


@pytest.fixture()
def error_log(temp_workdir: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(temp_workdir / "logs")


@pytest.fixture()
def coordinator(app_config, fake_server, error_log) -> LoadCoordinator:
    return LoadCoordinator(app_config, connect=fake_server.connect, sleep=lambda s: None, error_log=error_log)


def test_first_load_creates_table_and_coerces_values(coordinator, fake_server):
    outcome = coordinator.load("snj.csv", _records(_row("B1")), TABLE)
    assert outcome.success is True
    assert outcome.table_created is True
    assert outcome.connection == "Database 1"
    rows = fake_server.database("detail_db").rows(TABLE)
    assert rows == [
        {
            "BILL_NO": "B1",
            "SALES_DATE": "2025-11-25",
            "ORG_CODE_NAME": "STORE A",
            "ITEM_NAME": None,
            "BARCODE": None,
            "QTY": Decimal("1.5"),
            "NET_AMOUNT": Decimal("15000.00"),
        }
    ]
    assert fake_server.connections[0].closed == 1
    assert fake_server.connections[0].autocommit is True


def test_outcome_dict_reports_window(coordinator):
    outcome = coordinator.load(
        "snj.csv",
        _records(_row("B1", "2025-11-01", "A"), _row("B2", "2025-11-30", "B")),
        TABLE,
    )
    assert outcome.to_dict() == {
        "success": True,
        "successCount": 2,
        "errorCount": 0,
        "dateRange": "2025-11-01 to 2025-11-30",
        "stores": ["A", "B"],
        "errors": [],
    }


def test_unknown_columns_are_dropped_and_logged(coordinator, fake_server, caplog):
    with caplog.at_level(logging.WARNING, logger="salesdrop.services.coordinator"):
        coordinator.load("snj.csv", _records(_row("B1", EXTRA_COL="x"), _row("B2", EXTRA_COL="y")), TABLE)
    msgs = [r.getMessage() for r in caplog.records if "Dropping columns" in r.getMessage()]
    assert msgs == [f"Dropping columns not declared by {TABLE}: EXTRA_COL"]
    assert len(fake_server.database("detail_db").rows(TABLE)) == 2


def test_store_less_batch_deletes_by_date_only_with_warning(coordinator, fake_server, caplog):
    coordinator.load("snj.csv", _records(_row("OLD1", "2025-11-25", "A"), _row("OLD2", "2025-11-25", "B")), TABLE)
    with caplog.at_level(logging.WARNING, logger="salesdrop.services.coordinator"):
        outcome = coordinator.load("snj.csv", _records(_row("NEW", "2025-11-25", "")), TABLE)
    assert outcome.deleted_rows == 2
    assert outcome.stores == []
    assert [r["BILL_NO"] for r in fake_server.database("detail_db").rows(TABLE)] == ["NEW"]
    assert any("by date only" in r.getMessage() for r in caplog.records)


def test_no_window_appends_only(coordinator, fake_server):
    db = fake_server.database("detail_db")
    coordinator.load("snj.csv", _records(_row("B1")), TABLE)
    db.statements.clear()
    # 日付が解釈できない行のみ -> DELETE なしで追記 (DB 側で行エラー)
    outcome = coordinator.load("snj.csv", _records(_row("B2", "someday")), TABLE)
    assert not any(s.startswith("DELETE") for s in db.statements)
    assert outcome.date_range is None
    assert outcome.error_count == 1
    assert "invalid input syntax for type date" in outcome.errors[0].message


def test_row_errors_are_bounded_and_logged(app_config, fake_server, error_log):
    cfg = replace(app_config, max_reported_errors=2)
    coordinator = LoadCoordinator(cfg, connect=fake_server.connect, error_log=error_log)
    records = _records(*[_row("", "2025-11-25") for _ in range(4)], _row("OK"))
    outcome = coordinator.load("snj.csv", records, TABLE)
    assert outcome.success is True
    assert (outcome.success_count, outcome.error_count) == (1, 4)
    assert [e.row for e in outcome.errors] == [1, 2]
    path = error_log.flush()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 4
    assert '"error_type": "ROW_INSERT_ERROR"' in lines[0]


def test_column_mapping_renames_before_binding(app_config, fake_server, error_log):
    coordinator = LoadCoordinator(app_config, connect=fake_server.connect, error_log=error_log)
    recs = _records({"Nomor Faktur": "F-1", "Tanggal": "03 Mei 2025", "Gudang": "G1", "Total Harga": "55,000.50"})
    outcome = coordinator.load("accurate.xlsx", recs, "SALES_INVOICE_ACCURATE_ONLINE")
    assert outcome.connection == "Database 2"
    row = fake_server.database("invoice_db").rows("SALES_INVOICE_ACCURATE_ONLINE")[0]
    assert row["No. Faktur"] == "F-1"
    assert row["Tanggal"] == "2025-05-03"
    assert row["Total Harga"] == Decimal("55000.50")


def test_missing_schema_is_configuration_error(app_config, fake_server, registry_data, write_config):
    registry_path = write_config.parent / "table_schemas.json"
    del registry_data[TABLE]
    registry_path.write_text(json.dumps(registry_data), encoding="utf-8")
    coordinator = LoadCoordinator(app_config, connect=fake_server.connect)
    with pytest.raises(ConfigurationError, match=f"No schema defined for table: {TABLE}"):
        coordinator.load("snj.csv", _records(_row("B1")), TABLE)
    assert fake_server.dsns == []


def test_disabled_connection_fails_before_connecting(app_config, fake_server):
    conns = tuple(replace(c, enabled=False) for c in app_config.connections)
    coordinator = LoadCoordinator(replace(app_config, connections=conns), connect=fake_server.connect)
    with pytest.raises(ConfigurationError, match="is not enabled"):
        coordinator.load("snj.csv", _records(_row("B1")), TABLE)
    assert fake_server.dsns == []
