from __future__ import annotations

import asyncio
import io
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pandas as pd

from salesdrop.logging.error_log import ErrorLogBuffer
from salesdrop.models.ingest_file import FileStatus
from salesdrop.services.coordinator import LoadCoordinator
from salesdrop.services.driver import IngestionDriver

"""Drop folder -> parse -> resolve -> load -> relocate, against the in-memory database."""


def _driver(app_config, fake_server, temp_workdir: Path) -> IngestionDriver:
    error_log = ErrorLogBuffer(temp_workdir / "logs")
    coordinator = LoadCoordinator(app_config, connect=fake_server.connect, error_log=error_log)
    return IngestionDriver(app_config, coordinator=coordinator, error_log=error_log)


def _invoice_frame(stores: list[str]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "No. Faktur": [f"F-{i}" for i in range(len(stores))],
            "Tanggal": [datetime(2025, 11, 20 + i) for i in range(len(stores))],
            "Gudang": stores,
            "Kuantitas": [2] * len(stores),
            "Total Harga": ["55.000,50"] * len(stores),
        }
    )


def test_xlsx_drop_is_loaded_and_reload_replaces(app_config, fake_server, temp_workdir: Path, upload_dir: Path, no_tty):
    driver = _driver(app_config, fake_server, temp_workdir)
    target = upload_dir / "Accurate Online Nov.xlsx"
    _invoice_frame(["G1", "G2"]).to_excel(target, index=False, engine="openpyxl")

    first = asyncio.run(driver.run_once())
    assert first.success_files == 1

    # 同じ内容を再投入しても件数は変わらない
    _invoice_frame(["G1", "G2"]).to_excel(target, index=False, engine="openpyxl")
    second = asyncio.run(driver.run_once())
    assert second.success_files == 1

    rows = fake_server.database("invoice_db").rows("SALES_INVOICE_ACCURATE_ONLINE")
    assert len(rows) == 2
    assert {r["Gudang"] for r in rows} == {"G1", "G2"}
    assert rows[0]["Total Harga"] == Decimal("55000.50")
    assert rows[0]["Kuantitas"] == Decimal("2")
    processed = app_config.watch.processed_directory / "Accurate Online Nov.xlsx"
    assert processed.exists()
    assert list(upload_dir.iterdir()) == []


def test_spreadsheet_content_with_csv_name_routes_by_header(app_config, fake_server, temp_workdir: Path, upload_dir: Path):
    driver = _driver(app_config, fake_server, temp_workdir)
    buf = io.BytesIO()
    _invoice_frame(["G9"]).to_excel(buf, index=False, engine="openpyxl")
    f = upload_dir / "export.csv"
    f.write_bytes(buf.getvalue())

    result = asyncio.run(driver.process_file(f))

    assert result.status is FileStatus.SUCCESS
    assert result.table == "SALES_INVOICE_ACCURATE_ONLINE"
    assert result.outcome.stores == ["G9"]


def test_failed_file_keeps_name_and_previous_failure_is_replaced(app_config, fake_server, temp_workdir: Path, upload_dir: Path):
    driver = _driver(app_config, fake_server, temp_workdir)
    failed_dir = app_config.watch.failed_directory
    failed_dir.mkdir(parents=True, exist_ok=True)
    (failed_dir / "snj.csv").write_text("older failure", encoding="utf-8")
    f = upload_dir / "snj.csv"
    f.write_text("BILL_NO,SALES_DATE\n", encoding="utf-8")

    result = asyncio.run(driver.process_file(f))

    assert result.status is FileStatus.FAILED
    assert result.moved_to == failed_dir / "snj.csv"
    assert (failed_dir / "snj.csv").read_text(encoding="utf-8") == "BILL_NO,SALES_DATE\n"


def test_two_destinations_use_their_own_connections(app_config, fake_server, temp_workdir: Path, upload_dir: Path, no_tty):
    driver = _driver(app_config, fake_server, temp_workdir)
    (upload_dir / "snj.csv").write_text(
        "BILL_NO,SALES_DATE,ORG_CODE_NAME\nB1,25-11-2025,S1\n", encoding="utf-8"
    )
    _invoice_frame(["G1"]).to_excel(upload_dir / "invoice.xlsx", index=False, engine="openpyxl")

    result = asyncio.run(driver.run_once())

    assert result.success_files == 2
    assert len(fake_server.database("detail_db").rows("SNJ_SRP_DETAIL")) == 1
    assert len(fake_server.database("invoice_db").rows("SALES_INVOICE_ACCURATE_ONLINE")) == 1
    assert "SNJ_SRP_DETAIL" not in fake_server.database("invoice_db").tables
