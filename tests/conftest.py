# Shared pytest fixtures
from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from salesdrop.config.loader import load_config
from salesdrop.logging.init import reset_logging
from salesdrop.models.config_models import AppConfig

from fakes import FakeServer

REGISTRY = {
    "SALES_INVOICE_ACCURATE_ONLINE": {
        "columns": {
            "No. Faktur": "VARCHAR(50) NOT NULL",
            "Tanggal": "DATE NOT NULL",
            "Gudang": "VARCHAR(100)",
            "Nama Barang": "VARCHAR(255)",
            "Kuantitas": "NUMERIC(18,2)",
            "Total Harga": "NUMERIC(18,2)",
        },
        "indexes": ["Tanggal", "Gudang"],
        "numericColumns": ["Kuantitas", "Total Harga"],
        "dateColumns": ["Tanggal"],
        "columnMapping": {"Nomor Faktur": "No. Faktur"},
        "window": {"dateColumn": "Tanggal", "storeColumn": "Gudang"},
    },
    "SNJ_SRP_DETAIL": {
        "columns": {
            "BILL_NO": "VARCHAR(50) NOT NULL",
            "SALES_DATE": "DATE NOT NULL",
            "ORG_CODE_NAME": "VARCHAR(100)",
            "ITEM_NAME": "VARCHAR(255)",
            "BARCODE": "VARCHAR(50)",
            "QTY": "NUMERIC(18,2)",
            "NET_AMOUNT": "NUMERIC(18,2)",
        },
        "indexes": ["SALES_DATE", "ORG_CODE_NAME"],
        "numericColumns": ["QTY", "NET_AMOUNT"],
        "dateColumns": ["SALES_DATE"],
        "window": {"dateColumn": "SALES_DATE", "storeColumn": "ORG_CODE_NAME"},
    },
}


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d).resolve()
        (p / "config").mkdir()
        (p / "data" / "upload").mkdir(parents=True)
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """watch:
  enabled: true
  directory: ./data/upload
  processed_directory: ./data/processed
  failed_directory: ./data/failed
  stability_seconds: 0
  poll_interval_seconds: 0.05
  lock_wait_max_seconds: 0.2
  lock_poll_seconds: 0.05
  settle_seconds: 0
schema_registry: ./config/table_schemas.json
connections:
  - name: Database 1
    server: localhost
    database: detail_db
    username: appuser
    password: secret
  - name: Database 2
    server: localhost
    database: invoice_db
    username: appuser
    password: secret
routes:
  - table: SALES_INVOICE_ACCURATE_ONLINE
    connection: Database 2
    filename_hints: [accurate, invoice]
    header_hints: [No. Faktur, Tanggal]
  - table: SNJ_SRP_DETAIL
    connection: Database 1
    filename_hints: [snj, srp]
    header_hints: [BILL_NO, SALES_DATE]
default_table: SNJ_SRP_DETAIL
retry:
  max_attempts: 3
  delay_seconds: 0
log_directory: ./logs
"""


@pytest.fixture()
def registry_data() -> dict:
    return json.loads(json.dumps(REGISTRY))


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str, registry_data: dict) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    (temp_workdir / "config" / "table_schemas.json").write_text(
        json.dumps(registry_data, ensure_ascii=False, indent=2), encoding="utf-8"
    )
    return cfg


@pytest.fixture()
def app_config(write_config: Path) -> AppConfig:
    return load_config(write_config)


@pytest.fixture()
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def upload_dir(temp_workdir: Path) -> Path:
    return temp_workdir / "data" / "upload"


@pytest.fixture()
def no_tty(monkeypatch):
    # tqdm を無効化して出力を安定させる
    monkeypatch.setattr("salesdrop.services.progress.is_tty_enabled", lambda: False)
