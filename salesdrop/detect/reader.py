from __future__ import annotations

import asyncio
import io
import logging
import time
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.record import Record

"""Format Detector: content sniffing + uniform Record parsing.

The extension is not trusted. The first four bytes decide between a ZIP
container (XLSX) and delimited text; anything else is rejected instead of
guessed. Both spreadsheet and CSV paths yield list[Record] with text cells
(blank cell -> "").
"""

logger = logging.getLogger(__name__)

ZIP_SIGNATURE = b"PK\x03\x04"  # 50 4B 03 04
UTF8_BOM = b"\xef\xbb\xbf"
TEXT_SAMPLE_BYTES = 100
_TEXT_CONTROL = {0x09, 0x0A, 0x0D}


class FileType(Enum):
    XLSX = "xlsx"
    CSV = "csv"
    UNKNOWN = "unknown"


class ParseError(Exception):
    """File cannot be turned into records. Fatal for the file, never retried."""


class UnsupportedFormatError(ParseError):
    pass


class EmptyFileError(ParseError):
    pass


class FileLockedError(ParseError):
    pass


def _probe_unlocked(path: Path) -> bool:
    try:
        with path.open("r+b"):
            return True
    except OSError:
        return False


async def wait_for_file(
    path: Path,
    *,
    max_wait_seconds: float = 10.0,
    poll_seconds: float = 0.5,
    settle_seconds: float = 1.0,
) -> None:
    """Wait until the file can be opened for read/write, then settle once.

    Raises FileLockedError when the probe keeps failing past max_wait_seconds.
    """
    deadline = time.monotonic() + max_wait_seconds
    while True:
        if _probe_unlocked(path):
            # 最終 flush 待ち
            if settle_seconds > 0:
                await asyncio.sleep(settle_seconds)
            return
        if time.monotonic() >= deadline:
            break
        await asyncio.sleep(poll_seconds)
    raise FileLockedError(f"File is locked or still being written: {path.name}")


def _is_text_sample(sample: bytes) -> bool:
    if sample.startswith(UTF8_BOM):
        sample = sample[len(UTF8_BOM):]
    return all(0x20 <= b <= 0x7E or b in _TEXT_CONTROL for b in sample)


def detect_file_type(path: Path) -> FileType:
    with path.open("rb") as f:
        head = f.read(TEXT_SAMPLE_BYTES)
    if head[:4] == ZIP_SIGNATURE:
        return FileType.XLSX
    if _is_text_sample(head):
        return FileType.CSV
    return FileType.UNKNOWN


def _cell_text(val: Any) -> str:
    """Project a spreadsheet cell to text ("" for blanks)."""
    if val is None:
        return ""
    if isinstance(val, float):
        if pd.isna(val):
            return ""
        if val.is_integer():
            # 8.13E+10 のような桁落ち表記を避ける
            return str(int(val))
        return repr(val)
    if isinstance(val, datetime):  # pd.Timestamp included
        if pd.isna(val):
            return ""
        if (val.hour, val.minute, val.second, val.microsecond) == (0, 0, 0, 0):
            return val.date().isoformat()
        return val.isoformat(sep=" ")
    if isinstance(val, date):
        return val.isoformat()
    return str(val)


def _frame_to_records(df: pd.DataFrame) -> list[Record]:
    columns = [str(c).strip() for c in df.columns]
    records: list[Record] = []
    for raw in df.itertuples(index=False, name=None):
        values = {col: _cell_text(v) for col, v in zip(columns, raw, strict=False)}
        # 全セル空の行はスキップ
        if all(v.strip() == "" for v in values.values()):
            continue
        records.append(Record(row_number=len(records) + 1, values=values))
    return records


def read_spreadsheet(path: Path) -> list[Record]:
    """First sheet only; header from the first row."""
    buffer = io.BytesIO(path.read_bytes())
    xls = pd.ExcelFile(buffer, engine="openpyxl")
    if not xls.sheet_names:
        raise ParseError("XLSX file has no sheets")
    sheet = xls.sheet_names[0]
    logger.info("Reading sheet: %s", sheet)
    df = xls.parse(sheet, header=0, dtype=object)
    return _frame_to_records(df)


def read_delimited(path: Path) -> list[Record]:
    df = pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        encoding="utf-8-sig",
        skip_blank_lines=True,
    )
    return _frame_to_records(df)


def parse_file(path: Path) -> list[Record]:
    """Detect the content type and parse the file into records.

    Raises:
        UnsupportedFormatError: content is neither a ZIP container nor text
        EmptyFileError: no data rows
        ParseError: the reader failed on a supported format
    """
    file_type = detect_file_type(path)
    logger.info("Detected file type: %s", file_type.value)

    ext = path.suffix.lower().lstrip(".")
    if file_type is not FileType.UNKNOWN and ext != file_type.value:
        logger.warning(
            "extension/content mismatch file=%s extension=%s detected=%s (content wins)",
            path.name,
            ext or "<none>",
            file_type.value,
        )

    if file_type is FileType.UNKNOWN:
        raise UnsupportedFormatError("Unsupported or corrupted file format")

    try:
        if file_type is FileType.XLSX:
            logger.info("Parsing XLSX file: %s", path)
            records = read_spreadsheet(path)
        else:
            logger.info("Parsing CSV file: %s", path)
            records = read_delimited(path)
    except ParseError:
        raise
    except pd.errors.EmptyDataError:
        records = []
    except Exception as e:
        raise ParseError(f"Failed to parse file: {e}") from e

    if not records:
        raise EmptyFileError("File is empty or has no data rows")
    return records
