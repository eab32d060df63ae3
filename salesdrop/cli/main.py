from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from ..config.loader import ConfigurationError, load_config
from ..detect.reader import ParseError, detect_file_type, parse_file
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.config_models import AppConfig
from ..services.driver import IngestionDriver
from ..services.resolver import resolve_table
from ..services.summary import render_summary_line

"""CLI entrypoint.

- Load .env (override on) so password_env variables win over the YAML
- Load and validate config/import.yml
- default: watch the drop folder until Ctrl-C
- --once: process the files currently in the drop folder, print the run
  SUMMARY line and map the result to an exit code
- --inspect-data: show detected type, resolved table and sample rows only
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/import.yml")


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv; a missing file is not an error."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="salesdrop", description="Drop-folder CSV/XLSX -> PostgreSQL loader")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to import.yml")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--once", action="store_true", help="Process files currently in the watch folder, then exit")
    p.add_argument(
        "--inspect-data",
        action="store_true",
        help="Print detected type, table and first rows of each file, then exit",
    )
    return p.parse_args(argv)


def _inspect_data(cfg: AppConfig) -> int:
    directory = cfg.watch.directory
    if not directory.exists():
        print(f"inspect: directory not found: {directory}")
        return EXIT_FATAL
    driver = IngestionDriver(cfg)
    files = driver.list_candidates()
    if not files:
        print("inspect: no candidate files")
        return EXIT_SUCCESS_ALL
    for f in files:
        print(f"FILE: {f.name}")
        try:
            file_type = detect_file_type(f)
            records = parse_file(f)
        except (ParseError, OSError) as e:
            print(f"  read_error: {e}")
            continue
        print(f"  type={file_type.value} rows={len(records)} table={resolve_table(f.name, records, cfg)}")
        print(f"  columns={records[0].columns}")
        for rec in records[:3]:
            print(f"    row {rec.row_number}: {rec.values}")
    return EXIT_SUCCESS_ALL


def _run_once(driver: IngestionDriver) -> int:
    result = asyncio.run(driver.run_once())
    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result)[len("SUMMARY "):])
    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _run_watch(driver: IngestionDriver) -> int:
    try:
        asyncio.run(driver.run())
    except KeyboardInterrupt:
        # asyncio.run はタスクをキャンセル済み。ここでは終了ログのみ
        logging.getLogger(__name__).info("Interrupted; watcher stopped")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: [] を渡された場合に sys.argv[1:] (pytest の引数) が混入しないよう None のときだけ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigurationError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    # 日付別ログファイルは設定が読めてから追加する
    setup_logging(cfg.log_directory)
    if args.debug:
        set_debug(logger)

    if args.inspect_data:
        return _inspect_data(cfg)

    driver = IngestionDriver(cfg)
    try:
        driver.ensure_directories()
    except OSError as e:
        logger.error(f"directory: {e}")
        return EXIT_FATAL

    if args.once:
        logger.info(f"Processing files from: {cfg.watch.directory}")
        return _run_once(driver)
    return _run_watch(driver)
