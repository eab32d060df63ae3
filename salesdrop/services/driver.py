from __future__ import annotations

import asyncio
import logging
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path

from ..config.loader import ConfigurationError
from ..db.connection import TransientConnectionError
from ..detect.reader import ParseError, parse_file, wait_for_file
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary
from ..models.config_models import AppConfig
from ..models.error_record import ErrorRecord
from ..models.ingest_file import FileStatus, IngestFile
from ..models.processing_result import FileStat, RunResult
from .coordinator import LoadCoordinator, TransactionError
from .progress import ProgressTracker
from .resolver import resolve_table
from .summary import render_file_line

"""Ingestion Driver: watch directory -> per-file pipeline -> processed/failed.

A single asyncio loop polls the watch directory (files present at startup
included). A file is dispatched once its size and mtime have been unchanged
for the stability window. Each file runs as its own task:

    wait for write lock -> detect/parse -> resolve table -> load -> relocate

Blocking parse and database work runs in worker threads (asyncio.to_thread),
so files proceed concurrently while each file's own steps stay sequential.
"""

logger = logging.getLogger(__name__)

_ERROR_TYPES: tuple[tuple[type[BaseException], str], ...] = (
    (ParseError, "PARSE_ERROR"),
    (ConfigurationError, "CONFIGURATION_ERROR"),
    (TransientConnectionError, "CONNECTION_ERROR"),
    (TransactionError, "TRANSACTION_ERROR"),
)


def classify_error(exc: BaseException) -> str:
    for exc_type, label in _ERROR_TYPES:
        if isinstance(exc, exc_type):
            return label
    return "UNEXPECTED_ERROR"


@dataclass(frozen=True)
class _Observation:
    signature: tuple[int, int]  # (size, mtime_ns)
    since: float  # clock value when the signature was first seen


class IngestionDriver:
    def __init__(
        self,
        config: AppConfig,
        *,
        coordinator: LoadCoordinator | None = None,
        error_log: ErrorLogBuffer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.error_log = error_log or ErrorLogBuffer(config.log_directory)
        self.coordinator = coordinator or LoadCoordinator(config, error_log=self.error_log)
        self._clock = clock
        self._observed: dict[Path, _Observation] = {}
        self._parked: dict[Path, tuple[int, int]] = {}  # 移動できなかったファイル (変更されるまで再処理しない)
        self._inflight: dict[Path, asyncio.Task[IngestFile]] = {}
        self._stop: asyncio.Event | None = None

    # ------------------------------------------------------------------ scan

    def ensure_directories(self) -> None:
        watch = self.config.watch
        for d in (watch.directory, watch.processed_directory, watch.failed_directory, self.config.log_directory):
            if not d.exists():
                d.mkdir(parents=True, exist_ok=True)
                logger.info("Created directory: %s", d)

    def is_candidate(self, path: Path) -> bool:
        if path.name.startswith("."):
            return False
        return path.suffix.lower() in self.config.watch.extensions

    def list_candidates(self) -> list[Path]:
        directory = self.config.watch.directory
        return sorted(p for p in directory.iterdir() if p.is_file() and self.is_candidate(p))

    def poll(self, now: float) -> list[Path]:
        """Update write-stability observations; return files ready for dispatch."""
        stability = self.config.watch.stability_seconds
        ready: list[Path] = []
        seen: set[Path] = set()
        for path in self.list_candidates():
            seen.add(path)
            if path in self._inflight:
                continue
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            signature = (st.st_size, st.st_mtime_ns)
            if self._parked.get(path) == signature:
                continue
            self._parked.pop(path, None)

            obs = self._observed.get(path)
            if obs is None or obs.signature != signature:
                obs = _Observation(signature=signature, since=now)
                self._observed[path] = obs
            if now - obs.since >= stability:
                ready.append(path)

        for gone in set(self._observed) - seen:
            del self._observed[gone]
        for gone in set(self._parked) - seen:
            del self._parked[gone]
        return ready

    # ------------------------------------------------------------------ run

    async def run(self) -> None:
        """Watch until stop() is called. In-flight loads are awaited, never cancelled."""
        self.ensure_directories()
        watch = self.config.watch
        if not watch.enabled:
            logger.info("Auto-upload is disabled in config")
            return

        logger.info("File watcher started")
        logger.info("Watching folder: %s", watch.directory)
        self._stop = asyncio.Event()
        try:
            while not self._stop.is_set():
                try:
                    for path in self.poll(self._clock()):
                        self._dispatch(path)
                except OSError as e:
                    logger.error("Watcher error: %s", e)
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=watch.poll_interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._inflight:
                logger.info("Waiting for %d in-flight file(s)", len(self._inflight))
                await asyncio.gather(*self._inflight.values(), return_exceptions=True)
            logger.info("File watcher stopped")

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    def _dispatch(self, path: Path) -> None:
        logger.info("New file detected: %s", path.name)
        self._observed.pop(path, None)
        task = asyncio.create_task(self.process_file(path), name=f"ingest:{path.name}")
        self._inflight[path] = task
        task.add_done_callback(lambda _t, p=path: self._inflight.pop(p, None))

    async def run_once(self) -> RunResult:
        """Process every candidate currently in the watch directory, then return."""
        self.ensure_directories()
        start_time = datetime.now(UTC)
        paths = self.list_candidates()
        results: list[IngestFile] = []
        success = failed = rows = row_errors = 0

        with ProgressTracker(len(paths)) as progress:
            for path in paths:
                progress.start_file(path)
                result = await self.process_file(path)
                results.append(result)
                ok = result.status is FileStatus.SUCCESS
                if ok:
                    success += 1
                    rows += result.inserted_rows
                    row_errors += result.outcome.error_count if result.outcome else 0
                else:
                    failed += 1
                progress.set_postfix(success=success, failed=failed, rows=rows)
                progress.finish_file(success=ok)

        end_time = datetime.now(UTC)
        elapsed = (end_time - start_time).total_seconds()
        return RunResult(
            success_files=success,
            failed_files=failed,
            total_inserted_rows=rows,
            total_failed_rows=row_errors,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=elapsed,
            throughput_rows_per_sec=(rows / elapsed) if elapsed > 0 else 0.0,
            file_stats=[
                FileStat(
                    file_name=r.name,
                    status=r.status.value,
                    table=r.table,
                    inserted_rows=r.inserted_rows,
                    failed_rows=r.outcome.error_count if r.outcome else 0,
                    elapsed_seconds=r.elapsed_seconds,
                )
                for r in results
            ],
        )

    # ------------------------------------------------------------------ pipeline

    async def process_file(self, path: Path) -> IngestFile:
        """Run one file through the pipeline and relocate it. Never raises."""
        watch = self.config.watch
        result = IngestFile(
            path=path,
            name=path.name,
            status=FileStatus.PROCESSING,
            start_time=datetime.now(UTC),
        )
        logger.info("========================================")
        logger.info("Processing file: %s", path.name)

        try:
            await wait_for_file(
                path,
                max_wait_seconds=watch.lock_wait_max_seconds,
                poll_seconds=watch.lock_poll_seconds,
                settle_seconds=watch.settle_seconds,
            )
            records = await asyncio.to_thread(parse_file, path)
            logger.info("Parsed %d rows from file", len(records))

            table = resolve_table(path.name, records, self.config)
            result = replace(result, table=table)
            logger.info("Detected table: %s", table)

            outcome = await asyncio.to_thread(self.coordinator.load, path.name, records, table)
            result = replace(result, status=FileStatus.SUCCESS, outcome=outcome)
            stores = f" ({', '.join(outcome.stores)})" if outcome.stores else ""
            logger.info("%s: %d rows inserted%s", outcome.connection, outcome.success_count, stores)
        except Exception as e:
            error_type = classify_error(e)
            outcome = e.outcome if isinstance(e, TransactionError) else None
            result = replace(result, status=FileStatus.FAILED, outcome=outcome, error=str(e))
            if error_type == "UNEXPECTED_ERROR":
                logger.exception("Failed to process file: %s", e)
            else:
                logger.error("Failed to process file: %s", e)
            self.error_log.append(ErrorRecord.create(path.name, result.table, -1, error_type, str(e)))

        target_dir = watch.processed_directory if result.status is FileStatus.SUCCESS else watch.failed_directory
        moved_to = self._relocate(path, target_dir)
        result = replace(result, moved_to=moved_to, end_time=datetime.now(UTC))

        try:
            self.error_log.flush()
        except OSError as e:
            logger.error("error log flush failed: %s", e)
        log_summary(render_file_line(result)[len("SUMMARY "):])
        return result

    def _relocate(self, path: Path, target_dir: Path) -> Path | None:
        label = "processed" if target_dir == self.config.watch.processed_directory else "failed"
        target = target_dir / path.name
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            if target.exists():
                target.unlink()
            shutil.move(str(path), str(target))
        except OSError as e:
            logger.error("Could not move %s to %s folder: %s", path.name, label, e)
            try:
                st = path.stat()
                self._parked[path] = (st.st_size, st.st_mtime_ns)
            except OSError:
                pass
            return None
        if label == "processed":
            logger.info("File moved to processed folder: %s", target)
        else:
            logger.error("File moved to failed folder: %s", target)
        return target
