"""Concurrent producer/consumer batch ingestion."""
from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, List, Optional, Sequence

from docqa.config import IngestionSettings, get_settings
from docqa.errors import ValidationError
from docqa.logging_config import AUDIT_LOGGER_NAME
from docqa.models import IngestionResult, IngestionTask
from docqa.splitting import SplitterRegistry
from docqa.vectorstore.registry import CollectionRegistry

from .manifest import iter_manifest_tasks
from .metadata import build_segment_metadata
from .readers import read_document

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

CANCELLED_MESSAGE = "cancelled: shutdown timeout exceeded"

Reader = Callable[[str], Sequence[str]]


class _RunLedger:
    """Thread-safe counters and error map for one ingestion run.

    A task is counted once it leaves the queue, either picked up by a worker
    or drained on cancellation. ``last_progress`` moves on every report and
    drives the stall timeout. Once closed, late reports from workers that
    outlived the timeout are ignored so the returned result never changes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._success = 0
        self._fail = 0
        self._errors: Dict[str, str] = {}
        self._in_flight: Dict[str, IngestionTask] = {}
        self._closed = False
        self.last_progress = time.monotonic()

    def _add_error(self, key: str, message: str) -> None:
        unique_key = key
        suffix = 2
        while unique_key in self._errors:
            unique_key = f"{key}#{suffix}"
            suffix += 1
        self._errors[unique_key] = message
        self._fail += 1

    def touch(self) -> None:
        self.last_progress = time.monotonic()

    def record_error(self, key: str, message: str) -> None:
        with self._lock:
            self.touch()
            if not self._closed:
                self._add_error(key, message)

    def start(self, worker: str, task: IngestionTask) -> bool:
        with self._lock:
            if self._closed:
                return False
            self.touch()
            self._total += 1
            self._in_flight[worker] = task
            return True

    def cancel_pending(self, task: IngestionTask, reason: str) -> None:
        with self._lock:
            if self._closed:
                return
            self._total += 1
            self._add_error(task.file_name, reason)

    def finish(self, worker: str, task: IngestionTask, error: Optional[str] = None) -> None:
        with self._lock:
            self._in_flight.pop(worker, None)
            if self._closed:
                return
            self.touch()
            if error is None:
                self._success += 1
            else:
                self._add_error(task.file_name, error)

    def close(self, in_flight_reason: Optional[str] = None) -> IngestionResult:
        with self._lock:
            if in_flight_reason is not None:
                for task in self._in_flight.values():
                    self._add_error(task.file_name, in_flight_reason)
            self._in_flight.clear()
            self._closed = True
            return IngestionResult(
                total_tasks=self._total,
                success_count=self._success,
                fail_count=self._fail,
                errors=MappingProxyType(dict(self._errors)),
            )


class IngestionEngine:
    """Loads the files listed in a manifest into their target collections.

    One producer thread parses the manifest into a bounded queue while a fixed
    pool of worker threads drains it. Workers only exit once the producer has
    finished and the queue is empty. When the run makes no progress for
    ``shutdown_timeout`` seconds (no row accepted, no task started or
    finished) it is cancelled: in-flight and still queued tasks are counted as
    failures and the call returns.
    """

    def __init__(
        self,
        registry: CollectionRegistry,
        *,
        splitters: Optional[SplitterRegistry] = None,
        settings: Optional[IngestionSettings] = None,
        reader: Reader = read_document,
    ) -> None:
        self.registry = registry
        self.splitters = splitters or SplitterRegistry()
        self.settings = settings or get_settings().ingestion
        self.reader = reader

    def ingest_manifest(self, manifest_path: str | Path) -> IngestionResult:
        path = Path(manifest_path)
        if not path.is_file():
            LOGGER.error("Manifest file not found: %s", path)
            return IngestionResult(
                total_tasks=0,
                success_count=0,
                fail_count=1,
                errors=MappingProxyType({str(path): f"Manifest file not found: {path}"}),
            )

        started = time.perf_counter()
        ledger = _RunLedger()
        tasks: "queue.Queue[IngestionTask]" = queue.Queue(maxsize=max(self.settings.queue_size, 1))
        producer_done = threading.Event()
        manifest_read = threading.Event()
        cancelled = threading.Event()

        producer = threading.Thread(
            target=self._produce,
            args=(path, tasks, ledger, producer_done, manifest_read, cancelled),
            name="ingest-producer",
            daemon=True,
        )
        workers: List[threading.Thread] = [
            threading.Thread(
                target=self._consume,
                args=(f"ingest-worker-{index}", tasks, ledger, producer_done, cancelled),
                name=f"ingest-worker-{index}",
                daemon=True,
            )
            for index in range(max(self.settings.workers, 1))
        ]
        producer.start()
        for worker in workers:
            worker.start()

        if self._await_completion(producer, workers, ledger, cancelled):
            if not manifest_read.is_set():
                ledger.record_error(str(path), "cancelled: manifest not fully read before shutdown timeout")
            self._drain(tasks, ledger)
        result = ledger.close(CANCELLED_MESSAGE if cancelled.is_set() else None)

        AUDIT_LOGGER.info(
            {
                "event": "ingest_run",
                "manifest": str(path),
                "total_tasks": result.total_tasks,
                "success_count": result.success_count,
                "fail_count": result.fail_count,
                "cancelled": cancelled.is_set(),
                "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            }
        )
        LOGGER.info(
            "Ingestion of %s finished: %s tasks, %s succeeded, %s failed",
            path,
            result.total_tasks,
            result.success_count,
            result.fail_count,
        )
        return result

    def _produce(
        self,
        manifest_path: Path,
        tasks: "queue.Queue[IngestionTask]",
        ledger: _RunLedger,
        producer_done: threading.Event,
        manifest_read: threading.Event,
        cancelled: threading.Event,
    ) -> None:
        try:
            for task in iter_manifest_tasks(manifest_path, self.registry, ledger.record_error):
                while True:
                    if cancelled.is_set():
                        return
                    try:
                        tasks.put(task, timeout=self.settings.poll_interval)
                    except queue.Full:
                        continue
                    ledger.touch()
                    break
            manifest_read.set()
        except Exception as exc:
            LOGGER.exception("Manifest producer failed for %s", manifest_path)
            ledger.record_error(str(manifest_path), f"Manifest read failed: {exc}")
            manifest_read.set()
        finally:
            ledger.touch()
            producer_done.set()

    def _consume(
        self,
        worker_name: str,
        tasks: "queue.Queue[IngestionTask]",
        ledger: _RunLedger,
        producer_done: threading.Event,
        cancelled: threading.Event,
    ) -> None:
        while not cancelled.is_set():
            try:
                task = tasks.get(timeout=self.settings.poll_interval)
            except queue.Empty:
                if producer_done.is_set() and tasks.empty():
                    return
                continue

            try:
                if not ledger.start(worker_name, task):
                    return
                started = time.perf_counter()
                try:
                    segment_count = self.process_task(task)
                except Exception as exc:
                    LOGGER.warning("Ingestion of %s failed: %s", task.file_name, exc)
                    ledger.finish(worker_name, task, error=str(exc) or exc.__class__.__name__)
                    self._audit_task(task, "failed", started, error=str(exc))
                else:
                    ledger.finish(worker_name, task)
                    self._audit_task(task, "ok", started, segments=segment_count)
            finally:
                tasks.task_done()

    def _await_completion(
        self,
        producer: threading.Thread,
        workers: List[threading.Thread],
        ledger: _RunLedger,
        cancelled: threading.Event,
    ) -> bool:
        """Block until every thread is done; return ``True`` if the run was cancelled."""

        timeout = self.settings.shutdown_timeout
        while True:
            alive = [worker for worker in workers if worker.is_alive()]
            if producer.is_alive():
                alive.insert(0, producer)
            if not alive:
                return False
            idle = time.monotonic() - ledger.last_progress
            if idle >= timeout:
                LOGGER.warning(
                    "Ingestion made no progress for %.1fs; cancelling %s busy thread(s)",
                    timeout,
                    len(alive),
                )
                cancelled.set()
                return True
            alive[0].join(timeout=min(self.settings.poll_interval, timeout - idle))

    @staticmethod
    def _drain(tasks: "queue.Queue[IngestionTask]", ledger: _RunLedger) -> None:
        while True:
            try:
                task = tasks.get_nowait()
            except queue.Empty:
                return
            ledger.cancel_pending(task, CANCELLED_MESSAGE)
            tasks.task_done()

    def process_task(self, task: IngestionTask, *, uploader: Optional[str] = None) -> int:
        """Read, split, tag and persist one file. Returns the segment count."""

        splitter = self.splitters.get(task.split_strategy)
        blocks = self.reader(task.source_file)
        if not any(block.strip() for block in blocks):
            raise ValidationError(f"No text content extracted from {task.file_name}")

        metadata = build_segment_metadata(
            task.file_name,
            is_active=task.is_active,
            valid_from=task.valid_from,
            valid_to=task.valid_to,
            uploader=uploader,
        )
        segments = splitter.split_blocks(blocks, metadata)
        handle = self.registry.get_or_create(task.target_collection)
        handle.add(segments)
        LOGGER.debug(
            "Stored %s segments from %s in %s",
            len(segments),
            task.file_name,
            task.target_collection,
        )
        return len(segments)

    @staticmethod
    def _audit_task(
        task: IngestionTask,
        status: str,
        started: float,
        *,
        segments: int = 0,
        error: Optional[str] = None,
    ) -> None:
        record = {
            "event": "ingest_task",
            "file_name": task.file_name,
            "collection": task.target_collection,
            "strategy": task.split_strategy,
            "status": status,
            "segments": segments,
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        }
        if error:
            record["error"] = error
        AUDIT_LOGGER.info(record)


__all__ = ["CANCELLED_MESSAGE", "IngestionEngine"]
