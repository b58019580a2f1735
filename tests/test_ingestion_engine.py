from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from docqa.config import IngestionSettings
from docqa.ingest import CANCELLED_MESSAGE, IngestionEngine
from docqa.logging_config import AUDIT_LOGGER_NAME
from docqa.models import DATE_FORMAT
from docqa.splitting import SplitterRegistry

REPORT_TEXT = " ".join(f"Quarterly revenue grew in region {index}." for index in range(60))


def _write_manifest(directory: Path, lines: list[str]) -> Path:
    manifest = directory / "manifest.csv"
    manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return manifest


def _settings(**overrides) -> IngestionSettings:
    values = {"workers": 3, "shutdown_timeout": 5.0, "queue_size": 4, "poll_interval": 0.01}
    values.update(overrides)
    return IngestionSettings(**values)


def _fixed_reader(path: str) -> list[str]:
    return [REPORT_TEXT]


def test_manifest_row_becomes_tagged_segments(tmp_path: Path, registry, store) -> None:
    (tmp_path / "report.pdf").write_bytes(b"%PDF-placeholder")
    registry.get_or_create("kb1")
    before = registry.document_count("kb1")
    manifest = _write_manifest(tmp_path, ["report.pdf,kb1,COMMON,1,,"])
    engine = IngestionEngine(registry, settings=_settings(), reader=_fixed_reader)

    result = engine.ingest_manifest(manifest)

    expected = len(SplitterRegistry().get("COMMON").split_blocks([REPORT_TEXT]))
    assert (result.total_tasks, result.success_count, result.fail_count) == (1, 1, 0)
    assert dict(result.errors) == {}
    assert registry.document_count("kb1") == before + expected

    stored = registry.get("kb1").search(store.embedding_model.embed_texts(["revenue"])[0], top_k=1)
    metadata = stored[0].metadata
    assert metadata["file_name"] == "report.pdf"
    assert metadata["is_active"] is True
    assert metadata["valid_end_date"] == "2099-12-31 23:59:59"
    valid_from = datetime.strptime(metadata["valid_from_date"], DATE_FORMAT)
    assert abs(datetime.now() - valid_from) < timedelta(minutes=1)
    assert "upload_time" in metadata


def test_counts_well_formed_and_malformed_rows(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    lines = []
    for index in range(5):
        (tmp_path / f"doc{index}.txt").write_text(f"Document {index} body.", encoding="utf-8")
        lines.append(f"doc{index}.txt,kb1,SHORT,{index % 2},2024-01-01 00:00:00,2030-01-01 00:00:00")
    lines.extend(["not,enough,fields", "doc0.txt,kb1,BOGUS,1,,"])
    manifest = _write_manifest(tmp_path, lines)
    engine = IngestionEngine(registry, settings=_settings(workers=2, queue_size=1))

    result = engine.ingest_manifest(manifest)

    assert result.total_tasks == 5
    assert result.success_count == 5
    assert result.fail_count == 2
    assert set(result.errors) == {"line_6", "line_7"}


def test_missing_manifest_short_circuits(tmp_path: Path, registry) -> None:
    missing = tmp_path / "absent.csv"

    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(missing)

    assert (result.total_tasks, result.success_count, result.fail_count) == (0, 0, 1)
    assert str(missing) in result.errors


def test_validation_failures_are_not_tasks(tmp_path: Path, registry) -> None:
    (tmp_path / "a.txt").write_text("alpha", encoding="utf-8")
    manifest = _write_manifest(tmp_path, ["a.txt,unknown-kb,COMMON,1,,", "ghost.txt,unknown-kb,COMMON,1,,"])

    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(manifest)

    assert result.total_tasks == 0
    assert result.fail_count == 2
    assert "Collection does not exist" in result.errors["a.txt"]
    assert "File not found" in result.errors["ghost.txt"]


def test_task_failures_are_recorded_per_file(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    (tmp_path / "sheet.xlsx").write_bytes(b"binary")
    (tmp_path / "empty.txt").write_text("   ", encoding="utf-8")
    (tmp_path / "ok.txt").write_text("Valid content here.", encoding="utf-8")
    manifest = _write_manifest(
        tmp_path,
        ["sheet.xlsx,kb1,COMMON,1,,", "empty.txt,kb1,COMMON,1,,", "ok.txt,kb1,COMMON,1,,"],
    )

    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(manifest)

    assert (result.total_tasks, result.success_count, result.fail_count) == (3, 1, 2)
    assert "Unsupported file format" in result.errors["sheet.xlsx"]
    assert "No text content" in result.errors["empty.txt"]


def test_repeated_failures_do_not_overwrite_each_other(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    registry.get_or_create("kb2")
    (tmp_path / "same.xlsx").write_bytes(b"binary")
    manifest = _write_manifest(tmp_path, ["same.xlsx,kb1,COMMON,1,,", "same.xlsx,kb2,COMMON,1,,"])

    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(manifest)

    assert result.fail_count == 2
    assert set(result.errors) == {"same.xlsx", "same.xlsx#2"}


def test_shutdown_timeout_counts_in_flight_task_as_failed(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    (tmp_path / "slow.txt").write_text("slow", encoding="utf-8")
    manifest = _write_manifest(tmp_path, ["slow.txt,kb1,COMMON,1,,"])
    release = threading.Event()
    started = threading.Event()

    def blocking_reader(path: str) -> list[str]:
        started.set()
        release.wait(timeout=10)
        return ["late content"]

    engine = IngestionEngine(
        registry,
        settings=_settings(workers=1, shutdown_timeout=0.2),
        reader=blocking_reader,
    )
    try:
        result = engine.ingest_manifest(manifest)
    finally:
        release.set()

    assert started.is_set()
    assert (result.total_tasks, result.success_count, result.fail_count) == (1, 0, 1)
    assert result.errors["slow.txt"] == CANCELLED_MESSAGE


def test_many_tasks_with_small_queue(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    lines = []
    for index in range(20):
        (tmp_path / f"f{index}.md").write_text(f"# File {index}\n\nBody {index}.", encoding="utf-8")
        lines.append(f"f{index}.md,kb1,PAPER,1,,")
    manifest = _write_manifest(tmp_path, lines)

    result = IngestionEngine(registry, settings=_settings(workers=3, queue_size=2)).ingest_manifest(manifest)

    assert result.total_tasks == 20
    assert result.success_count + result.fail_count == 20
    assert result.fail_count == 0
    assert registry.document_count("kb1") == 20


def test_result_errors_are_read_only(tmp_path: Path, registry) -> None:
    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(tmp_path / "none.csv")

    with pytest.raises(TypeError):
        result.errors["x"] = "y"  # type: ignore[index]


def test_audit_records_are_emitted(tmp_path: Path, registry, caplog: pytest.LogCaptureFixture) -> None:
    registry.get_or_create("kb1")
    (tmp_path / "a.txt").write_text("Audit me.", encoding="utf-8")
    manifest = _write_manifest(tmp_path, ["a.txt,kb1,COMMON,1,,"])
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.addHandler(caplog.handler)
    try:
        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            IngestionEngine(registry, settings=_settings()).ingest_manifest(manifest)
    finally:
        audit_logger.removeHandler(caplog.handler)

    events = [record.msg for record in caplog.records if isinstance(record.msg, dict)]
    assert {"event": "ingest_task", "file_name": "a.txt", "status": "ok"}.items() <= events[0].items()
    assert events[-1]["event"] == "ingest_run"
    assert events[-1]["success_count"] == 1


def _run_in_thread(engine: IngestionEngine, manifest: Path, limit: float):
    outcome = {}
    runner = threading.Thread(target=lambda: outcome.update(result=engine.ingest_manifest(manifest)), daemon=True)
    runner.start()
    runner.join(timeout=limit)
    return runner.is_alive(), outcome.get("result")


def test_hung_worker_with_queued_tasks_is_cancelled(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    lines = []
    for name in ("a.txt", "b.txt", "c.txt"):
        (tmp_path / name).write_text("content", encoding="utf-8")
        lines.append(f"{name},kb1,COMMON,1,,")
    manifest = _write_manifest(tmp_path, lines)
    release = threading.Event()

    def hanging_reader(path: str) -> list[str]:
        release.wait(timeout=30)
        return ["late content"]

    engine = IngestionEngine(
        registry,
        settings=_settings(workers=1, shutdown_timeout=0.5, queue_size=10),
        reader=hanging_reader,
    )
    try:
        still_running, result = _run_in_thread(engine, manifest, limit=5)
    finally:
        release.set()

    assert still_running is False
    assert (result.total_tasks, result.success_count, result.fail_count) == (3, 0, 3)
    assert set(result.errors) == {"a.txt", "b.txt", "c.txt"}
    assert set(result.errors.values()) == {CANCELLED_MESSAGE}


def test_producer_blocked_on_full_queue_is_cancelled(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    lines = []
    for index in range(5):
        (tmp_path / f"f{index}.txt").write_text("content", encoding="utf-8")
        lines.append(f"f{index}.txt,kb1,COMMON,1,,")
    manifest = _write_manifest(tmp_path, lines)
    release = threading.Event()

    def hanging_reader(path: str) -> list[str]:
        release.wait(timeout=30)
        return ["late content"]

    engine = IngestionEngine(
        registry,
        settings=_settings(workers=1, shutdown_timeout=0.5, queue_size=1),
        reader=hanging_reader,
    )
    try:
        still_running, result = _run_in_thread(engine, manifest, limit=5)
    finally:
        release.set()

    assert still_running is False
    task_failures = [key for key in result.errors if key != str(manifest)]
    assert result.success_count == 0
    assert len(task_failures) == result.total_tasks
    assert "not fully read" in result.errors[str(manifest)]
    assert result.fail_count == result.total_tasks + 1


def test_undecodable_manifest_line_is_skipped(tmp_path: Path, registry) -> None:
    registry.get_or_create("kb1")
    (tmp_path / "good.txt").write_text("Good content.", encoding="utf-8")
    manifest = tmp_path / "manifest.csv"
    manifest.write_bytes(b"bad\xff.txt,kb1,SHORT,1,,\ngood.txt,kb1,SHORT,1,,\n")

    result = IngestionEngine(registry, settings=_settings()).ingest_manifest(manifest)

    assert (result.total_tasks, result.success_count, result.fail_count) == (1, 1, 1)
    assert set(result.errors) == {"line_1"}
