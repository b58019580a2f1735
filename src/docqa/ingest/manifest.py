"""Manifest parsing for batch ingestion.

Each non-blank line reads::

    fileName,collectionName,splitStrategy,isActive(0|1),validFrom,validTo

Dates use ``YYYY-MM-DD HH:MM:SS`` or are left empty.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator

from docqa.errors import ValidationError
from docqa.models import IngestionTask
from docqa.splitting import SplitStrategy
from docqa.vectorstore.registry import CollectionRegistry

LOGGER = logging.getLogger(__name__)

MIN_FIELDS = 6

ErrorRecorder = Callable[[str, str], None]


def parse_line(line: str, line_number: int) -> IngestionTask:
    """Turn one manifest line into a task, raising ``ValueError`` when malformed."""

    parts = [part.strip() for part in line.split(",")]
    if len(parts) < MIN_FIELDS:
        raise ValueError(f"expected at least {MIN_FIELDS} fields, got {len(parts)}")
    file_name, collection, strategy, active_flag, valid_from, valid_to = parts[:MIN_FIELDS]
    if not file_name:
        raise ValueError("file name is empty")
    try:
        is_active = int(active_flag) == 1
    except ValueError:
        raise ValueError(f"active flag must be 0 or 1, got {active_flag!r}") from None
    return IngestionTask(
        source_file=file_name,
        target_collection=collection,
        split_strategy=SplitStrategy.parse(strategy).value,
        is_active=is_active,
        valid_from=valid_from or None,
        valid_to=valid_to or None,
        line_number=line_number,
    )


def iter_manifest_tasks(
    manifest_path: Path,
    registry: CollectionRegistry,
    record_error: ErrorRecorder,
) -> Iterator[IngestionTask]:
    """Yield validated tasks; every rejected line is reported via ``record_error``.

    Lines are decoded one at a time, so an undecodable line is reported as a
    parse failure without stopping the read. Parse failures are keyed
    ``line_<n>``. Validation failures (missing file, missing collection) are
    keyed by the file name. Source paths are resolved against the manifest's
    directory.
    """

    base_dir = manifest_path.parent
    with manifest_path.open("rb") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            try:
                line = raw_line.decode("utf-8-sig").strip()
                if not line:
                    continue
                task = parse_line(line, line_number)
            except ValueError as exc:
                LOGGER.warning("Manifest line %s rejected: %s", line_number, exc)
                record_error(f"line_{line_number}", f"Malformed manifest line: {exc}")
                continue

            source = base_dir / task.source_file
            if not source.is_file():
                record_error(task.file_name, f"File not found: {source}")
                continue
            try:
                collection_exists = registry.exists(task.target_collection)
            except ValidationError as exc:
                record_error(task.file_name, str(exc))
                continue
            if not collection_exists:
                record_error(
                    task.file_name,
                    f"Collection does not exist: {task.target_collection}",
                )
                continue

            yield IngestionTask(
                source_file=str(source),
                target_collection=task.target_collection,
                split_strategy=task.split_strategy,
                is_active=task.is_active,
                valid_from=task.valid_from,
                valid_to=task.valid_to,
                line_number=line_number,
            )


__all__ = ["MIN_FIELDS", "iter_manifest_tasks", "parse_line"]
