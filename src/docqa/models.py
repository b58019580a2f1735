"""Core value objects passed between retrieval and ingestion components."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple, Union

Scalar = Union[str, int, float, bool]

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
FAR_FUTURE = datetime(2099, 12, 31, 23, 59, 59)

FILE_NAME_KEY = "file_name"
IS_ACTIVE_KEY = "is_active"
VALID_FROM_KEY = "valid_from_date"
VALID_END_KEY = "valid_end_date"
UPLOAD_TIME_KEY = "upload_time"
UPLOADER_KEY = "uploader"

REQUIRED_METADATA_KEYS = (
    FILE_NAME_KEY,
    IS_ACTIVE_KEY,
    VALID_FROM_KEY,
    VALID_END_KEY,
    UPLOAD_TIME_KEY,
)


@dataclass(frozen=True)
class Query:
    """A user question as it flows through the retrieval stages."""

    text: str
    history: Tuple[str, ...] = ()

    def with_text(self, text: str) -> "Query":
        return Query(text=text, history=self.history)


@dataclass(slots=True)
class Segment:
    """A chunk of a document together with its metadata."""

    text: str
    metadata: Dict[str, Scalar] = field(default_factory=dict)
    id: Optional[str] = None
    distance: Optional[float] = None

    @property
    def source(self) -> str:
        return str(self.metadata.get(FILE_NAME_KEY, ""))

    @property
    def score(self) -> Optional[float]:
        if self.distance is None:
            return None
        return 1.0 - self.distance


@dataclass(frozen=True)
class IngestionTask:
    """One manifest row accepted for ingestion."""

    source_file: str
    target_collection: str
    split_strategy: str
    is_active: bool
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    line_number: int = 0

    @property
    def file_name(self) -> str:
        return self.source_file.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class IngestionResult:
    """Aggregate outcome of a batch ingestion run."""

    total_tasks: int
    success_count: int
    fail_count: int
    errors: Mapping[str, str]


__all__ = [
    "DATE_FORMAT",
    "FAR_FUTURE",
    "FILE_NAME_KEY",
    "IS_ACTIVE_KEY",
    "IngestionResult",
    "IngestionTask",
    "Query",
    "REQUIRED_METADATA_KEYS",
    "Scalar",
    "Segment",
    "UPLOADER_KEY",
    "UPLOAD_TIME_KEY",
    "VALID_END_KEY",
    "VALID_FROM_KEY",
]
