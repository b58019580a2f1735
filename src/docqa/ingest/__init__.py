"""Batch and single file ingestion."""

from .engine import CANCELLED_MESSAGE, IngestionEngine
from .manifest import iter_manifest_tasks, parse_line
from .metadata import build_segment_metadata
from .readers import read_document
from .upload import DocumentUploadService, UploadResult

__all__ = [
    "CANCELLED_MESSAGE",
    "DocumentUploadService",
    "IngestionEngine",
    "UploadResult",
    "build_segment_metadata",
    "iter_manifest_tasks",
    "parse_line",
    "read_document",
]
