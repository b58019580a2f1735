"""Single file upload with preview-then-save support."""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from docqa.errors import DocQAError, ValidationError
from docqa.logging_config import AUDIT_LOGGER_NAME
from docqa.models import Segment
from docqa.splitting import SplitStrategy, SplitterRegistry
from docqa.vectorstore.registry import CollectionRegistry

from .metadata import build_segment_metadata
from .readers import read_document

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

MAX_PREVIEW_CHUNKS = 8
PREVIEW_TEXT_LENGTH = 500
PREVIEW_TTL_SECONDS = 30 * 60


@dataclass(slots=True)
class UploadResult:
    """Outcome of an upload, preview or save request."""

    success: bool
    message: str
    file_name: str = ""
    collection: Optional[str] = None
    segment_count: int = 0
    segments: List[Segment] = field(default_factory=list)
    cache_key: Optional[str] = None


@dataclass(slots=True)
class _CachedPreview:
    file_name: str
    segments: List[Segment]
    expires_at: float


class DocumentUploadService:
    """Split one uploaded file and store it in an existing collection."""

    def __init__(
        self,
        registry: CollectionRegistry,
        *,
        splitters: Optional[SplitterRegistry] = None,
        reader: Callable[[str], Sequence[str]] = read_document,
        preview_ttl: float = PREVIEW_TTL_SECONDS,
    ) -> None:
        self.registry = registry
        self.splitters = splitters or SplitterRegistry()
        self.reader = reader
        self.preview_ttl = preview_ttl
        self._previews: Dict[str, _CachedPreview] = {}
        self._lock = threading.Lock()

    def available_collections(self) -> List[str]:
        return self.registry.list_all()

    def _split(
        self,
        path: Path,
        file_name: str,
        splitter: str,
        *,
        is_active: bool,
        valid_from: Optional[str],
        valid_to: Optional[str],
        uploader: Optional[str],
    ) -> List[Segment]:
        blocks = self.reader(str(path))
        if not any(block.strip() for block in blocks):
            raise DocQAError("File content is empty or could not be read")
        metadata = build_segment_metadata(
            file_name,
            is_active=is_active,
            valid_from=valid_from,
            valid_to=valid_to,
            uploader=uploader,
        )
        return self.splitters.get(splitter).split_blocks(blocks, metadata)

    def _reject_collection(self, collection: str, file_name: str) -> Optional[UploadResult]:
        """Return a failed result when ``collection`` is malformed or absent."""

        try:
            exists = self.registry.exists(collection)
        except ValidationError as exc:
            return UploadResult(success=False, message=str(exc), file_name=file_name, collection=collection)
        if not exists:
            return UploadResult(
                success=False,
                message=f"Collection '{collection}' does not exist; create it first",
                file_name=file_name,
                collection=collection,
            )
        return None

    def _unknown_splitter(self, splitter: str, file_name: str) -> UploadResult:
        return UploadResult(
            success=False,
            message=(
                f"Unsupported splitter type: {splitter}. "
                f"Supported types: {', '.join(self.splitters.available())}"
            ),
            file_name=file_name,
        )

    def upload(
        self,
        path: str | Path,
        collection: str,
        *,
        file_name: Optional[str] = None,
        splitter: str = SplitStrategy.TOKEN.value,
        is_active: bool = True,
        valid_from: Optional[str] = None,
        valid_to: Optional[str] = None,
        uploader: Optional[str] = None,
        preview_only: bool = False,
    ) -> UploadResult:
        """Split ``path`` and, unless ``preview_only``, write it to ``collection``."""

        file_path = Path(path)
        name = file_name or file_path.name
        if not self.splitters.is_available(splitter):
            return self._unknown_splitter(splitter, name)

        if not preview_only:
            rejected = self._reject_collection(collection, name)
            if rejected is not None:
                return rejected

        started = time.perf_counter()
        try:
            segments = self._split(
                file_path,
                name,
                splitter,
                is_active=is_active,
                valid_from=valid_from,
                valid_to=valid_to,
                uploader=uploader,
            )
            if not preview_only:
                self.registry.get_or_create(collection).add(segments)
        except DocQAError as exc:
            LOGGER.warning("Upload of %s failed: %s", name, exc)
            return UploadResult(success=False, message=str(exc), file_name=name, collection=collection)

        AUDIT_LOGGER.info(
            {
                "event": "upload",
                "file_name": name,
                "collection": collection,
                "splitter": splitter,
                "segments": len(segments),
                "preview_only": preview_only,
                "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            }
        )
        return UploadResult(
            success=True,
            message="Preview generated" if preview_only else "Document stored",
            file_name=name,
            collection=collection,
            segment_count=len(segments),
            segments=segments,
        )

    def preview(
        self,
        path: str | Path,
        *,
        file_name: Optional[str] = None,
        splitter: str = SplitStrategy.TOKEN.value,
        is_active: bool = True,
        valid_from: Optional[str] = None,
        valid_to: Optional[str] = None,
        uploader: Optional[str] = None,
    ) -> UploadResult:
        """Split without storing; keep the full split for :meth:`save_preview`.

        The returned segments are capped at eight, each truncated to 500
        characters. ``segment_count`` is the full count.
        """

        file_path = Path(path)
        name = file_name or file_path.name
        if not self.splitters.is_available(splitter):
            return self._unknown_splitter(splitter, name)
        try:
            segments = self._split(
                file_path,
                name,
                splitter,
                is_active=is_active,
                valid_from=valid_from,
                valid_to=valid_to,
                uploader=uploader,
            )
        except DocQAError as exc:
            LOGGER.warning("Preview of %s failed: %s", name, exc)
            return UploadResult(success=False, message=str(exc), file_name=name)

        cache_key = uuid.uuid4().hex
        with self._lock:
            self._evict_expired()
            self._previews[cache_key] = _CachedPreview(
                file_name=name,
                segments=segments,
                expires_at=time.monotonic() + self.preview_ttl,
            )

        preview_segments = [
            Segment(
                text=segment.text
                if len(segment.text) <= PREVIEW_TEXT_LENGTH
                else segment.text[:PREVIEW_TEXT_LENGTH] + "...",
                metadata=dict(segment.metadata),
            )
            for segment in segments[:MAX_PREVIEW_CHUNKS]
        ]
        return UploadResult(
            success=True,
            message="Preview generated",
            file_name=name,
            segment_count=len(segments),
            segments=preview_segments,
            cache_key=cache_key,
        )

    def save_preview(self, cache_key: str, collection: str) -> UploadResult:
        """Persist a previously previewed split into ``collection``."""

        with self._lock:
            self._evict_expired()
            cached = self._previews.get(cache_key)
        if cached is None:
            return UploadResult(
                success=False,
                message="Preview expired or not found; split the document again",
                collection=collection,
            )
        rejected = self._reject_collection(collection, cached.file_name)
        if rejected is not None:
            return rejected
        try:
            self.registry.get_or_create(collection).add(cached.segments)
        except DocQAError as exc:
            LOGGER.warning("Saving preview %s failed: %s", cache_key, exc)
            return UploadResult(
                success=False, message=str(exc), file_name=cached.file_name, collection=collection
            )
        with self._lock:
            self._previews.pop(cache_key, None)
        return UploadResult(
            success=True,
            message="Document stored",
            file_name=cached.file_name,
            collection=collection,
            segment_count=len(cached.segments),
            segments=cached.segments,
        )

    def _evict_expired(self) -> None:
        now = time.monotonic()
        for key in [key for key, entry in self._previews.items() if entry.expires_at <= now]:
            del self._previews[key]


__all__ = ["DocumentUploadService", "MAX_PREVIEW_CHUNKS", "PREVIEW_TEXT_LENGTH", "UploadResult"]
