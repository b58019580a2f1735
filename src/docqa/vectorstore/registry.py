"""Process-wide cache of collection handles and collection lifecycle helpers."""
from __future__ import annotations

import logging
import re
import threading
from typing import Dict, Iterable, List, Optional

from docqa.errors import InvalidCollectionNameError, StoreUnavailableError
from docqa.models import Segment

from .base import CollectionHandle, DocumentStore

LOGGER = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
DEFAULT_RESERVED_PREFIXES = (".", "top_queries")
SENTINEL_ID = "init"

_ILLEGAL_CHARS_RE = re.compile(r"[^a-z0-9_-]")
_LEADING_SEPARATORS_RE = re.compile(r"^[-_]+")


def normalize_collection_name(name: Optional[str]) -> str:
    """Map an arbitrary string onto a valid collection name.

    Lowercases, replaces every character outside ``[a-z0-9_-]`` with ``-``,
    strips leading separators and truncates to 255 characters.
    """

    if name is None or not name.strip():
        raise InvalidCollectionNameError("Collection name must not be empty")
    normalized = _ILLEGAL_CHARS_RE.sub("-", name.strip().lower())
    normalized = _LEADING_SEPARATORS_RE.sub("", normalized)[:MAX_NAME_LENGTH]
    if not normalized:
        raise InvalidCollectionNameError(f"Collection name '{name}' has no valid characters")
    return normalized


class CollectionRegistry:
    """Caches one :class:`CollectionHandle` per normalised collection name.

    Reads hit the handle dict without locking. Creation takes a per-name lock so
    that concurrent callers converge on the first handle created; the losers
    reuse the winner's handle instead of opening their own.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        reserved_prefixes: Iterable[str] = DEFAULT_RESERVED_PREFIXES,
    ) -> None:
        self.store = store
        self.reserved_prefixes = tuple(reserved_prefixes)
        self._handles: Dict[str, CollectionHandle] = {}
        self._creation_locks: Dict[str, threading.Lock] = {}

    @staticmethod
    def normalize(name: Optional[str]) -> str:
        return normalize_collection_name(name)

    def exists(self, name: str) -> bool:
        """Return whether the store knows the collection.

        Unreachable stores are reported as ``False`` because callers only use
        this as a gate.
        """

        normalized = self.normalize(name)
        try:
            return bool(self.store.exists(normalized))
        except Exception as exc:
            LOGGER.warning("Existence check for collection %s failed: %s", normalized, exc)
            return False

    def document_count(self, name: str) -> int:
        """Return the number of stored segments, or ``-1`` when unknown."""

        normalized = self.normalize(name)
        try:
            return int(self.store.count(normalized))
        except Exception as exc:
            LOGGER.warning("Document count for collection %s failed: %s", normalized, exc)
            return -1

    def get(self, name: str) -> Optional[CollectionHandle]:
        normalized = self.normalize(name)
        handle = self._handles.get(normalized)
        if handle is not None:
            return handle
        if self.exists(normalized):
            return self.get_or_create(normalized)
        return None

    def get_or_create(self, name: str) -> CollectionHandle:
        normalized = self.normalize(name)
        handle = self._handles.get(normalized)
        if handle is not None:
            return handle

        try:
            self.store.ping()
        except StoreUnavailableError:
            raise
        except Exception as exc:
            raise StoreUnavailableError("Document store is unreachable", cause=exc) from exc

        lock = self._creation_locks.setdefault(normalized, threading.Lock())
        with lock:
            handle = self._handles.get(normalized)
            if handle is not None:
                return handle
            handle = self.store.create(normalized)
            if self.store.requires_materialization:
                self._materialize(handle)
            self._handles[normalized] = handle
            LOGGER.info("Opened collection handle %s", normalized)
            return handle

    def _materialize(self, handle: CollectionHandle) -> None:
        try:
            handle.add([Segment(text=SENTINEL_ID, metadata={}, id=SENTINEL_ID)])
            handle.delete([SENTINEL_ID])
        except Exception as exc:
            LOGGER.warning(
                "Sentinel write for collection %s failed; it will materialise on first write: %s",
                handle.name,
                exc,
            )

    def delete(self, name: str) -> bool:
        normalized = self.normalize(name)
        deleted = bool(self.store.delete(normalized))
        self._handles.pop(normalized, None)
        LOGGER.info("Deleted collection %s (existed=%s)", normalized, deleted)
        return deleted

    def list_all(self) -> List[str]:
        names = self.store.list_names()
        return sorted(
            name for name in names if not name.startswith(self.reserved_prefixes)
        )

    def cached_names(self) -> List[str]:
        return sorted(self._handles)


__all__ = ["CollectionRegistry", "normalize_collection_name"]
