"""Simple in-memory document store for tests and local development."""
from __future__ import annotations

import logging
import math
import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from docqa.errors import NotFoundError, StoreUnavailableError
from docqa.models import Segment

from .base import CollectionHandle, DocumentStore

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from docqa.embeddings import EmbeddingModel

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _StoredItem:
    """Internal representation of a stored vector."""

    id: str
    embedding: List[float]
    text: str
    metadata: dict


@dataclass(slots=True)
class _Collection:
    name: str
    items: Dict[str, _StoredItem] = field(default_factory=dict)
    materialized: bool = False


def _cosine_distance(left: Sequence[float], right: Sequence[float]) -> float:
    if len(left) != len(right):
        raise ValueError("Embedding dimensions do not match")
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 1.0
    return 1.0 - dot / (left_norm * right_norm)


def _matches(metadata: dict, where: Optional[Dict[str, Any]]) -> bool:
    """Evaluate the subset of the Chroma ``where`` grammar used by the filters."""

    if not where:
        return True
    for key, expected in where.items():
        if key == "$and":
            if not all(_matches(metadata, clause) for clause in expected):
                return False
        elif key == "$or":
            if not any(_matches(metadata, clause) for clause in expected):
                return False
        elif isinstance(expected, dict):
            if "$eq" in expected and metadata.get(key) != expected["$eq"]:
                return False
            if "$ne" in expected and metadata.get(key) == expected["$ne"]:
                return False
        elif metadata.get(key) != expected:
            return False
    return True


class InMemoryCollectionHandle(CollectionHandle):
    def __init__(self, store: "InMemoryDocumentStore", collection: _Collection) -> None:
        self.name = collection.name
        self._store = store
        self._collection = collection

    def add(self, segments: Sequence[Segment]) -> List[str]:
        if not segments:
            return []
        self._store._check_available()
        embeddings = self._store.embedding_model.embed_texts([segment.text for segment in segments])
        ids: List[str] = []
        with self._store._lock:
            for segment, embedding in zip(segments, embeddings):
                item_id = segment.id or uuid.uuid4().hex
                self._collection.items[item_id] = _StoredItem(
                    id=item_id,
                    embedding=[float(value) for value in embedding],
                    text=segment.text,
                    metadata=dict(segment.metadata),
                )
                ids.append(item_id)
            self._collection.materialized = True
        return ids

    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Segment]:
        if top_k <= 0:
            return []
        self._store._check_available()
        with self._store._lock:
            self._store.search_calls += 1
            candidates = [
                item for item in self._collection.items.values() if _matches(item.metadata, where)
            ]
        scored = sorted(
            ((_cosine_distance(vector, item.embedding), item) for item in candidates),
            key=lambda pair: pair[0],
        )
        return [
            Segment(text=item.text, metadata=dict(item.metadata), id=item.id, distance=distance)
            for distance, item in scored[:top_k]
        ]

    def delete(self, ids: Sequence[str]) -> None:
        self._store._check_available()
        with self._store._lock:
            for item_id in ids:
                self._collection.items.pop(item_id, None)


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dictionary backed store.

    Collections created through :meth:`create` stay invisible to :meth:`exists`
    and :meth:`list_names` until the first write, mirroring search engines that
    allocate an index lazily.
    """

    requires_materialization = True

    def __init__(self, embedding_model: Optional["EmbeddingModel"] = None) -> None:
        if embedding_model is None:
            from docqa.embeddings import get_embedding_model

            embedding_model = get_embedding_model()
        self.embedding_model = embedding_model
        self.available = True
        self.create_calls = 0
        self.search_calls = 0
        self._lock = threading.RLock()
        self._collections: Dict[str, _Collection] = {}

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store is marked unavailable")

    def ping(self) -> None:
        self._check_available()

    def exists(self, name: str) -> bool:
        self._check_available()
        with self._lock:
            collection = self._collections.get(name)
            return collection is not None and collection.materialized

    def create(self, name: str) -> InMemoryCollectionHandle:
        self._check_available()
        with self._lock:
            self.create_calls += 1
            collection = self._collections.get(name)
            if collection is None:
                collection = _Collection(name=name)
                self._collections[name] = collection
                LOGGER.debug("Created in-memory collection %s", name)
        return InMemoryCollectionHandle(self, collection)

    def delete(self, name: str) -> bool:
        self._check_available()
        with self._lock:
            return self._collections.pop(name, None) is not None

    def count(self, name: str) -> int:
        self._check_available()
        with self._lock:
            collection = self._collections.get(name)
            if collection is None or not collection.materialized:
                raise NotFoundError(f"Collection '{name}' does not exist")
            return len(collection.items)

    def list_names(self) -> List[str]:
        self._check_available()
        with self._lock:
            return [name for name, collection in self._collections.items() if collection.materialized]


__all__ = ["InMemoryCollectionHandle", "InMemoryDocumentStore"]
