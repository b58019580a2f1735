"""Chroma document store adapter."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import chromadb

from docqa.errors import NotFoundError, StoreUnavailableError
from docqa.models import Segment

from .base import CollectionHandle, DocumentStore

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection

    from docqa.embeddings import EmbeddingModel

LOGGER = logging.getLogger(__name__)

DEFAULT_DISTANCE_METRIC = "cosine"


class ChromaCollectionHandle(CollectionHandle):
    def __init__(self, collection: "Collection", embedding_model: "EmbeddingModel") -> None:
        self.name = collection.name
        self._collection = collection
        self._embedding_model = embedding_model

    def add(self, segments: Sequence[Segment]) -> List[str]:
        """Embed and upsert segments into the collection."""

        if not segments:
            return []

        ids = [segment.id or uuid.uuid4().hex for segment in segments]
        documents = [segment.text for segment in segments]
        embeddings = self._embedding_model.embed_texts(documents)
        metadatas = [_clean_metadata(segment.metadata) for segment in segments]
        try:
            self._collection.upsert(
                ids=ids,
                embeddings=[list(map(float, embedding)) for embedding in embeddings],
                documents=documents,
                metadatas=metadatas,
            )
        except Exception as exc:
            raise StoreUnavailableError(
                f"Failed to upsert segments into '{self.name}'", cause=exc
            ) from exc
        return ids

    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Segment]:
        """Query the underlying Chroma collection for the nearest neighbours."""

        if top_k <= 0:
            return []

        try:
            available = self._collection.count()
            if available == 0:
                return []
            result = self._collection.query(
                query_embeddings=[list(map(float, vector))],
                n_results=min(top_k, available),
                where=where or None,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise StoreUnavailableError(f"Chroma query on '{self.name}' failed", cause=exc) from exc

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        neighbours: List[Segment] = []
        for idx, doc, metadata, distance in zip(ids, documents, metadatas, distances):
            neighbours.append(
                Segment(
                    text=doc or "",
                    metadata=dict(metadata or {}),
                    id=str(idx),
                    distance=float(distance) if distance is not None else 0.0,
                )
            )
        return neighbours

    def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        try:
            self._collection.delete(ids=list(ids))
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to delete from '{self.name}'", cause=exc) from exc


def _clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    # Chroma rejects None and non-scalar metadata values.
    cleaned: Dict[str, Any] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        else:
            cleaned[key] = str(value)
    return cleaned


class ChromaDocumentStore(DocumentStore):
    """Adapter around a Chroma vector database.

    Chroma allocates a collection as soon as it is created, so no sentinel
    write is needed.
    """

    requires_materialization = False

    def __init__(
        self,
        persist_dir: str | Path | None = None,
        *,
        client: Optional["ClientAPI"] = None,
        embedding_model: Optional["EmbeddingModel"] = None,
        distance_metric: str = DEFAULT_DISTANCE_METRIC,
    ) -> None:
        if embedding_model is None:
            from docqa.embeddings import get_embedding_model

            embedding_model = get_embedding_model()
        self.embedding_model = embedding_model
        self.distance_metric = distance_metric

        try:
            if client is not None:
                self._client = client
            else:
                path = Path(persist_dir or "chroma_db")
                path.mkdir(parents=True, exist_ok=True)
                self._client = chromadb.PersistentClient(path=str(path))
        except Exception as exc:  # pragma: no cover - depends on chromadb runtime
            raise StoreUnavailableError(
                "Failed to initialise Chroma persistent client",
                cause=exc,
            ) from exc

    def ping(self) -> None:
        try:
            self._client.heartbeat()
        except Exception as exc:
            raise StoreUnavailableError("Chroma heartbeat failed", cause=exc) from exc

    def list_names(self) -> List[str]:
        try:
            collections = self._client.list_collections()
        except Exception as exc:
            raise StoreUnavailableError("Failed to list Chroma collections", cause=exc) from exc
        # Older clients return Collection objects, newer ones return names.
        return [getattr(collection, "name", collection) for collection in collections]

    def exists(self, name: str) -> bool:
        return name in self.list_names()

    def create(self, name: str) -> ChromaCollectionHandle:
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": self.distance_metric},
                embedding_function=None,
            )
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to create Chroma collection '{name}'", cause=exc) from exc
        return ChromaCollectionHandle(collection, self.embedding_model)

    def delete(self, name: str) -> bool:
        if not self.exists(name):
            return False
        try:
            self._client.delete_collection(name=name)
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to delete Chroma collection '{name}'", cause=exc) from exc
        return True

    def count(self, name: str) -> int:
        if not self.exists(name):
            raise NotFoundError(f"Collection '{name}' does not exist")
        try:
            collection = self._client.get_collection(name=name, embedding_function=None)
            return int(collection.count())
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to count Chroma collection '{name}'", cause=exc) from exc


__all__ = ["ChromaCollectionHandle", "ChromaDocumentStore"]
