"""Document store backends and the collection registry."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from docqa.config import StoreSettings, get_settings
from docqa.errors import StoreUnavailableError

from .base import CollectionHandle, DocumentStore
from .mock_store import InMemoryDocumentStore
from .registry import CollectionRegistry, normalize_collection_name


def create_document_store(settings: Optional[StoreSettings] = None) -> DocumentStore:
    """Instantiate the backend selected by ``VECTOR_STORE``."""

    settings = settings or get_settings().store
    if settings.backend in {"memory", "mock"}:
        return InMemoryDocumentStore()
    if settings.backend == "chroma":
        from .chroma_store import ChromaDocumentStore

        return ChromaDocumentStore(settings.persist_dir)
    raise StoreUnavailableError(f"Unsupported VECTOR_STORE backend '{settings.backend}'")


@lru_cache()
def get_document_store() -> DocumentStore:
    return create_document_store()


@lru_cache()
def get_collection_registry() -> CollectionRegistry:
    """Return the process-wide registry bound to the configured store."""

    return CollectionRegistry(
        get_document_store(),
        reserved_prefixes=get_settings().store.reserved_prefixes,
    )


def reset_document_store_cache() -> None:
    """Clear cached store and registry instances (primarily for testing)."""

    get_collection_registry.cache_clear()  # type: ignore[attr-defined]
    get_document_store.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "CollectionHandle",
    "CollectionRegistry",
    "DocumentStore",
    "InMemoryDocumentStore",
    "StoreUnavailableError",
    "create_document_store",
    "get_collection_registry",
    "get_document_store",
    "normalize_collection_name",
    "reset_document_store_cache",
]
