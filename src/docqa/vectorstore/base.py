"""Abstract document store contracts consumed by the collection registry."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from docqa.models import Segment


class CollectionHandle(ABC):
    """An opened, ready to use reference to one collection."""

    name: str

    @abstractmethod
    def add(self, segments: Sequence[Segment]) -> List[str]:
        """Embed and persist segments, returning their identifiers."""

    @abstractmethod
    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Segment]:
        """Return up to ``top_k`` nearest segments, closest first."""

    @abstractmethod
    def delete(self, ids: Sequence[str]) -> None:
        """Remove segments by identifier."""


class DocumentStore(ABC):
    """Physical storage engine for named collections.

    ``requires_materialization`` tells the registry whether a freshly created
    collection stays invisible until it has received a write.
    """

    requires_materialization: bool = False

    @abstractmethod
    def ping(self) -> None:
        """Raise :class:`StoreUnavailableError` when the backend is unreachable."""

    @abstractmethod
    def exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def create(self, name: str) -> CollectionHandle:
        ...

    @abstractmethod
    def delete(self, name: str) -> bool:
        ...

    @abstractmethod
    def count(self, name: str) -> int:
        ...

    @abstractmethod
    def list_names(self) -> List[str]:
        ...


__all__ = ["CollectionHandle", "DocumentStore"]
