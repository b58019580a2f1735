"""Embedding helpers backed by Sentence Transformers or a deterministic hash."""
from __future__ import annotations

import hashlib
import logging
import random
import time
from functools import lru_cache
from typing import List, Optional, Sequence

from docqa.config import ModelSettings, get_settings
from docqa.errors import StoreUnavailableError

LOGGER = logging.getLogger(__name__)

HASH_DIMENSION = 384
HASH_BACKEND = "hash"
SENTENCE_TRANSFORMERS_BACKEND = "sentence-transformers"


class EmbeddingModel:
    """Turn texts into vectors using the backend chosen in configuration.

    The ``hash`` backend derives a pseudo-random vector from the sha256 of each
    text. It is stable across processes, which keeps tests and offline demos
    reproducible, but carries no semantic signal.
    """

    def __init__(self, settings: Optional[ModelSettings] = None) -> None:
        settings = settings or get_settings().models
        self.backend = settings.embedding_backend
        self._model = None
        self._dimension = HASH_DIMENSION

        if self.backend == HASH_BACKEND:
            self.model_name = "sha256-hash"
            return
        if self.backend != SENTENCE_TRANSFORMERS_BACKEND:
            raise ValueError(f"Unknown EMBEDDING_BACKEND '{self.backend}'")

        from sentence_transformers import SentenceTransformer

        try:
            self._model = SentenceTransformer(settings.embedding_model, device=settings.embedding_device)
        except Exception as error:  # pragma: no cover - depends on model availability
            raise StoreUnavailableError(
                f"Failed to initialise sentence-transformers model '{settings.embedding_model}'",
                cause=error,
            ) from error
        self.model_name = settings.embedding_model
        self._dimension = int(self._model.get_sentence_embedding_dimension())

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        started = time.perf_counter()
        if self._model is None:
            embeddings = [self._deterministic_embedding(str(text)) for text in texts]
        else:
            embeddings = self._model.encode(
                list(texts),
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=False,
            ).tolist()
        LOGGER.debug(
            "Embedded %s texts with %s in %.1f ms",
            len(texts),
            self.model_name,
            (time.perf_counter() - started) * 1000.0,
        )
        return embeddings

    def embed_query(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]

    def _deterministic_embedding(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
        rng = random.Random(seed)
        return [rng.uniform(-1.0, 1.0) for _ in range(self._dimension)]

    @property
    def dimension(self) -> int:
        return int(self._dimension)


@lru_cache()
def get_embedding_model() -> EmbeddingModel:
    """Return a cached embedding model instance."""

    return EmbeddingModel()


def reset_embedding_model_cache() -> None:
    """Clear the cached embedding model instance (primarily for testing)."""

    get_embedding_model.cache_clear()  # type: ignore[attr-defined]


__all__ = ["EmbeddingModel", "get_embedding_model", "reset_embedding_model_cache"]
