"""Shared fixtures for the docqa test-suite."""
from __future__ import annotations

import hashlib
import math
import re
from typing import List, Sequence

import pytest

from docqa import config, embeddings, llm, vectorstore
from docqa.vectorstore import CollectionRegistry, InMemoryDocumentStore

_WORD_RE = re.compile(r"[a-z0-9]+")


class KeywordEmbedder:
    """Bag-of-words embedder so that overlapping texts score as similar."""

    dimension = 64

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.sha256(word.encode("utf-8")).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("VECTOR_STORE", "memory")
    monkeypatch.setenv("EMBEDDING_BACKEND", "hash")
    monkeypatch.setenv("LLM_BACKEND", "mock")
    config.reset_settings_cache()
    embeddings.reset_embedding_model_cache()
    vectorstore.reset_document_store_cache()
    llm.reset_completion_service_cache()
    yield
    config.reset_settings_cache()
    embeddings.reset_embedding_model_cache()
    vectorstore.reset_document_store_cache()
    llm.reset_completion_service_cache()


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def store(embedder: KeywordEmbedder) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(embedding_model=embedder)


@pytest.fixture
def registry(store: InMemoryDocumentStore) -> CollectionRegistry:
    return CollectionRegistry(store)
