"""Composable retrieval stages."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from docqa.llm import CompletionService
from docqa.models import Query, Segment
from docqa.vectorstore.base import CollectionHandle

from .prompts import (
    COMPRESSION_PROMPT,
    CONTEXT_PROMPT,
    EMPTY_CONTEXT_PROMPT,
    MULTI_QUERY_PROMPT,
    REWRITE_PROMPT,
    fill,
)

LOGGER = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class QueryTransformer(ABC):
    @abstractmethod
    def transform(self, query: Query) -> Query:
        """Return a new query; the input is never modified."""


class QueryExpander(ABC):
    @abstractmethod
    def expand(self, query: Query) -> List[Query]:
        ...


class DocumentRetriever(ABC):
    @abstractmethod
    def retrieve(self, query: Query) -> List[Segment]:
        ...


class DocumentJoiner(ABC):
    @abstractmethod
    def join(self, documents_for_query: Mapping[Query, List[List[Segment]]]) -> List[Segment]:
        ...


class DocumentPostProcessor(ABC):
    @abstractmethod
    def process(self, query: Query, documents: List[Segment]) -> List[Segment]:
        ...


class QueryAugmenter(ABC):
    @abstractmethod
    def augment(self, query: Query, documents: List[Segment]) -> Query:
        ...


class RewriteQueryTransformer(QueryTransformer):
    """Ask the completion service for a search-friendly version of the query."""

    def __init__(self, completion: CompletionService, *, target: str = "vector store") -> None:
        self.completion = completion
        self.target = target

    def transform(self, query: Query) -> Query:
        prompt = fill(REWRITE_PROMPT, target=self.target, query=query.text)
        try:
            rewritten = self.completion.generate(prompt).strip()
        except Exception as exc:
            LOGGER.warning("Query rewrite failed, keeping original query: %s", exc)
            return query
        if not rewritten:
            LOGGER.warning("Query rewrite returned nothing, keeping original query")
            return query
        return query.with_text(rewritten)


class CompressionQueryTransformer(QueryTransformer):
    """Fold conversation history and a follow-up into one standalone query."""

    def __init__(self, completion: CompletionService) -> None:
        self.completion = completion

    def transform(self, query: Query) -> Query:
        if not query.history:
            return query
        prompt = fill(COMPRESSION_PROMPT, history="\n".join(query.history), query=query.text)
        try:
            compressed = self.completion.generate(prompt).strip()
        except Exception as exc:
            LOGGER.warning("Query compression failed, keeping original query: %s", exc)
            return query
        if not compressed:
            return query
        return query.with_text(compressed)


class MultiQueryExpander(QueryExpander):
    """Fan one query out into several phrasings.

    When the service answers with the wrong number of variants, only the
    original query is used.
    """

    def __init__(
        self,
        completion: CompletionService,
        *,
        number_of_queries: int = 3,
        include_original: bool = True,
    ) -> None:
        if number_of_queries < 1:
            raise ValueError("number_of_queries must be at least 1")
        self.completion = completion
        self.number_of_queries = number_of_queries
        self.include_original = include_original

    def expand(self, query: Query) -> List[Query]:
        prompt = fill(MULTI_QUERY_PROMPT, number=str(self.number_of_queries), query=query.text)
        try:
            response = self.completion.generate(prompt)
        except Exception as exc:
            LOGGER.warning("Query expansion failed, using original query: %s", exc)
            return [query]

        variants = [line.strip() for line in response.splitlines() if line.strip()]
        if len(variants) != self.number_of_queries:
            LOGGER.warning(
                "Query expansion returned %s variants, expected %s; using original query",
                len(variants),
                self.number_of_queries,
            )
            return [query]

        expanded = [query.with_text(variant) for variant in variants]
        if self.include_original:
            expanded.insert(0, query)
        return expanded


class VectorStoreDocumentRetriever(DocumentRetriever):
    def __init__(
        self,
        handle: CollectionHandle,
        embedder: Embedder,
        *,
        top_k: int = 3,
        similarity_threshold: float = 0.2,
        filter_expression: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.handle = handle
        self.embedder = embedder
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold
        self.filter_expression = filter_expression

    def retrieve(self, query: Query) -> List[Segment]:
        if not query.text.strip():
            return []
        vector = self.embedder.embed_texts([query.text])[0]
        results = self.handle.search(vector, self.top_k, self.filter_expression)
        return [
            segment
            for segment in results
            if segment.score is None or segment.score >= self.similarity_threshold
        ]


class ConcatenationDocumentJoiner(DocumentJoiner):
    """Concatenate results in query order, dropping repeated (text, source) pairs."""

    def join(self, documents_for_query: Mapping[Query, List[List[Segment]]]) -> List[Segment]:
        seen: Set[Tuple[str, str]] = set()
        joined: List[Segment] = []
        for document_lists in documents_for_query.values():
            for documents in document_lists:
                for segment in documents:
                    identity = (segment.text, segment.source)
                    if identity in seen:
                        continue
                    seen.add(identity)
                    joined.append(segment)
        return joined


class LoggingDocumentPostProcessor(DocumentPostProcessor):
    def __init__(self, *, max_documents: Optional[int] = None) -> None:
        self.max_documents = max_documents

    def process(self, query: Query, documents: List[Segment]) -> List[Segment]:
        LOGGER.info("Retrieved %s documents for query %r", len(documents), query.text)
        if self.max_documents is not None:
            return documents[: self.max_documents]
        return documents


class ContextualQueryAugmenter(QueryAugmenter):
    def __init__(
        self,
        *,
        template: str = CONTEXT_PROMPT,
        empty_context_template: str = EMPTY_CONTEXT_PROMPT,
        allow_empty_context: bool = False,
    ) -> None:
        if "{context}" not in template or "{query}" not in template:
            raise ValueError("Augmentation template must contain {context} and {query}")
        self.template = template
        self.empty_context_template = empty_context_template
        self.allow_empty_context = allow_empty_context

    def augment(self, query: Query, documents: List[Segment]) -> Query:
        if not documents:
            if self.allow_empty_context:
                return query
            return query.with_text(self.empty_context_template)
        context = "\n".join(segment.text for segment in documents)
        return query.with_text(fill(self.template, context=context, query=query.text))


__all__ = [
    "CompressionQueryTransformer",
    "ConcatenationDocumentJoiner",
    "ContextualQueryAugmenter",
    "DocumentJoiner",
    "DocumentPostProcessor",
    "DocumentRetriever",
    "Embedder",
    "LoggingDocumentPostProcessor",
    "MultiQueryExpander",
    "QueryAugmenter",
    "QueryExpander",
    "QueryTransformer",
    "RewriteQueryTransformer",
    "VectorStoreDocumentRetriever",
]
