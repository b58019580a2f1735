"""Question answering on top of the retrieval pipeline."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterator, List, Optional, Sequence

from docqa.config import RetrievalSettings, get_settings
from docqa.embeddings import EmbeddingModel, get_embedding_model
from docqa.errors import ValidationError
from docqa.llm import CompletionService, get_completion_service
from docqa.logging_config import AUDIT_LOGGER_NAME
from docqa.models import Query, Segment
from docqa.retrieval import PipelineResult, RetrievalPipeline, build_pipeline
from docqa.retrieval.prompts import DOCUMENTS_PROMPT, fill
from docqa.vectorstore import CollectionRegistry, get_collection_registry

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class AnswerResult:
    """Structured result returned from :meth:`QueryService.answer`."""

    question: str
    collection: str
    answer: str
    sources: List[Segment] = field(default_factory=list)
    fast_path: bool = False


@dataclass(slots=True)
class PreparedQuery:
    """The prompt that will be sent to the completion service."""

    prompt: str
    collection: str
    pipeline_result: PipelineResult


def _documents_prompt(query: Query, documents: Sequence[Segment]) -> str:
    listing = "\n\n".join(
        f"[{index}] (distance={segment.distance if segment.distance is not None else 'n/a'}) "
        f"{segment.source}\n{segment.text}"
        for index, segment in enumerate(documents, start=1)
    )
    return fill(DOCUMENTS_PROMPT, documents=listing, query=query.text)


class QueryService:
    """Answers questions against a collection through the retrieval pipeline."""

    def __init__(
        self,
        *,
        registry: Optional[CollectionRegistry] = None,
        completion: Optional[CompletionService] = None,
        embedder: Optional[EmbeddingModel] = None,
        settings: Optional[RetrievalSettings] = None,
    ) -> None:
        self.registry = registry or get_collection_registry()
        self.completion = completion or get_completion_service()
        self.embedder = embedder or get_embedding_model()
        self.settings = settings or get_settings().retrieval

    def _retrieval_ready(self, collection: str) -> bool:
        if not self.registry.exists(collection):
            LOGGER.info("Collection %s does not exist; answering without retrieval", collection)
            return False
        count = self.registry.document_count(collection)
        if count <= 0:
            LOGGER.info(
                "Collection %s has no readable documents (count=%s); answering without retrieval",
                collection,
                count,
            )
            return False
        return True

    def prepare(
        self,
        question: str,
        collection: str,
        *,
        history: Sequence[str] = (),
    ) -> PreparedQuery:
        """Run the gate and the pipeline, returning the final prompt."""

        if not question or not question.strip():
            raise ValidationError("Question must not be empty")
        normalized = self.registry.normalize(collection)
        query = Query(text=question, history=tuple(history))

        handle = None
        ready = self.settings.any_stage_enabled and self._retrieval_ready(normalized)
        if ready and self.settings.enable_retrieve:
            handle = self.registry.get(normalized)
            ready = handle is not None

        if not ready:
            result = RetrievalPipeline.fast_path_result(query)
        else:
            pipeline = build_pipeline(
                self.settings,
                completion=self.completion,
                embedder=self.embedder,
                handle=handle,
            )
            result = pipeline.run(query)

        if result.augmented or not result.documents:
            prompt = result.query.text
        else:
            prompt = _documents_prompt(result.query, result.documents)
        return PreparedQuery(prompt=prompt, collection=normalized, pipeline_result=result)

    def stream(
        self,
        question: str,
        collection: str,
        *,
        conversation_id: Optional[str] = None,
        history: Sequence[str] = (),
    ) -> Iterator[str]:
        """Yield answer tokens from the completion service."""

        prepared = self.prepare(question, collection, history=history)
        return self.completion.complete(prepared.prompt, conversation_id)

    def answer(
        self,
        question: str,
        collection: str,
        *,
        conversation_id: Optional[str] = None,
        history: Sequence[str] = (),
    ) -> AnswerResult:
        started = time.perf_counter()
        prepared = self.prepare(question, collection, history=history)
        answer = "".join(self.completion.complete(prepared.prompt, conversation_id))
        result = prepared.pipeline_result
        AUDIT_LOGGER.info(
            {
                "event": "query",
                "collection": prepared.collection,
                "fast_path": result.fast_path,
                "documents": len(result.documents),
                "conversation_id": conversation_id,
                "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            }
        )
        return AnswerResult(
            question=question,
            collection=prepared.collection,
            answer=answer,
            sources=list(result.documents),
            fast_path=result.fast_path,
        )


@lru_cache()
def get_query_service() -> QueryService:
    return QueryService()


__all__ = ["AnswerResult", "PreparedQuery", "QueryService", "get_query_service"]
