"""Flag driven assembly and execution of the retrieval stages."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from docqa.config import RetrievalSettings
from docqa.llm import CompletionService
from docqa.models import Query, Segment
from docqa.vectorstore.base import CollectionHandle

from .filters import build_filter_expression
from .stages import (
    CompressionQueryTransformer,
    ConcatenationDocumentJoiner,
    ContextualQueryAugmenter,
    DocumentJoiner,
    DocumentPostProcessor,
    DocumentRetriever,
    Embedder,
    LoggingDocumentPostProcessor,
    MultiQueryExpander,
    QueryAugmenter,
    QueryExpander,
    QueryTransformer,
    RewriteQueryTransformer,
    VectorStoreDocumentRetriever,
)

LOGGER = logging.getLogger(__name__)


class StageKind(str, Enum):
    TRANSFORM = "transform"
    EXPAND = "expand"
    RETRIEVE = "retrieve"
    JOIN = "join"
    POST_PROCESS = "post_process"
    AUGMENT = "augment"


Stage = Union[
    QueryTransformer,
    QueryExpander,
    DocumentRetriever,
    DocumentJoiner,
    DocumentPostProcessor,
    QueryAugmenter,
]


@dataclass(frozen=True)
class PipelineStage:
    kind: StageKind
    stage: Stage


@dataclass(slots=True)
class PipelineResult:
    """Final query for the completion service plus the supporting documents."""

    query: Query
    documents: List[Segment] = field(default_factory=list)
    augmented: bool = False
    fast_path: bool = False


class RetrievalPipeline:
    """Runs an ordered tuple of tagged stages for a single query."""

    def __init__(self, stages: Sequence[PipelineStage]) -> None:
        self.stages: Tuple[PipelineStage, ...] = tuple(stages)

    def _of_kind(self, kind: StageKind) -> List[Stage]:
        return [entry.stage for entry in self.stages if entry.kind is kind]

    @property
    def kinds(self) -> List[StageKind]:
        return [entry.kind for entry in self.stages]

    @staticmethod
    def fast_path_result(query: Query) -> PipelineResult:
        return PipelineResult(query=query, fast_path=True)

    def run(self, query: Query) -> PipelineResult:
        if not self.stages:
            return self.fast_path_result(query)

        current = query
        for transformer in self._of_kind(StageKind.TRANSFORM):
            current = transformer.transform(current)  # type: ignore[union-attr]

        expanders = self._of_kind(StageKind.EXPAND)
        variants = expanders[0].expand(current) if expanders else [current]  # type: ignore[union-attr]
        if not variants:
            variants = [current]

        documents: List[Segment] = []
        retrievers = self._of_kind(StageKind.RETRIEVE)
        if retrievers:
            documents_for_query = self._retrieve_all(retrievers, variants)
            joiners = self._of_kind(StageKind.JOIN)
            joiner = joiners[0] if joiners else ConcatenationDocumentJoiner()
            documents = joiner.join(documents_for_query)  # type: ignore[union-attr]

        for post_processor in self._of_kind(StageKind.POST_PROCESS):
            documents = post_processor.process(current, documents)  # type: ignore[union-attr]

        augmenters = self._of_kind(StageKind.AUGMENT)
        augmented = False
        for augmenter in augmenters:
            current = augmenter.augment(current, documents)  # type: ignore[union-attr]
            augmented = True

        return PipelineResult(query=current, documents=documents, augmented=augmented)

    @staticmethod
    def _retrieve_all(
        retrievers: List[Stage],
        variants: List[Query],
    ) -> Dict[Query, List[List[Segment]]]:
        """Retrieve for every variant in parallel, keeping the variant order."""

        def retrieve(variant: Query) -> List[List[Segment]]:
            results: List[List[Segment]] = []
            for retriever in retrievers:
                try:
                    results.append(retriever.retrieve(variant))  # type: ignore[union-attr]
                except Exception as exc:
                    LOGGER.warning("Retrieval failed for query variant %r: %s", variant.text, exc)
                    results.append([])
            return results

        documents_for_query: Dict[Query, List[List[Segment]]] = {}
        with ThreadPoolExecutor(max_workers=len(variants), thread_name_prefix="retrieve") as executor:
            for variant, results in zip(variants, executor.map(retrieve, variants)):
                documents_for_query.setdefault(variant, []).extend(results)
        return documents_for_query


def build_pipeline(
    settings: RetrievalSettings,
    *,
    completion: CompletionService,
    embedder: Embedder,
    handle: Optional[CollectionHandle] = None,
) -> RetrievalPipeline:
    """Assemble the enabled stages in execution order."""

    stages: List[PipelineStage] = []
    if settings.enable_transform:
        stages.append(PipelineStage(StageKind.TRANSFORM, RewriteQueryTransformer(completion)))
        stages.append(PipelineStage(StageKind.TRANSFORM, CompressionQueryTransformer(completion)))
    if settings.enable_expand:
        stages.append(
            PipelineStage(
                StageKind.EXPAND,
                MultiQueryExpander(
                    completion,
                    number_of_queries=settings.expand_queries,
                    include_original=True,
                ),
            )
        )
    if settings.enable_retrieve:
        if handle is None:
            raise ValueError("A collection handle is required when retrieval is enabled")
        stages.append(
            PipelineStage(
                StageKind.RETRIEVE,
                VectorStoreDocumentRetriever(
                    handle,
                    embedder,
                    top_k=settings.top_k,
                    similarity_threshold=settings.similarity_threshold,
                    filter_expression=build_filter_expression(settings.category, settings.is_active),
                ),
            )
        )
        stages.append(PipelineStage(StageKind.JOIN, ConcatenationDocumentJoiner()))
    if settings.enable_post_process:
        stages.append(PipelineStage(StageKind.POST_PROCESS, LoggingDocumentPostProcessor()))
    if settings.enable_augment:
        stages.append(
            PipelineStage(StageKind.AUGMENT, ContextualQueryAugmenter(allow_empty_context=True))
        )
    return RetrievalPipeline(stages)


__all__ = [
    "PipelineResult",
    "PipelineStage",
    "RetrievalPipeline",
    "StageKind",
    "build_pipeline",
]
