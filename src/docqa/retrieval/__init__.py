"""Retrieval stages and the pipeline that chains them."""

from .filters import build_filter_expression
from .pipeline import PipelineResult, PipelineStage, RetrievalPipeline, StageKind, build_pipeline
from .stages import (
    CompressionQueryTransformer,
    ConcatenationDocumentJoiner,
    ContextualQueryAugmenter,
    LoggingDocumentPostProcessor,
    MultiQueryExpander,
    RewriteQueryTransformer,
    VectorStoreDocumentRetriever,
)

__all__ = [
    "CompressionQueryTransformer",
    "ConcatenationDocumentJoiner",
    "ContextualQueryAugmenter",
    "LoggingDocumentPostProcessor",
    "MultiQueryExpander",
    "PipelineResult",
    "PipelineStage",
    "RetrievalPipeline",
    "RewriteQueryTransformer",
    "StageKind",
    "VectorStoreDocumentRetriever",
    "build_filter_expression",
    "build_pipeline",
]
