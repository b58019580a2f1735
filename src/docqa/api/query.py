"""Question answering endpoints."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from docqa.errors import StoreUnavailableError, ValidationError
from docqa.models import Segment
from docqa.services.query import AnswerResult, QueryService

from .dependencies import get_query

router = APIRouter(prefix="/collections", tags=["query"])


class QueryRequest(BaseModel):
    """Request body accepted by the query endpoints."""

    question: str = Field(..., min_length=1, description="User question to ask against the collection.")
    conversation_id: Optional[str] = Field(None, description="Opaque id forwarded to the completion service.")
    history: list[str] = Field(default_factory=list, description="Earlier turns used to compress follow-ups.")


class AnswerSource(BaseModel):
    id: Optional[str]
    content: str
    distance: Optional[float]
    metadata: dict[str, Any]


class QueryResponse(BaseModel):
    collection: str
    question: str
    answer: str
    fast_path: bool
    sources: list[AnswerSource]


def _serialise_sources(segments: list[Segment]) -> list[AnswerSource]:
    return [
        AnswerSource(
            id=segment.id,
            content=segment.text,
            distance=segment.distance,
            metadata=dict(segment.metadata),
        )
        for segment in segments
    ]


@router.post("/{collection}/query", response_model=QueryResponse)
def query_collection(
    collection: str,
    request: QueryRequest,
    service: QueryService = Depends(get_query),
) -> QueryResponse:
    try:
        result: AnswerResult = service.answer(
            request.question,
            collection,
            conversation_id=request.conversation_id,
            history=request.history,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return QueryResponse(
        collection=result.collection,
        question=result.question,
        answer=result.answer,
        fast_path=result.fast_path,
        sources=_serialise_sources(result.sources),
    )


@router.post("/{collection}/query/stream")
def stream_collection_query(
    collection: str,
    request: QueryRequest,
    service: QueryService = Depends(get_query),
) -> StreamingResponse:
    """Stream answer tokens as plain text."""

    try:
        tokens = service.stream(
            request.question,
            collection,
            conversation_id=request.conversation_id,
            history=request.history,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return StreamingResponse(tokens, media_type="text/plain")
