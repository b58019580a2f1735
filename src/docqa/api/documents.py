"""Batch ingestion and single file upload endpoints."""
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from docqa.errors import StoreUnavailableError, ValidationError
from docqa.ingest import DocumentUploadService, IngestionEngine, UploadResult
from docqa.models import Segment

from .dependencies import get_ingestion_engine, get_upload_service

router = APIRouter(prefix="/documents", tags=["documents"])


class ManifestIngestRequest(BaseModel):
    manifest_path: str = Field(..., min_length=1, description="Server side path of the CSV manifest.")


class IngestionResponse(BaseModel):
    total_tasks: int
    success_count: int
    fail_count: int
    errors: dict[str, str]


class SegmentPayload(BaseModel):
    text: str
    metadata: dict[str, Any]


class UploadResponse(BaseModel):
    success: bool
    message: str
    file_name: str
    collection: Optional[str] = None
    segment_count: int
    segments: list[SegmentPayload]
    cache_key: Optional[str] = None


class SavePreviewRequest(BaseModel):
    collection: str = Field(..., min_length=1)


def _serialise_segment(segment: Segment) -> SegmentPayload:
    return SegmentPayload(text=segment.text, metadata=dict(segment.metadata))


def _to_response(result: UploadResult, *, include_segments: bool) -> UploadResponse:
    return UploadResponse(
        success=result.success,
        message=result.message,
        file_name=result.file_name,
        collection=result.collection,
        segment_count=result.segment_count,
        segments=[_serialise_segment(segment) for segment in result.segments] if include_segments else [],
        cache_key=result.cache_key,
    )


def _normalised_collection(service: DocumentUploadService, collection: str) -> str:
    try:
        return service.registry.normalize(collection)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


async def _spool(file: UploadFile, directory: str) -> Path:
    name = Path(file.filename or "upload.txt").name
    target = Path(directory) / name
    target.write_bytes(await file.read())
    return target


@router.post("/ingest", response_model=IngestionResponse)
def ingest_manifest(
    request: ManifestIngestRequest,
    engine: IngestionEngine = Depends(get_ingestion_engine),
) -> IngestionResponse:
    """Run a blocking batch ingestion for the given manifest."""

    result = engine.ingest_manifest(request.manifest_path)
    return IngestionResponse(
        total_tasks=result.total_tasks,
        success_count=result.success_count,
        fail_count=result.fail_count,
        errors=dict(result.errors),
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    collection: str = Form(...),
    splitter: str = Form("TOKEN"),
    is_active: bool = Form(True),
    valid_from: Optional[str] = Form(None),
    valid_to: Optional[str] = Form(None),
    uploader: Optional[str] = Form(None),
    preview_only: bool = Form(False),
    service: DocumentUploadService = Depends(get_upload_service),
) -> UploadResponse:
    if not preview_only:
        collection = _normalised_collection(service, collection)
    with tempfile.TemporaryDirectory(prefix="docqa-upload-") as directory:
        path = await _spool(file, directory)
        try:
            result = service.upload(
                path,
                collection,
                splitter=splitter,
                is_active=is_active,
                valid_from=valid_from,
                valid_to=valid_to,
                uploader=uploader,
                preview_only=preview_only,
            )
        except StoreUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return _to_response(result, include_segments=preview_only)


@router.post("/preview", response_model=UploadResponse)
async def preview_document(
    file: UploadFile = File(...),
    splitter: str = Form("TOKEN"),
    is_active: bool = Form(True),
    valid_from: Optional[str] = Form(None),
    valid_to: Optional[str] = Form(None),
    uploader: Optional[str] = Form(None),
    service: DocumentUploadService = Depends(get_upload_service),
) -> UploadResponse:
    with tempfile.TemporaryDirectory(prefix="docqa-preview-") as directory:
        path = await _spool(file, directory)
        result = service.preview(
            path,
            splitter=splitter,
            is_active=is_active,
            valid_from=valid_from,
            valid_to=valid_to,
            uploader=uploader,
        )
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return _to_response(result, include_segments=True)


@router.post("/preview/{cache_key}/save", response_model=UploadResponse)
def save_preview(
    cache_key: str,
    request: SavePreviewRequest,
    service: DocumentUploadService = Depends(get_upload_service),
) -> UploadResponse:
    try:
        result = service.save_preview(cache_key, _normalised_collection(service, request.collection))
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return _to_response(result, include_segments=False)
