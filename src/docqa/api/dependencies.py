"""Dependency factories shared by the API routers."""
from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException

from docqa.errors import StoreUnavailableError
from docqa.ingest import DocumentUploadService, IngestionEngine
from docqa.services.query import QueryService, get_query_service
from docqa.vectorstore import CollectionRegistry, get_collection_registry


def get_registry() -> CollectionRegistry:
    try:
        return get_collection_registry()
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@lru_cache()
def get_ingestion_engine() -> IngestionEngine:
    return IngestionEngine(get_collection_registry())


@lru_cache()
def get_upload_service() -> DocumentUploadService:
    return DocumentUploadService(get_collection_registry())


def get_query() -> QueryService:
    try:
        return get_query_service()
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
