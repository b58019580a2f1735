"""Collection lifecycle endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from docqa.errors import InvalidCollectionNameError, StoreUnavailableError
from docqa.vectorstore import CollectionRegistry

from .dependencies import get_registry

router = APIRouter(prefix="/collections", tags=["collections"])


class CreateCollectionRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Requested collection name; it is normalised.")


class CollectionInfo(BaseModel):
    name: str
    exists: bool
    document_count: int


class CollectionList(BaseModel):
    collections: list[str]


@router.get("", response_model=CollectionList)
def list_collections(registry: CollectionRegistry = Depends(get_registry)) -> CollectionList:
    try:
        return CollectionList(collections=registry.list_all())
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("", response_model=CollectionInfo, status_code=201)
def create_collection(
    request: CreateCollectionRequest,
    registry: CollectionRegistry = Depends(get_registry),
) -> CollectionInfo:
    try:
        name = registry.normalize(request.name)
        registry.get_or_create(name)
    except InvalidCollectionNameError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return CollectionInfo(
        name=name,
        exists=registry.exists(name),
        document_count=registry.document_count(name),
    )


@router.get("/{name}", response_model=CollectionInfo)
def describe_collection(name: str, registry: CollectionRegistry = Depends(get_registry)) -> CollectionInfo:
    try:
        normalized = registry.normalize(name)
    except InvalidCollectionNameError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if not registry.exists(normalized):
        raise HTTPException(status_code=404, detail=f"Collection '{normalized}' not found")
    return CollectionInfo(
        name=normalized,
        exists=True,
        document_count=registry.document_count(normalized),
    )


@router.delete("/{name}")
def delete_collection(name: str, registry: CollectionRegistry = Depends(get_registry)) -> dict[str, object]:
    try:
        deleted = registry.delete(name)
    except InvalidCollectionNameError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Collection '{name}' not found")
    return {"deleted": True, "name": registry.normalize(name)}
