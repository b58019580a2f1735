"""FastAPI application entry point; serve with ``uvicorn docqa.main:app``."""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from docqa import __version__
from docqa.api import collections_router, documents_router, query_router
from docqa.errors import StoreUnavailableError
from docqa.logging_config import configure_logging
from docqa.vectorstore import get_document_store

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="DocQA API", version=__version__)
app.include_router(collections_router)
app.include_router(query_router)
app.include_router(documents_router)


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Readiness probe that ensures the document store answers."""

    try:
        get_document_store().ping()
    except StoreUnavailableError as exc:
        LOGGER.warning("Health check failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return "ok"
