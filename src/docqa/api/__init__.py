"""HTTP routers."""

from .collections import router as collections_router
from .documents import router as documents_router
from .query import router as query_router

__all__ = ["collections_router", "documents_router", "query_router"]
