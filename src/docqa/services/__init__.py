"""Service layer orchestrating retrieval and completion."""

from .query import AnswerResult, PreparedQuery, QueryService, get_query_service

__all__ = ["AnswerResult", "PreparedQuery", "QueryService", "get_query_service"]
