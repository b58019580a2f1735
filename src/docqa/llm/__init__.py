"""Completion service adapters."""

from functools import lru_cache

from .adapter import (
    CompletionError,
    CompletionService,
    MockCompletionService,
    OpenAICompatibleCompletionService,
    create_completion_service,
)


@lru_cache()
def get_completion_service() -> CompletionService:
    return create_completion_service()


def reset_completion_service_cache() -> None:
    get_completion_service.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "CompletionError",
    "CompletionService",
    "MockCompletionService",
    "OpenAICompatibleCompletionService",
    "create_completion_service",
    "get_completion_service",
    "reset_completion_service_cache",
]
