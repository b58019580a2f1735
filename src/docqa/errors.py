"""Exception hierarchy shared across the package."""
from __future__ import annotations


class DocQAError(Exception):
    """Base class for all package errors."""


class ValidationError(DocQAError):
    """Raised when user supplied input cannot be accepted."""


class InvalidCollectionNameError(ValidationError):
    """Raised when a collection name is empty after normalisation."""


class UnsupportedFormatError(ValidationError):
    """Raised when no document reader handles a file extension."""


class NotFoundError(DocQAError):
    """Raised when a required collection or file is absent."""


class StoreUnavailableError(DocQAError, RuntimeError):
    """Raised when the document store backend cannot be reached or initialised."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


__all__ = [
    "DocQAError",
    "InvalidCollectionNameError",
    "NotFoundError",
    "StoreUnavailableError",
    "UnsupportedFormatError",
    "ValidationError",
]
