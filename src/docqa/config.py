"""Environment driven settings for retrieval, ingestion and backends."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

LOGGER = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    flag = value.strip().lower()
    if flag in _TRUE_VALUES:
        return True
    if flag in _FALSE_VALUES:
        return False
    LOGGER.warning("Invalid boolean for %s: %s; using default %s", name, value, default)
    return default


def _optional_bool_from_env(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return _bool_from_env(name, False)


def _optional_str_from_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class RetrievalSettings:
    """Knobs controlling which retrieval stages run and how."""

    top_k: int = 3
    similarity_threshold: float = 0.2
    category: Optional[str] = None
    is_active: Optional[bool] = None
    enable_transform: bool = False
    enable_expand: bool = False
    enable_retrieve: bool = False
    enable_augment: bool = False
    enable_post_process: bool = False
    expand_queries: int = 3

    @property
    def any_stage_enabled(self) -> bool:
        return any(
            (
                self.enable_transform,
                self.enable_expand,
                self.enable_retrieve,
                self.enable_augment,
                self.enable_post_process,
            )
        )

    @classmethod
    def from_env(cls) -> "RetrievalSettings":
        return cls(
            top_k=_int_from_env("RETRIEVAL_TOP_K", 3),
            similarity_threshold=_float_from_env("RETRIEVAL_SIMILARITY_THRESHOLD", 0.2),
            category=_optional_str_from_env("RETRIEVAL_FILTER_CATEGORY"),
            is_active=_optional_bool_from_env("RETRIEVAL_FILTER_IS_ACTIVE"),
            enable_transform=_bool_from_env("RETRIEVAL_ENABLE_TRANSFORM", False),
            enable_expand=_bool_from_env("RETRIEVAL_ENABLE_EXPAND", False),
            enable_retrieve=_bool_from_env("RETRIEVAL_ENABLE_RETRIEVE", False),
            enable_augment=_bool_from_env("RETRIEVAL_ENABLE_AUGMENT", False),
            enable_post_process=_bool_from_env("RETRIEVAL_ENABLE_POST_PROCESS", False),
            expand_queries=_int_from_env("RETRIEVAL_EXPAND_QUERIES", 3),
        )


@dataclass(frozen=True)
class IngestionSettings:
    """Worker pool sizing and shutdown behaviour for batch ingestion."""

    workers: int = 3
    shutdown_timeout: float = 30.0
    queue_size: int = 100
    poll_interval: float = 0.1

    @classmethod
    def from_env(cls) -> "IngestionSettings":
        workers = _int_from_env("INGEST_WORKERS", 3)
        if workers < 1:
            LOGGER.warning("INGEST_WORKERS must be positive; using 1")
            workers = 1
        return cls(
            workers=workers,
            shutdown_timeout=_float_from_env("INGEST_SHUTDOWN_TIMEOUT", 30.0),
            queue_size=_int_from_env("INGEST_QUEUE_SIZE", 100),
            poll_interval=_float_from_env("INGEST_POLL_INTERVAL", 0.1),
        )


@dataclass(frozen=True)
class StoreSettings:
    backend: str = "memory"
    persist_dir: str = "chroma_db"
    reserved_prefixes: Tuple[str, ...] = field(default=(".", "top_queries"))

    @classmethod
    def from_env(cls) -> "StoreSettings":
        return cls(
            backend=os.getenv("VECTOR_STORE", "memory").strip().lower() or "memory",
            persist_dir=os.getenv("CHROMA_PERSIST_DIR", "chroma_db"),
        )


@dataclass(frozen=True)
class ModelSettings:
    embedding_backend: str = "hash"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_device: Optional[str] = None
    llm_backend: str = "mock"
    llm_base_url: str = "http://localhost:8000/v1"
    llm_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "ModelSettings":
        defaults = cls()
        return cls(
            embedding_backend=os.getenv("EMBEDDING_BACKEND", defaults.embedding_backend).strip().lower(),
            embedding_model=os.getenv("EMBEDDING_MODEL_PATH", defaults.embedding_model),
            embedding_device=_optional_str_from_env("EMBEDDING_DEVICE"),
            llm_backend=os.getenv("LLM_BACKEND", defaults.llm_backend).strip().lower(),
            llm_base_url=os.getenv("LLM_BASE_URL", defaults.llm_base_url),
            llm_api_key=_optional_str_from_env("LLM_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", defaults.llm_model),
            llm_timeout=_float_from_env("LLM_TIMEOUT", defaults.llm_timeout),
        )


@dataclass(frozen=True)
class Settings:
    retrieval: RetrievalSettings
    ingestion: IngestionSettings
    store: StoreSettings
    models: ModelSettings


@lru_cache()
def get_settings() -> Settings:
    """Return settings loaded from the environment (cached)."""

    return Settings(
        retrieval=RetrievalSettings.from_env(),
        ingestion=IngestionSettings.from_env(),
        store=StoreSettings.from_env(),
        models=ModelSettings.from_env(),
    )


def reset_settings_cache() -> None:
    """Clear cached settings so the environment is read again (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "IngestionSettings",
    "ModelSettings",
    "RetrievalSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "reset_settings_cache",
]
