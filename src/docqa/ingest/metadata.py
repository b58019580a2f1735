"""Activation window parsing and segment metadata tagging."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from docqa.models import (
    DATE_FORMAT,
    FAR_FUTURE,
    FILE_NAME_KEY,
    IS_ACTIVE_KEY,
    UPLOAD_TIME_KEY,
    UPLOADER_KEY,
    VALID_END_KEY,
    VALID_FROM_KEY,
    Scalar,
)

LOGGER = logging.getLogger(__name__)


def parse_timestamp(value: Optional[str], default: datetime, *, field: str) -> datetime:
    """Parse a ``YYYY-MM-DD HH:MM:SS`` value, falling back to ``default``."""

    if value is None or not value.strip():
        return default
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError:
        LOGGER.warning("Unparseable %s %r; using %s", field, value, default.strftime(DATE_FORMAT))
        return default


def build_segment_metadata(
    file_name: str,
    *,
    is_active: bool,
    valid_from: Optional[str] = None,
    valid_to: Optional[str] = None,
    uploader: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Scalar]:
    now = now or datetime.now()
    metadata: Dict[str, Scalar] = {
        FILE_NAME_KEY: file_name,
        IS_ACTIVE_KEY: bool(is_active),
        VALID_FROM_KEY: parse_timestamp(valid_from, now, field="valid_from").strftime(DATE_FORMAT),
        VALID_END_KEY: parse_timestamp(valid_to, FAR_FUTURE, field="valid_to").strftime(DATE_FORMAT),
        UPLOAD_TIME_KEY: now.strftime(DATE_FORMAT),
    }
    if uploader:
        metadata[UPLOADER_KEY] = uploader
    return metadata


__all__ = ["build_segment_metadata", "parse_timestamp"]
