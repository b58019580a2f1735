"""JSON logging for the service and the ingestion audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

AUDIT_LOGGER_NAME = "docqa.ingest.audit"
AUDIT_FILE_NAME = "ingest_audit.log"

# Attributes every LogRecord carries; anything else was passed through ``extra``.
_STANDARD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class MinimalJSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Dict messages are merged into the top level object so audit events stay
    flat; ``extra`` fields are copied as-is.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        payload: Dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname,
            "module": record.name,
            "thread": record.threadName,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRIBUTES and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(log_dir: str | Path | None = None) -> None:
    """Send JSON logs to stderr and audit events to ``<log_dir>/ingest_audit.log``.

    ``LOG_DIR`` (default ``logs``) and ``LOG_LEVEL`` (default ``INFO``) are read
    from the environment when not given.
    """

    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "json"},
                "audit_file": {
                    "class": "logging.FileHandler",
                    "filename": str(directory / AUDIT_FILE_NAME),
                    "encoding": "utf-8",
                    "formatter": "json",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": ["audit_file"],
                    "propagate": False,
                }
            },
        }
    )


__all__ = ["AUDIT_LOGGER_NAME", "MinimalJSONFormatter", "configure_logging"]
