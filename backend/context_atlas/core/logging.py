"""Structured JSON logging for Context Atlas.

Call sites attach structured fields through ``extra`` with a ``ctx_`` prefix::

    logger.info("Source ready", extra={"ctx_source_id": source.id, "ctx_chunk_count": 3})

The formatter collects those under a ``context`` object with the prefix
removed, so ingestion and query logs can be filtered on ``context.source_id``.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

CONTEXT_PREFIX = "ctx_"
LEVEL_ENV = "CTXA_LOG_LEVEL"
QUIET_LOGGERS = ("urllib3", "httpx", "multipart")


class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, context, error."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = extract_context(record)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def extract_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the record's ``ctx_*`` extras keyed without the prefix."""
    return {
        key[len(CONTEXT_PREFIX) :]: value
        for key, value in record.__dict__.items()
        if key.startswith(CONTEXT_PREFIX)
    }


def configure_logging(level: str | int | None = None, use_json: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    ``level`` defaults to ``CTXA_LOG_LEVEL`` (``INFO`` when unset). HTTP client
    libraries are held at ``WARNING`` so fetches do not flood ingestion logs.
    """
    root = logging.getLogger()
    root.setLevel(level or os.environ.get(LEVEL_ENV, "INFO").upper())
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "context_atlas") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "extract_context", "get_logger"]
