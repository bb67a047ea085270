from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

LIBRARY_LOGGER = "s3core"

_RECORD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Never written to a log line verbatim.
_SECRET_FIELDS = frozenset({"authorization", "secret_access_key", "x-amz-signature", "signature"})
# SigV4 signatures embedded in presigned URLs and Authorization values.
_SIGNATURE_PATTERN = re.compile(r"((?:X-Amz-)?Signature=)[0-9a-fA-F]+")

logging.getLogger(LIBRARY_LOGGER).addHandler(logging.NullHandler())


def _redact(key: str, value: Any) -> Any:
    if not value:
        return value
    if key.lower() in _SECRET_FIELDS:
        return "***"
    if isinstance(value, str):
        return _SIGNATURE_PATTERN.sub(r"\1***", value)
    return value


class _ContextFormatter(logging.Formatter):
    """Base for the library formatters: service tag, UTC record time and redacted context."""

    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def timestamp(self, record: logging.LogRecord) -> datetime:
        return datetime.fromtimestamp(record.created, tz=timezone.utc)

    def context(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: _redact(key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }

    def message(self, record: logging.LogRecord) -> str:
        return _SIGNATURE_PATTERN.sub(r"\1***", record.getMessage())


class JsonFormatter(_ContextFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "message": self.message(record),
        }
        context = self.context(record)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class TextFormatter(_ContextFormatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            self.timestamp(record).strftime("%Y-%m-%dT%H:%M:%S%z"),
            record.levelname,
            record.name,
            f"service={self.service}",
            f"message={self.message(record)}",
        ]
        context = self.context(record)
        parts.extend(f"{key}={value!r}" for key, value in sorted(context.items()))
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class _ContextAdapter(logging.LoggerAdapter):
    # Per-call extra wins over the bound context instead of replacing it.
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def configure_logging(level: str | None = None, service: str = "s3core", logger_name: str = LIBRARY_LOGGER) -> logging.Logger:
    """Attach a single stderr handler to ``logger_name`` (the library logger by default).

    ``LOG_LEVEL`` and ``LOG_JSON`` are read from the environment when not given.
    Calling it again replaces the handler instead of stacking a second one.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    formatter = JsonFormatter(service) if _env_flag("LOG_JSON") else TextFormatter(service)
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(formatter)

    target = logging.getLogger(logger_name)
    target.handlers = [h for h in target.handlers if isinstance(h, logging.NullHandler)]
    target.addHandler(handler)
    target.setLevel(getattr(logging, level_name, logging.INFO))
    return target


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, kept under the library logger so one handler covers it."""
    if name != LIBRARY_LOGGER and not name.startswith(LIBRARY_LOGGER + "."):
        name = f"{LIBRARY_LOGGER}.{name}"
    return logging.getLogger(name)


def with_context(logger: logging.Logger, **context: Any) -> logging.LoggerAdapter:
    return _ContextAdapter(logger, context)
