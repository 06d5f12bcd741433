"""Structured Logging - JSON log lines, with run-scoped fields bound per task.

Invariants:
    - Every line carries timestamp, level, logger and message
    - Fields bound with log_context() appear on every record emitted inside it,
      including records from tasks spawned inside it (asyncio copies contextvars)
    - An explicit extra={...} on a call wins over a bound field of the same name

Design Decisions:
    - stdlib logging + a Filter over a ContextVar: background runs outlive the
      request, so the project id travels with the task instead of the call site
    - setup_logging called once on startup via lifespan; LOG_FORMAT=text for dev
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

LOG_FIELDS = (
    "project_id", "provider", "model", "tool_name", "snapshot_id",
    "error_code", "attempt", "input_tokens", "output_tokens", "path",
)

_bound: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind fields to every log record emitted in this context."""
    token = _bound.set({**_bound.get(), **fields})
    try:
        yield
    finally:
        _bound.reset(token)


class ContextFieldsFilter(logging.Filter):
    """Copy bound log_context() fields onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _bound.get().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(
            (key, getattr(record, key)) for key in LOG_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install one root handler. Returns it so callers can detach it."""
    handler = logging.StreamHandler()
    handler.addFilter(ContextFieldsFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(project_id)s] %(message)s",
            defaults={"project_id": "-"},
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
