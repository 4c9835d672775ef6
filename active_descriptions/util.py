from __future__ import annotations

import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import IO

DEBUG_ENV = "ACTIVE_DESCRIPTIONS_DEBUG"


def utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def debug_enabled(environ: dict[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return bool(env.get(DEBUG_ENV))


_REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def set_request_id(request_id: str | None) -> None:
    _REQUEST_ID.set(request_id)


def get_request_id() -> str:
    existing = _REQUEST_ID.get()
    if existing:
        return existing
    request_id = generate_request_id()
    _REQUEST_ID.set(request_id)
    return request_id


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "event": getattr(record, "event", record.msg),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", get_request_id()),
            "ts": utc_now_iso(),
        }
        fields = getattr(record, "fields", {})
        if isinstance(fields, dict):
            payload.update({k: fields[k] for k in sorted(fields)})
        return json.dumps(payload, sort_keys=True, default=str)


def setup_json_logger(name: str, *, stream: IO[str] | None = None) -> logging.Logger:
    """Return a JSON logger writing to ``stream`` (stderr by default).

    Hook stderr is shown to the agent in stop mode, so events are only
    emitted when ``ACTIVE_DESCRIPTIONS_DEBUG`` is set or a stream is given.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonLogFormatter())
        logger.addHandler(handler)
    logger.setLevel(logging.INFO if (stream is not None or debug_enabled()) else logging.WARNING)
    logger.propagate = False
    return logger


def enable_debug_logging() -> None:
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("active_descriptions"):
            logging.getLogger(name).setLevel(logging.INFO)


def log_event(logger: logging.Logger, event: str, **fields: object) -> None:
    logger.info(
        event,
        extra={"event": event, "fields": fields, "request_id": get_request_id()},
    )
