from __future__ import annotations

import io
import json
import logging

from active_descriptions.util import (
    enable_debug_logging,
    log_event,
    set_request_id,
    setup_json_logger,
)


def test_structured_log_contains_required_fields() -> None:
    stream = io.StringIO()
    logger = setup_json_logger("tests.observability", stream=stream)
    set_request_id("req-smoke-001")

    log_event(logger, "smoke.event", command="check", stale=2)

    payload = json.loads(stream.getvalue().strip())
    for key in ("event", "level", "logger", "message", "request_id", "ts"):
        assert key in payload
    assert payload["event"] == "smoke.event"
    assert payload["request_id"] == "req-smoke-001"
    assert payload["stale"] == 2


def test_events_are_quiet_unless_debugging() -> None:
    logger = setup_json_logger("active_descriptions.smoke")
    assert logger.level == logging.WARNING
    assert not logger.isEnabledFor(logging.INFO)

    enable_debug_logging()

    assert logger.isEnabledFor(logging.INFO)


def test_debug_env_enables_events(monkeypatch) -> None:
    monkeypatch.setenv("ACTIVE_DESCRIPTIONS_DEBUG", "1")

    logger = setup_json_logger("active_descriptions.smoke_debug")

    assert logger.level == logging.INFO
