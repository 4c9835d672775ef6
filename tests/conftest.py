from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Iterator

import pytest

from active_descriptions.backend import MemoryBackend

HOST_ENV_KEYS = (
    "ACTIVE_DESCRIPTIONS_DEBUG",
    "ACTIVE_DESCRIPTIONS_JJ",
    "CLAUDE_SESSION_ID",
)


def _canonical_env_hash(env: dict[str, str]) -> str:
    payload = json.dumps(sorted(env.items()), ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@pytest.fixture(autouse=True)
def isolate_runtime_state() -> Iterator[None]:
    environ_before = dict(os.environ)
    for key in HOST_ENV_KEYS:
        os.environ.pop(key, None)

    yield

    for name in list(logging.root.manager.loggerDict):
        if name.startswith("active_descriptions"):
            logging.getLogger(name).setLevel(logging.WARNING)

    for key in list(os.environ.keys()):
        if key not in environ_before:
            os.environ.pop(key, None)
    for key, value in environ_before.items():
        os.environ[key] = value

    assert _canonical_env_hash(dict(os.environ)) == _canonical_env_hash(environ_before)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()
