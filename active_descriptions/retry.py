from __future__ import annotations

import re
from pathlib import Path

RETRY_FILE_PREFIX = "claude-stale-desc-retries-"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class RetryCounter:
    """Session-scoped count of consecutive blocking stop-hook failures.

    The counter lives in one small file per session so it survives between
    hook invocations.
    """

    def __init__(self, session_id: str, directory: Path) -> None:
        self.session_id = session_id
        self.path = directory / f"{RETRY_FILE_PREFIX}{_UNSAFE.sub('_', session_id)}"

    def read(self) -> int:
        try:
            return max(int(self.path.read_text(encoding="utf-8").strip()), 0)
        except (OSError, ValueError):
            return 0

    def exhausted(self, limit: int) -> bool:
        return self.read() >= limit

    def increment(self) -> int:
        value = self.read() + 1
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(str(value), encoding="utf-8")
        return value

    def reset(self) -> None:
        self.path.unlink(missing_ok=True)
