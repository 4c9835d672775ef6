"""Presentation of staleness results to the calling agent."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import IO, Sequence

from .model import StalenessResult
from .retry import RetryCounter

EXIT_OK = 0
EXIT_BLOCK = 2

STOP_INSTRUCTIONS = (
    "You MUST update all stale descriptions before stopping. "
    "Ensure the active-descriptions:describe skill is loaded, "
    "then follow it for each stale change."
)


@dataclass(frozen=True)
class Outcome:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def emit(self, stdout: IO[str] | None = None, stderr: IO[str] | None = None) -> int:
        if self.stdout:
            print(self.stdout, file=stdout or sys.stdout)
        if self.stderr:
            print(self.stderr, file=stderr or sys.stderr)
        return self.exit_code


def format_message(results: Sequence[StalenessResult]) -> str:
    lines: list[str] = []
    for info in results:
        lines.append(f"Stale description: change {info.change_id} modified since last described.")
        if info.changed_paths:
            lines.append(f"  Changed: {', '.join(info.changed_paths)}")
    return "\n".join(lines)


def advisory(results: Sequence[StalenessResult]) -> Outcome:
    """PostToolUse mode: hook JSON on stdout, never blocks."""
    if not results:
        return Outcome(EXIT_OK)
    payload = {"hookSpecificOutput": {"additionalContext": format_message(results)}}
    return Outcome(EXIT_OK, stdout=json.dumps(payload))


def stop(results: Sequence[StalenessResult], counter: RetryCounter, max_retries: int) -> Outcome:
    """Stop mode: block with exit 2 until the retry budget is spent.

    A clean result re-arms the hook by clearing the counter.
    """
    if not results:
        counter.reset()
        return Outcome(EXIT_OK)
    if counter.exhausted(max_retries):
        return Outcome(EXIT_OK)
    counter.increment()
    return Outcome(EXIT_BLOCK, stderr=f"{format_message(results)}\n\n{STOP_INSTRUCTIONS}")
