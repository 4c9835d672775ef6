from __future__ import annotations

from pathlib import Path

from ._exec import run_command
from .config import Settings
from .util import log_event, setup_json_logger

CANDIDATE_TEMPLATE = 'commit_id ++ "\\n"'

_LOG = setup_json_logger("active_descriptions.candidates")


def gather_candidates(settings: Settings, cwd: Path | None = None) -> list[str]:
    """Evaluate the candidate revset and return full commit ids.

    Runs without ``--ignore-working-copy`` so jj snapshots the working copy
    first. Any failure (not a jj repo, jj missing, timeout) yields no
    candidates.
    """
    res = run_command(
        "jj_candidates",
        [
            settings.jj_binary,
            "log",
            "-r",
            settings.candidate_revset,
            "--no-graph",
            "--color=never",
            "-T",
            CANDIDATE_TEMPLATE,
        ],
        cwd,
        timeout=settings.command_timeout_s,
    )
    if not res.ok:
        log_event(_LOG, "candidates.unavailable", returncode=res.returncode)
        return []
    ids = [line.strip() for line in res.stdout.splitlines() if line.strip()]
    log_event(_LOG, "candidates.gathered", count=len(ids), revset=settings.candidate_revset)
    return ids
