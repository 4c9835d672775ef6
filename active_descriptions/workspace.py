from __future__ import annotations

from pathlib import Path

from ._exec import run_command
from .config import Settings
from .errors import WorkspaceError


def discover_workspace_root(settings: Settings, cwd: Path | None = None) -> Path:
    """Return the jj workspace root containing ``cwd`` (via ``jj root``).

    jj follows the ``.jj/repo`` pointer of secondary workspaces itself, so
    commands run from the workspace root reach the shared repo.
    """
    res = run_command(
        "jj_root",
        [settings.jj_binary, "root", "--ignore-working-copy"],
        cwd,
        timeout=settings.command_timeout_s,
    )
    root = res.stdout.strip()
    if not res.ok or not root:
        raise WorkspaceError(f"not a jj repo (jj root failed: {res.stderr.strip() or res.returncode})")
    return Path(root)

