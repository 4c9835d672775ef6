"""Error kinds raised by the staleness core and its host integration.

Every error carries a stable ``code`` so callers and tests can tell causes
apart without matching on message text.
"""

from __future__ import annotations

E_NOT_FOUND = "E_NOT_FOUND"
E_BACKEND_READ = "E_BACKEND_READ"
E_MALFORMED_INPUT = "E_MALFORMED_INPUT"
E_NOT_A_WORKSPACE = "E_NOT_A_WORKSPACE"
E_CONFIG = "E_CONFIG"


class StalenessError(Exception):
    code = "E_STALENESS"

    def __init__(self, message: str) -> None:
        super().__init__(f"{self.code}: {message}")
        self.detail = message


class NotFound(StalenessError):
    """Unknown snapshot or tree reference."""

    code = E_NOT_FOUND


class BackendReadError(StalenessError):
    """I/O or decode failure while streaming a diff or walking history."""

    code = E_BACKEND_READ


class MalformedInput(StalenessError):
    """An externally supplied candidate id cannot be parsed."""

    code = E_MALFORMED_INPUT


class WorkspaceError(StalenessError):
    code = E_NOT_A_WORKSPACE


class ConfigError(StalenessError):
    code = E_CONFIG
