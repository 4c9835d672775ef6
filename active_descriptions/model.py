from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable

DEFAULT_CHANGE_ID_LENGTH = 12


@dataclass(frozen=True)
class ChangeId:
    """Stable identifier for one evolving change."""

    value: str

    def short(self, length: int = DEFAULT_CHANGE_ID_LENGTH) -> str:
        return self.value[: min(length, len(self.value))]


@dataclass(frozen=True)
class TreeRef:
    """Backend-specific handle on a tree.

    ``kind`` is ``"tree"`` for a snapshot's own tree and ``"parents"`` for the
    merged view of the snapshot's parents.
    """

    snapshot_id: str
    kind: str = "tree"


@dataclass(frozen=True)
class RevisionSnapshot:
    snapshot_id: str
    change_id: ChangeId
    description: str
    tree: TreeRef
    parents: tuple[str, ...] = ()


@dataclass(frozen=True)
class DiffEntry:
    path: str
    before: Hashable | None
    after: Hashable | None


@dataclass(frozen=True)
class StalenessResult:
    change_id: str
    changed_paths: tuple[str, ...] = field(default_factory=tuple)
