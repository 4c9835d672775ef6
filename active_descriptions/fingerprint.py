"""Diff fingerprints: the logical edit a snapshot introduces over its parents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Hashable, Iterable, Iterator

from .backend import RevisionBackend
from .errors import BackendReadError, StalenessError
from .model import DiffEntry, RevisionSnapshot
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("active_descriptions.fingerprint")

Change = tuple[Hashable | None, Hashable | None]


class DiffFingerprint(Mapping[str, Change]):
    """Immutable, path-sorted mapping of ``path -> (before, after)``.

    Equality is structural: two fingerprints are equal when they hold the
    same paths with the same value pairs, whatever snapshots produced them.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[tuple[str, Change]] = ()) -> None:
        self._items: dict[str, Change] = dict(sorted(items, key=lambda kv: kv[0]))

    @classmethod
    def from_entries(cls, entries: Iterable[DiffEntry]) -> DiffFingerprint:
        collected: dict[str, Change] = {}
        for entry in entries:
            if entry.path in collected:
                raise BackendReadError(f"duplicate path in diff stream: {entry.path}")
            collected[entry.path] = (entry.before, entry.after)
        return cls(collected.items())

    def __getitem__(self, path: str) -> Change:
        return self._items[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DiffFingerprint):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._items.items()))

    def __repr__(self) -> str:
        return f"DiffFingerprint({self._items!r})"

    def paths(self) -> tuple[str, ...]:
        return tuple(self._items)


def fingerprint(backend: RevisionBackend, snapshot: RevisionSnapshot) -> DiffFingerprint:
    """Drain the diff between ``snapshot`` and its merged parent tree."""
    stream = backend.tree_diff(backend.parent_tree(snapshot), snapshot.tree)
    try:
        fp = DiffFingerprint.from_entries(stream)
    except StalenessError:
        raise
    except (OSError, ValueError) as exc:
        raise BackendReadError(
            f"failed to read diff for {snapshot.snapshot_id}: {exc}"
        ) from exc
    log_event(
        _LOG,
        "fingerprint.computed",
        snapshot_id=snapshot.snapshot_id,
        paths=len(fp),
    )
    return fp


def changed_paths(described: DiffFingerprint, current: DiffFingerprint) -> tuple[str, ...]:
    """Paths whose per-path edit differs between two fingerprints."""
    changed = {path for path, change in current.items() if described.get(path) != change}
    # Edits undone since the description was set.
    changed.update(path for path in described if path not in current)
    return tuple(sorted(changed))
