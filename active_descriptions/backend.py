"""Revision backend adapters.

The staleness core only talks to a backend through :class:`RevisionBackend`.
:class:`MemoryBackend` keeps an arena of immutable snapshots and is what the
test-suite and embedders use; :mod:`active_descriptions.jj` drives the ``jj``
binary.
"""

from __future__ import annotations

import hashlib
import json
from typing import Hashable, Iterator, Mapping, Protocol

from .errors import NotFound
from .model import ChangeId, DiffEntry, RevisionSnapshot, TreeRef


class RevisionBackend(Protocol):
    def resolve(self, snapshot_id: str) -> RevisionSnapshot: ...

    def parent_tree(self, snapshot: RevisionSnapshot) -> TreeRef: ...

    def tree_diff(self, tree_a: TreeRef, tree_b: TreeRef) -> Iterator[DiffEntry]: ...

    def predecessors(self, snapshot: RevisionSnapshot) -> Iterator[RevisionSnapshot]: ...


def _snapshot_hash(payload: dict) -> str:
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=repr)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:40]


class MemoryBackend:
    """In-memory arena of snapshots indexed by position.

    Trees are plain ``path -> value`` mappings. The merged parent view
    overlays parent trees in order, so later parents win on conflicting
    paths; a snapshot without parents diffs against the empty tree.
    """

    def __init__(self) -> None:
        self._arena: list[RevisionSnapshot] = []
        self._index: dict[str, int] = {}
        self._trees: dict[str, dict[str, Hashable]] = {}
        self._predecessor: dict[str, str | None] = {}

    def __len__(self) -> int:
        return len(self._arena)

    def add(
        self,
        change_id: str,
        files: Mapping[str, Hashable],
        *,
        description: str = "",
        parents: tuple[RevisionSnapshot, ...] | list[RevisionSnapshot] = (),
        predecessor: RevisionSnapshot | None = None,
    ) -> RevisionSnapshot:
        parent_ids = tuple(p.snapshot_id for p in parents)
        for pid in parent_ids:
            if pid not in self._index:
                raise NotFound(f"unknown parent snapshot {pid}")
        tree = {str(k): v for k, v in sorted(files.items())}
        pred_id = predecessor.snapshot_id if predecessor is not None else None
        snapshot_id = _snapshot_hash(
            {
                "change_id": change_id,
                "description": description,
                "tree": tree,
                "parents": parent_ids,
                "predecessor": pred_id,
                "position": len(self._arena),
            }
        )
        snapshot = RevisionSnapshot(
            snapshot_id=snapshot_id,
            change_id=ChangeId(change_id),
            description=description,
            tree=TreeRef(snapshot_id),
            parents=parent_ids,
        )
        self._index[snapshot_id] = len(self._arena)
        self._arena.append(snapshot)
        self._trees[snapshot_id] = tree
        self._predecessor[snapshot_id] = pred_id
        return snapshot

    def rewrite(
        self,
        snapshot: RevisionSnapshot,
        *,
        files: Mapping[str, Hashable] | None = None,
        description: str | None = None,
        parents: tuple[RevisionSnapshot, ...] | list[RevisionSnapshot] | None = None,
    ) -> RevisionSnapshot:
        """Record a new snapshot of the same change, superseding ``snapshot``."""
        return self.add(
            snapshot.change_id.value,
            self._trees[snapshot.snapshot_id] if files is None else files,
            description=snapshot.description if description is None else description,
            parents=(
                tuple(self.resolve(pid) for pid in snapshot.parents)
                if parents is None
                else parents
            ),
            predecessor=snapshot,
        )

    def resolve(self, snapshot_id: str) -> RevisionSnapshot:
        try:
            return self._arena[self._index[snapshot_id]]
        except KeyError:
            raise NotFound(f"unknown snapshot {snapshot_id}") from None

    def parent_tree(self, snapshot: RevisionSnapshot) -> TreeRef:
        return TreeRef(snapshot.snapshot_id, kind="parents")

    def _materialize(self, ref: TreeRef) -> dict[str, Hashable]:
        if ref.snapshot_id not in self._trees:
            raise NotFound(f"unknown tree {ref.snapshot_id}")
        if ref.kind == "tree":
            return self._trees[ref.snapshot_id]
        if ref.kind == "parents":
            merged: dict[str, Hashable] = {}
            for pid in self.resolve(ref.snapshot_id).parents:
                merged.update(self._trees[pid])
            return merged
        raise NotFound(f"unknown tree kind {ref.kind!r}")

    def tree_diff(self, tree_a: TreeRef, tree_b: TreeRef) -> Iterator[DiffEntry]:
        before = self._materialize(tree_a)
        after = self._materialize(tree_b)
        return self._diff(before, after)

    @staticmethod
    def _diff(
        before: dict[str, Hashable], after: dict[str, Hashable]
    ) -> Iterator[DiffEntry]:
        for path in sorted(set(before) | set(after)):
            old = before.get(path)
            new = after.get(path)
            if old != new:
                yield DiffEntry(path=path, before=old, after=new)

    def predecessors(self, snapshot: RevisionSnapshot) -> Iterator[RevisionSnapshot]:
        current: str | None = self.resolve(snapshot.snapshot_id).snapshot_id
        while current is not None:
            yield self._arena[self._index[current]]
            current = self._predecessor[current]
