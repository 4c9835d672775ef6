from __future__ import annotations

from typing import Iterator

import pytest

from active_descriptions.backend import MemoryBackend
from active_descriptions.errors import BackendReadError
from active_descriptions.fingerprint import DiffFingerprint, changed_paths, fingerprint
from active_descriptions.model import DiffEntry, TreeRef


def test_fingerprint_lists_only_paths_changed_from_parent(backend: MemoryBackend) -> None:
    parent = backend.add("pppp", {"base.txt": "base", "keep.txt": "k"}, description="base")
    child = backend.add(
        "cccc",
        {"base.txt": "base2", "keep.txt": "k", "new.txt": "n"},
        description="feat",
        parents=[parent],
    )

    fp = fingerprint(backend, child)

    assert list(fp) == ["base.txt", "new.txt"]
    assert fp["base.txt"] == ("base", "base2")
    assert fp["new.txt"] == (None, "n")
    assert "keep.txt" not in fp


def test_root_snapshot_diffs_against_empty_tree(backend: MemoryBackend) -> None:
    snap = backend.add("kkkk", {"b.txt": "2", "a.txt": "1"})

    assert fingerprint(backend, snap).paths() == ("a.txt", "b.txt")


def test_fingerprint_ignores_parent_identity(backend: MemoryBackend) -> None:
    p1 = backend.add("p1p1", {"base.txt": "base"})
    p2 = backend.add("p2p2", {"base.txt": "base", "other.txt": "o"})
    on_p1 = backend.add("kkkk", {"base.txt": "base", "feat.txt": "f"}, parents=[p1])
    on_p2 = backend.add(
        "kkkk", {"base.txt": "base", "other.txt": "o", "feat.txt": "f"}, parents=[p2]
    )

    assert on_p1.snapshot_id != on_p2.snapshot_id
    assert fingerprint(backend, on_p1) == fingerprint(backend, on_p2)


def test_merge_snapshot_diffs_against_merged_parents(backend: MemoryBackend) -> None:
    left = backend.add("llll", {"a.txt": "a"})
    right = backend.add("rrrr", {"b.txt": "b"})
    merge = backend.add("mmmm", {"a.txt": "a", "b.txt": "b", "c.txt": "c"}, parents=[left, right])

    assert fingerprint(backend, merge).paths() == ("c.txt",)


def test_fingerprint_is_deterministic(backend: MemoryBackend) -> None:
    snap = backend.add("kkkk", {"z.txt": "1", "a.txt": "2", "m/n.txt": "3"})

    first = fingerprint(backend, snap)
    second = fingerprint(backend, snap)

    assert first == second
    assert hash(first) == hash(second)
    assert list(first) == sorted(first)


def test_structural_equality_and_order_independence() -> None:
    a = DiffFingerprint([("b", (None, "1")), ("a", ("x", "y"))])
    b = DiffFingerprint([("a", ("x", "y")), ("b", (None, "1"))])
    c = DiffFingerprint([("a", ("x", "z")), ("b", (None, "1"))])

    assert a == b
    assert a != c
    assert a.paths() == ("a", "b")
    assert DiffFingerprint() == DiffFingerprint([])
    assert not DiffFingerprint()


class _BrokenStreamBackend(MemoryBackend):
    def tree_diff(self, tree_a: TreeRef, tree_b: TreeRef) -> Iterator[DiffEntry]:
        yield DiffEntry(path="a.txt", before=None, after="x")
        raise BackendReadError("object store read failed")


def test_read_error_mid_stream_is_not_an_empty_diff() -> None:
    backend = _BrokenStreamBackend()
    snap = backend.add("kkkk", {"a.txt": "x", "b.txt": "y"}, description="d")

    with pytest.raises(BackendReadError, match="object store read failed"):
        fingerprint(backend, snap)


class _IOErrorBackend(MemoryBackend):
    def tree_diff(self, tree_a: TreeRef, tree_b: TreeRef) -> Iterator[DiffEntry]:
        raise OSError("disk gone")
        yield  # pragma: no cover


def test_os_error_while_streaming_becomes_backend_read_error() -> None:
    backend = _IOErrorBackend()
    snap = backend.add("kkkk", {"a.txt": "x"})

    with pytest.raises(BackendReadError) as exc:
        fingerprint(backend, snap)
    assert exc.value.code == "E_BACKEND_READ"


def test_duplicate_path_in_stream_is_rejected() -> None:
    entries = [DiffEntry("a.txt", None, "1"), DiffEntry("a.txt", None, "2")]

    with pytest.raises(BackendReadError, match="duplicate path"):
        DiffFingerprint.from_entries(entries)


def test_changed_paths_covers_modified_added_and_undone_edits() -> None:
    described = DiffFingerprint(
        [
            ("same.txt", (None, "s")),
            ("modified.txt", (None, "v1")),
            ("undone.txt", ("u", "u2")),
        ]
    )
    current = DiffFingerprint(
        [
            ("same.txt", (None, "s")),
            ("modified.txt", (None, "v2")),
            ("added.txt", (None, "a")),
        ]
    )

    assert changed_paths(described, current) == ("added.txt", "modified.txt", "undone.txt")
    assert changed_paths(current, current) == ()
