"""Revision backend driving the ``jj`` command line.

Per-path diff values come from the header block jj writes for each file in
``--git`` format (``index <before>..<after> <mode>`` plus mode lines). Hunk
bodies are skipped without being decoded.
"""

from __future__ import annotations

import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Iterator

from ._exec import build_env, run_command
from .errors import BackendReadError, NotFound
from .evolution import MAX_EVOLOG_ENTRIES
from .model import ChangeId, DiffEntry, RevisionSnapshot, TreeRef
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("active_descriptions.jj")

GLOBAL_ARGS = ["--ignore-working-copy", "--color=never", "--no-pager"]

SNAPSHOT_TEMPLATE = (
    'commit_id ++ "\\0" ++ change_id ++ "\\0" '
    '++ parents.map(|p| p.commit_id()).join(",") ++ "\\0" ++ description'
)
EVOLOG_TEMPLATE = 'commit.commit_id() ++ "\\n"'

_NULL_BLOB = frozenset({"0" * n for n in range(7, 65)})


@dataclass(frozen=True)
class FileValue:
    """One side of a file's change: its mode and (abbreviated) blob id."""

    mode: str | None
    blob: str | None


class _FileHeader:
    def __init__(self, old_path: str, new_path: str) -> None:
        self.old_path = old_path
        self.new_path = new_path
        self.old_mode: str | None = None
        self.new_mode: str | None = None
        self.old_blob: str | None = None
        self.new_blob: str | None = None
        self.created = False
        self.deleted = False

    def feed(self, line: str) -> None:
        if line.startswith("new file mode "):
            self.created = True
            self.new_mode = line[len("new file mode ") :].strip()
        elif line.startswith("deleted file mode "):
            self.deleted = True
            self.old_mode = line[len("deleted file mode ") :].strip()
        elif line.startswith("old mode "):
            self.old_mode = line[len("old mode ") :].strip()
        elif line.startswith("new mode "):
            self.new_mode = line[len("new mode ") :].strip()
        elif line.startswith(("rename from ", "copy from ")):
            self.old_path = _unquote(line.split(" from ", 1)[1])
        elif line.startswith(("rename to ", "copy to ")):
            self.new_path = _unquote(line.split(" to ", 1)[1])
        elif line.startswith("index "):
            blobs, _, mode = line[len("index ") :].partition(" ")
            old, sep, new = blobs.partition("..")
            if not sep:
                raise BackendReadError(f"malformed index line: {line!r}")
            self.old_blob = None if old in _NULL_BLOB else old
            self.new_blob = None if new in _NULL_BLOB else new
            if mode:
                self.old_mode = self.old_mode or mode.strip()
                self.new_mode = self.new_mode or mode.strip()

    def entries(self) -> Iterator[DiffEntry]:
        before = None if self.created else FileValue(self.old_mode, self.old_blob)
        after = None if self.deleted else FileValue(self.new_mode, self.new_blob)
        if self.old_path == self.new_path:
            yield DiffEntry(path=self.new_path, before=before, after=after)
            return
        yield DiffEntry(path=self.old_path, before=before, after=None)
        yield DiffEntry(path=self.new_path, before=None, after=after)


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if not (len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"'):
        return raw
    # C-style quoting with octal escapes of UTF-8 bytes.
    body = raw[1:-1].encode("latin-1", errors="backslashreplace")
    try:
        return body.decode("unicode_escape").encode("latin-1").decode("utf-8")
    except UnicodeError:
        return raw[1:-1]


def _split_diff_paths(rest: str) -> tuple[str, str]:
    if rest.startswith('"'):
        end = rest.index('"', 1)
        while rest[end - 1] == "\\":
            end = rest.index('"', end + 1)
        old, new = rest[: end + 1], rest[end + 2 :]
    else:
        # Same path on both sides: "a/<p> b/<p>".
        half = (len(rest) - 1) // 2
        if len(rest) % 2 == 1 and rest[half] == " " and rest[2:half] == rest[half + 3 :]:
            old, new = rest[:half], rest[half + 1 :]
        else:
            # Ambiguous when a path contains " b/"; only renames and copies have
            # differing paths, and their "rename/copy from/to" lines win.
            old, _, tail = rest.rpartition(" b/")
            new = "b/" + tail
    old, new = _unquote(old), _unquote(new)
    if not (old.startswith("a/") and new.startswith("b/")):
        raise BackendReadError(f"malformed diff header: {rest!r}")
    return old[2:], new[2:]


def parse_git_diff(lines: Iterable[bytes]) -> Iterator[DiffEntry]:
    """Yield one entry per path from git-format diff output.

    Only header lines are decoded, so binary or non-UTF-8 hunks are fine.
    """
    current: _FileHeader | None = None
    in_header = False
    for raw in lines:
        if raw.startswith(b"diff --git "):
            if current is not None:
                yield from current.entries()
            line = _decode(raw)
            current = _FileHeader(*_split_diff_paths(line[len("diff --git ") :]))
            in_header = True
            continue
        if not in_header or current is None:
            continue
        if raw.startswith((b"--- ", b"+++ ", b"@@", b"Binary files ")):
            in_header = False
            continue
        current.feed(_decode(raw))
    if current is not None:
        yield from current.entries()


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8").rstrip("\r\n")
    except UnicodeDecodeError as exc:
        raise BackendReadError(f"undecodable diff header: {raw[:80]!r}") from exc


class JjBackend:
    def __init__(
        self,
        workspace_root: Path,
        *,
        jj_binary: str = "jj",
        evolog_limit: int = MAX_EVOLOG_ENTRIES,
        timeout: float | None = None,
    ) -> None:
        self.workspace_root = workspace_root
        self.jj_binary = jj_binary
        self.evolog_limit = evolog_limit
        self.timeout = timeout
        self._cache: dict[str, RevisionSnapshot] = {}

    def _argv(self, *args: str) -> list[str]:
        return [self.jj_binary, *args, *GLOBAL_ARGS]

    def resolve(self, snapshot_id: str) -> RevisionSnapshot:
        cached = self._cache.get(snapshot_id)
        if cached is not None:
            return cached
        res = run_command(
            "jj_resolve",
            self._argv("log", "-r", snapshot_id, "--no-graph", "-T", SNAPSHOT_TEMPLATE),
            self.workspace_root,
            timeout=self.timeout,
        )
        if res.returncode in (124, 127):
            # Binary missing or timed out: the backend is unreadable, not the id unknown.
            raise BackendReadError(res.stderr.strip())
        if not res.ok or not res.stdout:
            raise NotFound(f"unknown snapshot {snapshot_id}: {res.stderr.strip()}")
        fields = res.stdout.split("\0", 3)
        if len(fields) != 4:
            raise BackendReadError(f"unexpected jj log output for {snapshot_id}")
        commit_id, change_id, parents, description = fields
        snapshot = RevisionSnapshot(
            snapshot_id=commit_id,
            change_id=ChangeId(change_id),
            description=description,
            tree=TreeRef(commit_id),
            parents=tuple(p for p in parents.split(",") if p),
        )
        self._cache[snapshot_id] = snapshot
        self._cache[commit_id] = snapshot
        return snapshot

    def parent_tree(self, snapshot: RevisionSnapshot) -> TreeRef:
        return TreeRef(snapshot.snapshot_id, kind="parents")

    def tree_diff(self, tree_a: TreeRef, tree_b: TreeRef) -> Iterator[DiffEntry]:
        if tree_a.kind == "parents":
            if tree_b != TreeRef(tree_a.snapshot_id):
                raise NotFound(f"parent view of {tree_a.snapshot_id} only diffs against its own tree")
            args = ["diff", "-r", tree_b.snapshot_id, "--git"]
        elif tree_a.kind == "tree" and tree_b.kind == "tree":
            args = ["diff", "--from", tree_a.snapshot_id, "--to", tree_b.snapshot_id, "--git"]
        else:
            raise NotFound(f"cannot diff {tree_a} against {tree_b}")
        return self._stream("jj_diff", self._argv(*args))

    def _stream(self, name: str, argv: list[str]) -> Iterator[DiffEntry]:
        with tempfile.TemporaryFile() as err:
            try:
                proc = subprocess.Popen(
                    argv,
                    cwd=self.workspace_root,
                    env=build_env(),
                    stdout=subprocess.PIPE,
                    stderr=err,
                )
            except OSError as exc:
                raise BackendReadError(f"{name}: cannot run {argv[0]}: {exc}") from exc
            try:
                yield from parse_git_diff(proc.stdout)
                returncode = proc.wait(timeout=self.timeout)
            except subprocess.TimeoutExpired as exc:
                raise BackendReadError(f"{name}: timed out after {self.timeout}s") from exc
            finally:
                if proc.poll() is None:
                    proc.kill()
                    proc.wait()
                proc.stdout.close()
            if returncode != 0:
                raise BackendReadError(f"{name} exited {returncode}: {_read_err(err)}")
            log_event(_LOG, "jj.stream.finish", command=name)

    def predecessors(self, snapshot: RevisionSnapshot) -> Iterator[RevisionSnapshot]:
        res = run_command(
            "jj_evolog",
            self._argv(
                "evolog",
                "-r",
                snapshot.snapshot_id,
                "--no-graph",
                "--limit",
                str(self.evolog_limit),
                "-T",
                EVOLOG_TEMPLATE,
            ),
            self.workspace_root,
            timeout=self.timeout,
        )
        if not res.ok:
            raise BackendReadError(f"evolog walk failed: {res.stderr.strip()}")
        for line in res.stdout.splitlines():
            commit_id = line.strip()
            if commit_id:
                yield self.resolve(commit_id)


def _read_err(handle: IO[bytes]) -> str:
    handle.seek(0)
    return handle.read().decode("utf-8", errors="replace").strip()
