from __future__ import annotations

from itertools import islice
from typing import Sequence

from .backend import RevisionBackend
from .errors import BackendReadError, StalenessError
from .model import RevisionSnapshot
from .util import log_event, setup_json_logger

# Sanity bound on the predecessor walk, not a correctness guarantee: a
# description set before the oldest visible entry is missed.
MAX_EVOLOG_ENTRIES = 200

_LOG = setup_json_logger("active_descriptions.evolution")


def chain(
    backend: RevisionBackend,
    snapshot: RevisionSnapshot,
    *,
    limit: int = MAX_EVOLOG_ENTRIES,
) -> tuple[RevisionSnapshot, ...]:
    """Return the evolution chain of ``snapshot``'s change, oldest first.

    At most ``limit`` predecessor entries are walked. Entries recorded for
    other changes (the sources of a squash) are not part of the chain.
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    try:
        walked = list(islice(backend.predecessors(snapshot), limit))
    except StalenessError:
        raise
    except OSError as exc:
        raise BackendReadError(f"evolog walk failed for {snapshot.snapshot_id}: {exc}") from exc

    entries = [entry for entry in walked if entry.change_id == snapshot.change_id]
    entries.reverse()
    log_event(
        _LOG,
        "evolution.chain",
        change_id=snapshot.change_id.value,
        walked=len(walked),
        entries=len(entries),
        truncated=len(walked) >= limit,
    )
    return tuple(entries)


def find_last_described(entries: Sequence[RevisionSnapshot]) -> RevisionSnapshot:
    """Return the entry where the description was last set to its current value.

    Falls back to the oldest entry when the description never changed.
    """
    if not entries:
        raise ValueError("evolution chain is empty")
    for i in range(len(entries) - 1, 0, -1):
        if entries[i].description != entries[i - 1].description:
            return entries[i]
    return entries[0]
