"""Decide whether a change's description is stale.

A description is stale when the change has content but no description, or
when the change's diff from its parents is no longer the diff it had at the
point in its evolution where the description was last set. Comparing diffs
rather than trees or parent ids keeps rebases, splits and squashes that
leave the logical edit alone from being reported.
"""

from __future__ import annotations

import re
from typing import Iterable

from .backend import RevisionBackend
from .errors import MalformedInput, StalenessError
from .evolution import MAX_EVOLOG_ENTRIES, chain, find_last_described
from .fingerprint import changed_paths, fingerprint
from .model import DEFAULT_CHANGE_ID_LENGTH, RevisionSnapshot, StalenessResult
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("active_descriptions.staleness")

_HEX_ID = re.compile(r"[0-9a-f]+")


def check(
    backend: RevisionBackend,
    snapshot: RevisionSnapshot,
    *,
    limit: int = MAX_EVOLOG_ENTRIES,
    id_length: int = DEFAULT_CHANGE_ID_LENGTH,
) -> StalenessResult | None:
    """Return a :class:`StalenessResult` when ``snapshot``'s description is stale."""
    display_id = snapshot.change_id.short(id_length)
    log_event(_LOG, "staleness.check.start", change_id=display_id, snapshot_id=snapshot.snapshot_id)

    if not snapshot.description:
        current = fingerprint(backend, snapshot)
        if not current:
            return None
        return StalenessResult(change_id=display_id, changed_paths=current.paths())

    entries = chain(backend, snapshot, limit=limit)
    if len(entries) < 2:
        return None

    described = find_last_described(entries)
    if described.snapshot_id == snapshot.snapshot_id:
        return None
    current = fingerprint(backend, snapshot)
    at_describe = fingerprint(backend, described)
    if at_describe == current:
        return None

    result = StalenessResult(
        change_id=display_id,
        changed_paths=changed_paths(at_describe, current),
    )
    log_event(
        _LOG,
        "staleness.check.stale",
        change_id=display_id,
        described_snapshot=described.snapshot_id,
        changed=list(result.changed_paths),
    )
    return result


def parse_candidate_id(raw: str) -> str:
    candidate = raw.strip()
    if not candidate or not _HEX_ID.fullmatch(candidate):
        raise MalformedInput(f"invalid commit id hex: {raw!r}")
    return candidate


def check_batch(
    backend: RevisionBackend,
    candidate_ids: Iterable[str],
    *,
    limit: int = MAX_EVOLOG_ENTRIES,
    id_length: int = DEFAULT_CHANGE_ID_LENGTH,
) -> list[StalenessResult]:
    """Check every candidate in order; one failing candidate never stops the rest."""
    stale: list[StalenessResult] = []
    for raw in candidate_ids:
        try:
            snapshot = backend.resolve(parse_candidate_id(raw))
            result = check(backend, snapshot, limit=limit, id_length=id_length)
        except StalenessError as exc:
            log_event(
                _LOG,
                "batch.candidate.error",
                candidate=raw,
                error_code=exc.code,
                error=exc.detail,
            )
            continue
        if result is None:
            continue
        if stale and stale[-1].change_id == result.change_id:
            continue
        stale.append(result)
    log_event(_LOG, "batch.finish", stale=len(stale))
    return stale
