"""
Merge one cycle's scraped candidates into the persisted job store.

Flow per call: load store -> key by identity -> merge/add candidates ->
sort -> rewrite store -> rewrite delta file -> return both sets.

Not safe to run concurrently against the same store path; the scheduler
runs at most one cycle at a time.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from . import store
from .logging_bridge import activity as log_activity
from .logging_bridge import error as log_error
from .models import JobRecord, is_valid, merge_into
from .utils import now_iso, parse_iso

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ReconcileResult:
    all_records: list[JobRecord] = field(default_factory=list)
    new_records: list[JobRecord] = field(default_factory=list)
    updated_count: int = 0
    dropped_count: int = 0


def reconcile(
    candidates: Iterable[JobRecord],
    store_path: str,
    delta_path: str,
    *,
    now: str | None = None,
) -> ReconcileResult:
    """
    Merge `candidates` into the store at `store_path`.

    Known identities are refreshed (first_seen_at kept, last_updated_at bumped);
    unknown identities are added and reported as new. Invalid candidates are
    dropped. The full store and the delta (this cycle's new records only) are
    both rewritten.

    Raises:
        store.CodecError: the existing store could not be parsed. Nothing is written.
        store.PersistError: the store or delta file could not be written.
    """
    ts = now or now_iso()

    try:
        existing = store.load_records(store_path)
    except store.CodecError as e:
        log_error({
            "component": "job_hunt.reconcile",
            "op": "load",
            "store_path": store_path,
            "error": repr(e),
        })
        raise

    by_key: dict[str, JobRecord] = {}
    for rec in existing:
        by_key[rec.identity_key] = rec

    stored_keys = set(by_key)
    new_keys: list[str] = []
    updated_keys: set[str] = set()
    dropped = 0
    for cand in candidates:
        if not is_valid(cand):
            dropped += 1
            continue
        key = cand.identity_key
        current = by_key.get(key)
        if current is not None:
            by_key[key] = merge_into(current, cand, now=ts)
            if key in stored_keys:
                updated_keys.add(key)
        else:
            by_key[key] = cand
            new_keys.append(key)

    # A repeated identity within one batch is merged in place; the delta
    # carries the latest details for each new identity.
    new_records = [by_key[k] for k in new_keys]
    all_records = sorted(by_key.values(), key=_first_seen_sort_key, reverse=True)

    store.save_records(store_path, all_records)
    store.save_records(delta_path, new_records)

    log_activity({
        "component": "job_hunt.reconcile",
        "op": "reconciled",
        "store_path": store_path,
        "delta_path": delta_path,
        "loaded": len(existing),
        "added": len(new_records),
        "updated": len(updated_keys),
        "dropped": dropped,
        "total": len(all_records),
    })

    return ReconcileResult(
        all_records=all_records,
        new_records=new_records,
        updated_count=len(updated_keys),
        dropped_count=dropped,
    )


def _first_seen_sort_key(record: JobRecord) -> datetime:
    # Unparseable stamps sort last (reverse=True puts the epoch at the end).
    return parse_iso(record.first_seen_at) or _EPOCH
