"""
Read-only queries over the store file: filter, sort, paginate, stats.

Reads the CSV directly (never through reconcile) and tolerates the file being
absent. Row dicts use the store's camelCase ids (title, jobId, link,
scrapedAt, ...).
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from .store import COLUMNS, load_records

# Field name -> public id used in query results and sort keys.
_PUBLIC_IDS: dict[str, str] = {
    "external_job_id": "jobId",
    "posted_date": "postedDate",
    "work_type": "workType",
    "employment_type": "employmentType",
    "apply_link": "link",
    "source_name": "source",
    "first_seen_at": "scrapedAt",
    "last_updated_at": "lastUpdated",
}
PUBLIC_FIELDS: tuple[str, ...] = tuple(_PUBLIC_IDS.get(name, name) for name, _ in COLUMNS)
DATE_FIELDS = frozenset({"postedDate", "scrapedAt", "lastUpdated"})
SEARCH_FIELDS = ("title", "description", "requirements", "location")


@dataclass
class QueryResult:
    jobs: list[dict[str, str]] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)
    pagination: dict[str, int] = field(default_factory=dict)


def load_rows(path: str) -> list[dict[str, str]]:
    """All store rows as public dicts; [] if the store does not exist yet."""
    if not os.path.exists(path):
        return []
    rows: list[dict[str, str]] = []
    for rec in load_records(path):
        row = {_PUBLIC_IDS.get(name, name): getattr(rec, name) for name, _ in COLUMNS}
        row["uniqueId"] = rec.identity_key
        rows.append(row)
    return rows


def query_jobs(
    path: str,
    *,
    company: str | None = None,
    search: str | None = None,
    sort_by: str = "postedDate",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> QueryResult:
    rows = load_rows(path)

    filtered = rows
    if company:
        needle = company.lower()
        filtered = [r for r in filtered if needle in r["company"].lower()]
    if search:
        needle = search.lower()
        filtered = [r for r in filtered if any(needle in r[f].lower() for f in SEARCH_FIELDS)]

    filtered = sort_rows(filtered, sort_by=sort_by, descending=(sort_order or "desc").lower() != "asc")

    page = max(int(page or 1), 1)
    limit = max(int(limit or 20), 1)
    start = (page - 1) * limit

    return QueryResult(
        jobs=filtered[start : start + limit],
        stats={
            "totalJobs": len(rows),
            "filteredJobs": len(filtered),
            "companies": len({r["company"] for r in rows}),
            "lastUpdated": _latest(rows),
        },
        pagination={
            "total": len(filtered),
            "pages": math.ceil(len(filtered) / limit),
            "currentPage": page,
            "limit": limit,
        },
    )


def sort_rows(rows: list[dict[str, str]], *, sort_by: str, descending: bool) -> list[dict[str, str]]:
    """
    Date-aware sort for date columns when every value parses; plain string
    comparison otherwise. Unknown sort keys sort as empty strings.
    """
    if sort_by in DATE_FIELDS:
        parsed = [_parse_date(r.get(sort_by, "")) for r in rows]
        if all(d is not None for d in parsed):
            order = sorted(range(len(rows)), key=lambda i: parsed[i], reverse=descending)
            return [rows[i] for i in order]
    return sorted(rows, key=lambda r: r.get(sort_by, "") or "", reverse=descending)


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    # Naive and aware values can't be compared; drop tz after normalizing.
    if dt.tzinfo is not None:
        dt = dt.astimezone(tz=None).replace(tzinfo=None)
    return dt


def _latest(rows: list[dict[str, str]]) -> str:
    best_raw = ""
    best: datetime | None = None
    for r in rows:
        d = _parse_date(r.get("lastUpdated", ""))
        if d is not None and (best is None or d > best):
            best, best_raw = d, r["lastUpdated"]
    return best_raw
