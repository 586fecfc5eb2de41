from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import now_iso, parse_iso

# Fields that describe the posting itself (everything except lifecycle stamps).
CONTENT_FIELDS: tuple[str, ...] = (
    "title",
    "company",
    "location",
    "external_job_id",
    "posted_date",
    "work_type",
    "description",
    "requirements",
    "salary",
    "experience",
    "employment_type",
    "apply_link",
    "source_name",
)

# Alternate spellings accepted by create_record (store headers' ids, adapter dicts).
_ALIASES: dict[str, str] = {
    "jobId": "external_job_id",
    "job_id": "external_job_id",
    "postedDate": "posted_date",
    "workType": "work_type",
    "employmentType": "employment_type",
    "link": "apply_link",
    "url": "apply_link",
    "source": "source_name",
    "scrapedAt": "first_seen_at",
    "scraped_at": "first_seen_at",
    "lastUpdated": "last_updated_at",
    "last_updated": "last_updated_at",
}


@dataclass(frozen=True)
class JobRecord:
    """
    One observed job posting.

    Records are immutable; updates produce a new value (see merge_into).
    identity_key is derived on access, so it always reflects the current
    (company, title, external_job_id, apply_link).
    """

    title: str = ""
    company: str = ""
    location: str = ""
    external_job_id: str = ""
    posted_date: str = ""  # free-form, as shown by the portal
    work_type: str = ""
    description: str = ""
    requirements: str = ""
    salary: str = ""
    experience: str = ""
    employment_type: str = ""
    apply_link: str = ""
    source_name: str = ""
    first_seen_at: str = ""
    last_updated_at: str = ""

    @property
    def identity_key(self) -> str:
        # Trim only; no case/whitespace normalization.
        return (self.company + self.title + self.external_job_id + self.apply_link).strip()

    def to_dict(self) -> dict[str, str]:
        return dataclasses.asdict(self)


@dataclass
class ScrapeResult:
    """
    Result bundle produced by a scraper for one portal/source.
    - items: candidate records found (NOT reconciled).
    - errors: non-fatal issues; a non-empty list marks a partial source failure.
    """

    source: str
    items: list[JobRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def create_record(fields: Mapping[str, Any] | None = None, *, now: str | None = None) -> JobRecord:
    """
    Build a JobRecord from a loose mapping. Never fails.

    Unset fields default to "", first_seen_at defaults to now and
    last_updated_at defaults to first_seen_at.
    """
    values: dict[str, str] = {}
    for k, v in (fields or {}).items():
        name = _ALIASES.get(k, k)
        if name not in _FIELD_NAMES:
            continue
        # Canonical names win over aliases when both are given.
        if name in values and k != name:
            continue
        values[name] = "" if v is None else str(v)

    first_seen = values.get("first_seen_at") or now or now_iso()
    values["first_seen_at"] = first_seen
    values["last_updated_at"] = values.get("last_updated_at") or first_seen
    return JobRecord(**values)


def is_valid(record: JobRecord) -> bool:
    """A record needs a title and either an external job id or an apply link."""
    return bool(record.title) and bool(record.external_job_id or record.apply_link)


def merge_into(existing: JobRecord, incoming: JobRecord, *, now: str | None = None) -> JobRecord:
    """
    Refresh an existing posting with incoming details.

    Incoming content overlays existing content; existing.first_seen_at is kept
    and last_updated_at becomes `now` (never moving backwards).
    """
    ts = now or now_iso()
    prev = parse_iso(existing.last_updated_at)
    cur = parse_iso(ts)
    if prev is not None and cur is not None and prev > cur:
        ts = existing.last_updated_at

    overlay = {name: getattr(incoming, name) for name in CONTENT_FIELDS}
    return dataclasses.replace(
        existing,
        **overlay,
        first_seen_at=existing.first_seen_at,
        last_updated_at=ts,
    )


_FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(JobRecord))
