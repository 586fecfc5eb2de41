# modules/job_hunt/lib/scrapers/flipkart.py
from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any

from ..config import ScraperConfig
from ..models import JobRecord, ScrapeResult, create_record
from ..utils import clean_text, truncate_text
from .base import BaseScraper
from .registry import register

_SEARCH_URL = "https://public.zwayam.com/jobs/search"
_CAREERS_DOMAIN = "www.flipkartcareers.com"
_JOB_VIEW = f"https://{_CAREERS_DOMAIN}/#!/job-view/"


def search_filter(*, start: int, locations: list[str], functions: list[str], query: str) -> dict[str, Any]:
    """The `filterCri` form field: newest first, narrowed by facets and keywords."""
    return {
        "paginationStartNo": start,
        "selectedCall": "filter",
        "sortCriteria": {"name": "modifiedDate", "isAscending": False},
        "facetSelectionString": {"Location": locations, "Function": functions},
        "anyOfTheseWords": query,
    }


def _posted_date(value: Any) -> str:
    # The API sends epoch milliseconds; older payloads carry a date string.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
    return clean_text(value)


def _experience(src: dict[str, Any]) -> str:
    lo, hi = src.get("minYearOfExperience"), src.get("maxYearOfExperience")
    if lo not in (None, "") and hi not in (None, ""):
        return f"{lo}-{hi} years"
    return clean_text(src.get("experienceUIField") or src.get("yrsOfExperience"))


def _joined(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(clean_text(v) for v in value if clean_text(v))
    return clean_text(value)


def parse_search_response(data: Any, *, source: str, company: str = "Flipkart") -> list[JobRecord]:
    """
    Convert a zwayam jobs/search reply into candidate records.

    Postings sit under data.data[]._source; entries without a _source are
    skipped.
    """
    hits = (data.get("data") or {}).get("data") if isinstance(data, dict) else None
    if not isinstance(hits, list):
        return []
    out: list[JobRecord] = []
    for hit in hits:
        src = hit.get("_source") if isinstance(hit, dict) else None
        if not isinstance(src, dict):
            continue
        skills = [s for s in (_joined(src.get("mandatorySkills")), _joined(src.get("desiredSkillList"))) if s]
        experience = _experience(src)
        rounds = clean_text(src.get("skillsToEvaluate")) or _joined(src.get("skillsToEvaluateList"))
        job_url = clean_text(src.get("jobUrl"))
        out.append(
            create_record({
                "title": clean_text(src.get("jobTitle")),
                "company": company,
                "location": clean_text(src.get("location")),
                "external_job_id": clean_text(src.get("referenceNumber")),
                "posted_date": _posted_date(src.get("createdDate")),
                "description": truncate_text(" | ".join(x for x in (experience, rounds) if x)),
                "requirements": truncate_text(", ".join(skills), 1000),
                "experience": experience,
                "apply_link": f"{_JOB_VIEW}{job_url}" if job_url else "",
                "source_name": source,
            })
        )
    return out


def _hit_count(data: Any) -> int:
    hits = (data.get("data") or {}).get("data") if isinstance(data, dict) else None
    return len(hits) if isinstance(hits, list) else 0


@register
class FlipkartScraper(BaseScraper):
    """
    Flipkart careers scraper (the zwayam search API behind flipkartcareers.com).

    ScraperConfig.params:
      url: str              # search endpoint (default https://public.zwayam.com/jobs/search)
      locations: list[str]  # Location facet (default ["bangalore,karnataka"])
      functions: list[str]  # Function facet (default ["Technology"])
      query: str            # any-of-these-words search (default "Software Engineer")
      max_pages: int        # pages to walk via paginationStartNo (default 1)
      delay_seconds: float  # pause between pages (default 2.0)
      company: str          # company label on records (default "Flipkart")
    """

    kind = "flipkart"

    def run(
        self,
        specs: list[ScraperConfig],
        *,
        skip_network: bool = False,
    ) -> list[ScrapeResult]:
        results: list[ScrapeResult] = []
        if skip_network:
            return results

        for spec in specs:
            params = dict(spec.params or {})
            url = str(params.get("url") or _SEARCH_URL).strip()
            locations = list(params.get("locations") or ["bangalore,karnataka"])
            functions = list(params.get("functions") or ["Technology"])
            query = str(params.get("query") or "Software Engineer")
            max_pages = int(params.get("max_pages") or 1)
            delay = float(params.get("delay_seconds") or 2.0)
            company = str(params.get("company") or "Flipkart")

            items: list[JobRecord] = []
            errors: list[str] = []
            start = 0
            for page in range(max_pages):
                if page and delay:
                    time.sleep(delay)
                criteria = search_filter(start=start, locations=locations, functions=functions, query=query)
                try:
                    data = self._require_client().post_form(
                        url,
                        {"filterCri": json.dumps(criteria), "domain": _CAREERS_DOMAIN},
                        headers={"Referer": f"https://{_CAREERS_DOMAIN}/"},
                    )
                except Exception as e:
                    errors.append(f"{spec.source}: page {page + 1}: {e!r}")
                    break
                if not isinstance(data, dict) or data.get("code") != 200:
                    preview = json.dumps(data, default=str)[:100]
                    errors.append(f"{spec.source}: page {page + 1}: unexpected reply {preview}")
                    break
                seen = _hit_count(data)
                items.extend(parse_search_response(data, source=spec.source, company=company))
                if not seen:
                    break
                start += seen

            results.append(ScrapeResult(source=spec.source, items=items, errors=errors))
        return results
