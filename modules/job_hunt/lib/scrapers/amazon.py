# modules/job_hunt/lib/scrapers/amazon.py
from __future__ import annotations

import re
import time
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from ..config import ScraperConfig
from ..models import JobRecord, ScrapeResult, create_record
from ..utils import clean_text, truncate_text
from .base import BaseScraper
from .registry import register

_AMAZON_BASE = "https://www.amazon.jobs"
_LOCALE_RE = re.compile(r"^[a-z]{2}(-[a-z]{2})?$")
_YEARS_RE = re.compile(r"(\d+\s*\+?\s*(?:-\s*\d+\s*)?(?:years?|yrs?))", re.IGNORECASE)


def search_json_url(list_url: str) -> str:
    """
    Map any amazon.jobs list URL to its search.json endpoint, keeping the locale:
      https://www.amazon.jobs/en-gb/location/bangalore-india?... ->
      https://www.amazon.jobs/en-gb/search.json
    """
    p = urlsplit(list_url)
    segs = [s for s in p.path.strip("/").split("/") if s]
    locale = segs[0] if segs and _LOCALE_RE.match(segs[0]) else "en"
    host = p.netloc or "www.amazon.jobs"
    return f"https://{host}/{locale}/search.json"


def query_params(list_url: str) -> list[tuple[str, str]]:
    """Query string pairs of the list URL (repeated keys like category[] kept)."""
    return parse_qsl(urlsplit(list_url).query, keep_blank_values=False)


def extract_experience(text: str) -> str:
    """First 'N+ years' style phrase found in qualification text."""
    m = _YEARS_RE.search(text or "")
    return clean_text(m.group(1)) if m else ""


def parse_search_json(data: Any, *, source: str, company: str = "Amazon") -> list[JobRecord]:
    """Convert an amazon.jobs search.json payload into candidate records."""
    if not isinstance(data, dict):
        return []
    out: list[JobRecord] = []
    for raw in data.get("jobs") or []:
        if not isinstance(raw, dict):
            continue
        job_path = str(raw.get("job_path") or "").strip()
        link = f"{_AMAZON_BASE}{job_path}" if job_path.startswith("/") else job_path
        location = raw.get("normalized_location") or raw.get("location") or ", ".join(
            x for x in (raw.get("city"), raw.get("state"), raw.get("country_code")) if x
        )
        basic = clean_text(raw.get("basic_qualifications"))
        out.append(
            create_record({
                "title": clean_text(raw.get("title")),
                "company": company,
                "location": clean_text(location),
                "external_job_id": clean_text(raw.get("id_icims") or raw.get("id")),
                "posted_date": clean_text(raw.get("posted_date")),
                "description": truncate_text(clean_text(raw.get("description_short") or raw.get("description"))),
                "requirements": truncate_text(basic, 1000),
                "experience": extract_experience(basic),
                "employment_type": clean_text(raw.get("job_schedule_type")).title(),
                "apply_link": link,
                "source_name": source,
            })
        )
    return out


@register
class AmazonScraper(BaseScraper):
    """
    amazon.jobs scraper (search.json API rather than the rendered page).

    ScraperConfig.params:
      url: str            # any amazon.jobs search/location URL; its filters are reused
      result_limit: int   # page size (default 10)
      max_pages: int      # pages to walk via offset (default 1)
      delay_seconds: float  # pause between pages (default 2.0)
      company: str        # company label on records (default "Amazon")
    """

    kind = "amazon"

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
            list_url = str(params.get("url") or "").strip()
            limit = int(params.get("result_limit") or 10)
            max_pages = int(params.get("max_pages") or 1)
            delay = float(params.get("delay_seconds") or 2.0)
            company = str(params.get("company") or "Amazon")

            items: list[JobRecord] = []
            errors: list[str] = []
            if not list_url:
                results.append(ScrapeResult(source=spec.source, errors=[f"{spec.source}: missing params.url"]))
                continue

            endpoint = search_json_url(list_url)
            base_query = [(k, v) for k, v in query_params(list_url) if k not in ("offset", "result_limit")]

            for page in range(max_pages):
                if page and delay:
                    time.sleep(delay)
                query = [*base_query, ("offset", str(page * limit)), ("result_limit", str(limit))]
                try:
                    data = self._require_client().get_json(endpoint, params=query)
                except Exception as e:
                    errors.append(f"{spec.source}: page {page + 1}: {e!r}")
                    break
                batch = parse_search_json(data, source=spec.source, company=company)
                items.extend(batch)
                if len(batch) < limit:
                    break

            results.append(ScrapeResult(source=spec.source, items=items, errors=errors))
        return results
