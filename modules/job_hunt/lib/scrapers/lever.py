# modules/job_hunt/lib/scrapers/lever.py
from __future__ import annotations

import time
from collections.abc import Sequence
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup  # pip install beautifulsoup4 html5lib

from ..config import ScraperConfig
from ..models import JobRecord, ScrapeResult, create_record
from ..utils import clean_text
from .base import BaseScraper
from .registry import register

_LEVER_BASE = "https://jobs.lever.co"


def _tenant_of(list_url: str) -> str:
    segs = [s for s in urlsplit(list_url).path.strip("/").split("/") if s]
    return segs[0] if segs else ""


def _text(el) -> str:
    return clean_text(el.get_text(" ", strip=True)) if el is not None else ""


def parse_list_page(
    html: str,
    *,
    source: str,
    company: str,
    query: str | None = None,
    exclude: Sequence[str] = (),
) -> list[JobRecord]:
    """
    Return candidate records from a Lever 'list' page, applying filters.

    `query` keeps titles containing it; `exclude` drops postings whose
    category text contains any of the given substrings (case-insensitive).
    """
    soup = BeautifulSoup(html, "html5lib")
    out: list[JobRecord] = []

    for posting in soup.select("div.posting"):
        a = posting.select_one("a.posting-title")
        if a is None:
            continue
        href = (a.get("href") or "").strip()
        link = urljoin(_LEVER_BASE, href) if href else ""
        title = _text(a.select_one('h5[data-qa="posting-name"]'))
        if not title or not link:
            continue
        if query and query.lower() not in title.lower():
            continue

        categories = _text(a.select_one("div.posting-categories")).lower()
        if categories and any(ex in categories for ex in exclude):
            continue

        job_id = posting.get("data-qa-posting-id") or urlsplit(link).path.rstrip("/").rsplit("/", 1)[-1]
        out.append(
            create_record({
                "title": title,
                "company": company,
                "location": _text(a.select_one("span.sort-by-location")),
                "external_job_id": str(job_id or ""),
                "work_type": _text(a.select_one("span.workplaceTypes")).strip("— ").strip(),
                "employment_type": _text(a.select_one("span.sort-by-commitment")),
                "description": _text(a.select_one("span.sort-by-team")),
                "apply_link": link,
                "source_name": source,
            })
        )
    return out


@register
class LeverScraper(BaseScraper):
    """
    General jobs.lever.co scraper.

    ScraperConfig.params:
      url: str               # e.g. "https://jobs.lever.co/atlassian?team=Engineering"
      company: str           # company label (default: tenant slug, title-cased)
      query: str | null      # optional substring filter on title (case-insensitive)
      exclude: list[str]     # category substrings to drop (default: ["internship"])
      urls: list[str]        # optional extra list pages for the same company
      delay_seconds: float   # pause between list pages (default 3.0)
    """

    kind = "lever"

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
            urls = [str(u).strip() for u in [params.get("url"), *(params.get("urls") or [])] if u]
            delay = float(params.get("delay_seconds") or 3.0)
            query = str(params.get("query") or "").strip() or None
            exclude = [str(x).lower() for x in (params.get("exclude") or ["internship"])]

            items: list[JobRecord] = []
            errors: list[str] = []
            if not urls:
                errors.append(f"{spec.source}: missing params.url")

            for idx, url in enumerate(urls):
                if idx and delay > 0:
                    time.sleep(delay)
                company = str(params.get("company") or _tenant_of(url).replace("-", " ").title())
                try:
                    html = self._require_client().get_text(url)
                    items.extend(
                        parse_list_page(html, source=spec.source, company=company, query=query, exclude=exclude)
                    )
                except Exception as e:
                    errors.append(f"{spec.source}: {url}: {e!r}")

            results.append(ScrapeResult(source=spec.source, items=items, errors=errors))
        return results
