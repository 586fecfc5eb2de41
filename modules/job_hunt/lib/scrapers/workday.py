# modules/job_hunt/lib/scrapers/workday.py
from __future__ import annotations

import copy
import re
import time
from typing import Any
from urllib.parse import parse_qs, urlsplit

from ..config import ScraperConfig
from ..models import JobRecord, ScrapeResult, create_record
from ..utils import clean_text
from .base import BaseScraper
from .registry import register

_LOCALE_RE = re.compile(r"^[a-z]{2}-[A-Z]{2}$")


def infer_cxs_url(list_url: str) -> str | None:
    """
    https://<tenant>.wdX.myworkdayjobs.com/[<locale>/]<Site>[/...] ->
    https://<tenant>.wdX.myworkdayjobs.com/wday/cxs/<tenant>/<Site>/jobs
    """
    if "/wday/cxs/" in list_url:
        return list_url
    p = urlsplit(list_url)
    segs = [s for s in p.path.strip("/").split("/") if s]
    if segs and _LOCALE_RE.match(segs[0]):
        segs = segs[1:]
    if not (p.netloc and segs):
        return None
    tenant = p.netloc.split(".")[0]
    return f"https://{p.netloc}/wday/cxs/{tenant}/{segs[0]}/jobs"


def site_base(list_url: str) -> str:
    """Public site root used to turn externalPath into a browser link."""
    p = urlsplit(list_url)
    segs = [s for s in p.path.strip("/").split("/") if s]
    if "wday" in segs:
        # .../wday/cxs/<tenant>/<Site>/jobs -> /<Site>
        i = segs.index("cxs")
        site = segs[i + 2] if len(segs) > i + 2 else ""
        return f"{p.scheme}://{p.netloc}/{site}" if site else f"{p.scheme}://{p.netloc}"
    if segs and _LOCALE_RE.match(segs[0]):
        segs = segs[1:]
    return f"{p.scheme}://{p.netloc}/{segs[0]}" if segs else f"{p.scheme}://{p.netloc}"


def payload_from_url(list_url: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Map query parameters of a 'pretty' Workday page into the CxS payload:
      ?q=foo / ?searchText=foo     -> searchText
      ?locations=UUID[,UUID...]    -> appliedFacets.locations
      ?jobFamilyGroup=...          -> appliedFacets.jobFamilyGroup
      ?timeType=... / ?remoteType= -> appliedFacets.<same>
    """
    q = parse_qs(urlsplit(list_url).query or "")
    out = copy.deepcopy(payload or {})
    applied = out.setdefault("appliedFacets", {})
    for key in ("q", "searchText"):
        if q.get(key):
            out["searchText"] = q[key][0]
            break
    for facet in ("locations", "jobFamilyGroup", "timeType", "remoteType"):
        vals = [v.strip() for raw in q.get(facet, []) for v in raw.split(",") if v.strip()]
        if vals:
            applied[facet] = vals
    return out


def extract_postings(data: Any) -> list[dict[str, Any]]:
    """
    Common shapes seen from /wday/cxs/.../jobs:
      { jobPostings: [ {...}, ... ], total: N }
      { body: { jobPostings: [...] } }
    """
    if isinstance(data, dict):
        if isinstance(data.get("jobPostings"), list):
            return [x for x in data["jobPostings"] if isinstance(x, dict)]
        b = data.get("body")
        if isinstance(b, dict) and isinstance(b.get("jobPostings"), list):
            return [x for x in b["jobPostings"] if isinstance(x, dict)]
    return []


def to_records(postings: list[dict[str, Any]], *, base: str, source: str, company: str) -> list[JobRecord]:
    out: list[JobRecord] = []
    for j in postings:
        path = str(j.get("externalPath") or "").strip()
        link = f"{base}{path}" if path.startswith("/") else path
        bullets = j.get("bulletFields") or []
        out.append(
            create_record({
                "title": clean_text(j.get("title")),
                "company": company,
                "location": clean_text(j.get("locationsText")),
                "external_job_id": clean_text(bullets[0]) if bullets else "",
                "posted_date": clean_text(j.get("postedOn")),
                "work_type": clean_text(j.get("remoteType")),
                "employment_type": clean_text(j.get("timeType")),
                "apply_link": link,
                "source_name": source,
            })
        )
    return out


@register
class WorkdayScraper(BaseScraper):
    """
    Workday CxS API scraper (NVIDIA and other *.myworkdayjobs.com portals).

    ScraperConfig.params:
      url: str              # list page or /wday/cxs/.../jobs endpoint
      company: str          # company label (default: tenant, upper-cased)
      payload: dict         # extra CxS payload merged over the URL-derived one
      limit: int            # page size (default 20)
      max_pages: int        # pages to walk (default 3)
      delay_seconds: float  # pause between pages (default 2.0)
    """

    kind = "workday"
    aliases = ("workday_cxs", "nvidia")

    def run(
        self,
        specs: list[ScraperConfig],
        *,
        skip_network: bool = False,
    ) -> list[ScrapeResult]:
        if skip_network:
            return []

        results: list[ScrapeResult] = []
        for spec in specs:
            params = dict(spec.params or {})
            list_url = str(params.get("url") or "").strip()
            cxs_url = infer_cxs_url(list_url) if list_url else None
            if not cxs_url:
                results.append(ScrapeResult(source=spec.source, errors=[f"{spec.source}: bad or missing params.url"]))
                continue

            limit = int(params.get("limit") or 20)
            max_pages = int(params.get("max_pages") or 3)
            delay = float(params.get("delay_seconds") or 2.0)
            company = str(params.get("company") or urlsplit(cxs_url).netloc.split(".")[0].upper())
            base = site_base(list_url)
            payload_in = payload_from_url(list_url, params.get("payload") or {})

            items: list[JobRecord] = []
            errors: list[str] = []
            offset = 0
            for page in range(max_pages):
                if page and delay:
                    time.sleep(delay)
                payload = {**payload_in, "limit": limit, "offset": offset}
                try:
                    data = self._require_client().post_json(cxs_url, payload)
                except Exception as e:
                    errors.append(f"{spec.source}: page {page + 1}: {e!r}")
                    break
                postings = extract_postings(data)
                items.extend(to_records(postings, base=base, source=spec.source, company=company))
                if len(postings) < limit:
                    break
                offset += len(postings)

            results.append(ScrapeResult(source=spec.source, items=items, errors=errors))
        return results
