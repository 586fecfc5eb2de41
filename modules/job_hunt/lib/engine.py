"""
One job_hunt cycle: scrape every enabled portal, reconcile once against the
store, and render the notice.

Portals are fanned out by kind, one thread and one HttpClient per kind. A
portal that errors or finds nothing is reported in the email and the error
log; it never stops the cycle. A store that cannot be read or written does:
StoreError propagates and nothing is rendered.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from . import logging_bridge, render, utils
from .config import ScraperConfig, Settings
from .http_client import HttpClient
from .models import JobRecord, ScrapeResult, is_valid
from .reconcile import reconcile
from .scrapers.base import BaseScraper
from .store import StoreError

GetScraper = Callable[[str], type[BaseScraper]]

_COMPONENT = "job_hunt.engine"


def _registry_lookup(kind: str) -> type[BaseScraper]:
    from . import scrapers  # noqa: F401  adapters register on import
    from .scrapers.registry import get

    return get(kind)


@dataclass
class _Harvest:
    results: list[ScrapeResult] = field(default_factory=list)
    failed: dict[str, list[str]] = field(default_factory=dict)
    durations_us: dict[str, int] = field(default_factory=dict)

    def fail(self, source: str, *errors: str) -> None:
        self.failed.setdefault(source, []).extend(errors)


def _scrape_kind(kind: str, specs: list[ScraperConfig], settings: Settings, get_scraper: GetScraper) -> list[ScrapeResult]:
    if settings.skip_network:
        logging_bridge.activity({
            "component": _COMPONENT,
            "op": "skipped_kind",
            "kind": kind,
            "reason": "skip_network",
            "sources": [s.source for s in specs],
        })
        return []
    scraper_cls = get_scraper(kind)
    with HttpClient(timeout=settings.request_timeout) as client:
        return scraper_cls(client).run(specs, skip_network=settings.skip_network)


def _scrape(settings: Settings, get_scraper: GetScraper) -> _Harvest:
    by_kind = settings.group_by_kind()
    harvest = _Harvest()

    def _timed(kind: str, specs: list[ScraperConfig]) -> tuple[list[ScrapeResult], int]:
        t0 = time.perf_counter_ns()
        results = _scrape_kind(kind, specs, settings, get_scraper)
        return results, (time.perf_counter_ns() - t0) // 1000

    with ThreadPoolExecutor(max_workers=min(len(by_kind) or 1, settings.max_threads)) as pool:
        futures = {pool.submit(_timed, kind, specs): kind for kind, specs in by_kind.items()}
        for fut in as_completed(futures):
            kind = futures[fut]
            try:
                results, harvest.durations_us[kind] = fut.result()
            except Exception as e:
                # The whole kind went down: every portal of that kind failed.
                harvest.durations_us[kind] = 0
                for spec in by_kind[kind]:
                    harvest.fail(spec.source, repr(e))
                logging_bridge.error({"component": _COMPONENT, "op": "scraper_run", "kind": kind, "error": repr(e)})
                continue
            harvest.results.extend(results)

    for res in harvest.results:
        if res.errors or not res.items:
            harvest.fail(res.source, *(res.errors or ["no postings found"]))
    for source, errors in harvest.failed.items():
        logging_bridge.error({"component": _COMPONENT, "op": "source_failed", "source": source, "errors": errors})
    return harvest


def _subject(rendered: list[JobRecord], new_records: list[JobRecord], *, listing_all: bool) -> str:
    companies = list(render.group_by_company(new_records))
    if listing_all:
        return f"Job Hunt — {len(rendered)} openings listed ({len(new_records)} new)"
    if len(companies) == 1:
        return f"Job Hunt — {len(new_records)} new at {companies[0]}"
    return f"Job Hunt — {len(new_records)} new openings ({len(companies)} companies)"


def _failed_sources_html(failed: list[str]) -> str:
    items = "".join(f"<li>{utils.esc(s)}</li>" for s in failed)
    return render.wrap_document(f"<ul>{items}</ul>", heading="Sources with problems")


def run_once(settings: Settings, get_scraper: GetScraper | None = None) -> tuple[str, dict] | None:
    """
    Run one cycle.

    Returns (html, meta) when there is something to email, else None
    (nothing new, or ingest_only_no_email). `get_scraper` replaces the
    registry lookup (tests inject fakes through it).

    Raises StoreError when the store cannot be loaded or written.
    """
    started = time.perf_counter_ns()
    harvest = _scrape(settings, get_scraper or _registry_lookup)

    candidates: list[JobRecord] = []
    found_by_source: dict[str, int] = {}
    for res in harvest.results:
        candidates.extend(res.items)
        found_by_source[res.source] = found_by_source.get(res.source, 0) + len(res.items)
    failed = sorted(harvest.failed)

    try:
        outcome = reconcile(candidates, settings.store_path, settings.delta_path)
    except StoreError as e:
        logging_bridge.error({
            "component": _COMPONENT,
            "op": "reconcile",
            "store_path": settings.store_path,
            "candidates": len(candidates),
            "error": repr(e),
        })
        raise

    new_records = outcome.new_records
    total_us = (time.perf_counter_ns() - started) // 1000
    logging_bridge.activity({
        "component": _COMPONENT,
        "op": "summary",
        "skip_network": settings.skip_network,
        "found_by_source": found_by_source,
        "failed_sources": failed,
        "new_by_company": {c: len(v) for c, v in render.group_by_company(new_records).items()},
        "added": len(new_records),
        "updated": outcome.updated_count,
        "dropped": outcome.dropped_count,
        "total_records": len(outcome.all_records),
        "durations_us": harvest.durations_us,
        "total_us": total_us,
    })

    if settings.ingest_only_no_email:
        logging_bridge.activity({"component": _COMPONENT, "op": "ingest_only", "new_total": len(new_records)})
        return None

    listing_all = settings.email_all_even_if_seen
    if listing_all:
        to_render = [c for c in candidates if is_valid(c)]
        message = render.summary_message(to_render, label="openings seen this run")
    elif new_records:
        to_render = new_records
        message = render.summary_message(to_render)
    else:
        logging_bridge.activity({"component": _COMPONENT, "op": "no_new", "failed_sources": failed})
        return None

    html = render.wrap_document(
        render.build_tables(to_render, max_companies=settings.max_companies),
        heading="Job Hunt Report",
        intro=message,
    )
    if failed:
        html += "\n" + _failed_sources_html(failed)

    by_company = {c: len(v) for c, v in render.group_by_company(to_render).items()}
    meta = {
        "message": message,
        "subject": _subject(to_render, new_records, listing_all=listing_all),
        "new_total": len(new_records),
        "by_company": by_company,
        "failed_sources": failed,
        "added": len(new_records),
        "updated": outcome.updated_count,
        "dropped": outcome.dropped_count,
        "store_path": settings.store_path,
        "delta_path": settings.delta_path,
        "durations_us": {**harvest.durations_us, "_total_us": total_us},
        "email_all_even_if_seen": listing_all,
    }
    logging_bridge.activity({
        "component": _COMPONENT,
        "op": "rendered",
        "new_total": meta["new_total"],
        "by_company": by_company,
        "email_all_even_if_seen": listing_all,
    })
    return html, meta
