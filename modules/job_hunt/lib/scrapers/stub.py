# modules/job_hunt/lib/scrapers/stub.py
from __future__ import annotations

from typing import Any

from ..config import ScraperConfig
from ..models import ScrapeResult, create_record
from .base import BaseScraper
from .registry import register


def _as_list(value: Any) -> list:
    if value is None or value == "":
        return []
    return value if isinstance(value, list) else [value]


@register
class StubScraper(BaseScraper):
    """
    Canned postings for tests and dry runs; never touches the network.

    params:
      items    list of raw posting dicts (any create_record field or alias)
      errors   message(s) to report for the portal
      company  company for items that do not name one
    """

    kind = "stub"

    def run(self, specs: list[ScraperConfig], *, skip_network: bool = False) -> list[ScrapeResult]:
        return [self._one(spec) for spec in specs]

    def _one(self, spec: ScraperConfig) -> ScrapeResult:
        params = spec.params or {}
        defaults = {"company": params.get("company") or "", "source": spec.source}
        items = [
            create_record({**defaults, **raw})
            for raw in _as_list(params.get("items"))
            if isinstance(raw, dict)
        ]
        return ScrapeResult(
            source=spec.source,
            items=items,
            errors=[str(e) for e in _as_list(params.get("errors"))],
        )
