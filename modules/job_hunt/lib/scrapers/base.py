from __future__ import annotations

from abc import ABC, abstractmethod

from ..config import ScraperConfig
from ..http_client import HttpClient
from ..models import ScrapeResult


class ScraperError(Exception):
    """Base exception for scraper failures."""


class BaseScraper(ABC):
    """
    Abstract portal scraper.

    One instance processes every portal spec of its 'kind' SEQUENTIALLY; the
    engine may run scrapers of different kinds in parallel.

    Contract:
      - run(specs) returns one ScrapeResult PER spec, in spec order.
      - A failing portal is reported in its ScrapeResult.errors, not raised,
        so other portals still reach reconciliation.
      - Never touch the job store, send notifications, or mutate global state.
      - Use only the HttpClient handed in; the engine owns its lifetime.
    """

    # Concrete subclasses MUST set this to a stable string, e.g. "amazon", "lever", "stub"
    kind: str = ""
    # Other portal names served by this adapter (e.g. a company on the platform)
    aliases: tuple[str, ...] = ()

    def __init__(self, client: HttpClient | None = None) -> None:
        self.client = client

    def _require_client(self) -> HttpClient:
        if self.client is None:
            raise ScraperError(f"{type(self).__name__} needs an HttpClient for network access.")
        return self.client

    @abstractmethod
    def run(
        self,
        specs: list[ScraperConfig],
        *,
        skip_network: bool = False,
    ) -> list[ScrapeResult]:
        """
        Execute the scraper for all provided specs SEQUENTIALLY.

        Args:
            specs: ScraperConfig objects of the SAME kind (self.kind)
            skip_network: If True, make no HTTP calls; network adapters return []
        """
        raise NotImplementedError
