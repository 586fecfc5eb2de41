from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import truthy

DEFAULT_PORTALS_PATH = "/app/local/config/job_hunt_portals.json"
DEFAULT_STORE_PATH = "/app/local/state/jobs.csv"
DEFAULT_DELTA_PATH = "/app/local/state/newly_added_jobs.csv"

# kwarg -> (cast, default, smallest allowed value)
_NUMERIC: dict[str, tuple[type, float, float]] = {
    "max_threads": (int, 4, 1),
    "request_timeout": (float, 20.0, 0.001),
    "max_companies": (int, 20, 1),
}
_FLAGS = ("skip_network", "email_all_even_if_seen", "ingest_only_no_email")


class ConfigError(ValueError):
    """Raised when kwargs/env or the portals file cannot form valid Settings."""


@dataclass(frozen=True)
class ScraperConfig:
    """
    One portal to scrape.

    kind:   adapter family ("amazon", "lever", "workday", "stub", or an alias)
    source: label used in logs and the email (e.g. "Amazon - SDE Bangalore")
    params: passed to the adapter as-is (usually at least {"url": ...})
    """

    kind: str
    source: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Settings:
    """Everything one job_hunt cycle needs, resolved and checked up front."""

    portals_path: str = DEFAULT_PORTALS_PATH
    store_path: str = DEFAULT_STORE_PATH
    delta_path: str = DEFAULT_DELTA_PATH
    portals: tuple[ScraperConfig, ...] = ()

    max_threads: int = 4
    request_timeout: float = 20.0
    max_companies: int = 20
    skip_network: bool = False

    # email this cycle's valid candidates, not only the new ones
    email_all_even_if_seen: bool = False
    # reconcile and save, never email
    ingest_only_no_email: bool = False

    def group_by_kind(self) -> dict[str, list[ScraperConfig]]:
        """Enabled portals bucketed by kind, in file order."""
        groups: dict[str, list[ScraperConfig]] = {}
        for portal in self.portals:
            groups.setdefault(portal.kind, []).append(portal)
        return groups

    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from job kwargs. All are optional:

            portals_path            else $JOB_HUNT_PORTALS_PATH, else DEFAULT_PORTALS_PATH
            store_path, delta_path  must name different files
            max_threads=4, request_timeout=20, max_companies=20
            skip_network, email_all_even_if_seen, ingest_only_no_email

        The portals file is read here, so a missing or empty one fails
        before any scraping starts.
        """
        kw = dict(kwargs or {})
        portals_path = str(
            kw.get("portals_path") or os.getenv("JOB_HUNT_PORTALS_PATH") or DEFAULT_PORTALS_PATH
        ).strip()
        store_path = str(kw.get("store_path") or DEFAULT_STORE_PATH).strip()
        delta_path = str(kw.get("delta_path") or DEFAULT_DELTA_PATH).strip()
        if os.path.abspath(store_path) == os.path.abspath(delta_path):
            raise ConfigError("'store_path' and 'delta_path' must be different files.")

        return cls(
            portals_path=portals_path,
            store_path=store_path,
            delta_path=delta_path,
            portals=tuple(load_portals(portals_path)),
            **{name: _number(kw, name) for name in _NUMERIC},
            **{name: truthy(kw.get(name)) for name in _FLAGS},
        )


def load_portals(path: str) -> list[ScraperConfig]:
    """Read the portals file; entries with a false 'scrape' are left out."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"job_hunt portals file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"job_hunt portals file is invalid JSON: {path}") from e

    if not isinstance(data, list):
        raise ConfigError(f"{path}: expected a list of portal objects.")
    portals = [p for i, item in enumerate(data) if (p := _portal(item, i)) is not None]
    if not portals:
        raise ConfigError(f"No enabled portals found in {path}")
    return portals


def _portal(item: Any, i: int) -> ScraperConfig | None:
    if not isinstance(item, dict):
        raise ConfigError(f"Portal[{i}] must be an object.")
    kind, source = str(item.get("kind") or "").strip(), str(item.get("source") or "").strip()
    if not kind or not source:
        raise ConfigError(f"Portal[{i}] requires 'kind' and 'source'.")
    params = item.get("params") or {}
    if not isinstance(params, dict):
        raise ConfigError(f"Portal[{i}].params must be an object.")
    if "scrape" in item and not truthy(item["scrape"]):
        return None
    return ScraperConfig(kind=kind, source=source, params=dict(params))


def _number(kw: Mapping[str, Any], name: str) -> Any:
    cast, default, minimum = _NUMERIC[name]
    raw = kw.get(name)
    try:
        value = cast(raw) if raw not in (None, "") else cast(default)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number (got {raw!r}).") from e
    if value < minimum:
        raise ConfigError(f"'{name}' must be >= {minimum} (got {value}).")
    return value
