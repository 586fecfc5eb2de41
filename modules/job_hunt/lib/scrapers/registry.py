# modules/job_hunt/lib/scrapers/registry.py
from __future__ import annotations

from .base import BaseScraper

# kind or alias (lower-case) -> adapter class
_BY_NAME: dict[str, type[BaseScraper]] = {}


def _key(name: str) -> str:
    return (name or "").strip().lower()


def register(cls: type[BaseScraper]) -> type[BaseScraper]:
    """
    Class decorator: make `cls` reachable by its `kind` and each of its
    `aliases` (portal names that run on the same platform, e.g. "nvidia"
    for workday). Re-registering a name to another class is an error.
    """
    names = [_key(cls.kind), *(_key(a) for a in cls.aliases)]
    if not names[0]:
        raise ValueError(f"{cls.__name__} has no 'kind'; cannot register it.")
    for name in names:
        owner = _BY_NAME.get(name)
        if owner is not None and owner is not cls:
            raise ValueError(f"Scraper name {name!r} is taken by {owner.__name__}.")
    for name in names:
        _BY_NAME[name] = cls
    return cls


def get(kind: str) -> type[BaseScraper]:
    """Adapter class for a portal `kind` (case-insensitive). KeyError when unknown."""
    try:
        return _BY_NAME[_key(kind)]
    except KeyError:
        raise KeyError(f"No scraper registered for kind {kind!r}.") from None


def all_kinds() -> dict[str, type[BaseScraper]]:
    """Canonical kinds only (aliases left out)."""
    return {name: cls for name, cls in _BY_NAME.items() if name == _key(cls.kind)}
