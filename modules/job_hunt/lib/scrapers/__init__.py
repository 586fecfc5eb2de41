# job_hunt/scrapers/__init__.py
from __future__ import annotations

# Importing the adapters registers them by kind.
from . import amazon, flipkart, lever, stub, workday
from .base import BaseScraper, ScraperError
from .registry import all_kinds, get, register

__all__ = [
    "BaseScraper",
    "ScraperError",
    "all_kinds",
    "amazon",
    "flipkart",
    "get",
    "lever",
    "register",
    "stub",
    "workday",
]
