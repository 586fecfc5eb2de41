# modules/job_hunt/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, ScraperConfig, Settings
from .engine import run_once
from .models import JobRecord, ScrapeResult, create_record, is_valid, merge_into
from .reconcile import ReconcileResult, reconcile
from .store import CodecError, PersistError, StoreError, load_records, save_records

__all__ = [
    "CodecError",
    "ConfigError",
    "JobRecord",
    "PersistError",
    "ReconcileResult",
    "ScrapeResult",
    "ScraperConfig",
    "Settings",
    "StoreError",
    "create_record",
    "is_valid",
    "load_records",
    "merge_into",
    "reconcile",
    "run_once",
    "save_records",
]
