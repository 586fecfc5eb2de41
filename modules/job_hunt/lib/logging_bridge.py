# modules/job_hunt/lib/logging_bridge.py
"""
Structured activity/error records for the job_hunt module.

Records go to the service's JSONL files (service.logging_utils) when the
service package is importable; standalone use (scripts, a bare import of
the module) gets a stdlib log line instead. Every record is stamped with
a UTC timestamp and the module name.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

try:
    from service import logging_utils as _backend
except ImportError:  # job_hunt used without the service package
    _backend = None

LOG = logging.getLogger("job_hunt")

_SECRET_HINTS = ("password", "token", "secret", "authorization", "cookie", "api_key", "apikey")


def _stamp(record: dict[str, Any]) -> dict[str, Any]:
    out = {"ts": datetime.now(timezone.utc).isoformat(), "module": "job_hunt"}
    for k, v in record.items():
        out[k] = "***REDACTED***" if any(h in str(k).lower() for h in _SECRET_HINTS) else v
    return out


def _emit(record: dict[str, Any], *, writer: str, level: int) -> None:
    payload = _stamp(record)
    component = str(payload.get("component") or "job_hunt")
    if _backend is not None:
        try:
            getattr(_backend, writer)(payload)
        except (OSError, TypeError, ValueError):
            LOG.debug("%s failed for %s", writer, component, exc_info=True)
        else:
            LOG.debug("%s %s", component, payload.get("op", ""))
            return
    logging.getLogger(component).log(level, "%s", payload)


def activity(record: dict[str, Any]) -> None:
    """Record a normal event (store load/save, kind results, cycle summary)."""
    _emit(record, writer="write_activity_log", level=logging.INFO)


def error(record: dict[str, Any]) -> None:
    """Record a failure (source errors, store failures)."""
    _emit(record, writer="write_error_log", level=logging.ERROR)
