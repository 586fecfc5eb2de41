# service/logging_utils.py
"""
Stdlib logging setup plus the service's two JSONL streams.

    <LOG_DIR>/<ACTIVITY_LOG_PREFIX>-YYYY-MM-DD.jsonl   one line per event
    <LOG_DIR>/<ERROR_LOG_PREFIX>-YYYY-MM-DD.jsonl      one line per failure

Defaults: LOG_DIR=/app/local/logs, prefixes "activity" and "error".
ACTIVITY_LOG_MAX_BYTES > 0 also rotates a day's file by size. Settings are
read on every write so tests can point them elsewhere.

Records are redacted (secret-looking keys, "Bearer <token>" text) and
stamped with host and pid before they are written.
"""

from __future__ import annotations

import contextlib
import datetime as _dt
import json
import logging
import os
import re
import socket
from typing import Any

_REDACTED = "***REDACTED***"
# case-insensitive key substrings
_SECRET_KEYS = frozenset({
    "password", "token", "apikey", "api_key", "secret", "smtp_", "authorization", "cookie", "set-cookie",
})
_BEARER_RE = re.compile(r"\b(bearer)\s+\S+", re.IGNORECASE)

_PROCESS_META = {"host": socket.gethostname(), "pid": os.getpid()}


def setup_logging(level: str | None = None) -> None:
    """basicConfig at $LOG_LEVEL (INFO), unless handlers already exist."""
    if logging.getLogger().handlers:
        return
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_activity_log_path() -> str:
    return _today_path(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def get_error_log_path() -> str:
    return _today_path(os.getenv("ERROR_LOG_PREFIX", "error"))


def write_activity_log(record: dict[str, Any]) -> None:
    """Append `record` to today's activity file. `record` itself is left untouched."""
    _append(get_activity_log_path(), record)


def write_error_log(record: dict[str, Any]) -> None:
    _append(get_error_log_path(), record)


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """Deep copy of `record` with secret values replaced."""
    return _scrub(record, tuple(keys or _SECRET_KEYS))


def _today_path(prefix: str) -> str:
    return os.path.join(os.getenv("LOG_DIR", "/app/local/logs"), f"{prefix}-{_dt.date.today().isoformat()}.jsonl")


def _scrub(value: Any, keys: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            secret = isinstance(k, str) and any(s in k.lower() for s in keys)
            out[k] = _REDACTED if secret else _scrub(v, keys)
        return out
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v, keys) for v in value)
    if isinstance(value, str):
        return _BEARER_RE.sub(lambda m: f"{m.group(1)} {_REDACTED}", value)
    return value


def _rotate(path: str) -> None:
    try:
        limit = int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        limit = 0
    if limit <= 0:
        return
    try:
        too_big = os.path.getsize(path) >= limit
    except FileNotFoundError:
        return
    if too_big:
        with contextlib.suppress(FileNotFoundError):
            os.replace(path, f"{path}.{_dt.datetime.now().strftime('%Y%m%d-%H%M%S')}")


def _append(path: str, record: dict[str, Any]) -> None:
    payload = _scrub(record, tuple(_SECRET_KEYS))
    extra = payload.get("_meta") if isinstance(payload.get("_meta"), dict) else {}
    payload["_meta"] = {**extra, **_PROCESS_META}
    # Serialization errors surface before the file is touched.
    line = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    for attempt in (1, 2):
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            _rotate(path)
            # One O_APPEND write per record keeps concurrent writers' lines whole.
            fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
            try:
                os.write(fd, line)
            finally:
                os.close(fd)
            return
        except OSError:
            if attempt == 2:
                raise
