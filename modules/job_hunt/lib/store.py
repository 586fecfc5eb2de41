"""
Flat-file (CSV) persistence for the job store and the per-cycle delta file.

Every save is a full rewrite: rows go to a temp file in the target directory
which is then renamed over the target, so readers see either the old or the
new file, never a half-written one.
"""

from __future__ import annotations

import contextlib
import csv
import os
import sys
import tempfile
from collections.abc import Iterable

from .logging_bridge import activity as log_activity
from .logging_bridge import error as log_error
from .models import JobRecord

# (field name, header label). Order is the on-disk column order.
COLUMNS: tuple[tuple[str, str], ...] = (
    ("title", "Title"),
    ("company", "Company"),
    ("location", "Location"),
    ("external_job_id", "Job ID"),
    ("posted_date", "Posted Date"),
    ("work_type", "Work Type"),
    ("description", "Description"),
    ("requirements", "Requirements"),
    ("salary", "Salary"),
    ("experience", "Experience"),
    ("employment_type", "Employment Type"),
    ("apply_link", "Link"),
    ("source_name", "Source"),
    ("first_seen_at", "Scraped At"),
    ("last_updated_at", "Last Updated"),
)

HEADERS: tuple[str, ...] = tuple(label for _, label in COLUMNS)

# DictReader stores surplus row values under this key.
_OVERFLOW = "__overflow__"


def _lift_field_size_limit() -> int:
    # save_records writes fields of any length; load must accept them back.
    limit = sys.maxsize
    while True:
        try:
            csv.field_size_limit(limit)
            return limit
        except OverflowError:  # C long is 32-bit on some platforms
            limit //= 2


_lift_field_size_limit()


class StoreError(OSError):
    """Base class for store file failures."""


class CodecError(StoreError):
    """The store file exists but could not be read or parsed."""


class PersistError(StoreError):
    """The store (or delta) file could not be written."""


# ---- Public API -------------------------------------------------------------


def load_records(path: str) -> list[JobRecord]:
    """
    Read all records from `path`, in file order.

    A missing or zero-byte file is an empty store. Any other failure raises
    CodecError so callers never mistake a damaged store for an empty one.
    Unknown columns are ignored, but a header with no known column at all
    is rejected: that file is not a job store and must not be overwritten.
    """
    if not os.path.exists(path):
        log_activity({"component": "job_hunt.store", "op": "load", "path": path, "missing": True, "count": 0})
        return []
    if os.path.isfile(path) and os.path.getsize(path) == 0:
        log_activity({"component": "job_hunt.store", "op": "load", "path": path, "empty": True, "count": 0})
        return []

    records: list[JobRecord] = []
    try:
        with open(path, encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f, restkey=_OVERFLOW, strict=True)
            header = reader.fieldnames
            if not header:
                raise CodecError(f"store file has no header row: {path}")
            if not set(header) & set(HEADERS):
                raise CodecError(f"store file header has none of the expected columns: {path}")

            for row in reader:
                if _OVERFLOW in row:
                    raise CodecError(f"row {reader.line_num} has more fields than the header: {path}")
                records.append(_row_to_record(row))
    except CodecError as e:
        _log_failure("load", path, e)
        raise
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        _log_failure("load", path, e)
        raise CodecError(f"failed to read store file {path}: {e}") from e

    log_activity({"component": "job_hunt.store", "op": "load", "path": path, "count": len(records)})
    return records


def save_records(path: str, records: Iterable[JobRecord]) -> None:
    """
    Write `records` to `path` in order, replacing any existing file.

    Raises PersistError on any I/O failure; the previous file is left untouched.
    """
    rows = [_record_to_row(r) for r in records]
    directory = os.path.dirname(os.path.abspath(path)) or "."
    tmp_path: str | None = None
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".jobs-", suffix=".csv.tmp", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=HEADERS)
            writer.writeheader()
            writer.writerows(rows)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        _log_failure("save", path, e)
        raise PersistError(f"failed to write store file {path}: {e}") from e
    finally:
        if tmp_path is not None:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp_path)

    log_activity({"component": "job_hunt.store", "op": "save", "path": path, "count": len(rows)})


# ---- Internal utilities -----------------------------------------------------


def _row_to_record(row: dict[str, str | None]) -> JobRecord:
    # Missing columns (or short rows) default to ""; unknown columns are ignored.
    # Stamps are taken as stored, never filled in.
    return JobRecord(**{name: row.get(label) or "" for name, label in COLUMNS})


def _record_to_row(record: JobRecord) -> dict[str, str]:
    return {label: getattr(record, name) for name, label in COLUMNS}


def _log_failure(op: str, path: str, exc: BaseException) -> None:
    log_error({
        "component": "job_hunt.store",
        "op": op,
        "path": path,
        "error": repr(exc),
    })
