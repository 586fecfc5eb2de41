# service/scheduler.py
"""
APScheduler wiring: one BackgroundScheduler, one job per config entry.

Triggers come from the job's "trigger" block, one of:

    {"cron": "0 8,10,13,16,19,22 * * *"}            crontab, scheduler tz
    {"cron": {"minute": "0,45", "hour": "5-6", ...}}
    {"interval": {"hours": 3}}
    {"date": "2099-01-01T00:00:00Z"} or {"date": {"run_at": ..., "timezone": ...}}
    {"daily_time": {"time": ["08:00", "13:30"], "day_of_week": "mon-fri"}}

A block's own "timezone" wins over the scheduler's.
"""

from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, logging_utils, runner

LOG = logging.getLogger(__name__)

# One cycle at a time per job; a burst of missed slots runs once.
JOB_DEFAULTS: dict[str, Any] = {"coalesce": True, "max_instances": 1}

_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_BOUNDS = {"timezone", "start_date", "end_date"}
_ALLOWED_FIELDS = {
    "interval": {*_INTERVAL_UNITS, "jitter", *_BOUNDS},
    "cron": {"second", "minute", "hour", "day", "day_of_week", "month", "jitter", *_BOUNDS},
    "daily_time": {"time", "day_of_week", "timezone"},
}


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    module: str
    trigger: BaseTrigger
    kwargs: dict[str, Any] = field(default_factory=dict)
    send_email: bool | None = None
    timeout_sec: int | None = None
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int | None = None
    summary: str | None = None
    email_to: list[str] | None = None
    email_cc: list[str] | None = None
    email_bcc: list[str] | None = None
    subject: str | None = None


class SchedulerController:
    """Start/stop handle the CLI holds while `serve` runs."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped = threading.Event()

    def get_job_ids(self) -> Iterable[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # In-flight cycles finish; they are never cut between store writes.
            self._scheduler.shutdown(wait=False)
        self._stopped.set()
        LOG.info("Scheduler stopped.")

    def join(self, timeout: float | None = None) -> bool:
        """Wait for stop(); False if `timeout` ran out first."""
        return self._stopped.wait(timeout=timeout)


def start(config_path: str | None = None) -> SchedulerController:
    """Load the config, register its jobs and start the background scheduler."""
    scheduler = build_scheduler(config_schema.load_config(config_path))
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


def build_scheduler(cfg: dict[str, Any], *, strict: bool = False) -> BackgroundScheduler:
    """
    Return an unstarted scheduler holding every job from `cfg` that builds.

    A job that does not build is logged and skipped, so one typo never
    takes the others down; strict=True raises instead (validate-config).
    """
    jobs = cfg.get("jobs", [])
    if not isinstance(jobs, list):
        raise ValueError("config.jobs must be a list")

    tz = _resolve_timezone(cfg)
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=dict(JOB_DEFAULTS),
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 10))},
        jobstores={"default": MemoryJobStore()},
    )
    for raw in jobs:
        try:
            spec = _make_job_spec(raw, tz=tz)
        except (KeyError, TypeError, ValueError):
            if strict:
                raise
            LOG.exception("Skipping job due to config error: %r", raw)
        else:
            _add_job(scheduler, spec)
    return scheduler


def _resolve_timezone(cfg: dict[str, Any]):
    # APScheduler 3.x is happiest with pytz zones.
    name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC", name)
        return pytz.UTC


def _make_job_spec(raw: dict[str, Any], tz) -> JobSpec:
    module = _require(raw, "module")
    job_id = str(raw.get("id") or raw.get("name") or module)

    max_instances = _int_or(raw.get("max_instances"), None) or JOB_DEFAULTS["max_instances"]
    if max_instances > 1:
        LOG.warning("Job[%s] allows %d overlapping runs; cycles sharing a store must not overlap.", job_id, max_instances)

    return JobSpec(
        id=job_id,
        module=module,
        trigger=_build_trigger(_require(raw, "trigger"), tz),
        kwargs=dict(raw.get("kwargs") or {}),
        send_email=raw.get("send_email"),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=max_instances,
        coalesce=bool(raw.get("coalesce", JOB_DEFAULTS["coalesce"])),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
        email_to=raw.get("email_to"),
        email_cc=raw.get("email_cc"),
        email_bcc=raw.get("email_bcc"),
        subject=raw.get("subject"),
    )


# ---- Triggers ---------------------------------------------------------------


def _build_trigger(trig_def: dict[str, Any], tz: Any) -> BaseTrigger:
    """Build the APScheduler trigger for one job's trigger block (see module doc)."""
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")
    kinds = [k for k in _TRIGGER_BUILDERS if trig_def.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError(f"exactly one of {sorted(_TRIGGER_BUILDERS)} must be provided")

    kind = kinds[0]
    spec = trig_def[kind]
    if kind in _ALLOWED_FIELDS:
        if not isinstance(spec, dict) and not (kind == "cron" and isinstance(spec, str)):
            raise ValueError(f"{kind} trigger must be an object")
        if isinstance(spec, dict) and (unknown := set(spec) - _ALLOWED_FIELDS[kind]):
            raise ValueError(f"{kind} has unknown field(s): {sorted(unknown)}")
    return _TRIGGER_BUILDERS[kind](spec, _zone(tz))


def _zone(z: Any) -> _dt_tzinfo | None:
    if not z:
        return None
    return z if isinstance(z, _dt_tzinfo) else ZoneInfo(str(z))


def _own_zone(spec: Any, fallback: _dt_tzinfo | None) -> _dt_tzinfo | None:
    return (_zone(spec.get("timezone")) if isinstance(spec, dict) else None) or fallback


def _interval(spec: dict[str, Any], tz: _dt_tzinfo | None) -> IntervalTrigger:
    amounts: dict[str, int] = {}
    for unit in (*_INTERVAL_UNITS, "jitter"):
        try:
            n = int(spec.get(unit, 0))
        except (TypeError, ValueError) as err:
            raise ValueError(f"interval.{unit} must be an integer") from err
        if n < 0:
            raise ValueError(f"interval.{unit} must be >= 0")
        if n:
            amounts[unit] = n
    if not set(amounts) & set(_INTERVAL_UNITS):
        raise ValueError("interval needs at least one nonzero time field")
    bounds = {k: spec[k] for k in ("start_date", "end_date") if k in spec}
    return IntervalTrigger(timezone=_own_zone(spec, tz), **amounts, **bounds)


def _cron(spec: str | dict[str, Any], tz: _dt_tzinfo | None) -> CronTrigger:
    if isinstance(spec, str):
        if len(spec.split()) not in (5, 6):
            raise ValueError(f"cron string must have 5 or 6 fields: {spec!r}")
        return CronTrigger.from_crontab(spec, timezone=tz)
    fields = {k: spec.get(k) for k in ("day", "day_of_week", "month", "start_date", "end_date", "jitter")}
    return CronTrigger(
        second=spec.get("second", 0),
        minute=spec.get("minute", 0),
        hour=spec.get("hour", 0),
        timezone=_own_zone(spec, tz),
        **fields,
    )


def _date(spec: Any, tz: _dt_tzinfo | None) -> DateTrigger:
    run_at = spec.get("run_at") if isinstance(spec, dict) else spec
    zone = _own_zone(spec, tz)
    if run_at is None:
        raise ValueError("date trigger requires 'run_at'")

    if isinstance(run_at, (int, float)):
        when = datetime.fromtimestamp(run_at, tz=zone or timezone.utc)
    elif isinstance(run_at, datetime):
        when = run_at
    else:
        try:
            when = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
    if when.tzinfo is None and hasattr(zone, "localize"):  # pytz zone
        when = zone.localize(when)
    elif when.tzinfo is None:
        when = when.replace(tzinfo=zone)
    return DateTrigger(run_date=when, timezone=when.tzinfo or zone)


def _hms(text: str) -> tuple[int, int, int]:
    parts = text.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {text!r}")
    try:
        value = time(*(int(p) for p in parts))
    except (TypeError, ValueError) as err:
        raise ValueError(f"daily_time.time out of range or not numeric: {text!r}") from err
    return value.hour, value.minute, value.second


def _daily_time(spec: dict[str, Any], tz: _dt_tzinfo | None) -> BaseTrigger:
    """Exact (hour, minute) pairs; a cron hour list would fire every cross product."""
    times = spec.get("time")
    if not times:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    zone = _own_zone(spec, tz)
    triggers = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=spec.get("day_of_week"), timezone=zone)
        for h, m, s in sorted({_hms(str(t)) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


_TRIGGER_BUILDERS: dict[str, Callable[[Any, _dt_tzinfo | None], BaseTrigger]] = {
    "interval": _interval,
    "cron": _cron,
    "date": _date,
    "daily_time": _daily_time,
}


# ---- Running ----------------------------------------------------------------


def _run_job(spec: JobSpec) -> None:
    """
    What APScheduler calls on each slot. Failures end here: they are
    logged and recorded, and the next slot fires as usual.
    """
    LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
    t0 = _time.monotonic()
    status = "ok"
    try:
        runner.run_module_once(
            spec.module,
            kwargs=dict(spec.kwargs),
            email_to=spec.email_to,
            subject=spec.subject,
            send_email=True if spec.send_email is None else spec.send_email,
            trigger_type="scheduled",
            cc=spec.email_cc,
            bcc=spec.email_bcc,
            job_context={
                "job_id": spec.id,
                "module": spec.module,
                "now_iso": datetime.now(timezone.utc).isoformat(),
            },
            timeout_sec=spec.timeout_sec,
        )
    except Exception:
        LOG.exception("Job[%s] raised an exception.", spec.id)
        status = "error"
    elapsed = _time.monotonic() - t0
    if status == "ok":
        LOG.info("Job[%s] finished in %.3fs", spec.id, elapsed)
    _record_run(spec, status, elapsed)


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    scheduler.add_job(
        _run_job,
        trigger=spec.trigger,
        args=(spec,),
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )
    LOG.info("Registered job[%s] module=%s trigger=%s", spec.id, spec.module, spec.trigger)


def _record_run(spec: JobSpec, status: str, elapsed_s: float) -> None:
    record = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "source": "scheduler",
        "event": "job_run",
        "fields": {
            "job_id": spec.id,
            "module": spec.module,
            "status": status,
            "duration_ms": int(elapsed_s * 1000),
            "summary": spec.summary,
        },
    }
    try:
        logging_utils.write_activity_log(record)
    except (OSError, TypeError, ValueError):
        LOG.debug("activity log write failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if d.get(key) in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """Lenient int() for config values."""
    try:
        return default if v is None else int(v)
    except (TypeError, ValueError):
        return default
