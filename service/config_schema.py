# service/config_schema.py
"""
Service configuration: where it is read from and what a valid one looks like.

    {
      "timezone": "Asia/Kolkata",
      "jobs": [
        {"id": "job-hunt", "module": "modules.job_hunt",
         "trigger": {"cron": "0 8,10,13,16,19,22 * * *"},
         "kwargs": {"portals_path": "...", "store_path": "...", "delta_path": "..."},
         "email_to_env": "JOB_HUNT_EMAIL_TO", "timeout_sec": 1800}
      ]
    }

JSON, or YAML when the file ends in .yml/.yaml.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the service config is invalid."""


TRIGGER_KINDS = ("cron", "interval", "date", "daily_time")

# field -> accepted trigger value types
_TRIGGER_SHAPES: dict[str, tuple[type, ...]] = {
    "cron": (str, dict),
    "interval": (dict,),
    "date": (str, int, float, dict),
    "daily_time": (dict,),
}
_BOOL_FIELDS = ("coalesce", "send_email")
# field -> smallest allowed value
_INT_FIELDS = {"timeout_sec": 0, "max_instances": 1, "misfire_grace_time": 0}
_RECIPIENT_FIELDS = ("email_to", "email_cc", "email_bcc")
_TEXT_FIELDS = ("subject", "summary", "description")

# Settings the job_hunt module understands; anything else is most likely a typo.
_JOB_HUNT_KWARGS = frozenset({
    "portals_path", "store_path", "delta_path", "max_threads", "request_timeout",
    "skip_network", "max_companies", "email_all_even_if_seen", "ingest_only_no_email",
})


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Read and normalize the config from `path`, else $CONFIG_PATH, else an
    empty job list. Normalizing fills in job ids, the timezone ($TZ, then
    UTC) and recipients named by email_*_env, and coerces bool/int fields.
    """
    source = path or os.environ.get("CONFIG_PATH")
    if source:
        cfg = _read_any(source)
    else:
        logger.info("CONFIG_PATH not provided; running with no jobs.")
        cfg = {"jobs": []}
    return _normalize(cfg)


def validate(cfg: dict[str, Any]) -> None:
    """Raise ConfigError for the first problem found; return None when valid."""
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a mapping.")
    if not isinstance(cfg.get("jobs"), list):
        raise ConfigError("Missing required top-level 'jobs' list.")
    if cfg.get("timezone") is not None and not isinstance(cfg["timezone"], str):
        raise ConfigError("'timezone' must be a string if provided.")

    seen: set[str] = set()
    for idx, job in enumerate(cfg["jobs"]):
        job_id = _check_job(job, idx)
        if job_id in seen:
            raise ConfigError(f"Duplicate job id '{job_id}'.")
        seen.add(job_id)


# ---- Per-job checks ---------------------------------------------------------


def _check_job(job: Any, idx: int) -> str:
    if not isinstance(job, dict):
        raise ConfigError(f"Job at index {idx} must be an object.")
    module = job.get("module")
    if not isinstance(module, str) or not module.strip():
        raise ConfigError(f"Job {idx}: 'module' is required and must be a non-empty string.")

    job_id = _derive_job_id(job, idx)
    _check_trigger(job.get("trigger"), job_id)
    _coerce_scalars(job, job_id)

    kwargs = job.get("kwargs", {})
    if not isinstance(kwargs, dict):
        raise ConfigError(f"Job '{job_id}': 'kwargs' must be an object if provided.")
    if module.strip() == "modules.job_hunt":
        _check_job_hunt_kwargs(kwargs, job_id)

    for name in _RECIPIENT_FIELDS:
        if name in job:
            job[name] = _recipients(job[name], field=name, job_id=job_id)
    for name in _TEXT_FIELDS:
        if name in job and not isinstance(job[name], str):
            raise ConfigError(f"Job '{job_id}': '{name}' must be a string if provided.")
    return job_id


def _check_trigger(trigger: Any, job_id: str) -> None:
    """Shape only; service.scheduler builds (and fully checks) the trigger."""
    if not isinstance(trigger, dict):
        raise ConfigError(f"Job '{job_id}': 'trigger' object is required.")
    kinds = [k for k in TRIGGER_KINDS if trigger.get(k) is not None]
    if len(kinds) != 1:
        raise ConfigError(f"Job '{job_id}': exactly one trigger required among {', '.join(TRIGGER_KINDS)}.")
    kind = kinds[0]
    value = trigger[kind]
    if not isinstance(value, _TRIGGER_SHAPES[kind]) or isinstance(value, bool):
        raise ConfigError(f"Job '{job_id}': '{kind}' trigger has the wrong shape ({type(value).__name__}).")
    if kind == "daily_time" and not value.get("time"):
        raise ConfigError(f"Job '{job_id}': daily_time needs a 'time' (HH:MM or a list of them).")


def _check_job_hunt_kwargs(kwargs: dict[str, Any], job_id: str) -> None:
    unknown = sorted(k for k in kwargs if k not in _JOB_HUNT_KWARGS and not k.endswith("_env"))
    if unknown:
        logger.warning("Job '%s': kwargs not used by job_hunt: %s", job_id, ", ".join(unknown))
    store, delta = kwargs.get("store_path"), kwargs.get("delta_path")
    if store and delta and os.path.abspath(str(store)) == os.path.abspath(str(delta)):
        raise ConfigError(f"Job '{job_id}': store_path and delta_path must be different files.")


# ---- Normalization ----------------------------------------------------------


def _normalize(cfg: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(cfg.get("jobs"), list):
        cfg["jobs"] = []
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    jobs: list[dict[str, Any]] = []
    for idx, raw in enumerate(cfg["jobs"]):
        if not isinstance(raw, dict):
            raise ConfigError(f"Job at index {idx} must be an object.")
        job = dict(raw)
        job["id"] = _derive_job_id(job, idx)
        _resolve_recipient_env(job)
        _coerce_scalars(job, job["id"])
        for name in _RECIPIENT_FIELDS:
            if name in job:
                job[name] = _recipients(job[name], field=name, job_id=job["id"])
        jobs.append(job)
    cfg["jobs"] = jobs
    return cfg


def _resolve_recipient_env(job: dict[str, Any]) -> None:
    # "email_to_env": "JOB_HUNT_EMAIL_TO" -> "email_to": [addresses from that var]
    for name in _RECIPIENT_FIELDS:
        env_name = job.pop(f"{name}_env", None)
        if isinstance(env_name, str) and env_name.strip():
            value = os.getenv(env_name.strip(), "")
            job[name] = [a.strip() for a in value.split(",") if a.strip()]


def _coerce_scalars(job: dict[str, Any], job_id: str) -> None:
    for name in _BOOL_FIELDS:
        if name in job:
            job[name] = _to_bool(job[name], field=name, job_id=job_id)
    for name, minimum in _INT_FIELDS.items():
        if name in job:
            job[name] = _to_int(job[name], field=name, job_id=job_id, minimum=minimum)


def _derive_job_id(job: dict[str, Any], idx: int) -> str:
    for key in ("id", "name", "module"):
        v = job.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return f"job_{idx}"


def _recipients(value: Any, *, field: str, job_id: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        raise ConfigError(f"Job '{job_id}': '{field}' must be a string or list of strings.")
    if not all(isinstance(v, str) and v.strip() for v in value):
        raise ConfigError(f"Job '{job_id}': every '{field}' entry must be a non-empty string.")
    return [v.strip() for v in value]


def _to_bool(value: Any, *, field: str, job_id: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Job '{job_id}': '{field}' must be a boolean (or boolean-like string).")


def _to_int(value: Any, *, field: str, job_id: str, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Job '{job_id}': '{field}' must be an integer.") from err
    if number < minimum:
        raise ConfigError(f"Job '{job_id}': '{field}' must be >= {minimum} (got {number}).")
    return number


def _read_any(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    try:
        if path.lower().endswith((".yml", ".yaml")):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be a mapping/object.")
    return data
