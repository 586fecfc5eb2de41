from __future__ import annotations

from typing import Any

from .lib import engine, logging_bridge
from .lib.config import Settings


def run(**kwargs: Any) -> tuple[str, dict] | None:
    """
    One reconciliation cycle, as called by service.runner.

    kwargs are documented on Settings.from_env_and_kwargs (portals_path,
    store_path, delta_path, max_threads, request_timeout, skip_network,
    max_companies, email_all_even_if_seen, ingest_only_no_email).

    Returns (html, meta) when there is something to email, else None.
    ConfigError and StoreError propagate; the runner records them.
    """
    settings = Settings.from_env_and_kwargs(kwargs)
    logging_bridge.activity({
        "component": "job_hunt.main",
        "op": "start",
        "portals": len(settings.portals),
        "kinds": sorted(settings.group_by_kind()),
        "store_path": settings.store_path,
        "delta_path": settings.delta_path,
        "skip_network": settings.skip_network,
        "email_all_even_if_seen": settings.email_all_even_if_seen,
        "ingest_only_no_email": settings.ingest_only_no_email,
    })
    return engine.run_once(settings)
