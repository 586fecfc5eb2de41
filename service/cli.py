# service/cli.py
"""
Command line for the job hunt service.

    serve                          run the scheduler until SIGINT/SIGTERM
    run MODULE [--kwargs k=v ...]  one ad-hoc run (--no-email, --print-html)
    list-jobs                      the configured jobs
    validate-config                exit 1 when the config (or a trigger) is bad
    jobs [--company X] [--search Y] [--sort-by F] [--order asc|desc]
         [--page N] [--limit N] [--json]
                                   browse the job store

Config comes from --config, else $CONFIG_PATH.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any

from modules.job_hunt.lib.config import DEFAULT_STORE_PATH
from modules.job_hunt.lib.query import query_jobs
from modules.job_hunt.lib.store import StoreError
from service import config_schema, runner
from service import logging_utils as L
from service import scheduler as sched

LOG = logging.getLogger("service.cli")

_NO_EMAIL_ENV = {"SCHEDULED_MODULES_DRY_RUN": "1", "SEND_EMAIL": "0"}


def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    key=value strings -> dict. Values that parse as JSON (numbers, true/false,
    quoted strings, arrays, objects) are decoded; the rest stay text.
    """
    parsed: dict[str, Any] = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if not sep:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {item!r})")
        if not key:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {item!r}")
        try:
            parsed[key] = json.loads(value)
        except json.JSONDecodeError:
            parsed[key] = value
    return parsed


@contextmanager
def _patched_env(values: dict[str, str]) -> Iterator[None]:
    saved = {name: os.environ.get(name) for name in values}
    os.environ.update(values)
    try:
        yield
    finally:
        for name, previous in saved.items():
            if previous is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = previous


def _table(rows: Iterable[Sequence[Any]], headers: Sequence[str]) -> str:
    """Fixed-width ASCII table."""
    cells = [[str(c) for c in row] for row in rows]
    widths = [max(len(h), *(len(r[i]) for r in cells)) if cells else len(h) for i, h in enumerate(headers)]
    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(values: Sequence[str]) -> str:
        return "| " + " | ".join(v.ljust(w) for v, w in zip(values, widths)) + " |"

    return "\n".join([rule, line(headers), rule, *(line(r) for r in cells), rule])


def _clip(value: str, width: int) -> str:
    return value if len(value) <= width else value[: width - 1] + "…"


def _stamp() -> str:
    return datetime.now().astimezone().isoformat()


def _log_event(writer, record: dict[str, Any]) -> None:
    try:
        writer({"ts": _stamp(), **record})
    except OSError:
        LOG.warning("Could not write %s record", record.get("event") or record.get("where"), exc_info=True)


# ---- serve ------------------------------------------------------------------


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the scheduler until SIGINT/SIGTERM, then stop it cleanly."""
    stopping = threading.Event()

    def _request_stop(signum=None, _frame=None) -> None:
        LOG.info("Signal %s received; stopping.", signum)
        stopping.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    try:
        controller = sched.start(config_path=args.config)
    except ValueError as e:  # ConfigError included
        LOG.error("Cannot start the scheduler: %s", e)
        return 1
    _log_event(L.write_activity_log, {"event": "serve_start", "jobs": list(controller.get_job_ids())})

    try:
        stopping.wait()
    except KeyboardInterrupt:
        controller.stop()
        return 130

    controller.stop()
    controller.join(timeout=10.0)
    _log_event(L.write_activity_log, {"event": "serve_stop"})
    return 0


# ---- run --------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    kwargs = _parse_kv_pairs(args.kwargs or [])
    t0 = time.monotonic()
    LOG.debug("Ad-hoc run of %s with %s", args.module, kwargs)

    try:
        with _patched_env(_NO_EMAIL_ENV if args.no_email else {}):
            html, run_id = runner.run_module_once(
                module=args.module,
                kwargs=kwargs,
                send_email=not args.no_email,
                trigger_type="adhoc",
            )
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        print(f"FAILURE: {e}", file=sys.stderr)
        _log_event(L.write_error_log, {
            "where": "cli.run",
            "module": args.module,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - t0) * 1000),
        })
        return 1

    LOG.info("Run %s finished in %.3fs", run_id, time.monotonic() - t0)
    if not html:
        print("DONE: Module run completed.")
        return 0
    if args.print_html:
        print("\n----- HTML OUTPUT -----\n")
        print(html)
    print("SUCCESS: HTML returned.")
    return 0


# ---- config -----------------------------------------------------------------


def cmd_list_jobs(args: argparse.Namespace) -> int:
    try:
        cfg = config_schema.load_config(args.config)
    except config_schema.ConfigError as e:
        print(f"ERROR: failed to list jobs: {e}", file=sys.stderr)
        return 1

    jobs = cfg.get("jobs", [])
    if not jobs:
        print("No jobs found in config.")
        return 0
    rows = []
    for job in jobs:
        details = job.get("summary") or job.get("description")
        if not details:
            details = f"{job.get('module')} {json.dumps(job.get('trigger') or {}, default=str)}"
        rows.append((job["id"], details))
    print(_table(rows, headers=("JOB", "DETAILS")))
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = config_schema.load_config(args.config)
        config_schema.validate(cfg)
        sched.build_scheduler(cfg, strict=True)  # triggers must build too
    except (KeyError, TypeError, ValueError) as e:  # ConfigError is a ValueError
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1
    print("OK: configuration is valid.")
    return 0


# ---- jobs -------------------------------------------------------------------


def cmd_jobs(args: argparse.Namespace) -> int:
    try:
        result = query_jobs(
            args.store,
            company=args.company,
            search=args.search,
            sort_by=args.sort_by,
            sort_order=args.order,
            page=args.page,
            limit=args.limit,
        )
    except StoreError as e:
        print(f"ERROR: cannot read job store {args.store}: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(asdict(result), ensure_ascii=False, indent=2))
        return 0

    stats, pages = result.stats, result.pagination
    print(
        f"{stats['filteredJobs']} of {stats['totalJobs']} jobs across {stats['companies']} companies"
        f" (last updated: {stats['lastUpdated'] or 'never'})"
    )
    if not result.jobs:
        print("No jobs match.")
        return 0
    rows = [
        (_clip(j["company"], 24), _clip(j["title"], 60), _clip(j["location"], 30), j["postedDate"], j["link"])
        for j in result.jobs
    ]
    print(_table(rows, headers=("COMPANY", "TITLE", "LOCATION", "POSTED", "LINK")))
    print(f"Page {pages['currentPage']} of {pages['pages']}")
    return 0


# ---- wiring -----------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="job-hunt", description="Job hunt service command-line tools")
    parser.add_argument("--config", help="Config file (default: $CONFIG_PATH).")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("serve", help="Run the scheduler loop.").set_defaults(func=cmd_serve)
    sub.add_parser("list-jobs", help="Print the configured jobs.").set_defaults(func=cmd_list_jobs)
    sub.add_parser("validate-config", help="Check the config and its triggers.").set_defaults(
        func=cmd_validate_config
    )

    run = sub.add_parser("run", help="Run a module once, now.")
    run.add_argument("module", help="Dotted module path, e.g. modules.job_hunt.")
    run.add_argument("--kwargs", metavar="k=v", nargs="*", help="Module kwargs; JSON values are decoded.")
    run.add_argument("--no-email", action="store_true", help="Do everything except send email.")
    run.add_argument("--print-html", action="store_true", help="Print the returned HTML.")
    run.set_defaults(func=cmd_run)

    jobs = sub.add_parser("jobs", help="Query the job store (filter, sort, paginate).")
    jobs.add_argument(
        "--store",
        default=os.getenv("JOB_HUNT_STORE_PATH", DEFAULT_STORE_PATH),
        help="Store CSV (default: $JOB_HUNT_STORE_PATH or %(default)s).",
    )
    jobs.add_argument("--company", help="Case-insensitive company substring.")
    jobs.add_argument("--search", help="Substring over title, description, requirements, location.")
    jobs.add_argument("--sort-by", default="postedDate", help="Column id to sort on (default %(default)s).")
    jobs.add_argument("--order", choices=("asc", "desc"), default="desc")
    jobs.add_argument("--page", type=int, default=1)
    jobs.add_argument("--limit", type=int, default=20)
    jobs.add_argument("--json", action="store_true", help="Print the raw result as JSON.")
    jobs.set_defaults(func=cmd_jobs)
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    L.setup_logging()
    args = _build_parser().parse_args(None if argv is None else list(argv))
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
