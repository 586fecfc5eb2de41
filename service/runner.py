# service/runner.py
"""
Run one module once: call its run(**kwargs), mail the HTML it returns, and
leave one activity record behind, whatever the outcome.

Modules return None (nothing to send), an HTML fragment, or
(html, meta) where meta may carry 'subject' and 'message'. The
job_hunt module returns (html, meta) only when it found new postings.
"""

from __future__ import annotations

import importlib
import json
import logging
import os
import re
import time
import uuid
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from typing import Any

from service import logging_utils
from service.emailer import EmailSendError, _resolve_smtp_settings, send_html

log = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_NUMBER_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
_BOOL_WORDS = {"true": True, "t": True, "yes": True, "y": True, "false": False, "f": False, "no": False, "n": False}


def now_iso() -> str:
    return datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")


def _env_flag(name: str, default: str = "") -> bool:
    return str(os.getenv(name, default)).strip().lower() in _TRUE


def _wrap_email(title: str, body_inner_html: str) -> str:
    """Minimal mail-client-safe document around a module's inner HTML."""
    return f"""<html>
  <body style="font-family:ui-sans-serif,system-ui;line-height:1.5;margin:0;padding:8px">
    <style>
      h2,h3 {{ margin:8px 0 4px; }}
      p {{ margin:4px 0; }}
      table {{ border-collapse:collapse; margin:4px 0 12px; }}
      th {{ background:#f3f3f3; text-align:left; }}
      ul {{ margin:4px 0 4px 20px; padding:0; }}
    </style>
    <h2>{escape(title)}</h2>
    {body_inner_html}
  </body>
</html>"""


# ---- kwargs -----------------------------------------------------------------


def _coerce_scalar(s: str) -> Any:
    if s.lower() in _BOOL_WORDS:
        return _BOOL_WORDS[s.lower()]
    if _NUMBER_RE.fullmatch(s):
        return float(s) if any(c in s for c in ".eE") else int(s)
    return s


def _coerce_text(s: str) -> Any:
    s = s.strip()
    if not s:
        return s
    if s[0] + s[-1] in ("{}", "[]"):
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return s
    return _coerce_scalar(s)


def _normalize_kwargs_types(kwargs: Mapping[str, object] | None) -> dict[str, object]:
    """
    Normalize job kwargs right before module.run(**kwargs):

      - "<key>_env" entries name an ENV VAR; its value is passed as <key>
        (e.g. store_path_env: JOB_HUNT_STORE_PATH -> store_path). An
        explicit <key> wins.
      - strings that look like JSON objects/arrays are parsed.
      - other strings get bool/number coercion ("true", "4", "2.5").
      - non-strings pass through unchanged.
    """
    kwargs = kwargs or {}
    out: dict[str, object] = {}
    for key, value in kwargs.items():
        if key.endswith("_env") and isinstance(value, str):
            target = key[: -len("_env")]
            if target not in kwargs:
                out[target] = os.getenv(value.strip(), "")
        else:
            out[key] = _coerce_text(value) if isinstance(value, str) else value
    return out


def _resolve_callable(module_path: str) -> Callable[..., Any]:
    """Import `module_path` and return its run callable."""
    run = getattr(importlib.import_module(module_path), "run", None)
    if not callable(run):
        raise AttributeError(f"Module {module_path!r} does not define a callable `run(**kwargs)`.")
    return run


# ---- results ----------------------------------------------------------------


@dataclass
class RunResult:
    ok: bool
    message: str = "OK"
    html: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None

    @property
    def subject(self) -> str | None:
        return self.meta.get("subject")


def _coerce_result(value: Any) -> RunResult:
    """
    Normalize a module return value. Accepted:

      None                        nothing to send
      "<p>..</p>"                 inner HTML
      ("<p>..</p>", {meta})       inner HTML + meta ('subject', 'message')
      {"html": .., "meta": {..}}  same, as a dict
      {meta}                      meta only
    """
    html: Any = None
    meta: Any = {}
    if value is None:
        pass
    elif isinstance(value, str):
        html = value
    elif isinstance(value, tuple) and len(value) == 2 and isinstance(value[1], dict):
        html, meta = value
    elif isinstance(value, dict) and "html" in value:
        html, meta = value.get("html"), value.get("meta")
    elif isinstance(value, dict):
        meta = value
    else:
        raise TypeError("Module return must be one of: None, str, (str, dict), or {'html':..., 'meta':...}")

    meta = meta if isinstance(meta, dict) else {}
    html = html if isinstance(html, str) else None
    return RunResult(ok=True, message=str(meta.get("message", "OK")), html=html, meta=meta)


def _failed(err: BaseException, **meta: Any) -> RunResult:
    return RunResult(ok=False, message=str(err), meta={"exception_type": type(err).__name__, **meta}, error=err)


def _call_module(run: Callable[..., Any], kwargs: dict[str, object], timeout_sec: int | None) -> RunResult:
    """
    Call `run` on a worker thread. Leaving the pool waits for the call even
    after a timeout: a job_hunt cycle is never cut off between its store and
    delta writes, and whatever it returned late is still kept.
    """
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runner") as pool:
        future = pool.submit(run, **kwargs)
        done, _ = wait([future], timeout=timeout_sec or None)
    timed_out = future not in done

    err = future.exception()
    if err is not None:
        return _failed(err, timed_out=timed_out)
    try:
        result = _coerce_result(future.result())
    except TypeError as e:
        return _failed(e)
    if timed_out:
        late = TimeoutError(f"Module run timed out after {timeout_sec}s")
        result.ok, result.message, result.error = False, str(late), late
        result.meta = {**result.meta, "timed_out": True, "timeout_sec": timeout_sec}
    return result


# ---- email ------------------------------------------------------------------


def _default_email_to() -> list[str]:
    """Fall back to the SMTP sender address as the recipient."""
    addr = _resolve_smtp_settings().from_addr
    return [addr] if addr else []


def _should_send(send_email: bool | None) -> bool:
    if _env_flag("SCHEDULED_MODULES_DRY_RUN"):
        return False
    return _env_flag("SEND_EMAIL", "1") if send_email is None else bool(send_email)


def _deliver(result: RunResult, *, module: str, subject: str | None, to, cc, bcc) -> str | None:
    """Send the result's HTML; the Message-ID, or None when delivery failed."""
    subj = result.subject or subject or f"{module} run — {'OK' if result.ok else 'FAILED'}"
    try:
        return send_html(subject=subj, html=_wrap_email(subj, result.html or ""), to=to, cc=cc, bcc=bcc)
    except EmailSendError as e:
        # The module call is over (for job_hunt the store is already saved).
        log.error("Email send failed for %s: %s", module, e)
        return None


def _emit_activity(record: dict[str, Any]) -> None:
    try:
        logging_utils.write_activity_log(record)
    except (OSError, TypeError, ValueError) as e:
        log.warning("activity log write failed (%s): %s", e, record.get("run_id"))


# ---- public API -------------------------------------------------------------


def run_module_once(
    module: str,
    kwargs: dict[str, object] | None = None,
    email_to: list[str] | None = None,
    subject: str | None = None,
    send_email: bool | None = True,
    trigger_type: str = "scheduled",
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
    job_context: dict[str, object] | None = None,
    timeout_sec: int | None = None,
) -> tuple[str | None, str]:
    """
    Execute `module`.run(**kwargs) once and email its HTML if any.

    Email goes out when `send_email` is true (None defers to $SEND_EMAIL,
    default on) and SCHEDULED_MODULES_DRY_RUN is not set. A timeout does not
    interrupt the module: the call runs to completion, any HTML it returned
    is still sent, and the run is then reported as timed out.

    Returns (html_or_none, run_id). Whatever the module raised is re-raised
    after the activity record is written.
    """
    run_id = uuid.uuid4().hex
    started_at = now_iso()
    kw = _normalize_kwargs_types(kwargs)
    run = _resolve_callable(module)

    t0 = time.monotonic()
    result = _call_module(run, kw, timeout_sec)
    duration_ms = int((time.monotonic() - t0) * 1000)

    message_id = None
    if result.html and _should_send(send_email):
        message_id = _deliver(
            result, module=module, subject=subject, to=email_to or _default_email_to(), cc=cc, bcc=bcc
        )

    _emit_activity({
        "ts": now_iso(),
        "run_id": run_id,
        "module": module,
        "trigger_type": trigger_type,
        "ok": result.ok,
        "message": result.message,
        "duration_ms": duration_ms,
        "emailed": message_id is not None,
        "email_message_id": message_id,
        "email_to": email_to or [],
        "cc": cc or [],
        "bcc": bcc or [],
        "context": {**(job_context or {}), "run_id": run_id, "started_at": started_at},
        "kwargs": kw,
        "meta": result.meta,
    })

    if result.error is not None:
        raise result.error
    return result.html, run_id
