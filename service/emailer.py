# service/emailer.py
"""
HTML mail over SMTP, configured entirely from the environment:

  SMTP_HOST / SMTP_PORT           (default 127.0.0.1:1025)
  SMTP_USERNAME / SMTP_PASSWORD   (login only when both are set)
  SMTP_FROM / SMTP_FROM_NAME      (From defaults to the username)
  SMTP_USE_SSL = "true" | "false"
  SMTP_STARTTLS = "true" | "false" | "auto" (default)
  SMTP_INSECURE_TLS = "true" to skip certificate checks (local relays)

4xx replies are retried twice (2s, then 4s); anything else fails at once.
"""

from __future__ import annotations

import os
import smtplib
import ssl
import time
from collections.abc import Iterable
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

_ATTEMPTS = 3
# Relay ports that speak plain SMTP; "auto" STARTTLS stays off on these.
_PLAIN_PORTS = frozenset({25, 1025, 2525})


class EmailSendError(RuntimeError):
    """Raised when an email cannot be delivered."""


class _RetryableSendError(EmailSendError):
    pass


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int
    username: str | None
    password: str | None
    use_ssl: bool
    starttls: str
    from_addr: str
    from_name: str
    insecure_tls: bool

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_addr}>" if self.from_name else self.from_addr

    def wants_starttls(self) -> bool:
        if self.use_ssl or self.starttls == "false":
            return False
        return self.starttls == "true" or self.port not in _PLAIN_PORTS

    def tls_context(self) -> ssl.SSLContext:
        if self.insecure_tls:
            return ssl._create_unverified_context()
        return ssl.create_default_context()


def _env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    return value if value else default


def _env_true(name: str) -> bool:
    return _env(name, "false").strip().lower() == "true"


def _resolve_smtp_settings() -> SmtpSettings:
    username = _env("SMTP_USERNAME") or None
    return SmtpSettings(
        host=_env("SMTP_HOST", "127.0.0.1"),
        port=int(_env("SMTP_PORT", "1025")),
        username=username,
        password=_env("SMTP_PASSWORD") or None,
        use_ssl=_env_true("SMTP_USE_SSL"),
        starttls=_env("SMTP_STARTTLS", "auto").strip().lower(),
        from_addr=_env("SMTP_FROM", username or "").strip(),
        from_name=_env("SMTP_FROM_NAME", "Job Hunt").strip(),
        insecure_tls=_env_true("SMTP_INSECURE_TLS"),
    )


def _addresses(value: Iterable | str | None) -> list[str]:
    """None, one address, or a list (nested one level) -> stripped addresses."""
    if value is None:
        return []
    items = [value] if isinstance(value, str) else list(value)
    flat: list[str] = []
    for item in items:
        flat.extend([item] if isinstance(item, str) else [x for x in item if isinstance(x, str)])
    return [a.strip() for a in flat if a.strip()]


def _compose(subject: str, html: str, *, to: list[str], cc: list[str], sender: str) -> EmailMessage:
    if not (subject or "").strip():
        raise EmailSendError("Missing subject.")
    if not (html or "").strip():
        raise EmailSendError("Missing HTML body.")

    msg = EmailMessage()
    msg["From"] = sender
    if to:
        msg["To"] = ", ".join(to)
    if cc:
        msg["Cc"] = ", ".join(cc)
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content("This message requires an HTML-capable client.")
    msg.add_alternative(html, subtype="html", charset="utf-8")
    return msg


def _open(settings: SmtpSettings) -> smtplib.SMTP:
    if settings.use_ssl:
        return smtplib.SMTP_SSL(settings.host, settings.port, context=settings.tls_context())
    return smtplib.SMTP(settings.host, settings.port)


def _deliver_once(msg: EmailMessage, recipients: list[str], settings: SmtpSettings) -> None:
    try:
        with _open(settings) as server:
            server.ehlo()
            if settings.wants_starttls():
                server.starttls(context=settings.tls_context())
                server.ehlo()
            if settings.username and settings.password:
                server.login(settings.username, settings.password)
            server.send_message(msg, to_addrs=recipients)
    except smtplib.SMTPResponseException as e:
        kind = _RetryableSendError if 400 <= e.smtp_code < 500 else EmailSendError
        raise kind(f"SMTP send failed ({e.smtp_code}): {e.smtp_error!r}") from e
    except (smtplib.SMTPException, OSError) as e:
        raise EmailSendError(f"SMTP send failed: {e}") from e


def send_html(
    *,
    subject: str,
    html: str,
    to: list[str] | str | None,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
) -> str:
    """
    Send `html` as a multipart message (plain-text stub + HTML part).

    Bcc recipients get the mail but never appear in its headers. Returns
    the Message-ID; raises EmailSendError on any failure.
    """
    to_l, cc_l, bcc_l = _addresses(to), _addresses(cc), _addresses(bcc)
    recipients = to_l + cc_l + bcc_l
    if not recipients:
        raise EmailSendError("No recipients (to/cc/bcc).")

    settings = _resolve_smtp_settings()
    if not settings.from_addr:
        raise EmailSendError("No from address resolved. Set SMTP_FROM or SMTP_USERNAME.")
    msg = _compose(subject, html, to=to_l, cc=cc_l, sender=settings.sender)

    for attempt in range(1, _ATTEMPTS + 1):
        try:
            _deliver_once(msg, recipients, settings)
        except _RetryableSendError:
            if attempt == _ATTEMPTS:
                raise
            time.sleep(2**attempt)
        else:
            return str(msg["Message-ID"])
    raise EmailSendError("Permanent send failure after retries")
