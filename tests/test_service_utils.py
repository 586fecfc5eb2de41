# tests/test_service_utils.py
import json
import os
import smtplib

import pytest

from service import emailer, logging_utils


# ----------------------------------------------------------------------
# logging_utils
# ----------------------------------------------------------------------
def test_activity_log_is_jsonl_under_log_dir():
    logging_utils.write_activity_log({"event": "cycle", "count": 2})
    logging_utils.write_activity_log({"event": "cycle", "count": 3})

    path = logging_utils.get_activity_log_path()
    assert path.startswith(os.environ["LOG_DIR"])
    assert os.path.basename(path).startswith("activity-test-")

    with open(path, encoding="utf-8") as fh:
        lines = [json.loads(line) for line in fh]
    assert [r["count"] for r in lines] == [2, 3]
    assert lines[0]["_meta"]["pid"] == os.getpid()


def test_error_log_is_separate_file():
    logging_utils.write_error_log({"where": "reconcile", "error": "boom"})
    assert os.path.exists(logging_utils.get_error_log_path())
    assert logging_utils.get_error_log_path() != logging_utils.get_activity_log_path()


def test_redact_is_deep_and_does_not_mutate():
    record = {
        "smtp_password": "hunter2",
        "kwargs": {"api_key": "k", "store_path": "/data/jobs.csv"},
        "headers": [{"Authorization": "Bearer abc.def"}],
        "note": "sent with Bearer abc.def today",
    }
    out = logging_utils.redact(record)

    assert out["smtp_password"] == "***REDACTED***"
    assert out["kwargs"] == {"api_key": "***REDACTED***", "store_path": "/data/jobs.csv"}
    assert out["headers"][0]["Authorization"] == "***REDACTED***"
    assert out["note"] == "sent with Bearer ***REDACTED*** today"
    assert record["smtp_password"] == "hunter2"


def test_written_records_are_redacted():
    logging_utils.write_activity_log({"event": "login", "password": "pw"})
    with open(logging_utils.get_activity_log_path(), encoding="utf-8") as fh:
        [line] = fh.read().splitlines()
    assert "pw\"" not in line
    assert json.loads(line)["password"] == "***REDACTED***"


def test_size_rotation(monkeypatch):
    monkeypatch.setenv("ACTIVITY_LOG_MAX_BYTES", "10")
    logging_utils.write_activity_log({"event": "first"})
    logging_utils.write_activity_log({"event": "second"})

    path = logging_utils.get_activity_log_path()
    with open(path, encoding="utf-8") as fh:
        assert [json.loads(line)["event"] for line in fh] == ["second"]
    rotated = [n for n in os.listdir(os.path.dirname(path)) if n.startswith(os.path.basename(path) + ".")]
    assert len(rotated) == 1


# ----------------------------------------------------------------------
# emailer
# ----------------------------------------------------------------------
class FakeSMTP:
    instances = []
    fail_with = []

    def __init__(self, host, port):
        self.host, self.port = host, port
        self.sent = []
        self.started_tls = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.login_as = user

    def send_message(self, msg, to_addrs=None):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with.pop(0)
        self.sent.append((msg, to_addrs))


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(emailer.time, "sleep", lambda s: None)
    monkeypatch.setenv("SMTP_HOST", "relay.local")
    monkeypatch.setenv("SMTP_PORT", "1025")
    monkeypatch.setenv("SMTP_FROM", "jobs@example.com")
    for name in ("SMTP_USERNAME", "SMTP_PASSWORD", "SMTP_USE_SSL", "SMTP_STARTTLS", "SMTP_FROM_NAME"):
        monkeypatch.delenv(name, raising=False)
    return FakeSMTP


def test_send_html_delivers_multipart_message(fake_smtp):
    msg_id = emailer.send_html(
        subject="Job Hunt — 1 new at Globex",
        html="<p>Data Engineer</p>",
        to=["me@example.com"],
        bcc=["archive@example.com"],
    )

    [server] = fake_smtp.instances
    [(msg, rcpt)] = server.sent
    assert (server.host, server.port) == ("relay.local", 1025)
    assert server.started_tls is False  # plain relay port
    assert rcpt == ["me@example.com", "archive@example.com"]
    assert msg["From"] == "Job Hunt <jobs@example.com>"
    assert "Bcc" not in msg
    assert msg["Message-ID"] == msg_id
    assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>Data Engineer</p>"


def test_transient_failure_is_retried(fake_smtp):
    fake_smtp.fail_with = [smtplib.SMTPResponseException(451, b"try later")]

    emailer.send_html(subject="s", html="<p>x</p>", to="me@example.com")

    assert len(fake_smtp.instances) == 2
    assert len(fake_smtp.instances[-1].sent) == 1


def test_permanent_failure_raises(fake_smtp):
    fake_smtp.fail_with = [smtplib.SMTPResponseException(550, b"no such user")]

    with pytest.raises(emailer.EmailSendError, match="550"):
        emailer.send_html(subject="s", html="<p>x</p>", to="me@example.com")
    assert len(fake_smtp.instances) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"subject": "s", "html": "<p>x</p>", "to": []},
        {"subject": "", "html": "<p>x</p>", "to": ["me@example.com"]},
        {"subject": "s", "html": "  ", "to": ["me@example.com"]},
    ],
)
def test_invalid_messages_are_rejected(fake_smtp, kwargs):
    with pytest.raises(emailer.EmailSendError):
        emailer.send_html(**kwargs)
    assert fake_smtp.instances == []


def test_starttls_auto_on_submission_port(fake_smtp, monkeypatch):
    monkeypatch.setenv("SMTP_PORT", "587")
    emailer.send_html(subject="s", html="<p>x</p>", to="me@example.com")
    assert fake_smtp.instances[0].started_tls is True
