# tests/conftest.py
import json
import os
import pathlib
import types

import pytest

from modules.job_hunt.lib import config as jh_config
from modules.job_hunt.lib import models
from modules.job_hunt.lib.scrapers.base import BaseScraper


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls to real job portals).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path_factory):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    monkeypatch.setenv("LOG_DIR", str(tmp_path_factory.mktemp("jh-pytest-logs")))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("JOB_HUNT_PORTALS_PATH", raising=False)
    yield


@pytest.fixture(autouse=True)
def no_email_env(monkeypatch):
    monkeypatch.setenv("SEND_EMAIL", "0")
    monkeypatch.setenv("SCHEDULED_MODULES_DRY_RUN", "1")
    monkeypatch.setenv("CONFIG_PATH", "/app/local/config.json")
    yield


# ---------------------------------------------------------------------
# Job hunt fixtures
# ---------------------------------------------------------------------
STUB_PORTALS = [
    {
        "kind": "stub",
        "source": "Acme - Careers",
        "params": {
            "company": "Acme",
            "items": [
                {"title": "Backend Engineer", "jobId": "A-1", "link": "https://acme.example/jobs/A-1"},
            ],
        },
    },
    {
        "kind": "stub",
        "source": "Globex - Careers",
        "params": {
            "company": "Globex",
            "items": [
                {"title": "Data Engineer", "jobId": "G-7", "link": "https://globex.example/jobs/G-7"},
            ],
        },
    },
]


@pytest.fixture
def portals_json(tmp_path: pathlib.Path) -> pathlib.Path:
    """Two stub portals, one posting each."""
    path = tmp_path / "job_hunt_portals.json"
    path.write_text(json.dumps(STUB_PORTALS), encoding="utf-8")
    return path


@pytest.fixture
def store_paths(tmp_path: pathlib.Path) -> types.SimpleNamespace:
    state = tmp_path / "state"
    return types.SimpleNamespace(store=state / "jobs.csv", delta=state / "newly_added_jobs.csv")


@pytest.fixture
def make_settings(portals_json, store_paths):
    """Factory: Settings pointing at the temp portals/store files, plus overrides."""

    def _make(**overrides):
        kwargs = {
            "portals_path": str(portals_json),
            "store_path": str(store_paths.store),
            "delta_path": str(store_paths.delta),
            "max_threads": 2,
        }
        kwargs.update(overrides)
        return jh_config.Settings.from_env_and_kwargs(kwargs)

    return _make


@pytest.fixture
def fresh_settings(make_settings):
    """A brand-new Settings instance for each test."""
    return make_settings()


@pytest.fixture
def stub_scraper():
    """
    Network-free scraper of kind 'lever': one posting per spec, with a
    title/link derived from the source so repeated runs yield the same identity.
    """

    class Stub(BaseScraper):
        kind = "lever"

        def run(self, specs, *, skip_network=False):
            results = []
            for spec in specs:
                slug = spec.source.split(" ")[0].lower()
                results.append(
                    models.ScrapeResult(
                        source=spec.source,
                        items=[
                            models.create_record({
                                "title": f"{spec.source} - Engineer",
                                "company": spec.params.get("company", ""),
                                "link": f"https://example.com/{slug}/1",
                                "source": spec.source,
                            })
                        ],
                    )
                )
            return results

    return Stub


@pytest.fixture
def write_min_config(tmp_path, monkeypatch, portals_json, store_paths):
    cfg = {
        "timezone": "UTC",
        "jobs": [
            {
                "id": "job-hunt-never",
                "name": "Job Hunt (test)",
                "module": "modules.job_hunt",
                "trigger": {"date": "2099-01-01T00:00:00Z"},
                "kwargs": {
                    "portals_path": str(portals_json),
                    "store_path": str(store_paths.store),
                    "delta_path": str(store_paths.delta),
                },
                "send_email": False,
                "summary": "pytest config",
            }
        ],
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


@pytest.fixture
def stub_emailer(monkeypatch):
    sent = {"messages": []}

    def send_html(**kwargs):
        sent["messages"].append(kwargs)
        return "<fake-message-id@example>"

    ns = types.SimpleNamespace(send_html=send_html, sent=sent)
    monkeypatch.setattr("service.emailer.send_html", ns.send_html, raising=True)
    monkeypatch.setattr("service.runner.send_html", ns.send_html, raising=False)
    return ns
