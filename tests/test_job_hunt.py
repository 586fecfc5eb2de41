# tests/test_job_hunt.py
import json
from unittest import mock

import pytest

from modules.job_hunt.lib import engine, render, store
from modules.job_hunt.lib.config import ConfigError, Settings
from modules.job_hunt.lib.models import create_record
from modules.job_hunt.lib.reconcile import reconcile
from modules.job_hunt.lib.scrapers.base import BaseScraper, ScraperError
from modules.job_hunt.lib.scrapers.stub import StubScraper


def _seed(settings, *companies):
    """Put postings into the store ahead of a run (same shape as the stub portals)."""
    seeds = {
        "Acme": {"title": "Backend Engineer", "company": "Acme", "jobId": "A-1",
                 "link": "https://acme.example/jobs/A-1", "source": "Acme - Careers"},
        "Globex": {"title": "Data Engineer", "company": "Globex", "jobId": "G-7",
                   "link": "https://globex.example/jobs/G-7", "source": "Globex - Careers"},
    }
    reconcile([create_record(seeds[c]) for c in companies], settings.store_path, settings.delta_path)


def _write_portals(tmp_path, portals):
    p = tmp_path / "portals_custom.json"
    p.write_text(json.dumps(portals), encoding="utf-8")
    return str(p)


# ----------------------------------------------------------------------
# 1. No new postings -> engine returns None
# ----------------------------------------------------------------------
def test_no_new_postings_returns_none(fresh_settings):
    _seed(fresh_settings, "Acme", "Globex")

    assert engine.run_once(fresh_settings) is None
    assert store.load_records(fresh_settings.delta_path) == []


# ----------------------------------------------------------------------
# 2. One new posting -> HTML + meta returned
# ----------------------------------------------------------------------
def test_one_new_posting_returns_html_and_meta(fresh_settings):
    _seed(fresh_settings, "Acme")

    html, meta = engine.run_once(fresh_settings)

    assert "Data Engineer" in html
    assert "Backend Engineer" not in html
    assert meta["new_total"] == 1
    assert meta["by_company"] == {"Globex": 1}
    assert meta["subject"] == "Job Hunt — 1 new at Globex"
    assert meta["updated"] == 1
    assert [r.title for r in store.load_records(fresh_settings.delta_path)] == ["Data Engineer"]


def test_first_run_reports_everything_as_new(fresh_settings):
    html, meta = engine.run_once(fresh_settings)

    assert meta["new_total"] == 2
    assert meta["message"] == "2 new openings across 2 companies"
    assert meta["subject"] == "Job Hunt — 2 new openings (2 companies)"
    assert "<h3>Acme</h3>" in html and "<h3>Globex</h3>" in html
    assert len(store.load_records(fresh_settings.store_path)) == 2


# ----------------------------------------------------------------------
# 3. email_all_even_if_seen=True -> render everything seen this run
# ----------------------------------------------------------------------
def test_email_all_even_if_seen_renders_all(make_settings):
    settings = make_settings(email_all_even_if_seen=True)
    _seed(settings, "Acme", "Globex")

    html, meta = engine.run_once(settings)

    assert "Backend Engineer" in html
    assert "Data Engineer" in html
    assert meta["new_total"] == 0
    assert meta["by_company"] == {"Acme": 1, "Globex": 1}
    assert meta["subject"] == "Job Hunt — 2 openings listed (0 new)"


def test_email_all_lists_this_cycle_only(make_settings):
    settings = make_settings(email_all_even_if_seen=True)
    retired = {"title": "Legacy Analyst", "company": "Initech", "jobId": "I-1", "link": "https://initech.example/I-1"}
    reconcile([create_record(retired)], settings.store_path, settings.delta_path)

    html, meta = engine.run_once(settings)

    assert "Legacy Analyst" not in html
    assert "Initech" not in meta["by_company"]
    assert len(store.load_records(settings.store_path)) == 3


# ----------------------------------------------------------------------
# 4. ingest_only_no_email=True -> store updated, no return value
# ----------------------------------------------------------------------
def test_ingest_only_no_email_returns_none(make_settings):
    settings = make_settings(ingest_only_no_email=True)

    assert engine.run_once(settings) is None
    assert len(store.load_records(settings.store_path)) == 2
    assert len(store.load_records(settings.delta_path)) == 2


# ----------------------------------------------------------------------
# 5. skip_network=True -> scrapers are never instantiated
# ----------------------------------------------------------------------
def test_skip_network_skips_scrapers(make_settings):
    settings = make_settings(skip_network=True)

    def _boom(kind):
        raise AssertionError("scraper lookup must not happen")

    assert engine.run_once(settings, get_scraper=_boom) is None
    assert store.load_records(settings.store_path) == []


# ----------------------------------------------------------------------
# 6. Partial source failures never block other sources
# ----------------------------------------------------------------------
def test_source_with_errors_is_reported_but_others_reconcile(make_settings, tmp_path):
    portals = [
        {"kind": "stub", "source": "Acme - Careers",
         "params": {"company": "Acme", "items": [{"title": "SRE", "jobId": "A-2"}]}},
        {"kind": "stub", "source": "Broken - Careers",
         "params": {"company": "Broken", "errors": ["HTTP 503"]}},
    ]
    settings = make_settings(portals_path=_write_portals(tmp_path, portals))

    html, meta = engine.run_once(settings)

    assert meta["failed_sources"] == ["Broken - Careers"]
    assert meta["new_total"] == 1
    assert "SRE" in html
    assert "Sources with problems" in html
    assert "Broken - Careers" in html


def test_scraper_kind_that_raises_marks_its_sources_failed(make_settings, tmp_path):
    portals = [
        {"kind": "stub", "source": "Acme - Careers",
         "params": {"company": "Acme", "items": [{"title": "SRE", "jobId": "A-2"}]}},
        {"kind": "lever", "source": "Initech - Lever", "params": {"url": "https://jobs.lever.co/initech"}},
    ]
    settings = make_settings(portals_path=_write_portals(tmp_path, portals))

    class Exploding(BaseScraper):
        kind = "lever"

        def run(self, specs, *, skip_network=False):
            raise ScraperError("portal layout changed")

    kinds = {"stub": StubScraper, "lever": Exploding}
    html, meta = engine.run_once(settings, get_scraper=kinds.__getitem__)

    assert meta["failed_sources"] == ["Initech - Lever"]
    assert meta["new_total"] == 1
    assert [r.title for r in store.load_records(settings.store_path)] == ["SRE"]


def test_source_with_no_postings_counts_as_failed(make_settings, tmp_path):
    portals = [
        {"kind": "stub", "source": "Acme - Careers",
         "params": {"company": "Acme", "items": [{"title": "SRE", "jobId": "A-2"}]}},
        {"kind": "stub", "source": "Empty - Careers", "params": {"company": "Empty"}},
    ]
    settings = make_settings(portals_path=_write_portals(tmp_path, portals))

    _, meta = engine.run_once(settings)

    assert meta["failed_sources"] == ["Empty - Careers"]


def test_injected_scraper_via_registry_patch(fresh_settings, stub_scraper):
    with mock.patch("modules.job_hunt.lib.scrapers.registry.get", return_value=stub_scraper):
        html, meta = engine.run_once(fresh_settings)

    assert "Acme - Careers - Engineer" in html
    assert meta["new_total"] == 2


# ----------------------------------------------------------------------
# 7. Store failures abort the cycle
# ----------------------------------------------------------------------
def test_corrupt_store_aborts_cycle(fresh_settings):
    from pathlib import Path

    store_file = Path(fresh_settings.store_path)
    store_file.parent.mkdir(parents=True, exist_ok=True)
    store_file.write_text("garbage,header\n1,2\n", encoding="utf-8")

    with pytest.raises(store.CodecError):
        engine.run_once(fresh_settings)

    assert store_file.read_text(encoding="utf-8") == "garbage,header\n1,2\n"
    assert not Path(fresh_settings.delta_path).exists()


# ----------------------------------------------------------------------
# 8. Settings validation
# ----------------------------------------------------------------------
def test_settings_reject_same_store_and_delta(portals_json, tmp_path):
    same = str(tmp_path / "jobs.csv")
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({"portals_path": str(portals_json), "store_path": same, "delta_path": same})


def test_settings_missing_portals_file(tmp_path):
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({"portals_path": str(tmp_path / "missing.json")})


def test_settings_portals_path_from_env(portals_json, monkeypatch, tmp_path):
    monkeypatch.setenv("JOB_HUNT_PORTALS_PATH", str(portals_json))
    s = Settings.from_env_and_kwargs({"store_path": str(tmp_path / "a.csv"), "delta_path": str(tmp_path / "b.csv")})
    assert s.portals_path == str(portals_json)
    assert sorted(s.group_by_kind()) == ["stub"]


def test_disabled_portals_are_skipped(tmp_path):
    portals = [
        {"kind": "stub", "source": "On", "params": {}},
        {"kind": "amazon", "source": "Off", "params": {}, "scrape": False},
    ]
    s = Settings.from_env_and_kwargs({
        "portals_path": _write_portals(tmp_path, portals),
        "store_path": str(tmp_path / "a.csv"),
        "delta_path": str(tmp_path / "b.csv"),
    })
    assert [sc.source for sc in s.portals] == ["On"]


# ----------------------------------------------------------------------
# 9. Render helpers
# ----------------------------------------------------------------------
def test_render_build_tables_escapes_html():
    rec = create_record({
        "title": "Senior <script>alert(1)</script>",
        "company": "Acme & Sons",
        "link": "https://example.com/lever/1?a=1&b=2",
    })
    html = render.build_tables([rec])
    assert "<h3>Acme &amp; Sons</h3>" in html
    assert "Senior &lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert 'href="https://example.com/lever/1?a=1&amp;b=2"' in html
    assert "<script>" not in html


def test_render_caps_companies_and_counts_the_rest():
    recs = [create_record({"title": f"Role {i}", "company": f"Co {i:02d}", "jobId": str(i)}) for i in range(25)]
    html = render.build_tables(recs, max_companies=20)
    assert "<h3>Co 19</h3>" in html
    assert "<h3>Co 20</h3>" not in html
    assert "<p>...and 5 more.</p>" in html


def test_render_groups_in_first_seen_order():
    recs = [
        create_record({"title": "A", "company": "Zeta", "jobId": "1"}),
        create_record({"title": "B", "company": "Alpha", "jobId": "2"}),
        create_record({"title": "C", "company": "Zeta", "jobId": "3"}),
        create_record({"title": "D", "company": "", "jobId": "4"}),
    ]
    grouped = render.group_by_company(recs)
    assert list(grouped) == ["Zeta", "Alpha", "(unknown company)"]
    assert [r.title for r in grouped["Zeta"]] == ["A", "C"]


# ----------------------------------------------------------------------
# 10. Module entry point
# ----------------------------------------------------------------------
def test_module_run_entrypoint(portals_json, store_paths):
    from modules.job_hunt import run

    result = run(
        portals_path=str(portals_json),
        store_path=str(store_paths.store),
        delta_path=str(store_paths.delta),
    )

    assert result is not None
    html, meta = result
    assert meta["new_total"] == 2
    assert meta["store_path"] == str(store_paths.store)
