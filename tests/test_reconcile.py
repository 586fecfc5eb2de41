# tests/test_reconcile.py
import pytest
from freezegun import freeze_time

from modules.job_hunt.lib import store
from modules.job_hunt.lib.models import create_record
from modules.job_hunt.lib.reconcile import reconcile


@pytest.fixture
def paths(store_paths):
    return str(store_paths.store), str(store_paths.delta)


def _sde2(**extra):
    fields = {"title": "SDE2", "company": "Amazon", "jobId": "123", "link": "https://a/123"}
    fields.update(extra)
    return create_record(fields)


# ----------------------------------------------------------------------
# Scenario: add, then refresh the same posting
# ----------------------------------------------------------------------
def test_add_then_update_same_posting(paths):
    store_path, delta_path = paths

    first = reconcile([_sde2()], store_path, delta_path)
    assert len(first.all_records) == 1
    assert first.new_records == first.all_records
    assert first.new_records[0] == _sde2(scrapedAt=first.new_records[0].first_seen_at)

    second = reconcile([_sde2(description="updated")], store_path, delta_path)
    assert len(second.all_records) == 1
    assert second.all_records[0].description == "updated"
    assert second.new_records == []
    assert second.updated_count == 1


def test_reconcile_is_idempotent(paths):
    store_path, delta_path = paths
    batch = [
        _sde2(),
        create_record({"title": "SDE1", "company": "Amazon", "jobId": "124", "link": "https://a/124"}),
    ]

    reconcile(batch, store_path, delta_path)
    again = reconcile(batch, store_path, delta_path)

    assert again.new_records == []
    assert len(again.all_records) == 2
    assert len(store.load_records(store_path)) == 2


def test_first_seen_preserved_and_last_updated_increases(paths):
    store_path, delta_path = paths

    with freeze_time("2025-01-01T00:00:00Z"):
        reconcile([_sde2(description="v1")], store_path, delta_path)

    with freeze_time("2025-01-02T12:00:00Z"):
        out = reconcile([_sde2(description="v2")], store_path, delta_path)

    [rec] = out.all_records
    assert rec.first_seen_at == "2025-01-01T00:00:00Z"
    assert rec.last_updated_at == "2025-01-02T12:00:00Z"
    assert rec.description == "v2"
    # Persisted the same way
    assert store.load_records(store_path) == [rec]


def test_invalid_candidates_are_dropped(paths):
    store_path, delta_path = paths
    no_title = create_record({"company": "Amazon", "jobId": "9", "link": "https://a/9"})
    no_id_or_link = create_record({"title": "Ghost", "company": "Amazon"})

    out = reconcile([no_title, _sde2(), no_id_or_link], store_path, delta_path)

    assert [r.title for r in out.all_records] == ["SDE2"]
    assert [r.title for r in out.new_records] == ["SDE2"]
    assert out.dropped_count == 2


def test_delta_is_overwritten_each_cycle(paths):
    store_path, delta_path = paths

    reconcile([_sde2()], store_path, delta_path)
    assert [r.title for r in store.load_records(delta_path)] == ["SDE2"]

    reconcile([_sde2()], store_path, delta_path)
    assert store.load_records(delta_path) == []


def test_duplicate_candidates_in_one_batch_collapse(paths):
    store_path, delta_path = paths

    out = reconcile([_sde2(description="a"), _sde2(description="b")], store_path, delta_path)

    assert len(out.all_records) == 1
    assert len(out.new_records) == 1
    assert out.new_records[0].description == "b"
    assert store.load_records(delta_path)[0].description == "b"
    assert out.updated_count == 0


def test_updated_count_covers_stored_postings_only(paths):
    store_path, delta_path = paths
    reconcile([_sde2()], store_path, delta_path)
    sde1 = {"title": "SDE1", "company": "Amazon", "jobId": "124", "link": "https://a/124"}

    out = reconcile(
        [_sde2(description="a"), _sde2(description="b"), create_record(sde1), create_record(sde1)],
        store_path,
        delta_path,
    )

    assert out.updated_count == 1
    assert [r.title for r in out.new_records] == ["SDE1"]


def test_all_records_sorted_newest_first(paths):
    store_path, delta_path = paths
    recs = [
        create_record({"title": "Old", "jobId": "1", "scrapedAt": "2025-01-01T00:00:00Z"}),
        create_record({"title": "Newest", "jobId": "3", "scrapedAt": "2025-03-01T00:00:00Z"}),
        create_record({"title": "Middle", "jobId": "2", "scrapedAt": "2025-02-01T00:00:00Z"}),
    ]

    out = reconcile(recs, store_path, delta_path)

    assert [r.title for r in out.all_records] == ["Newest", "Middle", "Old"]
    assert [r.title for r in store.load_records(store_path)] == ["Newest", "Middle", "Old"]
    # Delta keeps discovery order
    assert [r.title for r in out.new_records] == ["Old", "Newest", "Middle"]


def test_unparseable_first_seen_sorts_last(paths, store_paths):
    store_path, delta_path = paths
    store_paths.store.parent.mkdir(parents=True, exist_ok=True)
    store_paths.store.write_text(
        ",".join(store.HEADERS) + "\n"
        "Legacy,Acme,,L-1,,,,,,,,,,yesterday-ish,\n",
        encoding="utf-8",
    )

    out = reconcile(
        [create_record({"title": "Fresh", "jobId": "F-1", "scrapedAt": "2025-01-01T00:00:00Z"})],
        store_path,
        delta_path,
    )

    assert [r.title for r in out.all_records] == ["Fresh", "Legacy"]


def test_corrupt_store_is_not_overwritten(paths, store_paths):
    store_path, delta_path = paths
    store_paths.store.parent.mkdir(parents=True, exist_ok=True)
    garbage = b"not,a,job,store\n1,2,3,4\n"
    store_paths.store.write_bytes(garbage)

    with pytest.raises(store.CodecError):
        reconcile([_sde2()], store_path, delta_path)

    assert store_paths.store.read_bytes() == garbage
    assert not store_paths.delta.exists()


def test_persist_error_propagates(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(store.PersistError):
        reconcile([_sde2()], str(blocker / "jobs.csv"), str(tmp_path / "delta.csv"))


def test_existing_records_survive_when_not_rescraped(paths):
    store_path, delta_path = paths
    reconcile([_sde2()], store_path, delta_path)

    out = reconcile(
        [create_record({"title": "SDE3", "company": "Amazon", "jobId": "777"})],
        store_path,
        delta_path,
    )

    assert {r.title for r in out.all_records} == {"SDE2", "SDE3"}
    assert [r.title for r in out.new_records] == ["SDE3"]
