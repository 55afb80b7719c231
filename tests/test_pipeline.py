from datetime import datetime, timezone

import pytest

from carrier_ingest.errors import RecordNotFoundError
from carrier_ingest.feature_flags import reset_flags_cache
from carrier_ingest.pipeline import build_record, ingest_markup
from carrier_ingest.storage import MemoryStore


NOW = datetime(2026, 10, 1, 12, 30, tzinfo=timezone.utc)


def test_build_record_is_pure(snapshot_html):
    first = build_record(snapshot_html, "1234567")
    second = build_record(snapshot_html, "1234567")
    assert first.to_json() == second.to_json()
    assert first.is_carrier_entity is True


def test_ingest_stores_record_and_first_rating(snapshot_html):
    store = MemoryStore()
    outcome = ingest_markup(store, snapshot_html, "1234567", now=NOW)
    assert outcome.stored is True
    assert outcome.rating_event.old_rating is None
    assert outcome.rating_event.change_date == "2026-10-01T12:30:00+00:00"
    assert store.get_entity("1234567").legal_name == "ACME TRUCKING LLC"
    assert store.last_synced_at("1234567") == "2026-10-01T12:30:00+00:00"


def test_reingest_same_rating_logs_no_new_event(snapshot_html):
    store = MemoryStore()
    ingest_markup(store, snapshot_html, "1234567", now=NOW)
    outcome = ingest_markup(store, snapshot_html, "1234567", now=NOW)
    assert outcome.rating_event is None
    assert len(store.list_rating_events("1234567")) == 1


def test_rating_change_appends_transition(snapshot_html):
    store = MemoryStore()
    ingest_markup(store, snapshot_html, "1234567", now=NOW)
    downgraded = snapshot_html.replace(
        "<td class=\"queryfield\">Satisfactory</td>", "<td class=\"queryfield\">Conditional</td>"
    )
    outcome = ingest_markup(store, downgraded, "1234567", now=NOW)
    assert outcome.rating_event.old_rating == "satisfactory"
    assert outcome.rating_event.new_rating == "conditional"
    assert [e.new_rating for e in store.list_rating_events("1234567")] == [
        "satisfactory",
        "conditional",
    ]


def test_broker_is_skipped_by_default(broker_html):
    store = MemoryStore()
    outcome = ingest_markup(store, broker_html, "765432", now=NOW)
    assert outcome.stored is False
    assert outcome.skipped_reason == "Freight broker (not a motor carrier)"
    assert store.get_entity("765432") is None


def test_broker_is_kept_when_flag_off(broker_html, monkeypatch):
    monkeypatch.setenv("CI_FEATURE_SKIP_NON_CARRIERS", "0")
    reset_flags_cache()
    store = MemoryStore()
    outcome = ingest_markup(store, broker_html, "765432", now=NOW)
    assert outcome.stored is True
    assert store.get_entity("765432").is_carrier_entity is False


def test_not_found_page_stores_nothing(not_found_html):
    store = MemoryStore()
    with pytest.raises(RecordNotFoundError):
        ingest_markup(store, not_found_html, "42", now=NOW)
    assert store.known_ids() == set()


def test_outcome_to_dict(snapshot_html):
    outcome = ingest_markup(MemoryStore(), snapshot_html, "1234567", now=NOW)
    data = outcome.to_dict()
    assert data["stored"] is True
    assert data["legal_name"] == "ACME TRUCKING LLC"
    assert data["rating_event"]["new_rating"] == "satisfactory"
