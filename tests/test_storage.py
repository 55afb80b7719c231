from datetime import datetime, timedelta, timezone

import pytest

from carrier_ingest.schema.records import DataSource, EntityRecord, SafetyRatingEvent
from carrier_ingest.storage import MemoryStore, SQLiteStore


NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        s = MemoryStore()
    else:
        s = SQLiteStore(str(tmp_path / "carriers.sqlite"))
    yield s
    s.close()


def _record(external_id, **kwargs):
    kwargs.setdefault("legal_name", f"CARRIER {external_id} LLC")
    return EntityRecord(external_id=external_id, **kwargs)


def test_upsert_replaces_whole_record(store):
    store.upsert_entity(_record("7", phone="555", equipment_types=["Meat"]), synced_at=NOW)
    store.upsert_entity(_record("7", legal_name="NEW NAME LLC"), synced_at=NOW)
    record = store.get_entity("7")
    assert record.legal_name == "NEW NAME LLC"
    assert record.phone is None
    assert record.equipment_types == []
    assert store.known_ids() == {"7"}


def test_round_trip_preserves_fields(store):
    original = _record(
        "12",
        safety_rating="conditional",
        vehicle_count=4,
        carrier_operation=["Interstate"],
        quality_score=42,
        trust_score=61,
        data_source=DataSource.ADMIN_VERIFIED,
        verified=True,
        verification_date="2026-09-01",
        is_carrier_entity=False,
    )
    store.upsert_entity(original, synced_at=NOW)
    assert store.get_entity("12") == original
    assert store.get_entity("404") is None


def test_stale_entities_oldest_first(store):
    store.upsert_entity(_record("1"), synced_at=NOW - timedelta(days=3))
    store.upsert_entity(_record("2"), synced_at=NOW - timedelta(days=30))
    store.upsert_entity(_record("3"), synced_at=NOW - timedelta(days=10))
    store.upsert_entity(_record("4"), synced_at=None)
    assert store.list_stale_entities(timedelta(days=7), 10, NOW) == ["2", "3"]
    assert store.list_stale_entities(timedelta(days=7), 1, NOW) == ["2"]


def test_unsynced_entities(store):
    store.upsert_entity(_record("20"))
    store.upsert_entity(_record("3"))
    store.upsert_entity(_record("5"), synced_at=NOW)
    assert store.list_unsynced_entities(10) == ["3", "20"]
    assert store.last_synced_at("5") == "2026-10-01T00:00:00+00:00"
    assert store.last_synced_at("3") is None


def test_rating_events_are_append_only_and_ordered(store):
    later = SafetyRatingEvent("1", "satisfactory", "conditional", "2026-05-01T00:00:00+00:00", "x")
    first = SafetyRatingEvent("1", None, "satisfactory", "2026-01-01T00:00:00+00:00", "x")
    store.append_rating_event(first)
    store.append_rating_event(later)
    store.append_rating_event(SafetyRatingEvent("2", None, "conditional", "2026-01-01", "x"))
    assert store.list_rating_events("1") == [first, later]
    assert store.list_rating_events("3") == []


def test_max_external_id_is_numeric(store):
    assert store.max_external_id() is None
    store.upsert_entity(_record("999"))
    store.upsert_entity(_record("1000"))
    assert store.max_external_id() == 1000


def test_list_entities_sorted(store):
    store.upsert_entity(_record("30"))
    store.upsert_entity(_record("4"))
    assert [r.external_id for r in store.list_entities()] == ["4", "30"]


def test_sqlite_persists_across_connections(tmp_path):
    path = str(tmp_path / "nested" / "carriers.sqlite")
    first = SQLiteStore(path)
    first.upsert_entity(_record("8"), synced_at=NOW)
    first.close()
    second = SQLiteStore(path)
    try:
        assert second.get_entity("8").legal_name == "CARRIER 8 LLC"
    finally:
        second.close()
