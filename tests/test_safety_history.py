from datetime import datetime, timezone

from carrier_ingest.schema.records import EntityRecord, SafetyRatingEvent
from carrier_ingest.scoring.safety import (
    compute_stability,
    get_safety_risk_score,
    rating_change_event,
    rating_history,
    recent_changes,
    safety_risk_score,
    stability_from_count,
)


NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _event(old, new, when):
    return SafetyRatingEvent(
        entity_id="1", old_rating=old, new_rating=new, change_date=when, source="external-registry"
    )


def _replay(ratings, dates):
    events = []
    scores = []
    for rating, when in zip(ratings, dates):
        event = rating_change_event("1", events, rating, when, "external-registry")
        if event is not None:
            events.append(event)
        record = EntityRecord(external_id="1", legal_name="A", safety_rating=rating)
        scores.append(get_safety_risk_score(record, events, NOW))
    return events, scores


def test_first_observation_is_not_a_transition():
    event = rating_change_event("1", [], "satisfactory", "2026-01-01T00:00:00+00:00", "fmcsa")
    assert event.old_rating is None
    assert not event.is_transition
    state = compute_stability([event], NOW)
    assert state.change_count == 0
    assert state.stability_score == 100
    assert state.trend == "stable"


def test_unchanged_rating_logs_nothing():
    events = [_event(None, "satisfactory", "2026-01-01T00:00:00+00:00")]
    assert rating_change_event("1", events, "satisfactory", "2026-02-01", "x") is None
    assert rating_change_event("1", events, None, "2026-02-01", "x") is None


def test_declining_sequence_strictly_lowers_risk():
    events, scores = _replay(
        ["satisfactory", "conditional", "unsatisfactory"],
        ["2026-01-01T00:00:00+00:00", "2026-03-01T00:00:00+00:00", "2026-06-01T00:00:00+00:00"],
    )
    assert scores == [100, 52, 25]
    state = compute_stability(events, NOW)
    assert state.trend == "declining"
    assert state.change_count == 2
    assert state.last_change_date == "2026-06-01T00:00:00+00:00"


def test_improving_trend():
    events = [
        _event(None, "conditional", "2025-01-01T00:00:00+00:00"),
        _event("conditional", "satisfactory", "2026-01-01T00:00:00+00:00"),
    ]
    state = compute_stability(events, NOW)
    assert state.trend == "improving"
    assert safety_risk_score("satisfactory", state) == 100
    assert state.stability_score == 100
    assert safety_risk_score("conditional", state) == (60 + 100) // 2 + 10


def test_volatile_trend_needs_mixed_directions():
    events = [
        _event(None, "satisfactory", "2025-01-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2025-06-01T00:00:00+00:00"),
        _event("conditional", "satisfactory", "2025-09-01T00:00:00+00:00"),
        _event("satisfactory", "unsatisfactory", "2026-02-01T00:00:00+00:00"),
    ]
    state = compute_stability(events, NOW)
    assert state.trend == "volatile"
    assert state.stability_score == 55


def test_transitions_outside_window_do_not_count():
    events = [
        _event(None, "satisfactory", "2020-01-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2020-06-01T00:00:00+00:00"),
    ]
    state = compute_stability(events, NOW)
    assert state.stability_score == 100
    assert state.trend == "stable"
    assert state.change_count == 1


def test_churn_penalty():
    assert stability_from_count(0) == 100
    assert stability_from_count(3) == 55
    assert stability_from_count(5) == 5
    assert stability_from_count(9) == 0


def test_unknown_rating_uses_neutral_base():
    state = compute_stability([], NOW)
    assert safety_risk_score(None, state) == (50 + 100) // 2


def test_rating_history_newest_first():
    events = [
        _event(None, "satisfactory", "2026-01-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2026-07-03T00:00:00+00:00"),
        _event(None, "satisfactory", "2020-01-01T00:00:00+00:00"),
    ]
    rows = rating_history(events, NOW)
    assert [row["new_rating"] for row in rows] == ["conditional", "satisfactory"]
    assert rows[0]["rating_numeric"] == 2
    assert rows[0]["months_ago"] == 3.0


def test_recent_changes_only_transitions():
    events = [
        _event(None, "satisfactory", "2026-09-20T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2026-09-25T00:00:00+00:00"),
    ]
    changes = recent_changes(events, NOW)
    assert [e.new_rating for e in changes] == ["conditional"]


def test_change_after_quiet_year_earns_bonus():
    quiet = [
        _event(None, "satisfactory", "2024-06-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2025-09-01T00:00:00+00:00"),
    ]
    busy = [
        _event(None, "satisfactory", "2025-06-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2025-09-01T00:00:00+00:00"),
    ]
    assert compute_stability(quiet, NOW).stability_score == 100
    assert compute_stability(busy, NOW).stability_score == 85


def test_bonus_only_looks_at_latest_change():
    events = [
        _event(None, "satisfactory", "2024-01-01T00:00:00+00:00"),
        _event("satisfactory", "conditional", "2025-03-01T00:00:00+00:00"),
        _event("conditional", "unsatisfactory", "2025-06-01T00:00:00+00:00"),
    ]
    assert compute_stability(events, NOW).stability_score == 70
