from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from carrier_ingest.normalize import parse_timestamp, utc_now
from carrier_ingest.schema.records import SafetyRatingEvent, StabilityState


WINDOW_DAYS = 730

RATING_RANK = {
    "satisfactory": 3,
    "conditional": 2,
    "unsatisfactory": 1,
}

RATING_BASE = {
    "satisfactory": 100,
    "conditional": 60,
    "unsatisfactory": 20,
    "not-rated": 80,
}
UNKNOWN_RATING_BASE = 50

TREND_ADJUSTMENT = {
    "improving": 10,
    "declining": -20,
    "volatile": -15,
    "stable": 0,
}

CHURN_THRESHOLD = 3

# A transition that follows more than 12 thirty-day months without change.
STABLE_PERIOD_DAYS = 360
STABLE_PERIOD_BONUS = 20

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def rating_rank(rating: Optional[str]) -> int:
    return RATING_RANK.get(rating or "", 0)


def _when(event: SafetyRatingEvent) -> datetime:
    return parse_timestamp(event.change_date) or _EPOCH


def ordered_events(events: Sequence[SafetyRatingEvent]) -> List[SafetyRatingEvent]:
    return sorted(events or [], key=_when)


def latest_rating(events: Sequence[SafetyRatingEvent]) -> Optional[str]:
    ordered = ordered_events(events)
    return ordered[-1].new_rating if ordered else None


def rating_change_event(
    entity_id: str,
    events: Sequence[SafetyRatingEvent],
    new_rating: Optional[str],
    change_date: str,
    source: str,
) -> Optional[SafetyRatingEvent]:
    """Event to append for this observation, or None when nothing changed.

    The first observation is logged with old_rating=None and does not count
    as a transition.
    """
    if not new_rating:
        return None
    previous = latest_rating(events)
    if previous == new_rating:
        return None
    return SafetyRatingEvent(
        entity_id=entity_id,
        old_rating=previous,
        new_rating=new_rating,
        change_date=change_date,
        source=source,
    )


def _direction(event: SafetyRatingEvent) -> int:
    delta = rating_rank(event.new_rating) - rating_rank(event.old_rating)
    return (delta > 0) - (delta < 0)


def stability_from_count(count: int) -> int:
    penalty = 15 * min(count, CHURN_THRESHOLD) + 25 * max(count - CHURN_THRESHOLD, 0)
    return max(0, 100 - penalty)


def _quiet_before(ordered: Sequence[SafetyRatingEvent], event: SafetyRatingEvent) -> bool:
    index = next(i for i, e in enumerate(ordered) if e is event)
    if index == 0:
        return False
    gap = _when(event) - _when(ordered[index - 1])
    return gap > timedelta(days=STABLE_PERIOD_DAYS)


def compute_stability(
    events: Sequence[SafetyRatingEvent], now: Optional[datetime] = None
) -> StabilityState:
    now = parse_timestamp(now) or utc_now()
    cutoff = now - timedelta(days=WINDOW_DAYS)
    ordered = ordered_events(events)
    transitions = [e for e in ordered if e.is_transition]
    windowed = [e for e in transitions if _when(e) >= cutoff]

    score = stability_from_count(len(windowed))
    if windowed and _quiet_before(ordered, windowed[-1]):
        score = min(100, score + STABLE_PERIOD_BONUS)

    directions = [_direction(e) for e in windowed]
    if len(windowed) >= 3 and 1 in directions and -1 in directions:
        trend = "volatile"
    elif windowed and directions[-1] > 0:
        trend = "improving"
    elif windowed and directions[-1] < 0:
        trend = "declining"
    else:
        trend = "stable"

    return StabilityState(
        stability_score=score,
        trend=trend,
        change_count=len(transitions),
        last_change_date=transitions[-1].change_date if transitions else None,
    )


def safety_risk_score(current_rating: Optional[str], stability: StabilityState) -> int:
    base = RATING_BASE.get(current_rating or "", UNKNOWN_RATING_BASE)
    score = (base + stability.stability_score) // 2
    score += TREND_ADJUSTMENT.get(stability.trend, 0)
    if stability.change_count > CHURN_THRESHOLD:
        score -= 5 * stability.change_count
    return max(0, min(100, score))


def rating_history(
    events: Sequence[SafetyRatingEvent],
    now: Optional[datetime] = None,
    months_back: int = 24,
) -> List[dict]:
    """Events of the last `months_back` 30-day months, newest first."""
    now = parse_timestamp(now) or utc_now()
    cutoff = now - timedelta(days=30 * months_back)
    rows = []
    for event in reversed(ordered_events(events)):
        when = _when(event)
        if when < cutoff:
            continue
        row = event.to_dict()
        row["months_ago"] = round((now - when).total_seconds() / (30 * 24 * 3600), 1)
        row["rating_numeric"] = rating_rank(event.new_rating)
        rows.append(row)
    return rows


def recent_changes(
    events: Sequence[SafetyRatingEvent],
    now: Optional[datetime] = None,
    days_back: int = 30,
) -> List[SafetyRatingEvent]:
    now = parse_timestamp(now) or utc_now()
    cutoff = now - timedelta(days=days_back)
    return [
        e for e in reversed(ordered_events(events)) if e.is_transition and _when(e) >= cutoff
    ]


def get_safety_risk_score(entity, events, now=None) -> int:
    """Risk score for a stored entity given its logged rating events."""
    stability = compute_stability(events, now)
    rating = getattr(entity, "safety_rating", None) or latest_rating(events)
    return safety_risk_score(rating, stability)
