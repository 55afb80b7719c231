"""Insurance expiry tiers.

Tiers are recomputed from (expiry, now) on every read and never stored.
Deduplicating already-sent alerts is left to the caller via `alert_key`.
"""

import math
from datetime import datetime
from typing import Iterable, List, Optional

from carrier_ingest.normalize import parse_iso_date, parse_timestamp, utc_now
from carrier_ingest.schema.records import InsuranceWindow


TIER_EXPIRED = "expired"
TIER_NONE = "none"

# (inclusive upper bound in days, tier), most urgent first.
READ_TIERS = ((7, "7d"), (15, "15d"), (30, "30d"))
ALERT_TIERS = ((1, "1d"), (7, "7d"), (15, "15d"), (30, "30d"))

_SECONDS_PER_DAY = 24 * 3600


def _now(now) -> datetime:
    return parse_timestamp(now) or utc_now()


def days_until_expiry(expiry, now=None) -> Optional[int]:
    expiry_date = parse_iso_date(expiry)
    if expiry_date is None:
        return None
    expires_at = parse_timestamp(expiry_date)
    return math.ceil((expires_at - _now(now)).total_seconds() / _SECONDS_PER_DAY)


def tier_for_days(days: Optional[int]) -> str:
    if days is None:
        return TIER_NONE
    if days < 0:
        return TIER_EXPIRED
    for bound, tier in READ_TIERS:
        if days <= bound:
            return tier
    return TIER_NONE


def insurance_tier(expiry, now=None) -> str:
    return tier_for_days(days_until_expiry(expiry, now))


def insurance_window(record, now=None) -> InsuranceWindow:
    expiry = record.insurance_expiry_date
    days = days_until_expiry(expiry, now)
    return InsuranceWindow(
        expiry_date=expiry,
        effective_date=record.insurance_effective_date,
        days_until_expiry=days,
        current_tier=tier_for_days(days),
    )


def get_insurance_tier(entity, now=None) -> str:
    return insurance_tier(getattr(entity, "insurance_expiry_date", None), now)


def next_alert_tier(expiry, now=None, sent_tiers: Iterable[str] = ()) -> Optional[str]:
    """Alert tier due now, or None when that tier was already sent.

    Only one tier is returned per call; nothing is due once expired.
    """
    days = days_until_expiry(expiry, now)
    if days is None or days < 0:
        return None
    sent = set(sent_tiers or ())
    for bound, tier in ALERT_TIERS:
        if days <= bound:
            return None if tier in sent else tier
    return None


def alert_key(entity_id: str, tier: str, expiry) -> str:
    expiry_date = parse_iso_date(expiry)
    return f"{entity_id}:{tier}:{expiry_date.isoformat() if expiry_date else ''}"


def insurance_risk_score(expiry, verification_age_days=None, now=None) -> int:
    days = days_until_expiry(expiry, now)
    if days is None:
        return 10
    if days < 0:
        return 0
    score = 100
    if days <= 7:
        score -= 50
    elif days <= 15:
        score -= 30
    elif days <= 30:
        score -= 15
    if verification_age_days is None:
        score -= 15
    elif verification_age_days > 90:
        score -= 20
    elif verification_age_days > 30:
        score -= 10
    return max(0, min(100, score))


def expiring_within(records: Iterable, now=None, days_ahead: int = 30) -> List:
    """Records whose policy expires in [0, days_ahead] days, soonest first."""
    now = _now(now)
    due = []
    for record in records:
        days = days_until_expiry(record.insurance_expiry_date, now)
        if days is not None and 0 <= days <= days_ahead:
            due.append((days, record.external_id, record))
    return [record for _, _, record in sorted(due, key=lambda row: (row[0], row[1]))]
