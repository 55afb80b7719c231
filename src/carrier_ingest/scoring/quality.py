from typing import Dict

from carrier_ingest.schema.records import DataSource, EntityRecord


QUALITY_FIELDS = (
    "legal_name",
    "physical_address",
    "phone",
    "safety_rating",
    "insurance_status",
    "authority_status",
    "entity_type",
    "operating_status",
    "equipment_types",
    "carrier_operation",
    "mc_number",
    "vehicle_count",
)

SOURCE_BASE = {
    DataSource.ADMIN_VERIFIED: 70,
    DataSource.EXTERNAL_REGISTRY: 55,
    DataSource.MANUAL: 30,
}

VERIFIED_WITH_DATE_BONUS = 20
VERIFIED_BONUS = 5
MAX_REPORT_PENALTY = 5


def _clamp(value: int) -> int:
    return max(0, min(100, int(value)))


def _present(record: EntityRecord, name: str) -> bool:
    if name == "legal_name":
        return bool(record.legal_name) and not record.has_placeholder_name
    value = getattr(record, name)
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return value is not None and value != ""


def present_fields(record: EntityRecord):
    return [name for name in QUALITY_FIELDS if _present(record, name)]


def quality_score(record: EntityRecord) -> int:
    return round(100 * len(present_fields(record)) / len(QUALITY_FIELDS))


def trust_factors(record: EntityRecord, report_count: int = 0) -> Dict[str, int]:
    """Per-factor breakdown; `trust_score` is their clamped sum."""
    source = DataSource.parse(record.data_source)
    if record.verified and record.verification_date:
        verification = VERIFIED_WITH_DATE_BONUS
    elif record.verified:
        verification = VERIFIED_BONUS
    else:
        verification = 0
    return {
        "data_source": SOURCE_BASE[source],
        "verification": verification,
        "completeness": round(quality_score(record) / 10),
        "user_reports": -min(max(int(report_count or 0), 0), MAX_REPORT_PENALTY),
    }


def trust_score(record: EntityRecord, report_count: int = 0) -> int:
    return _clamp(sum(trust_factors(record, report_count).values()))


def trust_description(score: int) -> str:
    if score >= 90:
        return "Highly Trusted"
    if score >= 70:
        return "Moderately Trusted"
    if score >= 50:
        return "Basic Trust"
    return "Low Trust"


def score_record(record: EntityRecord, report_count: int = 0) -> EntityRecord:
    """Recompute both scores in place from the current snapshot."""
    record.quality_score = quality_score(record)
    record.trust_score = trust_score(record, report_count)
    return record
