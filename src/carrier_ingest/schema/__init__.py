REQUIRED_FIELDS = [
    "external_id",
    "legal_name",
    "is_carrier_entity",
    "quality_score",
    "trust_score",
    "data_source",
]

from .records import (  # noqa: E402
    DataSource,
    EntityRecord,
    InsuranceWindow,
    SafetyRatingEvent,
    StabilityState,
    normalize_record,
    placeholder_name,
)

__all__ = [
    "REQUIRED_FIELDS",
    "DataSource",
    "EntityRecord",
    "InsuranceWindow",
    "SafetyRatingEvent",
    "StabilityState",
    "normalize_record",
    "placeholder_name",
]
