"""Carrier vs. non-carrier classification.

`is_carrier_entity` is total and deterministic: ambiguous or unlabeled
records are kept in scope, only explicit broker/forwarder types are excluded.
"""

from typing import Iterable, List, Optional, Sequence

from carrier_ingest.normalize import normalize_text


EXCLUDED_TYPES = frozenset(
    {
        "broker",
        "freight forwarder",
        "property broker",
        "household goods broker",
        "passenger broker",
    }
)

CARRIER_TYPE_TERMS = (
    "carrier",
    "motor",
    "truck",
    "transport",
    "logistics",
    "freight",
    "hauling",
    "delivery",
    "corporation",
    "llc",
    "inc",
    "company",
    "enterprises",
)

CARRIER_CLASSIFICATION_TERMS = (
    "general freight",
    "specialized",
    "household goods",
    "passenger",
    "authorized",
    "for hire",
    "private",
)

CARRIER_OPERATION_TERMS = (
    "authorized",
    "for hire",
    "private",
    "interstate",
    "intrastate",
)

_FILTER_REASONS = (
    ("freight forwarder", "Freight forwarder (not a motor carrier)"),
    ("property broker", "Property broker (not a motor carrier)"),
    ("passenger broker", "Passenger broker (not a motor carrier)"),
    ("household goods broker", "Household goods broker (not a motor carrier)"),
    ("broker", "Freight broker (not a motor carrier)"),
)


def _kind(entity_type: Optional[str]) -> str:
    return normalize_text(entity_type).replace("-", " ")


def _first(values: Optional[Sequence[str]]) -> str:
    if not values:
        return ""
    return normalize_text(values[0])


def is_carrier_entity(
    entity_type: Optional[str],
    operation_classification: Optional[Sequence[str]] = None,
    carrier_operation: Optional[Sequence[str]] = None,
) -> bool:
    kind = _kind(entity_type)
    if not kind:
        return True

    if "/" in kind:
        head = kind.split("/")[0].strip()
        if head == "carrier":
            return True
        if head == "broker":
            return False

    if kind in EXCLUDED_TYPES:
        return False

    if any(term in kind for term in CARRIER_TYPE_TERMS):
        return True

    classification = _first(operation_classification)
    if any(term in classification for term in CARRIER_CLASSIFICATION_TERMS):
        return True
    operation = _first(carrier_operation)
    if any(term in operation for term in CARRIER_OPERATION_TERMS):
        return True

    # Ambiguous types default to in scope.
    return True


def classify_record(record) -> bool:
    return is_carrier_entity(
        record.entity_type,
        record.operation_classification,
        record.carrier_operation,
    )


def filter_reason(entity_type: Optional[str]) -> Optional[str]:
    """Human-readable reason an entity type is excluded, or None when it is kept."""
    if is_carrier_entity(entity_type):
        return None
    kind = _kind(entity_type)
    for term, reason in _FILTER_REASONS:
        if term in kind:
            return reason
    return "Not a motor carrier"


def filter_carriers_only(records: Iterable) -> List:
    return [record for record in records if classify_record(record)]
