from dataclasses import asdict, dataclass, field, fields
from enum import Enum
import json
from typing import List, Optional

from carrier_ingest.identity import validate_dot_number
from carrier_ingest.normalize import clean_text


PLACEHOLDER_NAME_PREFIX = "Carrier "


class DataSource(str, Enum):
    MANUAL = "manual"
    EXTERNAL_REGISTRY = "external-registry"
    ADMIN_VERIFIED = "admin-verified"

    @classmethod
    def parse(cls, value) -> "DataSource":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-")
        aliases = {
            "fmcsa": cls.EXTERNAL_REGISTRY,
            "safer-scraper": cls.EXTERNAL_REGISTRY,
            "registry": cls.EXTERNAL_REGISTRY,
            "verified": cls.ADMIN_VERIFIED,
        }
        if text in aliases:
            return aliases[text]
        for member in cls:
            if member.value == text:
                return member
        return cls.MANUAL


def placeholder_name(external_id: str) -> str:
    return f"{PLACEHOLDER_NAME_PREFIX}{external_id}"


@dataclass
class EntityRecord:
    external_id: str
    legal_name: str
    legal_name_source: str = "field"
    dba_name: Optional[str] = None
    physical_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    entity_type: Optional[str] = None
    operating_status: Optional[str] = None
    authority_status: Optional[str] = None
    insurance_status: Optional[str] = None
    safety_rating: Optional[str] = None
    safety_rating_date: Optional[str] = None
    safety_review_date: Optional[str] = None
    out_of_service_date: Optional[str] = None
    mcs_150_date: Optional[str] = None
    mc_number: Optional[str] = None
    vehicle_count: Optional[int] = None
    driver_count: Optional[int] = None
    insurance_effective_date: Optional[str] = None
    insurance_expiry_date: Optional[str] = None
    operation_classification: List[str] = field(default_factory=list)
    carrier_operation: List[str] = field(default_factory=list)
    equipment_types: List[str] = field(default_factory=list)
    is_carrier_entity: bool = True
    quality_score: int = 0
    trust_score: int = 0
    data_source: DataSource = DataSource.EXTERNAL_REGISTRY
    verified: bool = False
    verification_date: Optional[str] = None

    @property
    def has_placeholder_name(self) -> bool:
        return self.legal_name_source == "placeholder"

    def to_dict(self):
        data = asdict(self)
        data["data_source"] = DataSource.parse(self.data_source).value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=True)


_LIST_FIELDS = ("operation_classification", "carrier_operation", "equipment_types")
_INT_FIELDS = ("vehicle_count", "driver_count", "quality_score", "trust_score")


def _optional_text(value) -> Optional[str]:
    return clean_text(value) if value is not None else None


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_record(data) -> EntityRecord:
    """Build an EntityRecord from a loose dict (parser output or stored row).

    Raises ValueError when the identifier is malformed. A missing name falls
    back to the placeholder so the record is always storable.
    """
    if data is None:
        data = {}
    external_id = validate_dot_number(data.get("external_id") or data.get("dot_number"))
    legal_name = _optional_text(data.get("legal_name"))
    name_source = clean_text(data.get("legal_name_source")) or "field"
    if not legal_name:
        legal_name = placeholder_name(external_id)
        name_source = "placeholder"
    known = {f.name for f in fields(EntityRecord)}
    values = {}
    for key in known:
        if key in ("external_id", "legal_name", "legal_name_source"):
            continue
        if key not in data:
            continue
        value = data[key]
        if key in _LIST_FIELDS:
            items = [_optional_text(v) for v in (value or [])]
            values[key] = [v for v in items if v]
        elif key in _INT_FIELDS:
            number = _optional_int(value)
            if key in ("quality_score", "trust_score"):
                values[key] = max(0, min(100, number or 0))
            else:
                values[key] = number
        elif key in ("is_carrier_entity", "verified"):
            values[key] = bool(value) if value is not None else key == "is_carrier_entity"
        elif key == "data_source":
            values[key] = DataSource.parse(value)
        else:
            values[key] = _optional_text(value)
    return EntityRecord(
        external_id=external_id,
        legal_name=legal_name,
        legal_name_source=name_source,
        **values,
    )


@dataclass(frozen=True)
class SafetyRatingEvent:
    entity_id: str
    old_rating: Optional[str]
    new_rating: str
    change_date: str  # ISO8601
    source: str

    @property
    def is_transition(self) -> bool:
        return self.old_rating is not None

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class StabilityState:
    stability_score: int = 100
    trend: str = "stable"  # improving|declining|volatile|stable
    change_count: int = 0
    last_change_date: Optional[str] = None

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class InsuranceWindow:
    expiry_date: Optional[str]
    effective_date: Optional[str]
    days_until_expiry: Optional[int]
    current_tier: str  # none|30d|15d|7d|1d|expired

    def to_dict(self):
        return asdict(self)
