import logging
import re

from carrier_ingest.errors import RecordNotFoundError
from carrier_ingest.normalize import (
    normalize_authority_status,
    normalize_mc_number,
    normalize_safety_rating,
    parse_count,
    parse_registry_date,
    split_city_state,
)
from carrier_ingest.schema.records import DataSource, EntityRecord

from ..checkbox import extract_checked_items
from ..extract import as_selector, extract_field, extract_first
from ..names import resolve_legal_name


logger = logging.getLogger("carrier_ingest.parse")

SNAPSHOT_MARKER = "Company Snapshot"
_DATA_LABEL_RES = (
    re.compile(r"legal\s*name", re.IGNORECASE),
    re.compile(r"dba\s*name", re.IGNORECASE),
    re.compile(r"physical\s*address", re.IGNORECASE),
    re.compile(r"entity\s*type", re.IGNORECASE),
)


def check_snapshot_page(html, external_id):
    """Raise RecordNotFoundError unless `html` looks like one carrier's snapshot."""
    text = html or ""
    if SNAPSHOT_MARKER not in text:
        raise RecordNotFoundError(
            f"DOT {external_id}: not a company snapshot page"
        )
    if any(pattern.search(text) for pattern in _DATA_LABEL_RES):
        return
    if "RECORD INACTIVE" in text or "RECORD NOT FOUND" in text:
        raise RecordNotFoundError(
            f"DOT {external_id}: record inactive or not found"
        )
    raise RecordNotFoundError(
        f"DOT {external_id}: no company data on snapshot page"
    )


def derive_insurance_status(authority_status, out_of_service_date):
    if authority_status is None:
        return None
    if authority_status == "Active" and not out_of_service_date:
        return "Active"
    return "Unknown"


def _operation_classification(doc):
    items = extract_checked_items(doc, "Operation Classification")
    if items:
        return items
    scalar = extract_field(doc, "Operation Classification")
    return [scalar] if scalar and len(scalar) <= 50 else []


def parse_snapshot(html, external_id):
    """Turn one snapshot page into an unscored EntityRecord.

    Missing fields stay None (or [] for checkbox sections); only page-level
    problems raise.
    """
    check_snapshot_page(html, external_id)
    doc = as_selector(html)

    legal_name, name_source = resolve_legal_name(doc, external_id)
    physical_address = extract_field(doc, "Physical Address")
    city, state = split_city_state(physical_address)
    authority_status = normalize_authority_status(
        extract_first(
            doc, "Operating Authority Status", "Operating Status", "Authority Status"
        )
    )
    out_of_service_date = parse_registry_date(extract_field(doc, "Out of Service Date"))

    record = EntityRecord(
        external_id=external_id,
        legal_name=legal_name,
        legal_name_source=name_source,
        dba_name=extract_field(doc, "DBA Name"),
        physical_address=physical_address,
        city=city,
        state=state,
        phone=extract_field(doc, "Phone"),
        entity_type=extract_field(doc, "Entity Type"),
        operating_status=extract_first(doc, "Operating Status", "Authority Status"),
        authority_status=authority_status,
        insurance_status=derive_insurance_status(authority_status, out_of_service_date),
        safety_rating=normalize_safety_rating(
            extract_first(doc, "Safety Rating", "DOT Safety Rating")
        ),
        safety_rating_date=parse_registry_date(
            extract_first(doc, "Safety Rating Date", "Rating Date")
        ),
        safety_review_date=parse_registry_date(
            extract_first(doc, "Safety Review Date", "Review Date")
        ),
        out_of_service_date=out_of_service_date,
        mcs_150_date=parse_registry_date(
            extract_first(doc, "MCS-150 Form Date", "MCS-150 Date")
        ),
        mc_number=normalize_mc_number(
            extract_first(doc, "MC/MX/FF Number(s)", "MC/MX Number(s)", "MC Number")
        ),
        vehicle_count=parse_count(extract_field(doc, "Power Units")),
        driver_count=parse_count(extract_field(doc, "Drivers")),
        insurance_effective_date=parse_registry_date(
            extract_field(doc, "Insurance Effective Date")
        ),
        insurance_expiry_date=parse_registry_date(
            extract_first(doc, "Insurance Expiry Date", "Insurance Expiration")
        ),
        operation_classification=_operation_classification(doc),
        carrier_operation=extract_checked_items(doc, "Carrier Operation"),
        equipment_types=extract_checked_items(doc, "Cargo Carried"),
        data_source=DataSource.EXTERNAL_REGISTRY,
    )
    logger.debug(
        "parsed snapshot",
        extra={"external_id": external_id, "legal_name_source": name_source},
    )
    return record
