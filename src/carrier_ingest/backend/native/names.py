import logging
import re

from carrier_ingest.normalize import clean_text
from carrier_ingest.schema.records import placeholder_name

from .extract import as_selector, body_text, extract_field, has_boilerplate, page_title


logger = logging.getLogger("carrier_ingest.parse")

MAX_NAME_LENGTH = 200

_TITLE_RE = re.compile(r"Company Snapshot\s+(.+)", re.IGNORECASE)
_SUFFIX_RE = re.compile(
    r"\b([A-Z][A-Z0-9&.,'\- ]*?(?:\s(?:LLC|INC|CORP|LTD|CO|COMPANY|SERVICES|TRANSPORT|TRUCKING|LOGISTICS))+)\b"
)
_PHRASE_RE = re.compile(r"\b([A-Z][A-Z&.,'\- ]{3,50})\b")

# Uppercase page chrome the generic phrase pattern would otherwise pick up.
_PHRASE_NOISE = (
    "SAFER",
    "USDOT",
    "MC/MX",
    "DOT NUMBER",
    "NUMBER",
    "NAME",
    "COMPANY SNAPSHOT",
    "TABLE LAYOUT",
    "QUERY RESULT",
    "INFORMATION",
    "ENTER VALUE",
    "SEARCH CRITERIA",
    "NOT FOUND",
    "RECORD INACTIVE",
)
# Whole-cell field values that are never a name on their own.
_VALUE_NOISE = frozenset(
    {"CARRIER", "BROKER", "SHIPPER", "AUTHORIZED", "NOT AUTHORIZED", "ACTIVE", "INACTIVE", "NONE"}
)


def is_usable_name(value):
    if not value:
        return False
    if len(value) > MAX_NAME_LENGTH:
        return False
    if value.casefold() == "not found":
        return False
    return not has_boilerplate(value)


def name_from_field(doc):
    value = extract_field(doc, "Legal Name")
    return value if is_usable_name(value) else None


def name_from_title(doc):
    match = _TITLE_RE.search(page_title(doc) or "")
    if not match:
        return None
    value = clean_text(match.group(1))
    return value if is_usable_name(value) else None


def _plausible_phrase(value):
    upper = value.upper()
    if upper.strip(" .,") in _VALUE_NOISE:
        return False
    if any(noise in upper for noise in _PHRASE_NOISE):
        return False
    return 3 < len(value) < 100


def name_from_pattern(doc):
    text = body_text(doc)
    for pattern in (_SUFFIX_RE, _PHRASE_RE):
        for match in pattern.finditer(text):
            value = clean_text(match.group(1).strip(" ,.-'&"))
            if value and _plausible_phrase(value) and is_usable_name(value):
                return value
    return None


NAME_STRATEGIES = (
    ("field", name_from_field),
    ("title", name_from_title),
    ("pattern", name_from_pattern),
)


def resolve_legal_name(doc, external_id):
    """Return (legal_name, source); never empty, placeholder as last resort."""
    selector = as_selector(doc)
    for source, strategy in NAME_STRATEGIES:
        value = strategy(selector)
        if value:
            return value, source
    logger.warning(
        "legal name not found, using placeholder",
        extra={"external_id": external_id},
    )
    return placeholder_name(external_id), "placeholder"
