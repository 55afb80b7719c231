import html
import re
from datetime import date, datetime, timezone
from typing import Optional, Tuple


_WHITESPACE_RE = re.compile(r"\s+")
_STATE_ZIP_RE = re.compile(r"^([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$")
_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y", "%m-%d-%Y")

SAFETY_RATINGS = ("satisfactory", "conditional", "unsatisfactory", "not-rated")


def normalize_text(value: Optional[str]) -> str:
    if value is None:
        return ""
    cleaned = _WHITESPACE_RE.sub(" ", str(value)).strip()
    return cleaned.casefold()


def clean_text(value: Optional[str]) -> Optional[str]:
    """Unescape entities, fold nbsp and collapse whitespace; '' becomes None."""
    if value is None:
        return None
    text = html.unescape(str(value)).replace("\xa0", " ")
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = text.strip(": ").strip()
    return text or None


def normalize_safety_rating(value: Optional[str]) -> Optional[str]:
    text = normalize_text(value)
    if not text:
        return None
    # "unsatisfactory" contains "satisfactory"; order matters.
    if "unsatisfactory" in text:
        return "unsatisfactory"
    if "satisfactory" in text:
        return "satisfactory"
    if "conditional" in text:
        return "conditional"
    return "not-rated"


def normalize_authority_status(value: Optional[str]) -> Optional[str]:
    text = normalize_text(value)
    if not text:
        return None
    if "not authorized" in text or "inactive" in text or "out-of-service" in text:
        return "Inactive"
    if "authorized" in text or "active" in text:
        return "Active"
    return "Unknown"


def parse_registry_date(value: Optional[str]) -> Optional[str]:
    """Registry dates are MM/DD/YYYY; returns ISO YYYY-MM-DD or None."""
    text = clean_text(value)
    if not text or text.lower() in {"none", "n/a"}:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_iso_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_count(value: Optional[str]) -> Optional[int]:
    text = clean_text(value)
    if not text:
        return None
    match = re.search(r"\d[\d,]*", text)
    if not match:
        return None
    number = int(match.group(0).replace(",", ""))
    return number if number > 0 else None


def normalize_mc_number(value: Optional[str]) -> Optional[str]:
    text = clean_text(value)
    if not text:
        return None
    match = re.search(r"MC-?\s*(\d+)", text, flags=re.IGNORECASE)
    if match:
        return f"MC-{match.group(1)}"
    if text.isdigit():
        return f"MC-{text}"
    return None


def split_city_state(address: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """'123 MAIN ST, SPRINGFIELD, IL 62701' -> ('SPRINGFIELD', 'IL')."""
    if not address:
        return None, None
    parts = [part.strip() for part in address.split(",")]
    if len(parts) < 2:
        return None, None
    match = _STATE_ZIP_RE.match(parts[-1])
    if not match:
        return None, None
    return parts[-2] or None, match.group(1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().replace(microsecond=0).isoformat()


def parse_timestamp(value) -> Optional[datetime]:
    """ISO timestamp or date -> aware UTC datetime (dates are midnight UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
