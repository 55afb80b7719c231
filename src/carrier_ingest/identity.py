import re
from typing import Iterable, List, Tuple

from carrier_ingest.errors import ValidationError


_DOT_RE = re.compile(r"^\d{1,8}$")


def validate_dot_number(value) -> str:
    """Return the canonical DOT number (digits, no leading zeros).

    Raises ValidationError for anything that is not a positive integer of at
    most eight digits. Called before any fetch is attempted.
    """
    if value is None:
        raise ValidationError("DOT number is required")
    text = str(value).strip()
    if text.upper().startswith("USDOT"):
        text = text[5:].strip(" #:-")
    if not _DOT_RE.match(text):
        raise ValidationError(f"Malformed DOT number: {value!r}")
    canonical = str(int(text))
    if canonical == "0":
        raise ValidationError(f"Malformed DOT number: {value!r}")
    return canonical


def partition_dot_numbers(values: Iterable) -> Tuple[List[str], List[str]]:
    """Split raw ids into (valid canonical ids, rejected raw values).

    Duplicates are dropped while keeping first-seen order.
    """
    valid: List[str] = []
    rejected: List[str] = []
    seen = set()
    for value in values or []:
        try:
            dot = validate_dot_number(value)
        except ValidationError:
            rejected.append(str(value))
            continue
        if dot in seen:
            continue
        seen.add(dot)
        valid.append(dot)
    return valid, rejected
