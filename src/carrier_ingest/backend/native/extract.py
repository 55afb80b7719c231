from parsel import Selector

from carrier_ingest.normalize import clean_text


# Phrases that only appear in SAFER page chrome, never in a carrier's data.
BOILERPLATE_PHRASES = (
    "Query Result",
    "SAFER Table Layout",
    "SAFER Layout",
    "Information",
    "USDOT Number",
    "MC/MX Number",
    "Enter Value",
    "Search Criteria",
)

_SKIP_TEXT = "[not(ancestor::script)][not(ancestor::style)][not(ancestor::form)]"


def has_boilerplate(value):
    text = value or ""
    return any(phrase in text for phrase in BOILERPLATE_PHRASES)


def as_selector(text):
    """Wrap markup in a parsel Selector; Selectors pass through."""
    if isinstance(text, Selector):
        return text
    return Selector(text=text or "<html></html>")


def cell_text(cell):
    """Text of one table cell without nested tables, scripts or forms."""
    if cell is None:
        return None
    depth = len(cell.xpath("ancestor-or-self::table"))
    parts = cell.xpath(
        f".//text()[count(ancestor::table)={depth}]{_SKIP_TEXT}"
    ).getall()
    return clean_text(" ".join(parts))


def full_text(node):
    if node is None:
        return None
    return clean_text(" ".join(node.xpath(f".//text(){_SKIP_TEXT}").getall()))


def _label_key(value):
    return (clean_text(value) or "").casefold()


def _is_label(text, label):
    # clean_text strips trailing colons, so "Legal Name:" and "Legal Name" match.
    return bool(text) and _label_key(text) == _label_key(label)


def _echoes_label(value, label):
    return _label_key(value) == _label_key(label)


def _sibling_value(doc, tag, label):
    for cell in doc.xpath(f"//{tag}"):
        if not _is_label(cell_text(cell), label):
            continue
        sibling = cell.xpath("following-sibling::td[1]")
        if not sibling:
            continue
        value = cell_text(sibling[0])
        if value and not _echoes_label(value, label):
            return value
    return None


def th_sibling_strategy(doc, label):
    return _sibling_value(doc, "th", label)


def td_sibling_strategy(doc, label):
    return _sibling_value(doc, "td", label)


def row_scan_strategy(doc, label):
    """Find the label anywhere in a leaf cell, then take the first other cell in its row."""
    wanted = _label_key(label)
    for cell in doc.xpath("//th[not(.//table)] | //td[not(.//table)]"):
        text = _label_key(full_text(cell))
        if not text or wanted not in text:
            continue
        row = cell.xpath("ancestor::tr[1]")
        if not row:
            continue
        for candidate in row[0].xpath("./td"):
            value = cell_text(candidate)
            if not value or wanted in _label_key(value):
                continue
            return value
    return None


FIELD_STRATEGIES = (
    th_sibling_strategy,
    td_sibling_strategy,
    row_scan_strategy,
)


def extract_field(doc, label, strategies=FIELD_STRATEGIES):
    """Return the cleaned value for `label`, or None when no strategy finds one."""
    selector = as_selector(doc)
    for strategy in strategies:
        value = strategy(selector, label)
        if value and not _echoes_label(value, label):
            return value
    return None


def extract_first(doc, *labels):
    selector = as_selector(doc)
    for label in labels:
        value = extract_field(selector, label)
        if value:
            return value
    return None


def find_label_cell(doc, label):
    """First th/td whose own text is the label, falling back to a containing leaf cell."""
    selector = as_selector(doc)
    loose = None
    wanted = _label_key(label)
    for cell in selector.xpath("//th[not(.//table)] | //td[not(.//table)]"):
        text = full_text(cell)
        if _is_label(text, label):
            return cell
        if loose is None and text and wanted in _label_key(text) and len(text) < 80:
            loose = cell
    return loose


def page_title(doc):
    selector = as_selector(doc)
    return clean_text(" ".join(selector.css("title::text").getall()))


def body_text(doc):
    selector = as_selector(doc)
    body = selector.css("body")
    node = body[0] if body else selector
    return full_text(node) or ""
