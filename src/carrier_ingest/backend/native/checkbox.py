from .extract import as_selector, cell_text, find_label_cell, full_text, has_boilerplate


MAX_ITEM_LENGTH = 50
MARK = "X"

KNOWN_ITEMS = (
    "Interstate",
    "Intrastate Only (HM)",
    "Intrastate Only (Non-HM)",
    "Auth. For Hire",
    "Exempt For Hire",
    "Private(Property)",
    "Priv. Pass. (Business)",
    "Priv. Pass.(Non-business)",
    "Migrant",
    "U.S. Mail",
    "Fed. Gov't",
    "State Gov't",
    "Local Gov't",
    "Indian Nation",
    "General Freight",
    "Household Goods",
    "Metal: sheets, coils, rolls",
    "Motor Vehicles",
    "Drive/Tow away",
    "Logs, Poles, Beams, Lumber",
    "Building Materials",
    "Mobile Homes",
    "Machinery, Large Objects",
    "Fresh Produce",
    "Liquids/Gases",
    "Intermodal Cont.",
    "Passengers",
    "Oilfield Equipment",
    "Livestock",
    "Grain, Feed, Hay",
    "Coal/Coke",
    "Meat",
    "Garbage/Refuse",
    "US Mail",
    "Chemicals",
    "Commodities Dry Bulk",
    "Refrigerated Food",
    "Beverages",
    "Paper Products",
    "Utilities",
    "Agricultural/Farm Supplies",
    "Construction",
    "Water Well",
    "OTHER",
)


def _checkbox_region(label_cell):
    """First following row that holds a nested table or an X mark."""
    row = label_cell.xpath("ancestor::tr[1]")
    if not row:
        return None
    for sibling in row[0].xpath("following-sibling::tr"):
        if sibling.xpath(".//table"):
            return sibling
        texts = [cell_text(td) for td in sibling.xpath(".//td")]
        if MARK in texts:
            return sibling
    return None


def _plausible_item(value):
    if not value or len(value) > MAX_ITEM_LENGTH:
        return False
    return not has_boilerplate(value)


def marked_items(region):
    items = []
    for cell in region.xpath(".//td"):
        if cell_text(cell) != MARK:
            continue
        neighbour = cell.xpath("following-sibling::td[1]")
        if not neighbour:
            continue
        value = cell_text(neighbour[0])
        if _plausible_item(value) and value not in items:
            items.append(value)
    return items


def vocabulary_items(region, vocabulary=KNOWN_ITEMS):
    text = full_text(region) or ""
    return [item for item in vocabulary if item in text]


def extract_checked_items(doc, label):
    """Ordered, de-duplicated marked items of a checkbox section; [] when absent."""
    selector = as_selector(doc)
    label_cell = find_label_cell(selector, label)
    if label_cell is None:
        return []
    region = _checkbox_region(label_cell)
    if region is None:
        return []
    items = marked_items(region)
    if items:
        return items
    return vocabulary_items(region)
