from carrier_ingest.backend.native.checkbox import extract_checked_items


def test_marked_items_in_document_order(snapshot_html):
    assert extract_checked_items(snapshot_html, "Cargo Carried") == [
        "General Freight",
        "Household Goods",
        "Building Materials",
    ]
    assert extract_checked_items(snapshot_html, "Carrier Operation") == ["Interstate"]
    assert extract_checked_items(snapshot_html, "Operation Classification") == [
        "Auth. For Hire"
    ]


def test_missing_section_is_empty_list(broker_html):
    assert extract_checked_items(broker_html, "Cargo Carried") == []


def test_duplicate_marks_are_collapsed():
    html = (
        "<table><tr><th>Cargo Carried:</th></tr>"
        "<tr><td><table><tr><td>X</td><td>Meat</td><td>X</td><td>Meat</td>"
        "<td>X</td><td>Livestock</td></tr></table></td></tr></table>"
    )
    assert extract_checked_items(html, "Cargo Carried") == ["Meat", "Livestock"]


def test_overlong_item_is_dropped():
    long_item = "Y" * 60
    html = (
        "<table><tr><th>Cargo Carried:</th></tr>"
        f"<tr><td>X</td><td>{long_item}</td><td>X</td><td>Beverages</td></tr></table>"
    )
    assert extract_checked_items(html, "Cargo Carried") == ["Beverages"]


def test_vocabulary_fallback_without_marks():
    html = (
        "<table><tr><th>Carrier Operation:</th></tr>"
        "<tr><td><table><tr><td>Interstate</td></tr></table></td></tr></table>"
    )
    assert extract_checked_items(html, "Carrier Operation") == ["Interstate"]
