import pytest

from carrier_ingest.classify import filter_carriers_only, filter_reason, is_carrier_entity
from carrier_ingest.schema.records import EntityRecord


@pytest.mark.parametrize(
    "entity_type",
    [
        "BROKER",
        "Freight Forwarder",
        " property broker ",
        "PASSENGER BROKER",
        "HOUSEHOLD-GOODS BROKER",
        "broker/carrier",
    ],
)
def test_excluded_types(entity_type):
    assert is_carrier_entity(entity_type) is False


@pytest.mark.parametrize(
    "entity_type",
    [None, "", "CARRIER", "CARRIER/BROKER", "CARRIER/SHIPPER/BROKER", "Motor Carrier", "ACME LLC"],
)
def test_carrier_types(entity_type):
    assert is_carrier_entity(entity_type) is True


def test_ambiguous_type_defaults_to_carrier():
    assert is_carrier_entity("SHIPPER") is True
    assert is_carrier_entity("SHIPPER", ["Auth. For Hire"], ["Interstate"]) is True


def test_excluded_type_wins_over_operation_hints():
    assert is_carrier_entity("BROKER", ["General Freight"], ["Interstate"]) is False


def test_filter_reason():
    assert filter_reason("CARRIER") is None
    assert filter_reason("BROKER") == "Freight broker (not a motor carrier)"
    assert filter_reason("Freight Forwarder") == "Freight forwarder (not a motor carrier)"
    assert filter_reason("Household Goods Broker") == "Household goods broker (not a motor carrier)"


def test_filter_carriers_only():
    records = [
        EntityRecord(external_id="1", legal_name="A", entity_type="CARRIER"),
        EntityRecord(external_id="2", legal_name="B", entity_type="BROKER"),
        EntityRecord(external_id="3", legal_name="C", entity_type=None),
    ]
    assert [r.external_id for r in filter_carriers_only(records)] == ["1", "3"]
