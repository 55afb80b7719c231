import pytest

from carrier_ingest.schema.records import DataSource, normalize_record


def test_normalize_record_cleans_text_fields():
    record = normalize_record(
        {
            "external_id": "USDOT 1234567",
            "legal_name": "  ACME&nbsp;TRUCKING   LLC ",
            "dba_name": "\xa0",
            "physical_address": "123 MAIN ST,\n SPRINGFIELD, IL 62701",
            "operation_classification": ["Auth. For Hire", "", None],
            "trust_score": "250",
            "data_source": "fmcsa",
        }
    )
    assert record.external_id == "1234567"
    assert record.legal_name == "ACME TRUCKING LLC"
    assert record.legal_name_source == "field"
    assert record.dba_name is None
    assert record.physical_address == "123 MAIN ST, SPRINGFIELD, IL 62701"
    assert record.operation_classification == ["Auth. For Hire"]
    assert record.trust_score == 100
    assert record.data_source is DataSource.EXTERNAL_REGISTRY


def test_normalize_record_blank_name_uses_placeholder():
    record = normalize_record({"external_id": "42", "legal_name": "&nbsp;"})
    assert record.legal_name == "Carrier 42"
    assert record.has_placeholder_name


def test_normalize_record_rejects_bad_identifier():
    with pytest.raises(ValueError):
        normalize_record({"external_id": "abc"})
