"""
Unit tests for report row normalization
"""

import pytest
from datetime import date, datetime
from pydantic import ValidationError

from ingestion.transformers import normalizer
from models.base import (
    UnitStatus, LeaseStatus, WorkOrderStatus, WorkOrderPriority, TransactionType
)


class TestParsing:

    @pytest.mark.parametrize("value,expected", [
        ("$1,234.50", 1234.50),
        (" 99 ", 99.0),
        (42, 42.0),
        ("-15.25", -15.25),
        ("", None),
        (None, None),
        ("n/a", None),
    ])
    def test_parse_amount(self, value, expected):
        assert normalizer.parse_amount(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("2024-03-05", date(2024, 3, 5)),
        ("03/05/2024", date(2024, 3, 5)),
        ("2024-03-05T10:00:00Z", date(2024, 3, 5)),
        ("garbage", None),
        (None, None),
    ])
    def test_parse_date(self, value, expected):
        assert normalizer.parse_date(value) == expected

    def test_parse_datetime_converts_offsets_to_naive_utc(self):
        assert normalizer.parse_datetime("2024-03-05T10:00:00-05:00") == datetime(2024, 3, 5, 15, 0)

    @pytest.mark.parametrize("value,expected", [
        ("Yes", True), ("no", False), ("1", True), (True, True), (None, False),
    ])
    def test_parse_bool(self, value, expected):
        assert normalizer.parse_bool(value) is expected

    @pytest.mark.parametrize("value,expected", [
        ("1001", 1001), (1001, 1001), ("  7 ", 7), (7001.0, 7001),
        ("", None), (None, None), ("abc", None), ("0", None), (-5, None), ("12.5", None), (12.5, None), (0.0, None),
    ])
    def test_parse_txn_id_is_strict(self, value, expected):
        assert normalizer.parse_txn_id(value) == expected

    def test_first_value_walks_nested_keys(self):
        record = {"property": {"id": 7}, "property_id": None}
        assert normalizer.first_value(record, "property_id", "property.id") == 7

    def test_external_ref_treats_blank_as_absent(self):
        assert normalizer.external_ref({"unit_id": "  "}, "unit_id") is None
        assert normalizer.external_ref({"unit_id": 201}, "unit_id") == "201"

    @pytest.mark.parametrize("account,expected", [
        ("6210 - Water", "6210"),
        ("6220", "6220"),
        ("Utilities", "Utilities"),
    ])
    def test_gl_account_number(self, account, expected):
        assert normalizer.extract_gl_account_number({"account": account}) == expected


class TestVocabulary:

    def test_unknown_values_fall_back_to_defaults(self):
        assert normalizer.map_unit_status("haunted") == UnitStatus.VACANT
        assert normalizer.map_work_order_priority(None) == WorkOrderPriority.NORMAL

    def test_lookup_is_case_insensitive(self):
        assert normalizer.map_unit_status(" Rented ") == UnitStatus.OCCUPIED
        assert normalizer.map_work_order_status("Canceled") == WorkOrderStatus.CANCELLED
        assert normalizer.map_transaction_type("RECEIPT") == TransactionType.PAYMENT

    def test_rent_roll_statuses(self):
        assert normalizer.map_rent_roll_status("Notice") == LeaseStatus.ACTIVE
        assert normalizer.map_rent_roll_status("Evict") == LeaseStatus.PAST
        assert normalizer.map_rent_roll_status("Future") == LeaseStatus.FUTURE


class TestMappers:

    def test_property_falls_back_to_address_for_name(self):
        row = normalizer.map_property(
            {"property_id": 1, "property_name": None, "property_address": "5 Elm St", "units": "3"},
            "1"
        )
        assert row.name == "5 Elm St"
        assert row.unit_count == 3
        assert row.is_active is True

    def test_hidden_property_is_inactive(self):
        row = normalizer.map_property({"property_name": "Old", "visibility": "Hidden"}, "9")
        assert row.is_active is False

    def test_unit(self):
        row = normalizer.map_unit(
            {"unit_name": "1A", "sqft": "750", "bedrooms": "2", "bathrooms": "1.5", "unit_status": "Rented"},
            "201"
        )
        assert row.unit_number == "1A"
        assert row.sqft == 750
        assert row.bathrooms == 1.5
        assert row.status == UnitStatus.OCCUPIED

    def test_rent_roll_drops_tenant_identity(self):
        row = normalizer.map_rent_roll(
            {
                "occupancy_id": 55, "unit_id": 201, "tenant": "Jane Doe", "tenant_id": 9,
                "lease_from": "01/01/2024", "lease_to": "12/31/2024", "rent": "$1,500.00",
                "status": "Current",
            },
            "55"
        )
        dumped = row.model_dump()
        assert row.start_date == date(2024, 1, 1)
        assert row.rent == 1500.0
        assert row.status == LeaseStatus.ACTIVE
        assert "tenant" not in dumped and "tenant_id" not in dumped

    def test_ledger_amount_is_absolute(self):
        row = normalizer.map_ledger_transaction(
            {"date": "2024-02-01", "type": "credit", "amount": "-250"}, "tx-1"
        )
        assert row.amount == 250.0
        assert row.type == TransactionType.PAYMENT

    def test_work_order(self):
        row = normalizer.map_work_order(
            {
                "work_order_id": 77, "created_at": "2024-05-01 09:30:00",
                "status": "Assigned", "priority": "Urgent", "job_description": "Leaky tap",
                "vendor_bill_amount": "125.00",
            },
            "77"
        )
        assert row.opened_at == datetime(2024, 5, 1, 9, 30)
        assert row.status == WorkOrderStatus.IN_PROGRESS
        assert row.priority == WorkOrderPriority.HIGH
        assert row.description == "Leaky tap"
        assert row.vendor_bill_amount == 125.0

    def test_bill_detail(self):
        row = normalizer.map_bill_detail(
            {
                "txn_id": "5001", "property_id": 101, "account": "6210 - Water",
                "paid": "80.00", "unpaid": "20.00", "bill_date": "2024-06-01",
            },
            "5001"
        )
        assert row.txn_id == 5001
        assert row.gl_account_number == "6210"
        assert row.property_external_id == "101"
        assert row.paid == 80.0
        assert row.unpaid == 20.0

    def test_bill_detail_rejects_missing_txn_id(self):
        with pytest.raises(ValidationError):
            normalizer.map_bill_detail({"account": "6210"}, "")
