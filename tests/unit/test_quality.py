"""
Unit Tests - Data Quality
"""
from dataclasses import replace

import polars as pl
import pytest

from restaurant_crm.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_orders_validator,
    validate_customer_records,
)
from restaurant_crm.tagging.models import Customer, LineItem
from restaurant_crm.transformation.frames import orders_frame


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_fails(self):
        df = pl.DataFrame({"id": [1, None, 3]})

        result = DataValidator().add_not_null_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_unique_check_fails(self):
        df = pl.DataFrame({"id": ["a", "b", "a"]})

        result = DataValidator().add_unique_check("id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_range_check(self):
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        result = DataValidator().add_range_check("price", min_value=0, max_value=100).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 2

    def test_warning_gives_partial(self):
        df = pl.DataFrame({"source": ["dine_in", "drive_thru"]})

        result = (
            DataValidator()
            .add_enum_check("source", ["dine_in"], severity=ValidationSeverity.WARNING)
            .validate(df)
        )

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_missing_column_fails(self):
        result = DataValidator().add_not_null_check("absent").validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED

    def test_empty_frame_passes(self):
        result = create_orders_validator().validate(orders_frame([]))

        assert result.status == ValidationStatus.PASSED
        assert result.success_rate == 100.0


class TestValidateCustomerRecords:
    """Tests for boundary validation of customers"""

    def test_valid_customers_pass(self, make_customer):
        results = validate_customer_records([make_customer("a"), make_customer("b")])

        assert all(r.status == ValidationStatus.PASSED for r in results.values())

    def test_negative_price_rejected(self, make_customer):
        customer = make_customer()
        order = customer.orders[0]
        bad_order = replace(order, items=(LineItem(name="Refund", category="mains", price=-50.0),))
        customer.orders = [bad_order] + customer.orders[1:]

        with pytest.raises(ValueError, match="line_items"):
            validate_customer_records([customer])

    def test_duplicate_customer_ids_rejected(self, make_customer):
        with pytest.raises(ValueError, match="duplicate"):
            validate_customer_records([make_customer("a"), make_customer("a")])

    def test_negative_stats_rejected(self, make_customer):
        customer = make_customer()
        customer.total_spend = -1.0

        with pytest.raises(ValueError, match="customers"):
            validate_customer_records([customer])

    def test_no_customers(self):
        assert validate_customer_records([])["customers"].status == ValidationStatus.PASSED
