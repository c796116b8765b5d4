"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from storefront.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_addresses_validator,
    create_coupon_usage_validator,
    create_inventory_validator,
    create_order_items_validator,
    create_orders_validator,
    create_reviews_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_missing_column_fails(self):
        """Test checks against absent columns fail instead of raising"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_not_null_check("email").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_composite_unique_check(self):
        """Test uniqueness over a column tuple"""
        df = pl.DataFrame({"product_id": [1, 1, 2], "user_id": [10, 11, 10]})

        validator = DataValidator().add_unique_check(["product_id", "user_id"])
        assert validator.validate(df).status == ValidationStatus.PASSED

        duplicated = pl.concat([df, df.head(1)])
        result = validator.validate(duplicated)
        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"rating": [1, 5, 0, 6]})

        validator = DataValidator()
        validator.add_range_check("rating", min_value=1, max_value=5)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: 0 and 6
        assert result.checks[0].failed_rows == 2

    def test_positive_check(self):
        """Test zero allowed or not"""
        df = pl.DataFrame({"quantity": [0, 1, 2]})

        assert DataValidator().add_positive_check("quantity").validate(df).status == ValidationStatus.PASSED
        result = DataValidator().add_positive_check("quantity", allow_zero=False).validate(df)
        assert result.status == ValidationStatus.FAILED

    def test_enum_check(self):
        """Test enum/allowed values check"""
        df = pl.DataFrame({"status_code": [1, 2, 9]})

        validator = DataValidator()
        validator.add_enum_check("status_code", [1, 2, 3])

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_expression_check(self):
        """Test row-level predicate"""
        df = pl.DataFrame({"a": [1, 2, 3], "b": [1, 2, 4]})

        result = DataValidator().add_expression_check("a_equals_b", pl.col("a") == pl.col("b"), "a != b").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.check("a_equals_b").failed_rows == 1

    def test_group_cardinality_check(self, sample_addresses_df):
        """Test at most one flagged row per group"""
        validator = DataValidator().add_group_cardinality_check("user_id", "is_default_billing")

        assert validator.validate(sample_addresses_df).status == ValidationStatus.PASSED

        doubled = sample_addresses_df.with_columns(pl.lit(True).alias("is_default_billing"))
        result = validator.validate(doubled)
        assert result.status == ValidationStatus.FAILED
        assert sorted(result.checks[0].details["offending_groups"]) == [10, 11]

    def test_referential_integrity_check(self):
        """Test orphan detection against a reference frame"""
        users = pl.DataFrame({"user_id": [10, 11]})
        orders = pl.DataFrame({"user_id": [10, 12, None]})

        result = DataValidator().add_referential_integrity_check("user_id", users, "user_id").validate(orders)

        assert result.checks[0].failed_rows == 1

    def test_custom_check(self):
        """Test custom validation check"""
        df = pl.DataFrame({"total": [100, 200, 300]})

        validator = DataValidator()
        validator.add_custom_check(
            name="total_sum",
            check_func=lambda df: df["total"].sum() < 1000,
            message_on_fail="Sum exceeds 1000",
        )

        result = validator.validate(df)

        # Sum is 600, which is < 1000
        assert result.status == ValidationStatus.PASSED

    def test_warnings_are_partial_unless_strict(self):
        """Test warning-only failures"""
        df = pl.DataFrame({"x": [None]})

        lenient = DataValidator().add_not_null_check("x", severity=ValidationSeverity.WARNING)
        strict = DataValidator(strict_mode=True).add_not_null_check("x", severity=ValidationSeverity.WARNING)

        assert lenient.validate(df).status == ValidationStatus.PARTIAL
        assert strict.validate(df).status == ValidationStatus.FAILED

    def test_unknown_check_name(self):
        """Test looking up a check that did not run"""
        result = DataValidator().validate(pl.DataFrame({"x": [1]}))

        assert result.success_rate == 100.0
        with pytest.raises(KeyError):
            result.check("missing")


class TestPrebuiltValidators:
    """Tests for the table audit validators"""

    def test_orders_validator(self, sample_orders_df):
        """Test consistent orders pass"""
        result = create_orders_validator().validate(sample_orders_df)

        assert result.status == ValidationStatus.PASSED
        assert result.total_checks > 0

    def test_orders_validator_catches_arithmetic(self, sample_orders_df):
        """Test a discount not reflected in the grand total"""
        df = sample_orders_df.with_columns(pl.lit(100).alias("discount_cents"))

        result = create_orders_validator().validate(df)

        assert not result.check("grand_total_arithmetic").passed
        assert result.check("grand_total_arithmetic").failed_rows == 3

    def test_order_items_validator(self):
        """Test line totals"""
        df = pl.DataFrame({
            "quantity": [2, 1],
            "unit_price_cents": [2999, 4999],
            "line_total_cents": [5998, 4000],
        })

        result = create_order_items_validator().validate(df)

        assert result.check("line_total_arithmetic").failed_rows == 1

    def test_addresses_validator(self, sample_addresses_df):
        """Test one default of each kind per user"""
        assert create_addresses_validator().validate(sample_addresses_df).status == ValidationStatus.PASSED

    def test_inventory_validator(self, sample_inventory_df):
        """Test reserved equal to on-hand is fine, above is a warning"""
        assert create_inventory_validator().validate(sample_inventory_df).status == ValidationStatus.PASSED

        over = sample_inventory_df.with_columns(pl.col("qty_reserved") + 1)
        result = create_inventory_validator().validate(over)

        assert result.status == ValidationStatus.PARTIAL
        assert result.check("reserved_within_on_hand").severity == ValidationSeverity.WARNING

    def test_reviews_validator(self):
        """Test rating bounds"""
        df = pl.DataFrame({"product_id": [1, 2], "user_id": [10, 10], "rating": [5, 7]})

        result = create_reviews_validator().validate(df)

        assert not result.check("range_rating").passed

    def test_coupon_usage_validator(self):
        """Test caps with unlimited coupons"""
        df = pl.DataFrame({
            "coupon_id": [1, 2, 3],
            "max_uses": [None, 5, 1],
            "per_user_limit": [1, None, None],
            "redemptions": [3, 5, 2],
            "max_redemptions_by_one_user": [2, 5, 1],
        })

        result = create_coupon_usage_validator().validate(df)

        assert result.check("coupon_max_uses").failed_rows == 1
        assert result.check("coupon_per_user_limit").failed_rows == 1
