"""
Data Validation Module

Table-wide audits of the storefront's business invariants using
rule-based checks over polars DataFrames.

The hooks in ``storefront.quality.rules`` guard single writes; these
validators sweep whole tables to find rows that slipped past them, since
the database itself accepts such rows.

Features:
- Null, uniqueness (single and composite), range and enum checks
- Row-level expression checks (e.g. order total arithmetic)
- Per-group cardinality checks (e.g. one default address per user)
- Referential integrity checks between frames
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.models import (
    Address,
    Coupon,
    Inventory,
    Order,
    OrderCoupon,
    OrderItem,
    OrderStatusCode,
    ProductReview,
)

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Invariant broken
    WARNING = "warning"  # Suspicious but allowed
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def check(self, name: str) -> ValidationCheck:
        """Result of the check called ``name``"""
        for result in self.checks:
            if result.name == name:
                return result
        raise KeyError(name)


def _missing(name: str, severity: ValidationSeverity, columns: Sequence[str]) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column(s) {list(columns)} not found",
    )


class DataValidator:
    """
    Data validator with a chainable check suite.

    Example:
        validator = DataValidator()
        validator.add_not_null_check("order_id")
        validator.add_range_check("subtotal_cents", min_value=0)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def reset(self) -> None:
        """Reset validator state"""
        self._checks = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return _missing(name, severity, [column])

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of a column or of a column tuple"""
        columns = [columns] if isinstance(columns, str) else list(columns)

        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"unique_{'_'.join(columns)}"
            if any(column not in df.columns for column in columns):
                return _missing(name, severity, columns)

            total = len(df)
            unique_count = df.select(columns).unique().height
            duplicate_count = total - unique_count
            passed = duplicate_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{columns} has {duplicate_count} duplicate values" if not passed else f"{columns} values are unique",
                details={"unique_count": unique_count, "duplicate_count": duplicate_count},
                failed_rows=duplicate_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range (inclusive)"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return _missing(name, severity, [column])

            conditions = []
            if min_value is not None:
                conditions.append(pl.col(column) < min_value)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            # Combine conditions with OR
            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for non-negative (or strictly positive) integer values"""
        return self.add_range_check(column, min_value=0 if allow_zero else 1, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            if column not in df.columns:
                return _missing(name, severity, [column])

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_expression_check(
        self,
        name: str,
        expression: pl.Expr,
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that ``expression`` holds on every row"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                failing = df.filter(~expression).height
            except pl.exceptions.ColumnNotFoundError as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )
            total = len(df)
            passed = failing == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{failing} rows: {message_on_fail}" if not passed else "Check passed",
                details={"failing_count": failing},
                failed_rows=failing,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_group_cardinality_check(
        self,
        group_by: str,
        flag_column: str,
        max_count: int = 1,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that each ``group_by`` value has at most ``max_count`` rows with ``flag_column`` set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"max_{max_count}_{flag_column}_per_{group_by}"
            if group_by not in df.columns or flag_column not in df.columns:
                return _missing(name, severity, [group_by, flag_column])

            offenders = (
                df.filter(pl.col(flag_column))
                .group_by(group_by)
                .agg(pl.len().alias("flagged"))
                .filter(pl.col("flagged") > max_count)
            )
            passed = offenders.height == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"{offenders.height} {group_by} values have more than {max_count} '{flag_column}' rows" if not passed else "Cardinality respected",
                details={"offending_groups": offenders[group_by].to_list()},
                failed_rows=offenders.height,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = check_func(df)
                return ValidationCheck(
                    name=name,
                    passed=passed,
                    severity=severity,
                    message="Check passed" if passed else message_on_fail,
                    total_rows=len(df),
                )
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add referential integrity check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"ref_integrity_{column}"
            if column not in df.columns:
                return _missing(name, severity, [column])

            ref_values = reference_df[reference_column].unique().to_list()

            # Find orphan records
            orphans = df.filter(
                ~pl.col(column).is_in(ref_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = orphans == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {orphans} orphan records" if not passed else "Referential integrity maintained",
                details={"orphan_count": orphans},
                failed_rows=orphans,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = _utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        completed_at = _utcnow()

        # Calculate summary
        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        # Determine overall status
        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        validation_result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=completed_at,
        )

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# =============================================================================
# PRE-BUILT VALIDATORS
# =============================================================================

def create_orders_validator() -> DataValidator:
    """Orders: non-negative money, known status, grand total arithmetic"""
    return (
        DataValidator()
        .add_not_null_check("order_id")
        .add_not_null_check("user_id")
        .add_unique_check("order_id")
        .add_positive_check("subtotal_cents")
        .add_positive_check("shipping_cents")
        .add_positive_check("tax_cents")
        .add_positive_check("discount_cents")
        .add_positive_check("grand_total_cents")
        .add_enum_check("status_code", [status.value for status in OrderStatusCode])
        .add_expression_check(
            "grand_total_arithmetic",
            pl.col("grand_total_cents")
            == pl.col("subtotal_cents") + pl.col("shipping_cents") + pl.col("tax_cents") - pl.col("discount_cents"),
            "grand total differs from subtotal + shipping + tax - discount",
        )
    )


def create_order_items_validator() -> DataValidator:
    """Order lines: positive quantity, line total = unit price x quantity"""
    return (
        DataValidator()
        .add_positive_check("quantity", allow_zero=False)
        .add_positive_check("unit_price_cents")
        .add_expression_check(
            "line_total_arithmetic",
            pl.col("line_total_cents") == pl.col("unit_price_cents") * pl.col("quantity"),
            "line total differs from unit price x quantity",
        )
    )


def create_addresses_validator() -> DataValidator:
    """Addresses: at most one default billing and one default shipping address per user"""
    return (
        DataValidator()
        .add_not_null_check("user_id")
        .add_group_cardinality_check("user_id", "is_default_billing")
        .add_group_cardinality_check("user_id", "is_default_shipping")
    )


def create_inventory_validator() -> DataValidator:
    """Inventory: non-negative quantities; reserving more than on hand is a warning"""
    return (
        DataValidator()
        .add_unique_check(["product_id", "warehouse_id"])
        .add_positive_check("qty_on_hand")
        .add_positive_check("qty_reserved")
        .add_expression_check(
            "reserved_within_on_hand",
            pl.col("qty_reserved") <= pl.col("qty_on_hand"),
            "more units reserved than on hand",
            severity=ValidationSeverity.WARNING,
        )
    )


def create_reviews_validator() -> DataValidator:
    """Reviews: rating 1-5, one review per user per product"""
    return (
        DataValidator()
        .add_range_check("rating", min_value=1, max_value=5)
        .add_unique_check(["product_id", "user_id"])
    )


def create_coupon_usage_validator() -> DataValidator:
    """
    Coupon usage against declared caps.

    Expects one row per coupon with ``max_uses``, ``redemptions``,
    ``per_user_limit`` and ``max_redemptions_by_one_user``.
    """
    return (
        DataValidator()
        .add_expression_check(
            "coupon_max_uses",
            pl.col("max_uses").is_null() | (pl.col("redemptions") <= pl.col("max_uses")),
            "coupon redeemed more often than max_uses",
        )
        .add_expression_check(
            "coupon_per_user_limit",
            pl.col("per_user_limit").is_null()
            | (pl.col("max_redemptions_by_one_user") <= pl.col("per_user_limit")),
            "coupon redeemed by one user more often than per_user_limit",
        )
    )


# =============================================================================
# DATABASE AUDIT
# =============================================================================

async def load_frame(session: AsyncSession, stmt) -> pl.DataFrame:
    """Execute a select and collect the rows into a DataFrame"""
    result = await session.execute(stmt)
    columns = list(result.keys())
    rows = [tuple(row) for row in result.all()]
    if not rows:
        return pl.DataFrame({column: [] for column in columns})
    return pl.DataFrame(rows, schema=columns, orient="row", infer_schema_length=None)


def _coupon_usage_statement():
    per_user = (
        select(
            OrderCoupon.coupon_id.label("coupon_id"),
            func.count().label("uses"),
        )
        .join(Order, Order.order_id == OrderCoupon.order_id)
        .group_by(OrderCoupon.coupon_id, Order.user_id)
        .subquery()
    )
    usage = (
        select(
            per_user.c.coupon_id,
            func.sum(per_user.c.uses).label("redemptions"),
            func.max(per_user.c.uses).label("max_redemptions_by_one_user"),
        )
        .group_by(per_user.c.coupon_id)
        .subquery()
    )
    return (
        select(
            Coupon.coupon_id,
            Coupon.max_uses,
            Coupon.per_user_limit,
            func.coalesce(usage.c.redemptions, 0).label("redemptions"),
            func.coalesce(usage.c.max_redemptions_by_one_user, 0).label("max_redemptions_by_one_user"),
        )
        .outerjoin(usage, usage.c.coupon_id == Coupon.coupon_id)
        .order_by(Coupon.coupon_id)
    )


async def audit_database(session: AsyncSession) -> Dict[str, ValidationResult]:
    """
    Run every table audit against the database.

    Returns:
        dict: ValidationResult per audited table
    """
    audits = {
        "orders": (select(*Order.__table__.columns), create_orders_validator()),
        "order_items": (select(*OrderItem.__table__.columns), create_order_items_validator()),
        "addresses": (select(*Address.__table__.columns), create_addresses_validator()),
        "inventory": (select(*Inventory.__table__.columns), create_inventory_validator()),
        "product_reviews": (select(*ProductReview.__table__.columns), create_reviews_validator()),
        "coupon_usage": (_coupon_usage_statement(), create_coupon_usage_validator()),
    }

    results = {}
    for name, (stmt, validator) in audits.items():
        df = await load_frame(session, stmt)
        if df.is_empty():
            logger.info("No rows to audit", table=name)
            results[name] = ValidationResult(
                status=ValidationStatus.PASSED,
                total_checks=0,
                passed_checks=0,
                failed_checks=0,
                warning_count=0,
                completed_at=_utcnow(),
            )
            continue
        logger.info("Auditing table", table=name, rows=len(df))
        results[name] = validator.validate(df)
    return results
