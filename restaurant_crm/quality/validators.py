"""
Data Validation Module

Rule-based checks run on customer, order and line-item frames before any
record reaches the tagging core. Malformed input (negative prices, null
required fields, duplicate ids, unknown order sources) fails loudly here;
the core assumes validated input.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

from restaurant_crm.tagging.models import Customer, OrderSource
from restaurant_crm.transformation.frames import customers_frame, line_items_frame, orders_frame

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # blocks the pass
    WARNING = "warning"  # logged, pass continues


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Outcome of one rule against one frame"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    status: ValidationStatus
    checks: List[ValidationCheck] = field(default_factory=list)

    @property
    def total_checks(self) -> int:
        return len(self.checks)

    @property
    def passed_checks(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def errors(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING]

    @property
    def failed_checks(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if not self.checks:
            return 100.0
        return self.passed_checks / self.total_checks * 100


@dataclass(frozen=True)
class _Rule:
    name: str
    column: str
    severity: ValidationSeverity
    violations: Callable[[pl.DataFrame], int]
    problem: str  # "{n} <problem>" when the rule fails
    details: Dict[str, Any] = field(default_factory=dict)

    def run(self, df: pl.DataFrame) -> ValidationCheck:
        if self.column not in df.columns:
            return ValidationCheck(
                name=self.name,
                passed=False,
                severity=self.severity,
                message=f"Column '{self.column}' not found",
            )

        count = self.violations(df)
        return ValidationCheck(
            name=self.name,
            passed=count == 0,
            severity=self.severity,
            message=f"Column '{self.column}' has {count} {self.problem}" if count else f"Column '{self.column}' ok",
            details=dict(self.details, violations=count),
            failed_rows=count,
            total_rows=df.height,
        )


class DataValidator:
    """
    Fluent validator over Polars frames.

    Example:
        result = (
            DataValidator()
            .add_not_null_check("order_id")
            .add_range_check("price", min_value=0)
            .validate(df)
        )
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # warnings fail the suite
        self._rules: List[_Rule] = []

    def _add(self, rule: _Rule) -> "DataValidator":
        self._rules.append(rule)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add(_Rule(
            name=f"not_null_{column}",
            column=column,
            severity=severity,
            violations=lambda df: df[column].null_count(),
            problem="null values",
        ))

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add(_Rule(
            name=f"unique_{column}",
            column=column,
            severity=severity,
            violations=lambda df: df.height - df[column].n_unique(),
            problem="duplicate values",
        ))

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Values outside [min_value, max_value]; nulls are left to the not-null check."""
        outside = pl.lit(False)
        if min_value is not None:
            outside = outside | (pl.col(column) < min_value)
        if max_value is not None:
            outside = outside | (pl.col(column) > max_value)

        return self._add(_Rule(
            name=f"range_{column}",
            column=column,
            severity=severity,
            violations=lambda df: df.filter(outside).height,
            problem=f"values outside [{min_value}, {max_value}]",
            details={"min": min_value, "max": max_value},
        ))

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self.add_range_check(column, min_value=0 if allow_zero else 1e-9, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add(_Rule(
            name=f"enum_{column}",
            column=column,
            severity=severity,
            violations=lambda df: df.filter(
                pl.col(column).is_not_null() & ~pl.col(column).is_in(allowed_values)
            ).height,
            problem="values outside the allowed set",
            details={"allowed_values": allowed_values},
        ))

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        checks = [rule.run(df) for rule in self._rules]

        for check in checks:
            if not check.passed:
                logger.warning(
                    "Validation check failed",
                    check=check.name,
                    message=check.message,
                    severity=check.severity.value,
                )

        result = ValidationResult(status=ValidationStatus.PASSED, checks=checks)
        if result.errors or (result.warnings and self.strict_mode):
            result.status = ValidationStatus.FAILED
        elif result.warnings:
            result.status = ValidationStatus.PARTIAL
        return result


# =============================================================================
# RECORD VALIDATORS
# =============================================================================

def create_customers_validator() -> DataValidator:
    return (
        DataValidator()
        .add_not_null_check("customer_id")
        .add_unique_check("customer_id")
        .add_not_null_check("name")
        .add_range_check("total_visits", min_value=0)
        .add_range_check("total_spend", min_value=0)
        .add_range_check("average_order_value", min_value=0)
        .add_range_check("average_visit_gap_days", min_value=0)
    )


def create_orders_validator() -> DataValidator:
    return (
        DataValidator()
        .add_not_null_check("order_id")
        .add_unique_check("order_id")
        .add_not_null_check("customer_id")
        .add_not_null_check("timestamp")
        .add_positive_check("total_amount")
        .add_positive_check("guest_count_estimate")
        .add_not_null_check("source")
        .add_enum_check("source", [source.value for source in OrderSource])
    )


def create_line_items_validator() -> DataValidator:
    return (
        DataValidator()
        .add_not_null_check("name")
        .add_not_null_check("category")
        .add_positive_check("price")
        .add_positive_check("quantity", allow_zero=False)
    )


def validate_customer_records(customers: Sequence[Customer]) -> Dict[str, ValidationResult]:
    """
    Validate customers, their orders and line items.

    Args:
        customers: Customers loaded from the store or submitted by a client

    Returns:
        Validation results keyed by record type

    Raises:
        ValueError: If any error-severity check fails
    """
    results = {
        "customers": create_customers_validator().validate(customers_frame(customers)),
        "orders": create_orders_validator().validate(orders_frame(customers)),
        "line_items": create_line_items_validator().validate(line_items_frame(customers)),
    }

    failures = [
        f"{record_type}: {check.message}"
        for record_type, result in results.items()
        for check in result.errors
    ]
    if failures:
        raise ValueError(f"Customer validation failed: {failures}")

    logger.info(
        "Customer records validated",
        customers=len(customers),
        checks=sum(r.total_checks for r in results.values()),
    )
    return results
