"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, ValidationStatus, validate_customer_records

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationStatus",
    "validate_customer_records",
]
