"""
Data Quality Module
"""
from .rules import BusinessRuleViolation
from .validators import DataValidator, ValidationResult, audit_database

__all__ = [
    "BusinessRuleViolation",
    "DataValidator",
    "ValidationResult",
    "audit_database",
]
