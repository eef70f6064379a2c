"""
errors/ - Error Taxonomy

Structured exceptions for validation, reference data, invariant and
transaction failures, and advisory issue records for shortfall and
variance conditions.
"""

from .taxonomy import (
    ErrorSeverity,
    ErrorCategory,
    ErrorCode,
    BigBagError,
    ValidationError,
    NoMatchingSpec,
    InvariantViolation,
    PartialWriteRisk,
    ProductionIssue,
    create_shortfall_issue,
    create_variance_issue,
    create_denier_issue,
)

__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorCode",
    "BigBagError",
    "ValidationError",
    "NoMatchingSpec",
    "InvariantViolation",
    "PartialWriteRisk",
    "ProductionIssue",
    "create_shortfall_issue",
    "create_variance_issue",
    "create_denier_issue",
]
