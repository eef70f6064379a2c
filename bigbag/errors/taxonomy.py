"""
errors/taxonomy.py - Error classification system

Exceptions raised by the calculator, the session engine and the stores,
plus the advisory ProductionIssue record used for conditions that are
reported alongside a successful result (shortfall, variance).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""
    VALIDATION = "validation"
    REFERENCE = "reference"
    INVARIANT = "invariant"
    TRANSACTION = "transaction"
    INVENTORY = "inventory"
    VARIANCE = "variance"


class ErrorCode(Enum):
    """Specific error codes."""

    # Validation (1xxx)
    VAL_FAILED = 1001
    VAL_MISSING_FIELD = 1002
    VAL_OUT_OF_RANGE = 1003
    VAL_INCOMPATIBLE = 1004

    # Reference data (2xxx)
    REF_NO_MATCHING_SPEC = 2001
    REF_NOT_FOUND = 2002

    # Invariants (3xxx)
    INV_ACTIVE_SESSION_EXISTS = 3001
    INV_SESSION_COMPLETED = 3002

    # Transactions (4xxx)
    TXN_PARTIAL_WRITE = 4001
    TXN_COMPENSATION_FAILED = 4002

    # Advisory (5xxx)
    ADV_INVENTORY_SHORTFALL = 5001
    ADV_VARIANCE_WARNING = 5002
    ADV_VARIANCE_CRITICAL = 5003
    ADV_DENIER_MISMATCH = 5004


class BigBagError(Exception):
    """
    Base class for all errors raised by the production core.

    Carries enough context (field, machine, session) for the operator to
    correct the input.
    """

    code: ErrorCode = ErrorCode.VAL_FAILED
    category: ErrorCategory = ErrorCategory.VALIDATION
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        machine_id: Optional[str] = None,
        session_id: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.machine_id = machine_id
        self.session_id = session_id
        if code is not None:
            self.code = code
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "category": self.category.value,
            "message": self.message,
            "field": self.field,
            "machine_id": self.machine_id,
            "session_id": self.session_id,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class ValidationError(BigBagError):
    """Missing or invalid input. Raised before any state is mutated."""

    code = ErrorCode.VAL_FAILED
    category = ErrorCategory.VALIDATION


class NoMatchingSpec(BigBagError):
    """No reference spec matches the requested physical dimension."""

    code = ErrorCode.REF_NO_MATCHING_SPEC
    category = ErrorCategory.REFERENCE


class InvariantViolation(BigBagError):
    """Second active session on a machine, or finalizing a completed session."""

    code = ErrorCode.INV_ACTIVE_SESSION_EXISTS
    category = ErrorCategory.INVARIANT
    recoverable = False


class PartialWriteRisk(BigBagError):
    """
    A multi-entity write failed partway and was rolled back.

    The wrapped cause is available as __cause__.
    """

    code = ErrorCode.TXN_PARTIAL_WRITE
    category = ErrorCategory.TRANSACTION
    recoverable = False


@dataclass
class ProductionIssue:
    """
    Advisory condition reported next to a successful result.

    Never raised: inventory shortfall and weight variance are audit
    signals, not gates.
    """

    issue_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    code: ErrorCode = ErrorCode.ADV_INVENTORY_SHORTFALL
    category: ErrorCategory = ErrorCategory.INVENTORY
    severity: ErrorSeverity = ErrorSeverity.WARNING

    message: str = ""

    # Context
    machine_id: Optional[str] = None
    session_id: Optional[str] = None
    batch_id: Optional[str] = None

    # Values
    actual_value: Any = None
    expected_value: Any = None

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_id": self.issue_id,
            "code": self.code.value,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "machine_id": self.machine_id,
            "session_id": self.session_id,
            "batch_id": self.batch_id,
            "actual_value": self.actual_value,
            "expected_value": self.expected_value,
        }


def create_shortfall_issue(
    batch_id: str,
    requested_kg: float,
    available_kg: float,
    session_id: str = None,
    machine_id: str = None,
) -> ProductionIssue:
    """Factory for inventory shortfall warnings."""
    missing = requested_kg - available_kg
    return ProductionIssue(
        code=ErrorCode.ADV_INVENTORY_SHORTFALL,
        category=ErrorCategory.INVENTORY,
        severity=ErrorSeverity.WARNING,
        message=(
            f"Batch {batch_id}: consumption {requested_kg:.2f} kg exceeds "
            f"balance {available_kg:.2f} kg by {missing:.2f} kg; balance set to 0"
        ),
        batch_id=batch_id,
        session_id=session_id,
        machine_id=machine_id,
        actual_value=available_kg,
        expected_value=requested_kg,
    )


def create_variance_issue(
    level: str,
    variance_pct: float,
    theoretical_kg: float,
    actual_kg: float,
    session_id: str = None,
    machine_id: str = None,
) -> ProductionIssue:
    """Factory for weight variance warnings (warning / critical levels)."""
    critical = level == "critical"
    return ProductionIssue(
        code=ErrorCode.ADV_VARIANCE_CRITICAL if critical else ErrorCode.ADV_VARIANCE_WARNING,
        category=ErrorCategory.VARIANCE,
        severity=ErrorSeverity.CRITICAL if critical else ErrorSeverity.WARNING,
        message=(
            f"Reported weight {actual_kg:.2f} kg differs from theoretical "
            f"{theoretical_kg:.2f} kg by {variance_pct:+.1f}%"
        ),
        session_id=session_id,
        machine_id=machine_id,
        actual_value=actual_kg,
        expected_value=theoretical_kg,
    )


def create_denier_issue(
    batch_id: str,
    batch_denier: Optional[int],
    spec_denier: Optional[int],
    machine_id: str = None,
) -> ProductionIssue:
    """Factory for batch/spec denier mismatch warnings."""
    return ProductionIssue(
        code=ErrorCode.ADV_DENIER_MISMATCH,
        category=ErrorCategory.INVENTORY,
        severity=ErrorSeverity.INFO,
        message=f"Batch {batch_id} denier {batch_denier} does not match spec denier {spec_denier}",
        batch_id=batch_id,
        machine_id=machine_id,
        actual_value=batch_denier,
        expected_value=spec_denier,
    )
