"""
Unit tests for the error taxonomy and advisory issues.
"""

from bigbag.errors import (
    BigBagError,
    ErrorCode,
    ErrorSeverity,
    InvariantViolation,
    NoMatchingSpec,
    PartialWriteRisk,
    ValidationError,
    create_denier_issue,
    create_shortfall_issue,
    create_variance_issue,
)


class TestExceptions:

    def test_hierarchy(self):
        for cls in (ValidationError, NoMatchingSpec, InvariantViolation, PartialWriteRisk):
            assert issubclass(cls, BigBagError)

    def test_default_codes(self):
        assert ValidationError("x").code == ErrorCode.VAL_FAILED
        assert NoMatchingSpec("x").code == ErrorCode.REF_NO_MATCHING_SPEC
        assert InvariantViolation("x").code == ErrorCode.INV_ACTIVE_SESSION_EXISTS
        assert PartialWriteRisk("x").code == ErrorCode.TXN_PARTIAL_WRITE

    def test_code_override_is_per_instance(self):
        err = InvariantViolation("done", code=ErrorCode.INV_SESSION_COMPLETED)
        assert err.code == ErrorCode.INV_SESSION_COMPLETED
        assert InvariantViolation("x").code == ErrorCode.INV_ACTIVE_SESSION_EXISTS

    def test_to_dict(self):
        err = ValidationError("Length must be >= 0", field="length_m", machine_id="loom-1")
        data = err.to_dict()

        assert data["error"] == "ValidationError"
        assert data["code"] == 1001
        assert data["category"] == "validation"
        assert data["field"] == "length_m"
        assert data["machine_id"] == "loom-1"
        assert data["recoverable"] is True
        assert str(err) == "Length must be >= 0"

    def test_not_recoverable(self):
        assert PartialWriteRisk("x").to_dict()["recoverable"] is False


class TestIssues:

    def test_shortfall(self):
        issue = create_shortfall_issue("warp-1", 120.0, 50.0, session_id="s1")
        assert issue.code == ErrorCode.ADV_INVENTORY_SHORTFALL
        assert "by 70.00 kg" in issue.message
        assert issue.to_dict()["batch_id"] == "warp-1"

    def test_variance_levels(self):
        warning = create_variance_issue("warning", 9.1, 220.0, 240.0)
        critical = create_variance_issue("critical", -13.6, 220.0, 190.0)

        assert warning.code == ErrorCode.ADV_VARIANCE_WARNING
        assert warning.severity == ErrorSeverity.WARNING
        assert critical.code == ErrorCode.ADV_VARIANCE_CRITICAL
        assert critical.severity == ErrorSeverity.CRITICAL
        assert "+9.1%" in warning.message
        assert "-13.6%" in critical.message

    def test_denier(self):
        issue = create_denier_issue("b1", 1000, 1100)
        assert issue.severity == ErrorSeverity.INFO
        assert issue.expected_value == 1100
