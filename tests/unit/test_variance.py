"""
Unit tests for weight variance classification.
"""

import pytest

from bigbag.core.enums import VarianceLevel
from bigbag.sessions import check_variance, classify_variance


class TestCheckVariance:
    """Reported vs theoretical weight."""

    def test_within_ok_band(self):
        check = check_variance(220.0, 225.0)
        assert check.variance_pct == 2.3
        assert check.level == VarianceLevel.OK
        assert check.is_ok

    def test_warning_band(self):
        check = check_variance(220.0, 240.0)
        assert check.variance_pct == 9.1
        assert check.level == VarianceLevel.WARNING

    def test_critical_band(self):
        check = check_variance(220.0, 250.0)
        assert check.variance_pct == 13.6
        assert check.level == VarianceLevel.CRITICAL

    def test_negative_variance_uses_magnitude(self):
        check = check_variance(200.0, 185.0)
        assert check.variance_pct == -7.5
        assert check.level == VarianceLevel.WARNING
        assert check.difference_kg == -15.0

    def test_zero_theoretical(self):
        check = check_variance(0.0, 12.0)
        assert check.variance_pct == 0.0
        assert check.level == VarianceLevel.OK

    def test_boundaries_inclusive(self):
        assert check_variance(100.0, 105.0).level == VarianceLevel.OK
        assert check_variance(100.0, 110.0).level == VarianceLevel.WARNING
        assert check_variance(100.0, 110.1).level == VarianceLevel.CRITICAL

    def test_rounded_before_classification(self):
        # 5.04% rounds to 5.0
        assert check_variance(100.0, 105.04).level == VarianceLevel.OK

    def test_custom_thresholds(self):
        check = check_variance(100.0, 103.0, ok_pct=2.0, warning_pct=4.0)
        assert check.level == VarianceLevel.WARNING


class TestClassifyVariance:

    @pytest.mark.parametrize("pct,level", [
        (0.0, VarianceLevel.OK),
        (-5.0, VarianceLevel.OK),
        (5.1, VarianceLevel.WARNING),
        (-10.0, VarianceLevel.WARNING),
        (-10.1, VarianceLevel.CRITICAL),
    ])
    def test_levels(self, pct, level):
        assert classify_variance(pct) == level
