"""
sessions/variance.py - Reported vs theoretical weight check.

Advisory only: a critical variance is logged and returned, it never
blocks finalization.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from ..core import constants as C
from ..core.enums import VarianceLevel
from ..core.rounding import round_half_up, round2


@dataclass
class VarianceCheck:
    """Variance of the reported weight against yarn consumption."""
    theoretical_kg: float
    actual_kg: float
    variance_pct: float
    level: VarianceLevel

    @property
    def difference_kg(self) -> float:
        return round2(self.actual_kg - self.theoretical_kg)

    @property
    def is_ok(self) -> bool:
        return self.level == VarianceLevel.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theoretical_kg": self.theoretical_kg,
            "actual_kg": self.actual_kg,
            "difference_kg": self.difference_kg,
            "variance_pct": self.variance_pct,
            "level": self.level.value,
        }


def classify_variance(
    variance_pct: float,
    ok_pct: float = C.DEFAULT_VARIANCE_OK_PCT,
    warning_pct: float = C.DEFAULT_VARIANCE_WARNING_PCT,
) -> VarianceLevel:
    magnitude = abs(variance_pct)
    if magnitude <= ok_pct:
        return VarianceLevel.OK
    if magnitude <= warning_pct:
        return VarianceLevel.WARNING
    return VarianceLevel.CRITICAL


def check_variance(
    theoretical_kg: float,
    actual_kg: float,
    ok_pct: float = C.DEFAULT_VARIANCE_OK_PCT,
    warning_pct: float = C.DEFAULT_VARIANCE_WARNING_PCT,
) -> VarianceCheck:
    """
    Compare the reported weight with the theoretical consumption.

    The percentage is rounded to one decimal before it is classified;
    with no theoretical weight the variance is 0.
    """
    if theoretical_kg > 0:
        pct = (actual_kg - theoretical_kg) / theoretical_kg * 100
        # half away from zero
        pct = round_half_up(abs(pct), 1) * (1 if pct >= 0 else -1)
    else:
        pct = 0.0
    return VarianceCheck(
        theoretical_kg=round2(theoretical_kg),
        actual_kg=round2(actual_kg),
        variance_pct=pct,
        level=classify_variance(pct, ok_pct, warning_pct),
    )
