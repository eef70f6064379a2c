"""
sessions/ - Machine sessions, shift reporting and finalization.
"""

from .models import (
    Machine,
    MaterialBinding,
    ProductionSession,
    ShiftEntry,
    StartRequest,
    ShiftReport,
    ShiftResult,
    FinalizationResult,
    ConsumptionPreview,
)
from .variance import VarianceCheck, check_variance, classify_variance

__all__ = [
    "Machine",
    "MaterialBinding",
    "ProductionSession",
    "ShiftEntry",
    "StartRequest",
    "ShiftReport",
    "ShiftResult",
    "FinalizationResult",
    "ConsumptionPreview",
    "VarianceCheck",
    "check_variance",
    "classify_variance",
]
