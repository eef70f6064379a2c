"""
core/ - Shared enumerations, business constants and numeric helpers.
"""

from .enums import (
    ProductType,
    TopType,
    StrapRatio,
    WeightStrategy,
    WarpYarnType,
    Department,
    MachineType,
    SessionKind,
    SessionStatus,
    ShiftCode,
    MaterialKind,
    MaterialRole,
    VarianceLevel,
    OrderPriority,
    MACHINE_SESSION_KINDS,
)

from .rounding import round2, round3, round_half_up

__all__ = [
    "ProductType",
    "TopType",
    "StrapRatio",
    "WeightStrategy",
    "WarpYarnType",
    "Department",
    "MachineType",
    "SessionKind",
    "SessionStatus",
    "ShiftCode",
    "MaterialKind",
    "MaterialRole",
    "VarianceLevel",
    "OrderPriority",
    "MACHINE_SESSION_KINDS",
    "round2",
    "round3",
    "round_half_up",
]
