"""
bom/ - Big bag unit weight and order requirements.
"""

from .models import (
    ProductParameters,
    WeightBreakdown,
    RequirementItem,
    DepartmentRequirement,
    ProductionCalculation,
)
from .weight import compute_unit_weight, with_strap_spec
from .requirements import compute_department_requirements

__all__ = [
    "ProductParameters",
    "WeightBreakdown",
    "RequirementItem",
    "DepartmentRequirement",
    "ProductionCalculation",
    "compute_unit_weight",
    "with_strap_spec",
    "compute_department_requirements",
]
