"""
specs/ - Fabric and strap reference specifications.
"""

from .models import FabricSpec, StrapSpec
from .repository import SpecRepository, InMemorySpecRepository, select_fabric_spec
from .fabric import (
    FabricDensityResult,
    RequiredDenierResult,
    calculate_density,
    calculate_required_denier,
    closest_standard_denier,
    density_deviation_pct,
    STANDARD_DENIERS,
)

__all__ = [
    "FabricSpec",
    "StrapSpec",
    "SpecRepository",
    "InMemorySpecRepository",
    "select_fabric_spec",
    "FabricDensityResult",
    "RequiredDenierResult",
    "calculate_density",
    "calculate_required_denier",
    "closest_standard_denier",
    "density_deviation_pct",
    "STANDARD_DENIERS",
]
