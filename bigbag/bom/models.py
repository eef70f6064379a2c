"""
bom/models.py - Bill-of-materials data structures.

Product parameters of one big bag, its unit weight breakdown and the
per-department requirements of an order.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace as dc_replace
from typing import Any, Dict, List, Optional
import math

from ..core.enums import ProductType, TopType, StrapRatio, WeightStrategy, Department
from ..core.rounding import round2
from ..errors import ValidationError


@dataclass(frozen=True)
class ProductParameters:
    """
    Geometry and construction options of one big bag.

    All lengths in centimeters, densities in g/m², linear densities in g/m.
    Instances are immutable; use replace() to derive a variant.
    """
    product_type: ProductType = ProductType.FOUR_STRAP

    # Dimensions
    height_cm: float = 140.0
    width_cm: float = 90.0
    base_size_cm: float = 95.0

    # Fabric
    main_density_gsm: float = 160.0
    aux_density_gsm: float = 95.0

    # Top closure
    top_type: TopType = TopType.SPOUT
    top_spout_dia_cm: float = 40.0
    top_spout_height_cm: float = 48.0
    skirt_height_cm: float = 80.0

    # Bottom (discharge) spout
    has_bottom_spout: bool = True
    bottom_spout_dia_cm: float = 40.0
    bottom_spout_height_cm: float = 48.0

    # Ties
    tie_weight_g_per_m: float = 10.0
    tie_length_cm: float = 150.0

    # Straps
    strap_ratio: StrapRatio = StrapRatio.TWO_THIRDS
    strap_weight_g_per_m: float = 0.0
    loop_height_cm: float = 25.0

    # Thread
    thread_g_per_cm: float = 0.077

    needs_lamination: bool = False

    # Extras
    has_liner: bool = False
    liner_length_cm: float = 200.0
    liner_width_cm: float = 100.0
    liner_microns: float = 100.0
    has_printing: bool = False
    has_doc_pocket: bool = False

    @property
    def is_two_strap(self) -> bool:
        return self.product_type == ProductType.TWO_STRAP

    @property
    def has_spouts(self) -> bool:
        return self.top_type == TopType.SPOUT or self.has_bottom_spout

    @property
    def has_extras(self) -> bool:
        return self.has_liner or self.has_printing or self.has_doc_pocket

    def validate(self) -> "ProductParameters":
        """
        Check dimensions and options.

        Returns:
            self, for chaining

        Raises:
            ValidationError: naming the first offending field
        """
        for name in ("height_cm", "width_cm", "base_size_cm"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be > 0", field=name)

        non_negative = [
            "main_density_gsm", "aux_density_gsm", "tie_weight_g_per_m",
            "tie_length_cm", "strap_weight_g_per_m", "loop_height_cm",
            "thread_g_per_cm",
        ]
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be >= 0", field=name)

        if self.top_type == TopType.SPOUT:
            for name in ("top_spout_dia_cm", "top_spout_height_cm"):
                if getattr(self, name) <= 0:
                    raise ValidationError(f"{name} must be > 0 for a spout top", field=name)
        elif self.top_type == TopType.SKIRT and self.skirt_height_cm <= 0:
            raise ValidationError("skirt_height_cm must be > 0 for a skirt top", field="skirt_height_cm")

        if self.has_bottom_spout:
            for name in ("bottom_spout_dia_cm", "bottom_spout_height_cm"):
                if getattr(self, name) <= 0:
                    raise ValidationError(f"{name} must be > 0 with a bottom spout", field=name)

        if self.has_liner:
            for name in ("liner_length_cm", "liner_width_cm", "liner_microns"):
                if getattr(self, name) <= 0:
                    raise ValidationError(f"{name} must be > 0 with a liner", field=name)

        return self

    def replace(self, **changes: Any) -> "ProductParameters":
        """Return a copy with the given fields changed."""
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = value.value if hasattr(value, "value") else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductParameters":
        """
        Deserialize from dictionary.

        Unknown keys are rejected; missing keys take defaults. A two-strap
        bag without an explicit base size uses its width.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown parameter: {unknown[0]}", field=unknown[0])

        kwargs = {}
        for f in fields(cls):
            if f.name in data:
                kwargs[f.name] = _parse_field(f.name, f.default, data[f.name])

        if kwargs.get("product_type") == ProductType.TWO_STRAP and "base_size_cm" not in kwargs:
            kwargs["base_size_cm"] = kwargs.get("width_cm", cls.width_cm)

        return cls(**kwargs)


ENUM_FIELDS = {
    "product_type": ProductType,
    "top_type": TopType,
    "strap_ratio": StrapRatio,
}


def _parse_field(name: str, default: Any, value: Any) -> Any:
    """Check one raw parameter against the type of its default."""
    enum_type = ENUM_FIELDS.get(name)
    if enum_type is not None:
        try:
            return enum_type(value)
        except (ValueError, TypeError) as e:
            allowed = ", ".join(m.value for m in enum_type)
            raise ValidationError(
                f"{name} must be one of {allowed}, got {value!r}", field=name
            ) from e

    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be true or false, got {value!r}", field=name)
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {value!r}", field=name)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number, got {value!r}", field=name)
    return float(value)


@dataclass
class WeightBreakdown:
    """
    Unit weight of one bag by component, in grams.

    Components are rounded to 0.01 g and total_g is their sum, so the
    breakdown always adds up.
    """
    body_g: float = 0.0
    base_g: float = 0.0
    top_g: float = 0.0
    bottom_spout_g: float = 0.0
    ties_g: float = 0.0
    straps_g: float = 0.0
    strap_sleeves_g: float = 0.0
    narrow_ribbon_g: float = 0.0
    info_pocket_g: float = 0.0
    thread_g: float = 0.0
    liner_g: float = 0.0
    total_g: float = 0.0
    total_kg: float = 0.0
    strategy: WeightStrategy = WeightStrategy.SPEC
    formulas: Dict[str, str] = field(default_factory=dict)

    COMPONENTS = (
        "body_g", "base_g", "top_g", "bottom_spout_g", "ties_g", "straps_g",
        "strap_sleeves_g", "narrow_ribbon_g", "info_pocket_g", "thread_g", "liner_g",
    )

    def components(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.COMPONENTS}

    def component_sum(self) -> float:
        return round2(sum(self.components().values()))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize weight breakdown."""
        data: Dict[str, Any] = self.components()
        data.update({
            "total_g": self.total_g,
            "total_kg": self.total_kg,
            "strategy": self.strategy.value,
            "formulas": dict(self.formulas),
        })
        return data


@dataclass
class RequirementItem:
    """Single requirement line: name, quantity, unit."""
    name: str
    quantity: float
    unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "quantity": self.quantity, "unit": self.unit}


@dataclass
class DepartmentRequirement:
    """What one department must produce or procure for an order."""
    department: Department
    description: str
    items: List[RequirementItem] = field(default_factory=list)

    @property
    def main_item(self) -> Optional[RequirementItem]:
        """First item: the department's headline quantity."""
        return self.items[0] if self.items else None

    def item(self, name_prefix: str) -> Optional[RequirementItem]:
        for item in self.items:
            if item.name.startswith(name_prefix):
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "department": self.department.value,
            "description": self.description,
            "items": [i.to_dict() for i in self.items],
        }


@dataclass
class ProductionCalculation:
    """Unit weight plus ordered department requirements for N bags."""
    unit_weight: WeightBreakdown
    quantity: int
    departments: List[DepartmentRequirement] = field(default_factory=list)

    def department(self, department: Department) -> Optional[DepartmentRequirement]:
        for dept in self.departments:
            if dept.department == department:
                return dept
        return None

    @property
    def department_order(self) -> List[Department]:
        return [d.department for d in self.departments]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_weight": self.unit_weight.to_dict(),
            "quantity": self.quantity,
            "departments": [d.to_dict() for d in self.departments],
        }
