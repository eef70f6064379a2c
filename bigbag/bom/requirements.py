"""
bom/requirements.py - Order requirements by department.

Scales one bag's meterage to an order of N bags, applies the fabric waste
margin and fans the result out into the departments in physical
production order:

    four-strap  Raw materials, Extrusion, Weaving, Lamination?, Straps,
                Cutting, Sewing, Extras?
    two-strap   Raw materials, Extrusion, Weaving, Lamination?,
                Cutting, Sewing, Extras?

Every published quantity is rounded half-up to 0.01 at the step where it
is derived, so downstream lines use the rounded upstream value.
"""

from __future__ import annotations
from typing import List, Optional
import logging

from .models import (
    ProductParameters,
    RequirementItem,
    DepartmentRequirement,
    ProductionCalculation,
    WeightBreakdown,
)
from .weight import (
    compute_unit_weight,
    with_strap_spec,
    body_allowance_cm,
    one_strap_length_cm,
    sewn_strap_length_cm,
    star_base_cm,
)
from ..core import constants as C
from ..core.enums import Department, TopType
from ..core.rounding import round2, fmt_number
from ..errors import ValidationError
from ..specs.models import FabricSpec, StrapSpec

logger = logging.getLogger(__name__)


def compute_department_requirements(
    params: ProductParameters,
    quantity: int,
    fabric_spec: FabricSpec,
    strap_spec: Optional[StrapSpec] = None,
    waste_margin: float = C.DEFAULT_WASTE_MARGIN,
) -> ProductionCalculation:
    """
    Calculate what every department needs to produce `quantity` bags.

    Args:
        params: Product parameters
        quantity: Number of bags, positive integer
        fabric_spec: Body fabric spec (width must match the bag)
        strap_spec: Strap webbing spec, required for four-strap bags; its
            linear density sets the strap weight
        waste_margin: Fabric waste fraction (0.02 = 2%)

    Returns:
        ProductionCalculation with unit weight and ordered departments

    Raises:
        ValidationError: bad quantity, missing fabric or strap spec,
            weightless strap spec
        NoMatchingSpec: fabric spec width differs from the bag width
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"quantity must be a positive integer, got {quantity!r}", field="quantity")
    if fabric_spec is None:
        raise ValidationError("Fabric spec is required", field="fabric_spec_id")
    if waste_margin < 0:
        raise ValidationError("waste_margin must be >= 0", field="waste_margin")
    if not params.is_two_strap and strap_spec is None:
        raise ValidationError("Strap spec is required for a four-strap bag", field="strap_spec_id")

    params = with_strap_spec(params, strap_spec)
    unit_weight = compute_unit_weight(params, fabric_spec)

    if params.is_two_strap:
        departments = _two_strap_departments(params, quantity, fabric_spec, unit_weight, waste_margin)
    else:
        departments = _four_strap_departments(
            params, quantity, fabric_spec, strap_spec, unit_weight, waste_margin
        )

    # A department with nothing to do is not published
    departments = [d for d in departments if d.items]

    logger.info(
        f"Requirements for {quantity} x {params.product_type.value}: "
        f"{len(departments)} departments, unit {unit_weight.total_kg} kg"
    )
    return ProductionCalculation(unit_weight=unit_weight, quantity=quantity, departments=departments)


# ==================== Department builders ====================

def _kg(name: str, quantity: float) -> RequirementItem:
    return RequirementItem(name, quantity, C.UNIT_KG)


def _m(name: str, quantity: float) -> RequirementItem:
    return RequirementItem(name, quantity, C.UNIT_M)


def _m_per_piece(name: str, quantity: float) -> RequirementItem:
    return RequirementItem(name, quantity, C.UNIT_M_PER_PIECE)


def _pieces(name: str, quantity: float) -> RequirementItem:
    return RequirementItem(name, quantity, C.UNIT_PIECES)


def _yarn_label(base: str, denier: Optional[int], tape_width_cm: Optional[float] = None) -> str:
    label = base
    if denier:
        label += f" {denier}den"
    if tape_width_cm:
        label += f" {fmt_number(tape_width_cm)}cm"
    return label


def _raw_materials(items: List[RequirementItem]) -> DepartmentRequirement:
    return DepartmentRequirement(
        department=Department.RAW_MATERIALS,
        description="Raw material purchasing",
        items=[i for i in items if i.quantity > 0],
    )


def _extrusion(
    spec: FabricSpec,
    warp_kg: float,
    weft_kg: float,
    strap_pp_yarn_kg: float = 0.0,
    strap_denier: Optional[int] = None,
) -> DepartmentRequirement:
    total_yarn_kg = round2(round2(warp_kg + weft_kg) + strap_pp_yarn_kg)
    items = [
        _kg("Total PP yarn", total_yarn_kg),
        _kg(_yarn_label("Warp yarn (fabric)", spec.warp_denier, spec.warp_tape_width_cm), warp_kg),
        _kg(_yarn_label("Weft yarn (fabric)", spec.weft_denier, spec.weft_tape_width_cm), weft_kg),
    ]
    if strap_pp_yarn_kg > 0:
        items.append(_kg(_yarn_label("PP yarn (straps)", strap_denier), strap_pp_yarn_kg))
    return DepartmentRequirement(Department.EXTRUSION, "PP yarn production", items)


def _lamination(params: ProductParameters, total_fabric_m: float) -> List[DepartmentRequirement]:
    if not params.needs_lamination:
        return []
    return [DepartmentRequirement(
        Department.LAMINATION, "Fabric lamination", [_m("Fabric lamination", total_fabric_m)]
    )]


def _top_cut_parts(params: ProductParameters, quantity: int) -> List[RequirementItem]:
    if params.top_type == TopType.SPOUT:
        return [_pieces(
            f"Top spout (Ø{fmt_number(params.top_spout_dia_cm)}×{fmt_number(params.top_spout_height_cm)} cm)",
            quantity,
        )]
    if params.top_type == TopType.SKIRT:
        return [_pieces(
            f"Skirt ({fmt_number(params.width_cm * 4)}×{fmt_number(params.skirt_height_cm + C.SKIRT_HEIGHT_ALLOWANCE_CM)} cm)",
            quantity,
        )]
    return []


def _sewing(label: str, quantity: int, unit_weight: WeightBreakdown) -> DepartmentRequirement:
    thread_kg = round2(unit_weight.thread_g * quantity / C.G_PER_KG)
    return DepartmentRequirement(
        Department.SEWING,
        f"Assembly of {quantity} pcs",
        [
            _pieces(label, quantity),
            _kg(f"Sewing thread ({fmt_number(unit_weight.thread_g)} g/pc)", thread_kg),
        ],
    )


def _extras(params: ProductParameters, quantity: int) -> List[DepartmentRequirement]:
    if not params.has_extras:
        return []
    items = []
    if params.has_liner:
        items.append(_pieces(
            f"PE liner ({fmt_number(params.liner_length_cm)}×{fmt_number(params.liner_width_cm)} cm, "
            f"{fmt_number(params.liner_microns)} µm)",
            quantity,
        ))
    if params.has_printing:
        items.append(_pieces("Printing", quantity))
    if params.has_doc_pocket:
        items.append(_pieces("Document pocket", quantity))
    return [DepartmentRequirement(Department.EXTRAS, "Purchased components", items)]


def _fabric_recipe(spec: FabricSpec, meters: float):
    return (
        round2(meters * spec.recipe_polymer_kg_per_m),
        round2(meters * spec.recipe_filler_kg_per_m),
        round2(meters * spec.recipe_stabilizer_kg_per_m),
        round2(meters * spec.recipe_dye_kg_per_m),
    )


# ==================== Four-strap ====================

def _four_strap_departments(
    params: ProductParameters,
    quantity: int,
    fabric: FabricSpec,
    strap: StrapSpec,
    unit_weight: WeightBreakdown,
    waste_margin: float,
) -> List[DepartmentRequirement]:
    # Weaving
    allowance = body_allowance_cm(params)
    body_blank_cm = params.height_cm + allowance
    body_blank_m = round2(body_blank_cm / C.CM_PER_M)
    base_cut_cm = params.base_size_cm + C.BASE_SEAM_ALLOWANCE_CM
    base_blank_m = round2(base_cut_cm / C.CM_PER_M)
    per_unit_m = round2(body_blank_m + base_blank_m)
    total_fabric_m = round2(per_unit_m * quantity * (1 + waste_margin))

    # Extrusion
    warp_kg = round2(total_fabric_m * fabric.warp_kg_per_m)
    weft_kg = round2(total_fabric_m * fabric.weft_kg_per_m)

    # Straps
    sewn = sewn_strap_length_cm(params)
    one_strap_cm = one_strap_length_cm(params)
    total_strap_m = round2(one_strap_cm * C.STRAPS_PER_BAG * quantity / C.CM_PER_M)
    strap_mfn_kg = round2(total_strap_m * strap.mfn_kg_per_m)
    strap_pp_yarn_kg = 0.0 if strap.is_fully_purchased else round2(total_strap_m * strap.warp_kg_per_m)

    # Raw materials: fabric recipe plus strap recipe
    polymer, filler, stabilizer, dye = _fabric_recipe(fabric, total_fabric_m)
    s_polymer = round2(total_strap_m * strap.recipe_polymer_kg_per_m)
    s_filler = round2(total_strap_m * strap.recipe_filler_kg_per_m)
    s_stabilizer = round2(total_strap_m * strap.recipe_stabilizer_kg_per_m)
    s_dye = round2(total_strap_m * strap.recipe_dye_kg_per_m)

    raw = _raw_materials([
        _kg("Polypropylene (PP)", round2(polymer + s_polymer)),
        _kg("Calcium carbonate", round2(filler + s_filler)),
        _kg("UV stabilizer", round2(stabilizer + s_stabilizer)),
        _kg("Dye", round2(dye + s_dye)),
        _kg("MFN yarn (purchased)", strap_mfn_kg),
    ])

    extrusion = _extrusion(fabric, warp_kg, weft_kg, strap_pp_yarn_kg, strap.warp_denier)

    weaving = DepartmentRequirement(
        Department.WEAVING,
        f"Tube {fabric.name} ({fmt_number(fabric.width_cm)} cm)",
        [
            _m("Fabric (tube)", total_fabric_m),
            _m_per_piece(f"Body: ({fmt_number(params.height_cm)}+{fmt_number(allowance)})/100", body_blank_m),
            _m_per_piece(f"Base: ({fmt_number(params.base_size_cm)}+10)/100", base_blank_m),
            _m_per_piece("Per bag", per_unit_m),
            _m(
                f"Waste allowance: {fmt_number(waste_margin * 100)}%",
                round2(per_unit_m * quantity * waste_margin),
            ),
        ],
    )

    strap_items = [
        _m("Strap webbing", total_strap_m),
        _m_per_piece(
            f"4 pcs×({fmt_number(sewn)}×2+{fmt_number(params.loop_height_cm)}×2)"
            f"={fmt_number(one_strap_cm * C.STRAPS_PER_BAG)} cm/pc",
            round2(one_strap_cm * C.STRAPS_PER_BAG / C.CM_PER_M),
        ),
    ]
    if strap_pp_yarn_kg > 0:
        strap_items.append(_kg("PP yarn (warp)", strap_pp_yarn_kg))
    strap_items.append(_kg("MFN yarn", strap_mfn_kg))
    straps = DepartmentRequirement(
        Department.STRAPS,
        f"{strap.name} ({fmt_number(strap.width_mm)}mm, {strap.composition_label})",
        strap_items,
    )

    cut_items = [
        _pieces(
            f"Body (tube {fmt_number(body_blank_cm)} cm = "
            f"{fmt_number(params.height_cm)}+{fmt_number(allowance)})",
            quantity,
        ),
        _pieces(
            f"Base ({fmt_number(base_cut_cm)}×{fmt_number(base_cut_cm)} cm = "
            f"{fmt_number(params.base_size_cm)}+10)",
            quantity,
        ),
    ]
    cut_items.extend(_top_cut_parts(params, quantity))
    if params.has_bottom_spout:
        cut_items.append(_pieces(
            f"Bottom spout (Ø{fmt_number(params.bottom_spout_dia_cm)}"
            f"×{fmt_number(params.bottom_spout_height_cm)} cm)",
            quantity,
        ))
    cut_items.append(_pieces("Strap loops", C.STRAPS_PER_BAG * quantity))
    cutting = DepartmentRequirement(Department.CUTTING, "Cutting of parts", cut_items)

    return [
        raw,
        extrusion,
        weaving,
        *_lamination(params, total_fabric_m),
        straps,
        cutting,
        _sewing("Big bag, four-strap", quantity, unit_weight),
        *_extras(params, quantity),
    ]


# ==================== Two-strap ====================

def _two_strap_departments(
    params: ProductParameters,
    quantity: int,
    fabric: FabricSpec,
    unit_weight: WeightBreakdown,
    waste_margin: float,
) -> List[DepartmentRequirement]:
    blank_m = round2((params.height_cm + params.loop_height_cm + star_base_cm(params)) / C.CM_PER_M)
    total_fabric_m = round2(blank_m * quantity * (1 + waste_margin))

    warp_kg = round2(total_fabric_m * fabric.warp_kg_per_m)
    weft_kg = round2(total_fabric_m * fabric.weft_kg_per_m)
    polymer, filler, stabilizer, dye = _fabric_recipe(fabric, total_fabric_m)

    raw = _raw_materials([
        _kg("Polypropylene (PP)", polymer),
        _kg("Calcium carbonate", filler),
        _kg("UV stabilizer", stabilizer),
        _kg("Dye", dye),
    ])

    if params.has_bottom_spout:
        blank_label = f"Blank: ({fmt_number(params.height_cm)}+{fmt_number(params.loop_height_cm)})/100"
    else:
        blank_label = (
            f"Blank: ({fmt_number(params.height_cm)}+{fmt_number(params.loop_height_cm)}"
            f"+{fmt_number(params.base_size_cm)}/1.55)/100"
        )
    weaving = DepartmentRequirement(
        Department.WEAVING,
        f"Gusseted tube {fabric.name} ({fmt_number(fabric.width_cm)} cm)",
        [
            _m("Fabric (gusseted tube)", total_fabric_m),
            _m_per_piece(blank_label, blank_m),
            _m(
                f"Waste allowance: {fmt_number(waste_margin * 100)}%",
                round2(blank_m * quantity * waste_margin),
            ),
        ],
    )

    blank_cm = fmt_number(round2(blank_m * C.CM_PER_M))
    if params.has_bottom_spout:
        cut_items = [
            _pieces(f"Body (tube {blank_cm} cm)", quantity),
            _pieces(
                f"Base ({fmt_number(params.base_size_cm)}×{fmt_number(params.base_size_cm)} cm)",
                quantity,
            ),
        ]
    else:
        cut_items = [_pieces(f"Body + star base (tube {blank_cm} cm)", quantity)]
    cut_items.append(_pieces("Strap sleeve (27×20 cm)", C.SLEEVES_PER_BAG * quantity))
    cut_items.extend(_top_cut_parts(params, quantity))
    if params.has_bottom_spout:
        cut_items.append(_pieces(
            f"Discharge spout (Ø{fmt_number(params.bottom_spout_dia_cm)}"
            f"×{fmt_number(params.bottom_spout_height_cm)} cm)",
            quantity,
        ))
    cutting = DepartmentRequirement(
        Department.CUTTING,
        "Cutting of parts (discharge spout)" if params.has_bottom_spout else "Cutting of parts (star base)",
        cut_items,
    )

    return [
        raw,
        _extrusion(fabric, warp_kg, weft_kg),
        weaving,
        *_lamination(params, total_fabric_m),
        cutting,
        _sewing("Big bag, two-strap", quantity, unit_weight),
        *_extras(params, quantity),
    ]
