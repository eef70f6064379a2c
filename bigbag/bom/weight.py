"""
bom/weight.py - Unit weight of one big bag.

Pure calculation: no store access, same inputs give the same breakdown.
Body and base fabric weight come from one of two strategies:

    spec     meters of tube x (warp + weft kg/m) x 1000
    density  geometric area x main density (fallback without a spec)
"""

from __future__ import annotations
from typing import Dict, Optional, Tuple
import logging

from . import models
from ..core import constants as C
from ..core.enums import TopType, WeightStrategy
from ..core.rounding import round2, round3, fmt_number
from ..errors import NoMatchingSpec, ValidationError
from ..specs.models import FabricSpec, StrapSpec

logger = logging.getLogger(__name__)

DASH = "-"


def compute_unit_weight(
    params: "models.ProductParameters",
    fabric_spec: Optional[FabricSpec] = None,
    strap_spec: Optional[StrapSpec] = None,
) -> "models.WeightBreakdown":
    """
    Calculate the weight breakdown of one bag.

    Args:
        params: Validated product parameters
        fabric_spec: Body fabric spec; selects the spec strategy when given
        strap_spec: Strap webbing spec; its linear density replaces
            params.strap_weight_g_per_m

    Returns:
        WeightBreakdown with per-component grams and formula strings

    Raises:
        ValidationError: invalid parameters, or a four-strap bag with a
            weightless strap spec
        NoMatchingSpec: fabric_spec width differs from the bag width
    """
    if strap_spec is not None:
        params = with_strap_spec(params, strap_spec)
    params.validate()
    if fabric_spec is not None and not fabric_spec.matches_width(params.width_cm):
        raise NoMatchingSpec(
            f"Fabric spec {fabric_spec.spec_id} width {fabric_spec.width_cm:g} cm "
            f"does not match bag width {params.width_cm:g} cm",
            field="width_cm",
            context={"spec_id": fabric_spec.spec_id, "spec_width_cm": fabric_spec.width_cm},
        )

    if params.is_two_strap:
        raw, formulas = _two_strap_components(params, fabric_spec)
    else:
        raw, formulas = _four_strap_components(params, fabric_spec)

    rounded = {name: round2(value) for name, value in raw.items()}
    total_g = round2(sum(rounded.values()))

    breakdown = models.WeightBreakdown(
        **rounded,
        total_g=total_g,
        total_kg=round3(total_g / C.G_PER_KG),
        strategy=WeightStrategy.SPEC if fabric_spec is not None else WeightStrategy.DENSITY,
        formulas=formulas,
    )
    logger.debug(
        f"Unit weight {params.product_type.value} {params.width_cm:g}x{params.height_cm:g}: "
        f"{breakdown.total_g} g ({breakdown.strategy.value})"
    )
    return breakdown


def with_strap_spec(
    params: "models.ProductParameters",
    strap_spec: Optional[StrapSpec],
) -> "models.ProductParameters":
    """
    Take the strap linear density from the strap spec.

    Two-strap bags cut their loops from the body and are returned as is.
    A four-strap bag must end up with a positive strap weight.
    """
    if params.is_two_strap:
        return params
    if strap_spec is not None:
        params = params.replace(strap_weight_g_per_m=strap_spec.weight_g_per_m)
    if not params.strap_weight_g_per_m > 0:
        raise ValidationError(
            "strap_weight_g_per_m must be > 0 for a four-strap bag",
            field="strap_weight_g_per_m",
            context={"strap_spec_id": strap_spec.spec_id if strap_spec else None},
        )
    return params


# ==================== Shared pieces ====================

def _spout_weight(dia_cm: float, height_cm: float, k_main: float) -> float:
    """Spout tube: flat width (circumference + seam) x height x density."""
    return (dia_cm * C.PI + C.SPOUT_SEAM_ALLOWANCE_CM) * height_cm * k_main


def _spout_formula(dia_cm: float, height_cm: float, k_main: float) -> str:
    return f"((Ø{fmt_number(dia_cm)}×π)+3)×{fmt_number(height_cm)} × {k_main:g}"


def _top_closure(p: "models.ProductParameters", k_main: float, k_aux: float) -> Tuple[float, str]:
    if p.top_type == TopType.SPOUT:
        return (
            _spout_weight(p.top_spout_dia_cm, p.top_spout_height_cm, k_main),
            _spout_formula(p.top_spout_dia_cm, p.top_spout_height_cm, k_main),
        )
    if p.top_type == TopType.SKIRT:
        perimeter = p.width_cm * 4
        weight = perimeter * (p.skirt_height_cm + C.SKIRT_HEIGHT_ALLOWANCE_CM) * k_aux
        return weight, f"({fmt_number(p.width_cm)}×4)×({fmt_number(p.skirt_height_cm)}+5) × {k_aux:g}"
    return 0.0, DASH


def _bottom_spout(p: "models.ProductParameters", k_main: float) -> Tuple[float, str]:
    if not p.has_bottom_spout:
        return 0.0, DASH
    return (
        _spout_weight(p.bottom_spout_dia_cm, p.bottom_spout_height_cm, k_main),
        _spout_formula(p.bottom_spout_dia_cm, p.bottom_spout_height_cm, k_main),
    )


def _ties(p: "models.ProductParameters") -> Tuple[float, str]:
    count = 0
    if p.top_type != TopType.OPEN:
        count += 1
    if p.has_bottom_spout:
        count += 1
    weight = count * (p.tie_length_cm / C.CM_PER_M) * p.tie_weight_g_per_m
    if count == 0:
        return 0.0, DASH
    return weight, f"{count} pcs × {fmt_number(p.tie_length_cm)} cm × {fmt_number(p.tie_weight_g_per_m)} g/m"


def _bottom_spout_seam(p: "models.ProductParameters", perimeter: float) -> Tuple[float, str]:
    circumference = p.bottom_spout_dia_cm * C.PI
    seam = perimeter + p.bottom_spout_height_cm + circumference
    desc = f"{fmt_number(perimeter)}+{fmt_number(p.bottom_spout_height_cm)}+{fmt_number(circumference)}"
    return seam, desc


def _liner(p: "models.ProductParameters") -> Tuple[float, str]:
    if not p.has_liner:
        return 0.0, DASH
    weight = (
        p.liner_length_cm * p.liner_width_cm
        * (p.liner_microns / C.MICRONS_PER_CM) * C.POLYETHYLENE_DENSITY_G_CM3
    )
    formula = (
        f"{fmt_number(p.liner_length_cm)}×{fmt_number(p.liner_width_cm)}"
        f"×({fmt_number(p.liner_microns)}/10000)×0.92"
    )
    return weight, formula


def sewn_strap_length_cm(p: "models.ProductParameters") -> float:
    """Part of one strap sewn onto the body."""
    return p.height_cm * p.strap_ratio.fraction


def one_strap_length_cm(p: "models.ProductParameters") -> float:
    """Full webbing length of one strap: both sewn legs plus the loop."""
    return sewn_strap_length_cm(p) * 2 + p.loop_height_cm * 2


def body_allowance_cm(p: "models.ProductParameters") -> float:
    """Turn-over allowance added to the four-strap body tube."""
    return C.BODY_ALLOWANCE_WITH_SPOUTS_CM if p.has_spouts else C.BODY_ALLOWANCE_PLAIN_CM


def star_base_cm(p: "models.ProductParameters") -> float:
    """Extra tube length a two-strap star base folds from; 0 with a discharge spout."""
    return 0.0 if p.has_bottom_spout else p.base_size_cm / C.STAR_BASE_FLATTENING


# ==================== Four-strap ====================

def _four_strap_components(
    p: "models.ProductParameters",
    spec: Optional[FabricSpec],
) -> Tuple[Dict[str, float], Dict[str, str]]:
    k_main = p.main_density_gsm * C.GSM_TO_G_PER_CM2
    k_aux = p.aux_density_gsm * C.GSM_TO_G_PER_CM2
    formulas: Dict[str, str] = {}

    allowance = body_allowance_cm(p)
    body_len_cm = p.height_cm + allowance
    body_len_m = body_len_cm / C.CM_PER_M
    base_cut_cm = p.base_size_cm + C.BASE_SEAM_ALLOWANCE_CM
    base_len_m = base_cut_cm / C.CM_PER_M

    if spec is not None:
        yarn = spec.yarn_kg_per_m
        body = body_len_m * yarn * C.G_PER_KG
        base = base_len_m * yarn * C.G_PER_KG
        formulas["body"] = (
            f"({fmt_number(p.height_cm)}+{fmt_number(allowance)})/100 = {fmt_number(body_len_m)} m"
            f" × {fmt_number(yarn)} kg/m × 1000"
        )
        formulas["base"] = (
            f"({fmt_number(p.base_size_cm)}+10)/100 = {fmt_number(base_len_m)} m"
            f" × {fmt_number(yarn)} kg/m × 1000"
        )
    else:
        body = p.width_cm * body_len_cm * C.BODY_LAYER_COUNT * k_main
        base = base_cut_cm * base_cut_cm * k_main
        formulas["body"] = (
            f"{fmt_number(p.width_cm)}×({fmt_number(p.height_cm)}+{fmt_number(allowance)})×4 × {k_main:g}"
        )
        formulas["base"] = (
            f"({fmt_number(p.base_size_cm)}+10)×({fmt_number(p.base_size_cm)}+10) × {k_main:g}"
        )

    top, formulas["top"] = _top_closure(p, k_main, k_aux)
    bottom_spout, formulas["bottom_spout"] = _bottom_spout(p, k_main)
    ties, formulas["ties"] = _ties(p)

    sewn = sewn_strap_length_cm(p)
    strap_g_per_cm = p.strap_weight_g_per_m / C.CM_PER_M
    straps = one_strap_length_cm(p) * C.STRAPS_PER_BAG * strap_g_per_cm
    formulas["straps"] = (
        f"(({fmt_number(p.height_cm)}×{p.strap_ratio.value}×2)+{fmt_number(p.loop_height_cm)}×2)"
        f"×4 × {fmt_number(strap_g_per_cm)}"
    )
    formulas["strap_sleeves"] = DASH
    formulas["narrow_ribbon"] = "2cm×130cm×2 layers×0.05 = 13"
    formulas["info_pocket"] = "A4 pocket = 5"

    # Thread
    perimeter = p.width_cm * 4
    if p.top_type == TopType.SPOUT:
        circumference = p.top_spout_dia_cm * C.PI
        seam_top = perimeter + p.top_spout_height_cm + circumference
        top_desc = (
            f"Top: {fmt_number(perimeter)}+{fmt_number(p.top_spout_height_cm)}"
            f"+{fmt_number(circumference)}"
        )
    elif p.top_type == TopType.SKIRT:
        seam_top = perimeter + perimeter + p.skirt_height_cm
        top_desc = (
            f"Top: {fmt_number(perimeter)}(lower)+{fmt_number(perimeter)}(upper)"
            f"+{fmt_number(p.skirt_height_cm)}(side)"
        )
    else:
        seam_top = perimeter
        top_desc = f"Top: hem {fmt_number(perimeter)}"

    if p.has_bottom_spout:
        seam_bottom, desc = _bottom_spout_seam(p, perimeter)
        bottom_desc = f"Bottom: {desc}"
    else:
        seam_bottom = perimeter
        bottom_desc = f"Bottom: base attachment {fmt_number(perimeter)}"

    seam_straps = sewn * C.STRAPS_PER_BAG
    total_seam_cm = seam_top + seam_bottom + seam_straps
    thread = total_seam_cm * p.thread_g_per_cm
    formulas["thread"] = f"{fmt_number(total_seam_cm)} cm × {p.thread_g_per_cm:g} g/cm"
    formulas["thread_details"] = (
        f"{top_desc}\n{bottom_desc}\nStraps: {fmt_number(sewn)}×4 = {fmt_number(seam_straps)}"
    )

    liner, formulas["liner"] = _liner(p)

    raw = {
        "body_g": body,
        "base_g": base,
        "top_g": top,
        "bottom_spout_g": bottom_spout,
        "ties_g": ties,
        "straps_g": straps,
        "strap_sleeves_g": 0.0,
        "narrow_ribbon_g": C.NARROW_RIBBON_FOUR_STRAP_G,
        "info_pocket_g": C.INFO_POCKET_G,
        "thread_g": thread,
        "liner_g": liner,
    }
    return raw, formulas


# ==================== Two-strap ====================

def _two_strap_components(
    p: "models.ProductParameters",
    spec: Optional[FabricSpec],
) -> Tuple[Dict[str, float], Dict[str, str]]:
    k_main = p.main_density_gsm * C.GSM_TO_G_PER_CM2
    k_aux = p.aux_density_gsm * C.GSM_TO_G_PER_CM2
    formulas: Dict[str, str] = {}

    # Loops are formed from the body tube; a star base folds from it too
    body_len_cm = p.height_cm + p.loop_height_cm + star_base_cm(p)
    body_len_m = body_len_cm / C.CM_PER_M
    if p.has_bottom_spout:
        length_expr = f"{fmt_number(p.height_cm)}+{fmt_number(p.loop_height_cm)}"
    else:
        length_expr = (
            f"{fmt_number(p.height_cm)}+{fmt_number(p.loop_height_cm)}"
            f"+{fmt_number(p.base_size_cm)}/1.55"
        )

    base_len_m = p.base_size_cm / C.CM_PER_M
    if spec is not None:
        yarn = spec.yarn_kg_per_m
        body = body_len_m * yarn * C.G_PER_KG
        formulas["body"] = f"({length_expr})/100 × {fmt_number(yarn)} kg/m × 1000"
        base = base_len_m * yarn * C.G_PER_KG if p.has_bottom_spout else 0.0
        base_formula = f"{fmt_number(base_len_m)} m × {fmt_number(yarn)} kg/m × 1000"
    else:
        body = p.width_cm * body_len_cm * C.BODY_LAYER_COUNT * k_main
        formulas["body"] = f"{fmt_number(p.width_cm)}×({length_expr})×4 × {k_main:g}"
        base = p.base_size_cm * p.base_size_cm * k_main if p.has_bottom_spout else 0.0
        base_formula = f"{fmt_number(p.base_size_cm)}×{fmt_number(p.base_size_cm)} × {k_main:g}"
    formulas["base"] = base_formula if p.has_bottom_spout else "0 (star base, part of body tube)"

    top, formulas["top"] = _top_closure(p, k_main, k_aux)
    bottom_spout, formulas["bottom_spout"] = _bottom_spout(p, k_main)
    ties, formulas["ties"] = _ties(p)

    formulas["straps"] = DASH
    sleeves = C.SLEEVES_PER_BAG * C.SLEEVE_WIDTH_M * C.SLEEVE_HEIGHT_M * C.SLEEVE_DENSITY_GSM
    formulas["strap_sleeves"] = (
        f"2×({C.SLEEVE_WIDTH_M:g}×{C.SLEEVE_HEIGHT_M:g}×{C.SLEEVE_DENSITY_GSM:g}) = {fmt_number(sleeves)}"
    )
    formulas["narrow_ribbon"] = "1cm×130cm×1 layer×0.05 = 6.5"
    formulas["info_pocket"] = "A4 pocket = 5"

    perimeter = p.width_cm * 4
    seam_sleeves = C.SLEEVE_SEAM_CM * C.SLEEVES_PER_BAG
    seam_bottom = 0.0
    bottom_desc = ""
    if p.has_bottom_spout:
        seam_bottom, desc = _bottom_spout_seam(p, perimeter)
        bottom_desc = f"\nBottom spout: {desc}"
    total_seam_cm = perimeter + seam_sleeves + seam_bottom
    thread = total_seam_cm * p.thread_g_per_cm
    formulas["thread"] = f"{fmt_number(total_seam_cm)} cm × {p.thread_g_per_cm:g} g/cm"
    formulas["thread_details"] = (
        f"Perimeter: {fmt_number(p.width_cm)}×4 = {fmt_number(perimeter)}\n"
        f"Sleeves: 20×2 = {fmt_number(seam_sleeves)}{bottom_desc}"
    )

    liner, formulas["liner"] = _liner(p)

    raw = {
        "body_g": body,
        "base_g": base,
        "top_g": top,
        "bottom_spout_g": bottom_spout,
        "ties_g": ties,
        "straps_g": 0.0,
        "strap_sleeves_g": sleeves,
        "narrow_ribbon_g": C.NARROW_RIBBON_TWO_STRAP_G,
        "info_pocket_g": C.INFO_POCKET_G,
        "thread_g": thread,
        "liner_g": liner,
    }
    return raw, formulas
