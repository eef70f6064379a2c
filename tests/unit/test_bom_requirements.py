"""
Unit tests for order requirements by department.
"""

import pytest

from bigbag.bom import ProductParameters, compute_department_requirements
from bigbag.core.enums import Department, TopType
from bigbag.errors import NoMatchingSpec, ValidationError


def _quantity(dept, prefix):
    item = dept.item(prefix)
    assert item is not None, f"{prefix!r} missing from {dept.department.value}"
    return item.quantity


class TestFourStrapRequirements:
    """100 four-strap bags, 2% waste."""

    @pytest.fixture
    def calc(self, four_strap_params, fabric_spec, strap_spec):
        return compute_department_requirements(four_strap_params, 100, fabric_spec, strap_spec)

    def test_department_order(self, calc):
        assert calc.department_order == [
            Department.RAW_MATERIALS,
            Department.EXTRUSION,
            Department.WEAVING,
            Department.STRAPS,
            Department.CUTTING,
            Department.SEWING,
        ]

    def test_weaving(self, calc):
        weaving = calc.department(Department.WEAVING)
        assert weaving.main_item.name == "Fabric (tube)"
        assert weaving.main_item.quantity == 260.1
        assert weaving.main_item.unit == "m"
        assert _quantity(weaving, "Per bag") == 2.55
        assert weaving.item("Per bag").unit == "m/шт"
        assert _quantity(weaving, "Body:") == 1.5
        assert _quantity(weaving, "Base:") == 1.05
        assert _quantity(weaving, "Waste allowance: 2%") == 5.1

    def test_extrusion(self, calc):
        extrusion = calc.department(Department.EXTRUSION)
        assert _quantity(extrusion, "Warp yarn (fabric) 1000den 0.25cm") == 31.21
        assert _quantity(extrusion, "Weft yarn (fabric) 1100den 0.3cm") == 26.01
        assert _quantity(extrusion, "PP yarn (straps)") == 28.4
        # fabric yarn 57.22 plus strap PP yarn
        assert extrusion.main_item.name == "Total PP yarn"
        assert extrusion.main_item.quantity == 85.62

    def test_straps(self, calc, strap_spec):
        straps = calc.department(Department.STRAPS)
        assert straps.description == "Strap 50 (50mm, PP+MFN)"
        assert straps.main_item.quantity == 946.67
        per_bag = straps.items[1]
        assert per_bag.unit == "m/шт"
        assert per_bag.quantity == 9.47
        assert _quantity(straps, "PP yarn (warp)") == 28.4
        assert _quantity(straps, "MFN yarn") == 18.93

    def test_raw_materials_drop_zero_lines(self, calc):
        raw = calc.department(Department.RAW_MATERIALS)
        names = [i.name for i in raw.items]
        assert names == ["Polypropylene (PP)", "Calcium carbonate", "MFN yarn (purchased)"]
        assert _quantity(raw, "Polypropylene (PP)") == 52.02
        assert _quantity(raw, "Calcium carbonate") == 5.2
        assert all(i.unit == "kg" for i in raw.items)

    def test_cutting(self, calc):
        cutting = calc.department(Department.CUTTING)
        assert _quantity(cutting, "Body (tube 150 cm") == 100
        assert _quantity(cutting, "Base (105×105 cm") == 100
        assert _quantity(cutting, "Top spout") == 100
        assert _quantity(cutting, "Bottom spout") == 100
        assert _quantity(cutting, "Strap loops") == 400
        assert all(i.unit == "шт" for i in cutting.items)

    def test_sewing(self, calc):
        sewing = calc.department(Department.SEWING)
        assert sewing.main_item.name == "Big bag, four-strap"
        assert sewing.main_item.quantity == 100
        assert _quantity(sewing, "Sewing thread (110.93 g/pc)") == 11.09

    def test_unit_weight_attached(self, calc):
        assert calc.unit_weight.total_g == 1390.88
        assert calc.quantity == 100

    def test_fully_purchased_strap_needs_no_pp_yarn(self, four_strap_params, fabric_spec, strap_spec_factory):
        strap = strap_spec_factory(is_fully_purchased=True)
        calc = compute_department_requirements(four_strap_params, 100, fabric_spec, strap)

        assert calc.department(Department.STRAPS).item("PP yarn (warp)") is None
        extrusion = calc.department(Department.EXTRUSION)
        assert extrusion.item("PP yarn (straps)") is None
        assert extrusion.main_item.quantity == 57.22


class TestScaling:
    """Linear scaling with the waste multiplier."""

    @pytest.mark.parametrize("quantity", [1, 10, 100, 250])
    def test_fabric_scales_with_waste(self, four_strap_params, fabric_spec, strap_spec, quantity):
        calc = compute_department_requirements(four_strap_params, quantity, fabric_spec, strap_spec)
        fabric_m = calc.department(Department.WEAVING).main_item.quantity
        assert fabric_m == pytest.approx(2.55 * quantity * 1.02, abs=0.01)

    def test_custom_waste_margin(self, four_strap_params, fabric_spec, strap_spec):
        calc = compute_department_requirements(
            four_strap_params, 100, fabric_spec, strap_spec, waste_margin=0.05
        )
        weaving = calc.department(Department.WEAVING)
        assert weaving.main_item.quantity == 267.75
        assert _quantity(weaving, "Waste allowance: 5%") == 12.75


class TestOptionalDepartments:
    """Lamination and extras appear only when requested."""

    def test_lamination_after_weaving(self, four_strap_params, fabric_spec, strap_spec):
        calc = compute_department_requirements(
            four_strap_params.replace(needs_lamination=True), 100, fabric_spec, strap_spec
        )
        order = calc.department_order
        assert order.index(Department.LAMINATION) == order.index(Department.WEAVING) + 1
        assert calc.department(Department.LAMINATION).main_item.quantity == 260.1

    def test_extras_last(self, four_strap_params, fabric_spec, strap_spec):
        params = four_strap_params.replace(has_liner=True, has_printing=True, has_doc_pocket=True)
        calc = compute_department_requirements(params, 20, fabric_spec, strap_spec)

        extras = calc.departments[-1]
        assert extras.department == Department.EXTRAS
        assert [i.quantity for i in extras.items] == [20, 20, 20]
        assert extras.items[0].name.startswith("PE liner")

    def test_skirt_cut_part(self, four_strap_params, fabric_spec, strap_spec):
        params = four_strap_params.replace(top_type=TopType.SKIRT)
        calc = compute_department_requirements(params, 10, fabric_spec, strap_spec)
        cutting = calc.department(Department.CUTTING)
        assert cutting.item("Skirt (360×85 cm)").quantity == 10
        assert cutting.item("Top spout") is None


class TestTwoStrapRequirements:
    """Two-strap bags have no strap department."""

    def test_star_base(self, two_strap_params, fabric_spec):
        calc = compute_department_requirements(two_strap_params, 100, fabric_spec)

        assert Department.STRAPS not in calc.department_order
        weaving = calc.department(Department.WEAVING)
        assert weaving.main_item.name == "Fabric (gusseted tube)"
        # 2.23 m blank x 100 x 1.02
        assert weaving.main_item.quantity == 227.46
        cutting = calc.department(Department.CUTTING)
        assert cutting.description == "Cutting of parts (star base)"
        assert cutting.item("Body + star base").quantity == 100
        assert cutting.item("Strap sleeve (27×20 cm)").quantity == 200
        assert calc.department(Department.SEWING).main_item.name == "Big bag, two-strap"

    def test_discharge_spout(self, two_strap_params, fabric_spec):
        calc = compute_department_requirements(
            two_strap_params.replace(has_bottom_spout=True), 10, fabric_spec
        )
        cutting = calc.department(Department.CUTTING)
        assert cutting.description == "Cutting of parts (discharge spout)"
        assert cutting.item("Base (90×90 cm)").quantity == 10
        assert cutting.item("Discharge spout").quantity == 10


class TestRequirementsValidation:
    """Rejected inputs."""

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, True])
    def test_bad_quantity(self, four_strap_params, fabric_spec, strap_spec, quantity):
        with pytest.raises(ValidationError) as exc:
            compute_department_requirements(four_strap_params, quantity, fabric_spec, strap_spec)
        assert exc.value.field == "quantity"

    def test_four_strap_requires_strap_spec(self, four_strap_params, fabric_spec):
        with pytest.raises(ValidationError) as exc:
            compute_department_requirements(four_strap_params, 10, fabric_spec)
        assert exc.value.field == "strap_spec_id"

    def test_mismatched_fabric_width(self, four_strap_params, strap_spec, fabric_spec_factory):
        with pytest.raises(NoMatchingSpec):
            compute_department_requirements(
                four_strap_params, 10, fabric_spec_factory(width_cm=80.0), strap_spec
            )

    def test_weightless_strap_spec(self, four_strap_params, fabric_spec, strap_spec_factory):
        with pytest.raises(ValidationError) as exc:
            compute_department_requirements(
                four_strap_params, 10, fabric_spec, strap_spec_factory(weight_g_per_m=0.0)
            )
        assert exc.value.field == "strap_weight_g_per_m"


class TestStrapSpecWeight:
    """Unit weight takes the strap rate from the strap spec."""

    def test_default_parameters_use_spec_rate(self, fabric_spec, strap_spec):
        calc = compute_department_requirements(ProductParameters(), 100, fabric_spec, strap_spec)
        assert calc.unit_weight.straps_g == 473.33
        assert calc.unit_weight.total_g == 1390.88
        assert calc.unit_weight.total_kg == 1.391

    def test_spec_rate_overrides_parameter(self, fabric_spec, strap_spec_factory):
        params = ProductParameters(strap_weight_g_per_m=50.0)
        calc = compute_department_requirements(
            params, 100, fabric_spec, strap_spec_factory(weight_g_per_m=25.0)
        )
        # half the linear density, half the strap weight
        assert calc.unit_weight.straps_g == 236.67

    def test_two_strap_needs_no_strap_spec(self, two_strap_params, fabric_spec):
        calc = compute_department_requirements(two_strap_params, 10, fabric_spec)
        assert calc.unit_weight.straps_g == 0.0
