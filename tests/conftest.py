"""
Test configuration and shared fixtures.

Reference data: one 90 cm fabric spec, one PP+MFN strap spec, a loom, a
strap machine, an extruder and opening inventory batches.
"""

import pytest
from datetime import datetime, timezone

from bigbag.bom import ProductParameters
from bigbag.core.enums import MachineType, MaterialKind, ProductType
from bigbag.inventory import InventoryBatch, MaterialDescriptor
from bigbag.sessions import Machine
from bigbag.sessions.engine import MachineSessionEngine
from bigbag.specs import FabricSpec, StrapSpec
from bigbag.store import InMemoryProductionStore


FIXED_NOW = datetime(2024, 3, 5, 8, 0, tzinfo=timezone.utc)


def make_fabric_spec(**overrides) -> FabricSpec:
    data = dict(
        spec_id=1,
        name="PP 90 white",
        width_cm=90.0,
        density_gsm=160.0,
        warp_kg_per_m=0.12,
        weft_kg_per_m=0.10,
        code="F90",
        warp_denier=1000,
        warp_tape_width_cm=0.25,
        weft_denier=1100,
        weft_tape_width_cm=0.3,
        recipe_polymer_kg_per_m=0.2,
        recipe_filler_kg_per_m=0.02,
    )
    data.update(overrides)
    return FabricSpec(**data)


def make_strap_spec(**overrides) -> StrapSpec:
    data = dict(
        spec_id=10,
        name="Strap 50",
        width_mm=50.0,
        weight_g_per_m=50.0,
        warp_kg_per_m=0.03,
        weft_kg_per_m=0.02,
        warp_denier=1500,
        mfn_kg_per_m=0.02,
    )
    data.update(overrides)
    return StrapSpec(**data)


def make_batch(batch_id: str, kind: MaterialKind, quantity_kg: float, denier: int = None) -> InventoryBatch:
    return InventoryBatch(
        batch_id=batch_id,
        batch_number=f"B-{batch_id}",
        material=MaterialDescriptor(name=f"{kind.value} {denier or ''}".strip(), kind=kind, denier=denier),
        quantity_kg=quantity_kg,
    )


@pytest.fixture
def fabric_spec():
    return make_fabric_spec()


@pytest.fixture
def strap_spec():
    return make_strap_spec()


@pytest.fixture
def four_strap_params():
    """140 x 90 x 95 four-strap bag, spout 40x48 top and bottom; strap weight comes from the strap spec."""
    return ProductParameters()


@pytest.fixture
def two_strap_params():
    """Two-strap bag with a star base."""
    return ProductParameters(
        product_type=ProductType.TWO_STRAP,
        base_size_cm=90.0,
        has_bottom_spout=False,
    )


@pytest.fixture
def seed_data():
    """Seed file layout accepted by both stores."""
    return {
        "fabric_specs": [make_fabric_spec().to_dict()],
        "strap_specs": [make_strap_spec().to_dict()],
        "machines": [
            {"machine_id": "loom-1", "code": "L1", "name": "Loom 1", "machine_type": "loom"},
            {"machine_id": "strap-1", "code": "ST1", "name": "Strap loom", "machine_type": "strap_machine"},
            {"machine_id": "ext-1", "code": "E1", "name": "Extruder", "machine_type": "extruder"},
        ],
        "batches": [
            {"batch_id": "warp-1", "material": {"name": "PP yarn 1000", "kind": "yarn", "denier": 1000},
             "quantity_kg": 500.0},
            {"batch_id": "weft-1", "material": {"name": "PP yarn 1100", "kind": "yarn", "denier": 1100},
             "quantity_kg": 500.0},
        ],
    }


@pytest.fixture
def store(fabric_spec, strap_spec):
    """Memory store with a loom, a strap machine, an extruder and yarn batches."""
    return InMemoryProductionStore(
        fabric_specs=[fabric_spec],
        strap_specs=[strap_spec],
        machines=[
            Machine("loom-1", "L1", "Loom 1", MachineType.LOOM),
            Machine("loom-2", "L2", "Loom 2", MachineType.LOOM, is_active=False),
            Machine("strap-1", "ST1", "Strap loom", MachineType.STRAP_MACHINE),
            Machine("ext-1", "E1", "Extruder", MachineType.EXTRUDER),
        ],
        batches=[
            make_batch("warp-1", MaterialKind.YARN, 500.0, denier=1000),
            make_batch("weft-1", MaterialKind.YARN, 500.0, denier=1100),
            make_batch("warp-low", MaterialKind.YARN, 50.0, denier=1000),
            make_batch("strap-yarn", MaterialKind.YARN, 300.0, denier=1500),
            make_batch("mfn-1", MaterialKind.MFN, 200.0),
        ],
    )


@pytest.fixture
def engine(store):
    """Session engine with a fixed clock."""
    return MachineSessionEngine(store, clock=lambda: FIXED_NOW)


@pytest.fixture
def roll_batches():
    return {"warp": "warp-1", "weft": "weft-1"}


@pytest.fixture
def fabric_spec_factory():
    return make_fabric_spec


@pytest.fixture
def strap_spec_factory():
    return make_strap_spec


@pytest.fixture
def batch_factory():
    return make_batch
