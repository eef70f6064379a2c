"""
Tests for the REST API.

Uses FastAPI's TestClient against an app built on the fixture store.
"""

import pytest
from fastapi.testclient import TestClient

from bigbag.bootstrap.app import create_app_context
from bigbag.bootstrap.config import BigBagConfig
from bigbag.deployment import create_fastapi_app, error_status
from bigbag.errors import InvariantViolation, NoMatchingSpec, PartialWriteRisk, ValidationError


PARAMS = {"height_cm": 140, "width_cm": 90}
ROLL_START = {"spec_id": 1, "batch_ids": {"warp": "warp-1", "weft": "weft-1"}, "operator_id": "op-7"}


@pytest.fixture
def context(store):
    return create_app_context(BigBagConfig(), store=store)


@pytest.fixture
def client(context):
    return TestClient(create_fastapi_app(context))


class TestErrorStatus:

    @pytest.mark.parametrize("error,status", [
        (ValidationError("x"), 422),
        (NoMatchingSpec("x"), 404),
        (InvariantViolation("x"), 409),
        (PartialWriteRisk("x"), 500),
    ])
    def test_mapping(self, error, status):
        assert error_status(error) == status


class TestHealthAndSpecs:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["backend"] == "memory"

    def test_fabric_specs(self, client):
        data = client.get("/api/v1/specs/fabric").json()
        assert [s["spec_id"] for s in data["specs"]] == [1]
        assert data["available_widths"] == [90.0]

    def test_fabric_specs_by_width(self, client):
        assert client.get("/api/v1/specs/fabric", params={"width_cm": 105}).json()["specs"] == []

    def test_select_no_match(self, client):
        response = client.get("/api/v1/specs/fabric/select", params={"width_cm": 120})
        assert response.status_code == 404
        assert response.json()["error"] == "NoMatchingSpec"

    def test_strap_specs(self, client):
        assert client.get("/api/v1/specs/strap").json()["specs"][0]["name"] == "Strap 50"


class TestCalculator:

    def test_weight(self, client):
        response = client.post("/api/v1/bom/weight", json={"params": PARAMS, "strap_spec_id": 10})
        assert response.status_code == 200
        data = response.json()
        assert data["fabric_spec_id"] == 1
        assert data["strap_spec_id"] == 10
        assert data["params"]["strap_weight_g_per_m"] == 50.0
        assert data["weight"]["straps_g"] == 473.33
        assert data["weight"]["total_g"] == 1390.88
        assert data["weight"]["strategy"] == "spec"

    def test_weight_density_strategy(self, client):
        data = client.post("/api/v1/bom/weight", json={"params": PARAMS, "use_spec": False}).json()
        assert data["fabric_spec_id"] is None
        assert data["weight"]["strategy"] == "density"

    def test_unknown_param(self, client):
        response = client.post("/api/v1/bom/weight", json={"params": {"colour": "red"}})
        assert response.status_code == 422
        assert response.json()["field"] == "colour"

    @pytest.mark.parametrize("path,extra", [
        ("/api/v1/bom/weight", {}),
        ("/api/v1/bom/requirements", {"quantity": 10, "strap_spec_id": 10}),
        ("/api/v1/orders/plan", {"quantity": 10, "strap_spec_id": 10}),
    ])
    def test_non_numeric_param(self, client, path, extra):
        response = client.post(path, json={"params": {"height_cm": "140"}, **extra})
        assert response.status_code == 422
        assert response.json()["field"] == "height_cm"

    def test_bad_enum_names_its_field(self, client):
        response = client.post("/api/v1/bom/weight", json={"params": {"top_type": "lid"}})
        assert response.status_code == 422
        assert response.json()["field"] == "top_type"

    def test_requirements(self, client):
        response = client.post(
            "/api/v1/bom/requirements",
            json={"params": PARAMS, "quantity": 100, "strap_spec_id": 10},
        )
        assert response.status_code == 200
        departments = {d["department"]: d for d in response.json()["departments"]}
        assert departments["Weaving"]["items"][0]["quantity"] == 260.1

    def test_requirements_strap_rate_from_spec(self, client):
        response = client.post(
            "/api/v1/bom/requirements",
            json={"params": {}, "quantity": 100, "strap_spec_id": 10},
        )
        assert response.status_code == 200
        unit = response.json()["unit_weight"]
        assert unit["straps_g"] == 473.33
        assert unit["total_kg"] == 1.391

    def test_weightless_strap_spec(self, client, store, strap_spec_factory):
        store.add_strap_spec(strap_spec_factory(spec_id=12, weight_g_per_m=0.0))
        response = client.post(
            "/api/v1/bom/requirements",
            json={"params": {}, "quantity": 100, "strap_spec_id": 12},
        )
        assert response.status_code == 422
        assert response.json()["field"] == "strap_weight_g_per_m"

    def test_requirements_unknown_strap(self, client):
        response = client.post(
            "/api/v1/bom/requirements",
            json={"params": PARAMS, "quantity": 100, "strap_spec_id": 99},
        )
        assert response.status_code == 422

    def test_requirements_bad_quantity(self, client):
        response = client.post("/api/v1/bom/requirements", json={"params": PARAMS, "quantity": 0})
        assert response.status_code == 422

    def test_order_plan(self, client):
        response = client.post(
            "/api/v1/orders/plan",
            json={"params": PARAMS, "quantity": 100, "strap_spec_id": 10, "customer": "ACME"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["order_number"].startswith("PLN-")
        assert data["customer"] == "ACME"
        assert [t["department"] for t in data["tasks"]][0] == "Raw materials"


class TestFabricTools:

    def test_density(self, client):
        data = client.post("/api/v1/tools/fabric-density", json={
            "weft_denier": 1570, "weft_threads_10cm": 40,
            "warp_denier": 1570, "warp_threads_10cm": 40,
            "fabric_width_cm": 300, "actual_density_gsm": 140,
        }).json()
        assert data["density_gsm"] == 139.56
        assert data["is_critical"] is False

    def test_required_denier(self, client):
        data = client.post("/api/v1/tools/required-denier", json={
            "target_density_gsm": 140, "weft_threads_10cm": 40, "warp_threads_10cm": 40,
        }).json()
        assert data["weft_denier"] == 1575
        assert data["closest_standard_weft"] == 1570


class TestSessions:

    def test_machines(self, client):
        codes = [m["code"] for m in client.get("/api/v1/machines").json()["machines"]]
        assert codes == ["E1", "L1", "L2", "ST1"]

    def test_free_machine(self, client):
        data = client.get("/api/v1/machines/loom-1/session").json()
        assert data == {"machine_id": "loom-1", "session": None}

    def test_unknown_machine(self, client):
        assert client.get("/api/v1/machines/nope/session").status_code == 422

    def test_start_and_conflict(self, client):
        response = client.post("/api/v1/machines/loom-1/start", json=ROLL_START)
        assert response.status_code == 200
        assert response.json()["status"] == "active"

        response = client.post("/api/v1/machines/loom-1/start", json=ROLL_START)
        assert response.status_code == 409
        assert response.json()["code"] == 3001

    def test_shift_lifecycle(self, client):
        client.post("/api/v1/machines/loom-1/start", json=ROLL_START)

        response = client.post("/api/v1/machines/loom-1/shifts", json={
            "operator_id": "op-7", "length_m": 500, "weight_kg": 110.0,
        })
        assert response.status_code == 200
        assert response.json()["completed"] is False

        preview = client.post("/api/v1/machines/loom-1/preview", json={"length_m": 500, "weight_kg": 115.0})
        assert preview.json()["consumption_kg"] == {"warp": 120.0, "weft": 100.0}

        response = client.post("/api/v1/machines/loom-1/shifts", json={
            "operator_id": "op-7", "length_m": 500, "weight_kg": 115.0, "finalize": True,
        })
        data = response.json()
        assert data["completed"] is True
        assert data["finalization"]["variance"]["level"] == "ok"
        session_id = data["session"]["session_id"]

        detail = client.get(f"/api/v1/sessions/{session_id}").json()
        assert len(detail["entries"]) == 2
        assert detail["session"]["status"] == "completed"

        assert client.get("/api/v1/inventory/warp-1").json()["balance_kg"] == 380.0

    def test_shift_with_implicit_start(self, client):
        response = client.post("/api/v1/machines/loom-1/shifts", json={
            "operator_id": "op-7", "length_m": 100, "weight_kg": 22.0,
            "start": {"spec_id": 1, "batch_ids": {"warp": "warp-1", "weft": "weft-1"}},
        })
        assert response.status_code == 200
        data = response.json()
        assert data["started"] is True
        assert data["session"]["started_by"] == "op-7"

    def test_shift_without_session(self, client):
        response = client.post("/api/v1/machines/loom-1/shifts", json={"operator_id": "op", "length_m": 10})
        assert response.status_code == 422
        assert response.json()["field"] == "start"

    def test_finalize_requires_weight(self, client):
        client.post("/api/v1/machines/loom-1/start", json=ROLL_START)
        response = client.post("/api/v1/machines/loom-1/shifts", json={
            "operator_id": "op", "length_m": 10, "finalize": True,
        })
        assert response.status_code == 422
        assert response.json()["field"] == "weight_kg"

    def test_unknown_session_and_batch(self, client):
        assert client.get("/api/v1/sessions/missing").status_code == 422
        assert client.get("/api/v1/inventory/missing").status_code == 422
