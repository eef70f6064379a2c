"""
deployment/api.py - REST API

Calculator, order planning, machine session and inventory endpoints over
one AppContext. Domain errors map to HTTP statuses:
ValidationError 422, NoMatchingSpec 404, InvariantViolation 409,
PartialWriteRisk 500.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, TYPE_CHECKING
import logging

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..bom import (
    ProductParameters,
    compute_department_requirements,
    compute_unit_weight,
    with_strap_spec,
)
from ..core.enums import OrderPriority, ShiftCode
from ..errors import (
    BigBagError,
    InvariantViolation,
    NoMatchingSpec,
    PartialWriteRisk,
    ValidationError,
)
from ..planning import plan_order
from ..sessions import ShiftReport, StartRequest
from ..specs import calculate_density, calculate_required_denier, density_deviation_pct, select_fabric_spec
from ..specs.fabric import DENSITY_DEVIATION_CRITICAL_PCT
from ..specs.models import StrapSpec

if TYPE_CHECKING:
    from ..bootstrap.app import AppContext

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NoMatchingSpec, 404),
    (InvariantViolation, 409),
    (PartialWriteRisk, 500),
    (ValidationError, 422),
)


# =============================================================================
# Request Models
# =============================================================================

class WeightRequest(BaseModel):
    """Unit weight of one bag."""
    params: Dict[str, Any] = Field(default_factory=dict)
    fabric_spec_id: Optional[int] = None
    use_spec: bool = True
    strap_spec_id: Optional[int] = None


class RequirementsRequest(BaseModel):
    """Department requirements for N bags."""
    params: Dict[str, Any] = Field(default_factory=dict)
    quantity: int
    fabric_spec_id: Optional[int] = None
    strap_spec_id: Optional[int] = None
    waste_margin: Optional[float] = None


class OrderPlanRequest(RequirementsRequest):
    """Requirements plus order header."""
    customer: Optional[str] = None
    deadline: Optional[date] = None
    priority: OrderPriority = OrderPriority.MEDIUM


class StartSessionRequest(BaseModel):
    """Start a roll or strap session."""
    spec_id: int
    batch_ids: Dict[str, str]
    operator_id: Optional[str] = None


class ShiftRequest(BaseModel):
    """One shift report, optionally finalizing the session."""
    operator_id: str = ""
    length_m: float
    weight_kg: float = 0.0
    shift_date: Optional[date] = None
    shift: ShiftCode = ShiftCode.DAY
    notes: str = ""
    finalize: bool = False
    start: Optional[StartSessionRequest] = None


class PreviewRequest(BaseModel):
    """Pending shift values for a consumption preview."""
    length_m: float
    weight_kg: float = 0.0


class FabricDensityRequest(BaseModel):
    """Forward fabric calculation."""
    weft_denier: float = 0.0
    weft_threads_10cm: float
    warp_denier: float = 0.0
    warp_threads_10cm: float
    fabric_width_cm: float = 0.0
    actual_density_gsm: Optional[float] = None


class RequiredDenierRequest(BaseModel):
    """Inverse fabric calculation."""
    target_density_gsm: float
    weft_threads_10cm: float
    warp_threads_10cm: float


# =============================================================================
# Helpers
# =============================================================================

def error_status(error: BigBagError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def _strap_spec(context: "AppContext", strap_spec_id: Optional[int]) -> Optional[StrapSpec]:
    if strap_spec_id is None:
        return None
    spec = context.store.get_strap_spec(strap_spec_id)
    if spec is None:
        raise ValidationError(f"Unknown strap spec: {strap_spec_id}", field="strap_spec_id")
    return spec


def create_fastapi_app(context: "AppContext" = None) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        context: Application context with config, store and session engine

    Returns:
        FastAPI application instance
    """
    if context is None:
        from ..bootstrap.app import create_app_context
        context = create_app_context()

    api_config = context.config.api
    app = FastAPI(
        title="Big Bag Production API",
        description="FIBC weight calculator, requirements planning and machine sessions",
        version=__version__,
        docs_url=api_config.docs_url if api_config.enable_docs else None,
        redoc_url="/redoc" if api_config.enable_docs else None,
    )
    app.state.context = context

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BigBagError)
    async def handle_domain_error(request: Request, exc: BigBagError):
        status = error_status(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {status}: {exc.message}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    engine = context.engine
    store = context.store

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "backend": context.config.storage.backend,
            "uptime_s": round(context.get_uptime(), 1),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # =========================================================================
    # Specs
    # =========================================================================

    @app.get("/api/v1/specs/fabric")
    def list_fabric_specs(width_cm: Optional[float] = Query(default=None)):
        """Fabric specs, optionally filtered by usable width."""
        specs = store.list_fabric_specs() if width_cm is None else store.get_fabric_specs_by_width(width_cm)
        return {"specs": [s.to_dict() for s in specs], "available_widths": store.available_widths()}

    @app.get("/api/v1/specs/fabric/select")
    def select_fabric(width_cm: float, spec_id: Optional[int] = None):
        """Resolve the fabric spec for a bag width."""
        return select_fabric_spec(store, width_cm, spec_id).to_dict()

    @app.get("/api/v1/specs/strap")
    def list_strap_specs():
        return {"specs": [s.to_dict() for s in store.get_strap_specs()]}

    # =========================================================================
    # Calculator
    # =========================================================================

    @app.post("/api/v1/bom/weight")
    def unit_weight(request: WeightRequest):
        """Weight breakdown of one bag."""
        params = ProductParameters.from_dict(request.params)
        fabric_spec = None
        if request.use_spec:
            fabric_spec = select_fabric_spec(store, params.width_cm, request.fabric_spec_id)
        strap_spec = _strap_spec(context, request.strap_spec_id)
        weight = compute_unit_weight(params, fabric_spec, strap_spec)
        if strap_spec is not None:
            params = with_strap_spec(params, strap_spec)
        return {
            "params": params.to_dict(),
            "fabric_spec_id": fabric_spec.spec_id if fabric_spec else None,
            "strap_spec_id": strap_spec.spec_id if strap_spec else None,
            "weight": weight.to_dict(),
        }

    @app.post("/api/v1/bom/requirements")
    def requirements(request: RequirementsRequest):
        """Department requirements for an order of N bags."""
        params = ProductParameters.from_dict(request.params)
        fabric_spec = select_fabric_spec(store, params.width_cm, request.fabric_spec_id)
        strap_spec = _strap_spec(context, request.strap_spec_id)
        margin = request.waste_margin if request.waste_margin is not None else context.waste_margin
        calculation = compute_department_requirements(
            params, request.quantity, fabric_spec, strap_spec, waste_margin=margin
        )
        return calculation.to_dict()

    @app.post("/api/v1/orders/plan")
    def create_order_plan(request: OrderPlanRequest):
        """Confirmed production order with one task per department."""
        params = ProductParameters.from_dict(request.params)
        fabric_spec = select_fabric_spec(store, params.width_cm, request.fabric_spec_id)
        strap_spec = _strap_spec(context, request.strap_spec_id)
        margin = request.waste_margin if request.waste_margin is not None else context.waste_margin
        order = plan_order(
            params,
            request.quantity,
            fabric_spec,
            strap_spec,
            customer=request.customer,
            deadline=request.deadline,
            priority=request.priority,
            waste_margin=margin,
        )
        return order.to_dict()

    # =========================================================================
    # Machines and sessions
    # =========================================================================

    @app.get("/api/v1/machines")
    def list_machines():
        return {"machines": [m.to_dict() for m in store.list_machines()]}

    @app.get("/api/v1/machines/{machine_id}/session")
    def active_session(machine_id: str):
        """Active session of a machine, or null when the machine is free."""
        if store.get_machine(machine_id) is None:
            raise ValidationError(f"Unknown machine: {machine_id}", field="machine_id", machine_id=machine_id)
        session = engine.get_active_session(machine_id)
        return {"machine_id": machine_id, "session": session.to_dict() if session else None}

    @app.post("/api/v1/machines/{machine_id}/start")
    def start_session(machine_id: str, request: StartSessionRequest):
        session = engine.start(machine_id, request.spec_id, request.batch_ids, request.operator_id)
        return session.to_dict()

    @app.post("/api/v1/machines/{machine_id}/shifts")
    def record_shift(machine_id: str, request: ShiftRequest):
        """Record a shift; finalize=true closes the session and deducts inventory."""
        report = ShiftReport(
            operator_id=request.operator_id,
            length_m=request.length_m,
            weight_kg=request.weight_kg,
            shift_date=request.shift_date,
            shift=request.shift,
            notes=request.notes,
            finalize=request.finalize,
        )
        start = None
        if request.start is not None:
            start = StartRequest(
                spec_id=request.start.spec_id,
                batch_ids=request.start.batch_ids,
                operator_id=request.start.operator_id or request.operator_id,
            )
        return engine.record_shift(machine_id, report, start).to_dict()

    @app.post("/api/v1/machines/{machine_id}/preview")
    def preview_shift(machine_id: str, request: PreviewRequest):
        return engine.preview(machine_id, request.length_m, request.weight_kg).to_dict()

    @app.get("/api/v1/sessions/{session_id}")
    def get_session(session_id: str):
        session = store.get_session(session_id)
        if session is None:
            raise ValidationError(f"Unknown session: {session_id}", field="session_id", session_id=session_id)
        return {
            "session": session.to_dict(),
            "entries": [e.to_dict() for e in engine.list_shift_entries(session_id)],
        }

    # =========================================================================
    # Inventory
    # =========================================================================

    @app.get("/api/v1/inventory/{batch_id}")
    def batch_balance(batch_id: str):
        balance = store.get_batch_balance(batch_id)
        return {"batch": store.get_batch(batch_id).to_dict(), "balance_kg": balance}

    # =========================================================================
    # Fabric tools
    # =========================================================================

    @app.post("/api/v1/tools/fabric-density")
    def fabric_density(request: FabricDensityRequest):
        """Density and consumption from yarn parameters, with optional deviation check."""
        result = calculate_density(
            request.weft_denier,
            request.weft_threads_10cm,
            request.warp_denier,
            request.warp_threads_10cm,
            request.fabric_width_cm,
        )
        response: Dict[str, Any] = result.to_dict()
        if request.actual_density_gsm:
            deviation = density_deviation_pct(result.density_gsm, request.actual_density_gsm)
            response["deviation_pct"] = round(deviation, 2)
            response["is_critical"] = deviation > DENSITY_DEVIATION_CRITICAL_PCT
        return response

    @app.post("/api/v1/tools/required-denier")
    def required_denier(request: RequiredDenierRequest):
        return calculate_required_denier(
            request.target_density_gsm, request.weft_threads_10cm, request.warp_threads_10cm
        ).to_dict()

    logger.info(f"API created with {len(app.routes)} routes")
    return app
