"""
sessions/engine.py - Machine session engine.

Per machine:

    Free --start--> Active --record_shift--> Active
                    Active --record_shift(finalize)--> Completed (machine free)

Shifts accumulate length and weight on the session; inventory is touched
exactly once, when the final shift completes the session, and the store
performs that finalization as one unit of work. Weight variance and
inventory shortfall are advisory: logged and returned, never raised.
"""

from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging
import uuid

from .models import (
    ConsumptionPreview,
    FinalizationResult,
    Machine,
    MaterialBinding,
    ProductionSession,
    ShiftEntry,
    ShiftReport,
    ShiftResult,
    StartRequest,
)
from .variance import VarianceCheck, check_variance
from ..core import constants as C
from ..core.enums import MaterialKind, MaterialRole, SessionKind, VarianceLevel, WarpYarnType
from ..core.rounding import round2
from ..errors import (
    ErrorCode,
    InvariantViolation,
    ProductionIssue,
    ValidationError,
    create_denier_issue,
    create_shortfall_issue,
    create_variance_issue,
)
from ..inventory.models import BatchDeduction, InventoryBatch
from ..specs.models import FabricSpec, StrapSpec
from ..store.base import ProductionStore, accumulate

logger = logging.getLogger(__name__)

Spec = Union[FabricSpec, StrapSpec]

SESSION_PREFIXES = {
    SessionKind.ROLL: "R",
    SessionKind.STRAP_SESSION: "S",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MachineSessionEngine:
    """
    Shift reporting and finalization against machine sessions.

    Args:
        store: Production store (specs, machines, inventory, sessions)
        variance_ok_pct: |variance| up to this is ok
        variance_warning_pct: |variance| up to this is a warning, beyond is critical
        clock: Returns the current UTC time; injectable for tests
    """

    def __init__(
        self,
        store: ProductionStore,
        variance_ok_pct: float = C.DEFAULT_VARIANCE_OK_PCT,
        variance_warning_pct: float = C.DEFAULT_VARIANCE_WARNING_PCT,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if variance_ok_pct < 0 or variance_warning_pct < variance_ok_pct:
            raise ValidationError(
                "Variance thresholds must satisfy 0 <= ok <= warning",
                field="variance_warning_pct",
            )
        self.store = store
        self.variance_ok_pct = variance_ok_pct
        self.variance_warning_pct = variance_warning_pct
        self.clock = clock

    # ==================== Queries ====================

    def get_active_session(self, machine_id: str) -> Optional[ProductionSession]:
        return self.store.find_active_session(machine_id)

    def list_shift_entries(self, session_id: str) -> List[ShiftEntry]:
        return self.store.list_shift_entries(session_id)

    # ==================== Start ====================

    def start(
        self,
        machine_id: str,
        spec_id: int,
        batch_ids: Mapping[Union[str, MaterialRole], str],
        operator_id: Optional[str] = None,
    ) -> ProductionSession:
        """
        Start a roll / strap session on a free machine.

        Raises:
            ValidationError: unknown or inactive machine, machine without
                sessions, unknown spec, missing or incompatible batch
            InvariantViolation: the machine already has an active session
        """
        session, _ = self._start(machine_id, spec_id, batch_ids, operator_id)
        return session

    def _start(
        self,
        machine_id: str,
        spec_id: int,
        batch_ids: Mapping[Union[str, MaterialRole], str],
        operator_id: Optional[str],
    ) -> Tuple[ProductionSession, List[ProductionIssue]]:
        machine = self._require_machine(machine_id)
        kind = machine.session_kind
        spec = self._require_spec(machine, kind, spec_id)

        roles = self._normalize_roles(batch_ids, machine_id)
        bindings: List[MaterialBinding] = []
        issues: List[ProductionIssue] = []
        for role in (MaterialRole.WARP, MaterialRole.WEFT):
            batch_id = roles.get(role)
            if not batch_id:
                raise ValidationError(
                    f"A {role.value} batch is required to start on {machine.code}",
                    field=f"batch_ids.{role.value}",
                    machine_id=machine_id,
                )
            batch = self.store.get_batch(batch_id)
            if batch is None:
                raise ValidationError(
                    f"Unknown batch {batch_id}",
                    field=f"batch_ids.{role.value}",
                    machine_id=machine_id,
                )
            allowed = self._allowed_kinds(kind, spec, role)
            if batch.kind not in allowed:
                expected = "/".join(k.value for k in allowed)
                raise ValidationError(
                    f"Batch {batch.batch_number} is {batch.kind.value}, {role.value} needs {expected}",
                    field=f"batch_ids.{role.value}",
                    machine_id=machine_id,
                    code=ErrorCode.VAL_INCOMPATIBLE,
                )
            issue = self._check_denier(batch, spec, role, machine_id)
            if issue is not None:
                issues.append(issue)
            bindings.append(MaterialBinding(
                role=role,
                batch_id=batch_id,
                rate_kg_per_m=spec.warp_kg_per_m if role == MaterialRole.WARP else spec.weft_kg_per_m,
                kind=batch.kind,
            ))

        existing = self.store.find_active_session(machine_id)
        if existing is not None:
            raise InvariantViolation(
                f"Machine {machine.code} already has active session {existing.session_number}",
                machine_id=machine_id,
                session_id=existing.session_id,
                code=ErrorCode.INV_ACTIVE_SESSION_EXISTS,
            )

        now = self.clock()
        number_prefix = f"{SESSION_PREFIXES[kind]}-{now:%y%m%d}-{machine.code}"
        session = ProductionSession(
            session_id=uuid.uuid4().hex,
            session_number=number_prefix,
            machine_id=machine_id,
            kind=kind,
            spec_id=spec.spec_id,
            bindings=bindings,
            started_at=now,
            started_by=operator_id,
            linear_density_g_per_m=spec.weight_g_per_m if kind == SessionKind.STRAP_SESSION else None,
        )
        # the store appends the per-machine sequence in the same write
        session = self.store.create_session(session, number_prefix=number_prefix)
        logger.info(
            f"Started {kind.value} {session.session_number} on {machine.code} "
            f"(spec {spec.spec_id}, warp {roles[MaterialRole.WARP]}, weft {roles[MaterialRole.WEFT]})"
        )
        return session, issues

    def _require_machine(self, machine_id: str) -> Machine:
        machine = self.store.get_machine(machine_id)
        if machine is None:
            raise ValidationError(f"Unknown machine {machine_id}", field="machine_id", machine_id=machine_id)
        if not machine.is_active:
            raise ValidationError(f"Machine {machine.code} is not active", field="machine_id", machine_id=machine_id)
        if machine.session_kind is None:
            raise ValidationError(
                f"Machine {machine.code} ({machine.machine_type.value}) does not run sessions",
                field="machine_id",
                machine_id=machine_id,
            )
        return machine

    def _require_spec(self, machine: Machine, kind: SessionKind, spec_id: int) -> Spec:
        if kind == SessionKind.STRAP_SESSION:
            spec = self.store.get_strap_spec(spec_id)
        else:
            spec = self.store.get_fabric_spec(spec_id)
        if spec is None:
            label = "strap" if kind == SessionKind.STRAP_SESSION else "fabric"
            raise ValidationError(
                f"Unknown {label} spec {spec_id} for machine {machine.code}",
                field="spec_id",
                machine_id=machine.machine_id,
            )
        return spec

    @staticmethod
    def _normalize_roles(
        batch_ids: Mapping[Union[str, MaterialRole], str],
        machine_id: str,
    ) -> Dict[MaterialRole, str]:
        roles: Dict[MaterialRole, str] = {}
        for key, batch_id in (batch_ids or {}).items():
            try:
                role = MaterialRole(key)
            except ValueError as e:
                raise ValidationError(
                    f"Unknown material role {key!r}", field="batch_ids", machine_id=machine_id
                ) from e
            roles[role] = batch_id
        return roles

    @staticmethod
    def _allowed_kinds(kind: SessionKind, spec: Spec, role: MaterialRole) -> Tuple[MaterialKind, ...]:
        if kind == SessionKind.ROLL:
            return (MaterialKind.YARN,)
        if role == MaterialRole.WEFT:
            return (MaterialKind.MFN,)
        if spec.is_fully_purchased or spec.warp_yarn_type == WarpYarnType.MFN:
            return (MaterialKind.MFN,)
        return (MaterialKind.YARN,)

    @staticmethod
    def _check_denier(
        batch: InventoryBatch,
        spec: Spec,
        role: MaterialRole,
        machine_id: str,
    ) -> Optional[ProductionIssue]:
        if role == MaterialRole.WARP:
            spec_denier = spec.warp_denier
        else:
            spec_denier = getattr(spec, "weft_denier", None)
        if not spec_denier or not batch.material.denier or batch.material.denier == spec_denier:
            return None
        issue = create_denier_issue(batch.batch_id, batch.material.denier, spec_denier, machine_id=machine_id)
        logger.warning(issue.message)
        return issue

    # ==================== Shifts ====================

    def record_shift(
        self,
        machine_id: str,
        report: ShiftReport,
        start: Optional[StartRequest] = None,
    ) -> ShiftResult:
        """
        Record one shift of output; finalize the session when requested.

        Without an active session the start request opens one first.

        Raises:
            ValidationError: bad report, no active session and no start request
            InvariantViolation: from an implicit start, or a completed session
            PartialWriteRisk: the store rolled the write back
        """
        self._validate_report(report, machine_id)

        issues: List[ProductionIssue] = []
        started = False
        session = self.store.find_active_session(machine_id)
        if session is None:
            if start is None:
                raise ValidationError(
                    f"No active session on machine {machine_id}; a start request is required",
                    field="start",
                    machine_id=machine_id,
                )
            session, issues = self._start(machine_id, start.spec_id, start.batch_ids, start.operator_id)
            started = True

        usage = {b.role.value: b.consumption_kg(report.length_m) for b in session.bindings}
        calculated_weight = None
        if session.kind == SessionKind.STRAP_SESSION and session.linear_density_g_per_m:
            calculated_weight = round2(report.length_m * session.linear_density_g_per_m / C.G_PER_KG)

        entry = ShiftEntry(
            session_id=session.session_id,
            operator_id=report.operator_id,
            length_m=report.length_m,
            weight_kg=report.weight_kg,
            shift_date=report.shift_date or self.clock().date(),
            shift=report.shift,
            usage_kg=usage,
            calculated_weight_kg=calculated_weight,
            notes=report.notes,
            is_final=report.finalize,
            created_at=self.clock(),
        )

        session, deductions = self.store.append_shift_and_maybe_finalize(session.session_id, entry)
        logger.info(
            f"Shift on {session.session_number}: {report.length_m} m / {report.weight_kg} kg "
            f"by {report.operator_id} (total {session.accumulated_length_m} m)"
        )

        finalization = None
        if report.finalize:
            finalization = self._finalization(session, deductions, issues)

        return ShiftResult(
            session=session,
            entry=entry,
            finalization=finalization,
            issues=issues,
            started=started,
        )

    @staticmethod
    def _validate_report(report: ShiftReport, machine_id: str) -> None:
        if not report.operator_id or not str(report.operator_id).strip():
            raise ValidationError("Operator is required", field="operator_id", machine_id=machine_id)
        if report.length_m is None or report.length_m < 0:
            raise ValidationError("Length must be >= 0", field="length_m", machine_id=machine_id)
        if report.weight_kg is None or report.weight_kg < 0:
            raise ValidationError("Weight must be >= 0", field="weight_kg", machine_id=machine_id)
        if report.finalize and report.weight_kg <= 0:
            raise ValidationError(
                "Weight is required to finish the session",
                field="weight_kg",
                machine_id=machine_id,
            )

    def _finalization(
        self,
        session: ProductionSession,
        deductions: List[BatchDeduction],
        issues: List[ProductionIssue],
    ) -> FinalizationResult:
        for d in deductions:
            logger.info(
                f"{session.session_number}: batch {d.batch_id} -{d.applied_kg} kg "
                f"({d.balance_before_kg} -> {d.balance_after_kg})"
            )
            if d.has_shortfall:
                issue = create_shortfall_issue(
                    d.batch_id,
                    d.requested_kg,
                    d.balance_before_kg,
                    session_id=session.session_id,
                    machine_id=session.machine_id,
                )
                logger.warning(issue.message)
                issues.append(issue)

        theoretical = round2(sum(d.requested_kg for d in deductions))
        variance = self._variance(theoretical, session.accumulated_weight_kg)
        self._variance_issue(variance, session, issues)

        logger.info(
            f"Completed {session.session_number}: {session.accumulated_length_m} m, "
            f"{session.accumulated_weight_kg} kg, variance {variance.variance_pct}% ({variance.level.value})"
        )
        return FinalizationResult(deductions=deductions, variance=variance)

    def _variance(self, theoretical_kg: float, actual_kg: float) -> VarianceCheck:
        return check_variance(
            theoretical_kg,
            actual_kg,
            ok_pct=self.variance_ok_pct,
            warning_pct=self.variance_warning_pct,
        )

    @staticmethod
    def _variance_issue(
        variance: VarianceCheck,
        session: ProductionSession,
        issues: List[ProductionIssue],
    ) -> None:
        if variance.level == VarianceLevel.OK:
            return
        issue = create_variance_issue(
            variance.level.value,
            variance.variance_pct,
            variance.theoretical_kg,
            variance.actual_kg,
            session_id=session.session_id,
            machine_id=session.machine_id,
        )
        logger.warning(f"{session.session_number}: {issue.message}")
        issues.append(issue)

    # ==================== Preview ====================

    def preview(self, machine_id: str, length_m: float, weight_kg: float = 0.0) -> ConsumptionPreview:
        """
        Projected consumption and variance if the pending shift were final.

        Nothing is written.
        """
        if length_m is None or length_m < 0:
            raise ValidationError("Length must be >= 0", field="length_m", machine_id=machine_id)
        if weight_kg is None or weight_kg < 0:
            raise ValidationError("Weight must be >= 0", field="weight_kg", machine_id=machine_id)
        session = self.store.find_active_session(machine_id)
        if session is None:
            raise ValidationError(
                f"No active session on machine {machine_id}", field="machine_id", machine_id=machine_id
            )

        total_length = accumulate(session.accumulated_length_m, length_m)
        total_weight = accumulate(session.accumulated_weight_kg, weight_kg)
        consumption = {b.role.value: b.consumption_kg(total_length) for b in session.bindings}
        variance = self._variance(round2(sum(consumption.values())), total_weight)
        return ConsumptionPreview(
            session_id=session.session_id,
            total_length_m=total_length,
            total_weight_kg=total_weight,
            consumption_kg=consumption,
            variance=variance,
        )
