"""
sessions/models.py - Machine session data structures.

A session is one in-progress run on a machine: a fabric roll on a loom or
laminator, or a strap session on a strap machine. Shift entries are the
append-only production log of a session.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from ..core.enums import (
    MachineType,
    SessionKind,
    SessionStatus,
    ShiftCode,
    MaterialKind,
    MaterialRole,
    MACHINE_SESSION_KINDS,
)
from ..core.rounding import round2
from ..errors import ProductionIssue
from ..inventory.models import BatchDeduction
from .variance import VarianceCheck


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Machine:
    """Shop-floor machine."""
    machine_id: str
    code: str
    name: str
    machine_type: MachineType
    is_active: bool = True

    @property
    def session_kind(self) -> Optional[SessionKind]:
        """Kind of run this machine produces; None for machines without sessions."""
        return MACHINE_SESSION_KINDS.get(self.machine_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machine_id": self.machine_id,
            "code": self.code,
            "name": self.name,
            "machine_type": self.machine_type.value,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Machine":
        return cls(
            machine_id=str(data["machine_id"]),
            code=data.get("code", str(data["machine_id"])),
            name=data.get("name", ""),
            machine_type=MachineType(data["machine_type"]),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class MaterialBinding:
    """Batch bound to a session role, with the spec rate copied at start."""
    role: MaterialRole
    batch_id: str
    rate_kg_per_m: float
    kind: MaterialKind = MaterialKind.YARN

    def consumption_kg(self, length_m: float) -> float:
        return round2(length_m * self.rate_kg_per_m)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "batch_id": self.batch_id,
            "rate_kg_per_m": self.rate_kg_per_m,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaterialBinding":
        return cls(
            role=MaterialRole(data["role"]),
            batch_id=str(data["batch_id"]),
            rate_kg_per_m=float(data["rate_kg_per_m"]),
            kind=MaterialKind(data.get("kind", "yarn")),
        )


@dataclass
class ProductionSession:
    """
    In-progress or completed run on one machine.

    Accumulators always equal the sums over the session's shift entries.
    Linear density is set for strap sessions only.
    """
    session_id: str
    session_number: str
    machine_id: str
    kind: SessionKind
    spec_id: int
    bindings: List[MaterialBinding] = field(default_factory=list)
    accumulated_length_m: float = 0.0
    accumulated_weight_kg: float = 0.0
    status: SessionStatus = SessionStatus.ACTIVE
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    started_by: Optional[str] = None
    linear_density_g_per_m: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def binding(self, role: MaterialRole) -> Optional[MaterialBinding]:
        for b in self.bindings:
            if b.role == role:
                return b
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "session_number": self.session_number,
            "machine_id": self.machine_id,
            "kind": self.kind.value,
            "spec_id": self.spec_id,
            "bindings": [b.to_dict() for b in self.bindings],
            "accumulated_length_m": self.accumulated_length_m,
            "accumulated_weight_kg": self.accumulated_weight_kg,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "started_by": self.started_by,
            "linear_density_g_per_m": self.linear_density_g_per_m,
        }


@dataclass
class ShiftEntry:
    """One shift's output against a session. Append-only."""
    session_id: str
    operator_id: str
    length_m: float
    weight_kg: float
    shift_date: date
    shift: ShiftCode = ShiftCode.DAY
    usage_kg: Dict[str, float] = field(default_factory=dict)
    calculated_weight_kg: Optional[float] = None
    notes: str = ""
    is_final: bool = False
    entry_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "session_id": self.session_id,
            "shift_date": self.shift_date.isoformat(),
            "shift": self.shift.value,
            "operator_id": self.operator_id,
            "length_m": self.length_m,
            "weight_kg": self.weight_kg,
            "usage_kg": dict(self.usage_kg),
            "calculated_weight_kg": self.calculated_weight_kg,
            "notes": self.notes,
            "is_final": self.is_final,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class StartRequest:
    """
    Parameters of a new session.

    batch_ids maps role ("warp" / "weft") to inventory batch id.
    """
    spec_id: int
    batch_ids: Dict[str, str]
    operator_id: Optional[str] = None


@dataclass
class ShiftReport:
    """Operator's report for one shift."""
    operator_id: str
    length_m: float
    weight_kg: float = 0.0
    shift_date: Optional[date] = None
    shift: ShiftCode = ShiftCode.DAY
    notes: str = ""
    finalize: bool = False


@dataclass
class ConsumptionPreview:
    """Projected consumption for a pending shift; nothing written."""
    session_id: str
    total_length_m: float
    total_weight_kg: float
    consumption_kg: Dict[str, float]
    variance: VarianceCheck

    @property
    def theoretical_kg(self) -> float:
        return self.variance.theoretical_kg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_length_m": self.total_length_m,
            "total_weight_kg": self.total_weight_kg,
            "consumption_kg": dict(self.consumption_kg),
            "variance": self.variance.to_dict(),
        }


@dataclass
class FinalizationResult:
    """Ledger deductions and variance of a completed session."""
    deductions: List[BatchDeduction]
    variance: VarianceCheck

    @property
    def theoretical_kg(self) -> float:
        return self.variance.theoretical_kg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deductions": [d.to_dict() for d in self.deductions],
            "variance": self.variance.to_dict(),
        }


@dataclass
class ShiftResult:
    """Outcome of record_shift."""
    session: ProductionSession
    entry: ShiftEntry
    finalization: Optional[FinalizationResult] = None
    issues: List[ProductionIssue] = field(default_factory=list)
    started: bool = False

    @property
    def completed(self) -> bool:
        return self.finalization is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "entry": self.entry.to_dict(),
            "finalization": self.finalization.to_dict() if self.finalization else None,
            "issues": [i.to_dict() for i in self.issues],
            "started": self.started,
            "completed": self.completed,
        }
