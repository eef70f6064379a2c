"""
store/memory.py - In-memory production store.

All mutation happens under one re-entrant lock. Finalization runs inside
a TransactionManager unit of work whose snapshot is a deep copy of the
mutable tables, so a failure partway restores every table.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
import copy
import json
import logging
import threading

from .base import ProductionStore, accumulate
from ..core.enums import SessionStatus
from ..errors import (
    ErrorCode,
    InvariantViolation,
    PartialWriteRisk,
    ValidationError,
)
from ..inventory.models import InventoryBatch, BatchDeduction, plan_deduction
from ..sessions.models import Machine, ProductionSession, ShiftEntry
from ..specs.models import FabricSpec, StrapSpec
from ..specs.repository import InMemorySpecRepository
from ..transactions import TransactionManager

logger = logging.getLogger(__name__)


@dataclass
class _Tables:
    """Mutable tables covered by snapshots."""
    batches: Dict[str, InventoryBatch] = field(default_factory=dict)
    sessions: Dict[str, ProductionSession] = field(default_factory=dict)
    entries: List[ShiftEntry] = field(default_factory=list)
    sequences: Dict[str, int] = field(default_factory=dict)

    def snapshot(self) -> "_Tables":
        return copy.deepcopy(self)

    def restore(self, snapshot: "_Tables") -> None:
        self.batches = snapshot.batches
        self.sessions = snapshot.sessions
        self.entries = snapshot.entries
        self.sequences = snapshot.sequences


class InMemoryProductionStore(ProductionStore):
    """Thread-safe store holding everything in process memory."""

    def __init__(
        self,
        fabric_specs: Iterable[FabricSpec] = (),
        strap_specs: Iterable[StrapSpec] = (),
        machines: Iterable[Machine] = (),
        batches: Iterable[InventoryBatch] = (),
    ):
        self._specs = InMemorySpecRepository(fabric_specs, strap_specs)
        self._machines: Dict[str, Machine] = {m.machine_id: m for m in machines}
        self._tables = _Tables(batches={b.batch_id: b for b in batches})
        self._lock = threading.RLock()
        self.transactions = TransactionManager(self._tables)

    # ==================== Seeding ====================

    def add_fabric_spec(self, spec: FabricSpec) -> None:
        self._specs.add_fabric_spec(spec)

    def add_strap_spec(self, spec: StrapSpec) -> None:
        self._specs.add_strap_spec(spec)

    def add_machine(self, machine: Machine) -> None:
        with self._lock:
            self._machines[machine.machine_id] = machine

    def add_batch(self, batch: InventoryBatch) -> None:
        with self._lock:
            self._tables.batches[batch.batch_id] = batch

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryProductionStore":
        return cls(
            fabric_specs=[FabricSpec.from_dict(d) for d in data.get("fabric_specs", [])],
            strap_specs=[StrapSpec.from_dict(d) for d in data.get("strap_specs", [])],
            machines=[Machine.from_dict(d) for d in data.get("machines", [])],
            batches=[InventoryBatch.from_dict(d) for d in data.get("batches", [])],
        )

    @classmethod
    def from_file(cls, filepath: str) -> "InMemoryProductionStore":
        """Load reference data and opening balances from a JSON seed file."""
        with open(Path(filepath), encoding="utf-8") as f:
            data = json.load(f)
        store = cls.from_dict(data)
        logger.info(f"Seeded memory store from {filepath}")
        return store

    # ==================== Specs ====================

    def list_fabric_specs(self) -> List[FabricSpec]:
        return self._specs.list_fabric_specs()

    def get_strap_specs(self) -> List[StrapSpec]:
        return self._specs.get_strap_specs()

    def get_fabric_spec(self, spec_id: int) -> Optional[FabricSpec]:
        return self._specs.get_fabric_spec(spec_id)

    def get_strap_spec(self, spec_id: int) -> Optional[StrapSpec]:
        return self._specs.get_strap_spec(spec_id)

    # ==================== Machines ====================

    def get_machine(self, machine_id: str) -> Optional[Machine]:
        return self._machines.get(machine_id)

    def list_machines(self) -> List[Machine]:
        return sorted(self._machines.values(), key=lambda m: m.code)

    # ==================== Inventory ====================

    def get_batch(self, batch_id: str) -> Optional[InventoryBatch]:
        with self._lock:
            batch = self._tables.batches.get(batch_id)
            return copy.deepcopy(batch) if batch else None

    def decrement_batch(
        self,
        batch_id: str,
        amount_kg: float,
        session_id: Optional[str] = None,
    ) -> BatchDeduction:
        with self._lock:
            return self._apply_deduction(batch_id, amount_kg, session_id)

    def _apply_deduction(
        self,
        batch_id: str,
        amount_kg: float,
        session_id: Optional[str],
    ) -> BatchDeduction:
        batch = self._tables.batches.get(batch_id)
        if batch is None:
            raise ValidationError(f"Unknown batch {batch_id}", field="batch_id", session_id=session_id)
        deduction = plan_deduction(batch_id, batch.quantity_kg, amount_kg, session_id)
        batch.quantity_kg = deduction.balance_after_kg
        batch.updated_at = datetime.now(timezone.utc)
        self.transactions.record_change(
            f"batches.{batch_id}.quantity_kg",
            deduction.balance_before_kg,
            deduction.balance_after_kg,
            source=session_id or "",
        )
        return deduction

    # ==================== Sessions ====================

    def find_active_session(self, machine_id: str) -> Optional[ProductionSession]:
        with self._lock:
            session = self._find_active(machine_id)
            return copy.deepcopy(session) if session else None

    def _find_active(self, machine_id: str) -> Optional[ProductionSession]:
        for session in self._tables.sessions.values():
            if session.machine_id == machine_id and session.status == SessionStatus.ACTIVE:
                return session
        return None

    def create_session(
        self,
        session: ProductionSession,
        number_prefix: Optional[str] = None,
    ) -> ProductionSession:
        with self._lock:
            existing = self._find_active(session.machine_id)
            if existing is not None:
                raise InvariantViolation(
                    f"Machine {session.machine_id} already has active session {existing.session_number}",
                    machine_id=session.machine_id,
                    session_id=existing.session_id,
                    code=ErrorCode.INV_ACTIVE_SESSION_EXISTS,
                )
            stored = copy.deepcopy(session)
            if number_prefix is not None:
                seq = self._tables.sequences.get(session.machine_id, 0) + 1
                self._tables.sequences[session.machine_id] = seq
                stored.session_number = f"{number_prefix}-{seq:03d}"
            self._tables.sessions[stored.session_id] = stored
            return copy.deepcopy(stored)

    def get_session(self, session_id: str) -> Optional[ProductionSession]:
        with self._lock:
            session = self._tables.sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def list_shift_entries(self, session_id: str) -> List[ShiftEntry]:
        with self._lock:
            return [copy.deepcopy(e) for e in self._tables.entries if e.session_id == session_id]

    def append_shift_and_maybe_finalize(
        self,
        session_id: str,
        entry: ShiftEntry,
    ) -> Tuple[ProductionSession, List[BatchDeduction]]:
        with self._lock:
            session = self._tables.sessions.get(session_id)
            if session is None:
                raise ValidationError(f"Unknown session {session_id}", field="session_id")
            if session.status != SessionStatus.ACTIVE:
                raise InvariantViolation(
                    f"Session {session.session_number} is already completed",
                    machine_id=session.machine_id,
                    session_id=session_id,
                    code=ErrorCode.INV_SESSION_COMPLETED,
                )

            try:
                with self.transactions.transaction(source="append_shift", description=session_id):
                    deductions = self._append(session_id, entry)
            except PartialWriteRisk:
                raise
            except Exception as e:
                raise PartialWriteRisk(
                    f"Shift write for session {session_id} failed and was rolled back: {e}",
                    session_id=session_id,
                    machine_id=session.machine_id,
                ) from e

            return copy.deepcopy(self._tables.sessions[session_id]), deductions

    def _append(self, session_id: str, entry: ShiftEntry) -> List[BatchDeduction]:
        # Table objects are looked up again: a rollback replaces them
        session = self._tables.sessions[session_id]
        self._tables.entries.append(copy.deepcopy(entry))
        session.accumulated_length_m = accumulate(session.accumulated_length_m, entry.length_m)
        session.accumulated_weight_kg = accumulate(session.accumulated_weight_kg, entry.weight_kg)

        deductions: List[BatchDeduction] = []
        if entry.is_final:
            for binding in session.bindings:
                amount = binding.consumption_kg(session.accumulated_length_m)
                deductions.append(self._apply_deduction(binding.batch_id, amount, session_id))
            session.status = SessionStatus.COMPLETED
            session.completed_at = datetime.now(timezone.utc)
            self.transactions.record_change(
                f"sessions.{session_id}.status", "active", "completed", source=session_id
            )
        return deductions
