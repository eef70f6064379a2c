"""
store/base.py - Production store interface.

One store serves reference specs, machines, the inventory ledger, the
session table and the shift log. Implementations guarantee:

- at most one active session per machine, also under concurrent starts;
- append_shift_and_maybe_finalize is one unit of work: the entry, the
  session accumulators and, on the final shift, the session completion
  and every batch decrement are written together or not at all.
"""

from __future__ import annotations
from abc import abstractmethod
from typing import List, Optional, Tuple

from ..core.rounding import round_half_up
from ..errors import ValidationError
from ..inventory.models import InventoryBatch, BatchDeduction
from ..sessions.models import Machine, ProductionSession, ShiftEntry
from ..specs.repository import SpecRepository


def accumulate(total: float, value: float) -> float:
    """Add a shift quantity to a session accumulator."""
    return round_half_up(total + value, 3)


class ProductionStore(SpecRepository):
    """Abstract store used by the session engine and the HTTP layer."""

    # ==================== Machines ====================

    @abstractmethod
    def get_machine(self, machine_id: str) -> Optional[Machine]:
        """Machine by id, or None."""

    @abstractmethod
    def list_machines(self) -> List[Machine]:
        """All machines ordered by code."""

    # ==================== Inventory ====================

    @abstractmethod
    def get_batch(self, batch_id: str) -> Optional[InventoryBatch]:
        """Inventory batch by id, or None."""

    def get_batch_balance(self, batch_id: str) -> float:
        """Current balance in kg; ValidationError for an unknown batch."""
        batch = self.get_batch(batch_id)
        if batch is None:
            raise ValidationError(f"Unknown batch {batch_id}", field="batch_id")
        return batch.quantity_kg

    @abstractmethod
    def decrement_batch(
        self,
        batch_id: str,
        amount_kg: float,
        session_id: Optional[str] = None,
    ) -> BatchDeduction:
        """Decrement a batch by amount_kg, floored at zero."""

    # ==================== Sessions ====================

    @abstractmethod
    def find_active_session(self, machine_id: str) -> Optional[ProductionSession]:
        """The machine's active session, or None."""

    @abstractmethod
    def create_session(
        self,
        session: ProductionSession,
        number_prefix: Optional[str] = None,
    ) -> ProductionSession:
        """
        Persist a new active session.

        With number_prefix, the next per-machine sequence (1-based) is
        reserved in the same write and the session is numbered
        `{number_prefix}-NNN`. A rejected session reserves no number.

        Raises:
            InvariantViolation: the machine already has an active session
        """

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ProductionSession]:
        """Session by id, or None."""

    @abstractmethod
    def list_shift_entries(self, session_id: str) -> List[ShiftEntry]:
        """Shift entries of a session in insertion order."""

    @abstractmethod
    def append_shift_and_maybe_finalize(
        self,
        session_id: str,
        entry: ShiftEntry,
    ) -> Tuple[ProductionSession, List[BatchDeduction]]:
        """
        Append a shift entry and update the session accumulators.

        When entry.is_final, each binding's batch is decremented by
        accumulated_length x rate (rounded to 0.01 kg) and the session is
        completed, in the same unit of work.

        Returns:
            (updated session, deductions; empty for a non-final entry)

        Raises:
            ValidationError: unknown session
            InvariantViolation: the session is already completed
            PartialWriteRisk: the write failed and was rolled back
        """
