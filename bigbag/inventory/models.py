"""
inventory/models.py - Inventory ledger data structures.

Batches of yarn and raw material held on the warehouse ledger, and the
deduction record produced when a finished run consumes them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import math

from ..core.enums import MaterialKind
from ..core.rounding import round2
from ..errors import ValidationError


@dataclass
class MaterialDescriptor:
    """What a batch holds."""
    name: str
    kind: MaterialKind = MaterialKind.YARN
    denier: Optional[int] = None
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "denier": self.denier,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaterialDescriptor":
        return cls(
            name=data["name"],
            kind=MaterialKind(data.get("kind", "yarn")),
            denier=data.get("denier"),
            color=data.get("color"),
        )


@dataclass
class InventoryBatch:
    """A single warehouse batch and its balance in kilograms."""
    batch_id: str
    batch_number: str
    material: MaterialDescriptor
    quantity_kg: float = 0.0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> MaterialKind:
        return self.material.kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_number": self.batch_number,
            "material": self.material.to_dict(),
            "quantity_kg": self.quantity_kg,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InventoryBatch":
        return cls(
            batch_id=str(data["batch_id"]),
            batch_number=data.get("batch_number", str(data["batch_id"])),
            material=MaterialDescriptor.from_dict(data["material"]),
            quantity_kg=float(data.get("quantity_kg", 0.0)),
        )


@dataclass
class BatchDeduction:
    """
    Applied decrement of one batch.

    applied_kg can be less than requested_kg: balances are floored at
    zero and the difference is reported as shortfall_kg.
    """
    batch_id: str
    requested_kg: float
    applied_kg: float
    balance_before_kg: float
    balance_after_kg: float
    session_id: Optional[str] = None

    @property
    def shortfall_kg(self) -> float:
        return round2(self.requested_kg - self.applied_kg)

    @property
    def has_shortfall(self) -> bool:
        return self.shortfall_kg > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "requested_kg": self.requested_kg,
            "applied_kg": self.applied_kg,
            "balance_before_kg": self.balance_before_kg,
            "balance_after_kg": self.balance_after_kg,
            "shortfall_kg": self.shortfall_kg,
            "session_id": self.session_id,
        }


def plan_deduction(
    batch_id: str,
    balance_kg: float,
    amount_kg: float,
    session_id: Optional[str] = None,
) -> BatchDeduction:
    """
    Deduction of amount_kg from a balance, floored at zero.

    Raises:
        ValidationError: amount_kg is negative or not a finite number
    """
    if not math.isfinite(amount_kg) or amount_kg < 0:
        raise ValidationError(
            f"Deduction from batch {batch_id} must be a finite amount >= 0, got {amount_kg}",
            field="amount_kg",
            session_id=session_id,
            context={"batch_id": batch_id},
        )
    after = round2(max(0.0, balance_kg - amount_kg))
    return BatchDeduction(
        batch_id=batch_id,
        requested_kg=amount_kg,
        applied_kg=round2(balance_kg - after),
        balance_before_kg=balance_kg,
        balance_after_kg=after,
        session_id=session_id,
    )
