"""
transactions/schemas.py - Unit-of-work data structures.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(Enum):
    """Transaction status."""
    PENDING = "pending"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass
class StateChange:
    """Record of a single ledger or session change."""

    change_id: str = ""
    transaction_id: str = ""

    path: str = ""
    old_value: Any = None
    new_value: Any = None

    source: str = ""
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "change_id": self.change_id,
            "transaction_id": self.transaction_id,
            "path": self.path,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "source": self.source,
        }


@dataclass
class Transaction:
    """Complete transaction record."""

    transaction_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    status: TransactionStatus = TransactionStatus.PENDING

    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    # Parent transaction (for nesting)
    parent_transaction_id: Optional[str] = None

    changes: List[StateChange] = field(default_factory=list)

    # Snapshot taken at begin, restored on rollback
    initial_snapshot: Any = None

    # Metadata
    source: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "status": self.status.value,
            "source": self.source,
            "description": self.description,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "num_changes": len(self.changes),
        }
