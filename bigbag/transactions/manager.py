"""
transactions/manager.py - Snapshot/rollback unit of work.

Used by the in-memory store to make a finalization (shift entry + session
update + batch decrements) all-or-nothing. The managed state object must
provide snapshot() and restore(snapshot).
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Protocol
from datetime import datetime, timezone
from contextlib import contextmanager
import logging
import uuid

from .schemas import Transaction, TransactionStatus, StateChange
from ..errors import ErrorCode, PartialWriteRisk


class Snapshotable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...


class TransactionManager:
    """
    Manages transactions for atomic state operations.

    Every begin captures a snapshot of the state; rollback restores it.
    Nested transactions record their parent.
    """

    def __init__(self, state: Snapshotable):
        self.state = state
        self.logger = logging.getLogger(__name__)

        # Active transactions
        self._transactions: Dict[str, Transaction] = {}

        # Transaction stack (for nesting)
        self._stack: List[str] = []

        # Completed transactions (for audit)
        self._history: List[Transaction] = []
        self._max_history = 100

    @property
    def active_transaction(self) -> Optional[Transaction]:
        """Get current active transaction."""
        if self._stack:
            return self._transactions.get(self._stack[-1])
        return None

    @property
    def active_transaction_id(self) -> Optional[str]:
        """Get current active transaction ID."""
        return self._stack[-1] if self._stack else None

    def begin(
        self,
        transaction_id: str = None,
        source: str = "",
        description: str = "",
    ) -> Transaction:
        """Begin a new transaction."""
        tx_id = transaction_id or str(uuid.uuid4())[:8]

        tx = Transaction(
            transaction_id=tx_id,
            status=TransactionStatus.ACTIVE,
            source=source,
            description=description,
        )

        if self._stack:
            tx.parent_transaction_id = self._stack[-1]

        tx.initial_snapshot = self.state.snapshot()

        self._transactions[tx_id] = tx
        self._stack.append(tx_id)

        self.logger.debug(f"Transaction {tx_id} started ({source})")

        return tx

    def commit(self, transaction_id: str = None) -> bool:
        """Commit a transaction."""
        tx_id = transaction_id or self.active_transaction_id

        if not tx_id or tx_id not in self._transactions:
            self.logger.error(f"Cannot commit: transaction {tx_id} not found")
            return False

        tx = self._transactions[tx_id]

        if tx.status != TransactionStatus.ACTIVE:
            self.logger.error(f"Cannot commit: transaction {tx_id} is {tx.status.value}")
            return False

        tx.status = TransactionStatus.COMMITTED
        tx.completed_at = datetime.now(timezone.utc)
        tx.initial_snapshot = None

        if tx_id in self._stack:
            self._stack.remove(tx_id)

        self._add_to_history(tx)
        del self._transactions[tx_id]

        self.logger.debug(f"Transaction {tx_id} committed ({len(tx.changes)} changes)")

        return True

    def rollback(self, transaction_id: str = None) -> bool:
        """
        Rollback a transaction by restoring its initial snapshot.

        Raises:
            PartialWriteRisk: the snapshot could not be restored
        """
        tx_id = transaction_id or self.active_transaction_id

        if not tx_id or tx_id not in self._transactions:
            self.logger.error(f"Cannot rollback: transaction {tx_id} not found")
            return False

        tx = self._transactions[tx_id]

        if tx.status != TransactionStatus.ACTIVE:
            self.logger.error(f"Cannot rollback: transaction {tx_id} is {tx.status.value}")
            return False

        if tx_id in self._stack:
            self._stack.remove(tx_id)
        del self._transactions[tx_id]
        tx.completed_at = datetime.now(timezone.utc)

        try:
            self.state.restore(tx.initial_snapshot)
        except Exception as e:
            tx.status = TransactionStatus.FAILED
            self._add_to_history(tx)
            self.logger.critical(f"Transaction {tx_id} compensation failed: {e}")
            raise PartialWriteRisk(
                f"Rollback of transaction {tx_id} failed, store may be inconsistent",
                code=ErrorCode.TXN_COMPENSATION_FAILED,
                context={"transaction_id": tx_id, "source": tx.source},
            ) from e

        tx.status = TransactionStatus.ROLLED_BACK
        tx.initial_snapshot = None
        self._add_to_history(tx)

        self.logger.warning(f"Transaction {tx_id} rolled back ({tx.source})")

        return True

    def record_change(
        self,
        path: str,
        old_value: Any,
        new_value: Any,
        source: str = "",
    ) -> Optional[StateChange]:
        """Record a state change in active transaction."""
        tx = self.active_transaction
        if not tx:
            return None

        change = StateChange(
            change_id=str(uuid.uuid4())[:8],
            transaction_id=tx.transaction_id,
            path=path,
            old_value=old_value,
            new_value=new_value,
            source=source,
        )

        tx.changes.append(change)

        return change

    @contextmanager
    def transaction(
        self,
        source: str = "",
        description: str = "",
    ):
        """Context manager for transactions."""
        tx = self.begin(source=source, description=description)
        try:
            yield tx
            self.commit(tx.transaction_id)
        except Exception:
            self.rollback(tx.transaction_id)
            raise

    def _add_to_history(self, tx: Transaction) -> None:
        """Add transaction to history."""
        self._history.append(tx)

        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

    def get_history(self, limit: int = 20) -> List[Transaction]:
        """Get transaction history."""
        return self._history[-limit:]
