"""
transactions/ - Snapshot/rollback unit of work for the in-memory store.
"""

from .schemas import Transaction, TransactionStatus, StateChange
from .manager import TransactionManager

__all__ = ["Transaction", "TransactionStatus", "StateChange", "TransactionManager"]
