"""
store/ - Production store implementations (memory, SQL).
"""

from .base import ProductionStore
from .memory import InMemoryProductionStore
from .sql import SqlProductionStore, create_store_engine

__all__ = [
    "ProductionStore",
    "InMemoryProductionStore",
    "SqlProductionStore",
    "create_store_engine",
]
