"""
inventory/ - Warehouse batches and deductions.
"""

from .models import MaterialDescriptor, InventoryBatch, BatchDeduction, plan_deduction

__all__ = ["MaterialDescriptor", "InventoryBatch", "BatchDeduction", "plan_deduction"]
