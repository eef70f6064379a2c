"""
planning/ - Production orders and department tasks.
"""

from .orders import (
    OrderTask,
    ProductionOrder,
    build_task,
    generate_order_number,
    plan_order,
    OFFICE,
)

__all__ = [
    "OrderTask",
    "ProductionOrder",
    "build_task",
    "generate_order_number",
    "plan_order",
    "OFFICE",
]
