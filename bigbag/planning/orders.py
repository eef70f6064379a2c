"""
planning/orders.py - Production order planning.

Turns a requirements calculation into a confirmed production order and
one task per department. The headline quantity of each task is the
department's first requirement item; raw-material purchasing is routed
to the office.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
import logging
import random
import uuid

from ..bom.models import ProductParameters, ProductionCalculation, DepartmentRequirement
from ..bom.requirements import compute_department_requirements
from ..bom.weight import with_strap_spec
from ..core import constants as C
from ..core.enums import Department, OrderPriority
from ..core.rounding import fmt_number
from ..specs.models import FabricSpec, StrapSpec

logger = logging.getLogger(__name__)

OFFICE = "Office"
ORDER_STATUS_CONFIRMED = "confirmed"
TASK_STATUS_NEW = "new"


@dataclass
class OrderTask:
    """Work assignment for one department."""
    task_id: str
    order_number: str
    department: Department
    assignee: str
    description: str
    required_quantity: float
    required_unit: str
    summary: str
    priority: OrderPriority = OrderPriority.MEDIUM
    deadline: Optional[date] = None
    status: str = TASK_STATUS_NEW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "order_number": self.order_number,
            "department": self.department.value,
            "assignee": self.assignee,
            "description": self.description,
            "required_quantity": self.required_quantity,
            "required_unit": self.required_unit,
            "summary": self.summary,
            "priority": self.priority.value,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status,
        }


@dataclass
class ProductionOrder:
    """Confirmed order with its calculation and department tasks."""
    order_number: str
    params: ProductParameters
    quantity: int
    calculation: ProductionCalculation
    fabric_spec_name: str
    strap_spec_name: Optional[str] = None
    customer: Optional[str] = None
    deadline: Optional[date] = None
    priority: OrderPriority = OrderPriority.MEDIUM
    status: str = ORDER_STATUS_CONFIRMED
    tasks: List[OrderTask] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def task_for(self, department: Department) -> Optional[OrderTask]:
        for task in self.tasks:
            if task.department == department:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_number": self.order_number,
            "product_type": self.params.product_type.value,
            "quantity": self.quantity,
            "status": self.status,
            "priority": self.priority.value,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "customer": self.customer,
            "fabric_spec_name": self.fabric_spec_name,
            "strap_spec_name": self.strap_spec_name,
            "params": self.params.to_dict(),
            "calculation": self.calculation.to_dict(),
            "tasks": [t.to_dict() for t in self.tasks],
            "created_at": self.created_at.isoformat(),
        }


def generate_order_number(now: Optional[datetime] = None, sequence: Optional[int] = None) -> str:
    """PLN-YYMMDD-NNN; NNN is random when no sequence is given."""
    now = now or datetime.now(timezone.utc)
    if sequence is None:
        sequence = random.randint(0, 999)
    return f"PLN-{now:%y%m%d}-{sequence % 1000:03d}"


def build_task(
    order_number: str,
    requirement: DepartmentRequirement,
    priority: OrderPriority = OrderPriority.MEDIUM,
    deadline: Optional[date] = None,
) -> OrderTask:
    """One department task; its required quantity is the first requirement item."""
    main = requirement.main_item
    items = ", ".join(f"{i.name}: {fmt_number(i.quantity)} {i.unit}" for i in requirement.items)
    assignee = OFFICE if requirement.department == Department.RAW_MATERIALS else requirement.department.value
    return OrderTask(
        task_id=uuid.uuid4().hex[:12],
        order_number=order_number,
        department=requirement.department,
        assignee=assignee,
        description=requirement.description,
        required_quantity=main.quantity if main else 0,
        required_unit=main.unit if main else C.UNIT_PIECES,
        summary=f"[{order_number}] {requirement.description}. Requirement: {items}",
        priority=priority,
        deadline=deadline,
    )


def plan_order(
    params: ProductParameters,
    quantity: int,
    fabric_spec: FabricSpec,
    strap_spec: Optional[StrapSpec] = None,
    *,
    customer: Optional[str] = None,
    deadline: Optional[date] = None,
    priority: OrderPriority = OrderPriority.MEDIUM,
    waste_margin: float = C.DEFAULT_WASTE_MARGIN,
    now: Optional[datetime] = None,
    sequence: Optional[int] = None,
) -> ProductionOrder:
    """
    Calculate requirements and create a confirmed order with its tasks.

    Raises:
        ValidationError, NoMatchingSpec: from the requirements calculation
    """
    calculation = compute_department_requirements(
        params, quantity, fabric_spec, strap_spec, waste_margin=waste_margin
    )
    order_number = generate_order_number(now, sequence)

    order = ProductionOrder(
        order_number=order_number,
        params=with_strap_spec(params, strap_spec),
        quantity=quantity,
        calculation=calculation,
        fabric_spec_name=fabric_spec.name,
        strap_spec_name=strap_spec.name if strap_spec and not params.is_two_strap else None,
        customer=customer,
        deadline=deadline,
        priority=priority,
    )
    if now is not None:
        order.created_at = now
    order.tasks = [
        build_task(order_number, dept, priority, deadline) for dept in calculation.departments
    ]

    logger.info(f"Planned order {order_number}: {quantity} pcs, {len(order.tasks)} tasks")
    return order
