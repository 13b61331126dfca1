"""
Order entity and its lifecycle state machine.

ORDER_TRANSITIONS is the single source of truth for which status changes are
allowed; the order service and the API both consult it through next_states().
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field

from farmconnect.errors import InvalidTransition
from farmconnect.models.marketplace.common import Location


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderEvent(str, Enum):
    CONFIRM = "confirm"
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"


ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

EVENT_TARGETS: Dict[OrderEvent, OrderStatus] = {
    OrderEvent.CONFIRM: OrderStatus.CONFIRMED,
    OrderEvent.SHIP: OrderStatus.SHIPPED,
    OrderEvent.DELIVER: OrderStatus.DELIVERED,
    OrderEvent.CANCEL: OrderStatus.CANCELLED,
}


def next_states(current) -> FrozenSet[OrderStatus]:
    """Statuses reachable in one step from `current` (empty for terminal or unknown)."""
    try:
        return ORDER_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return frozenset()


def is_valid_transition(current, new) -> bool:
    try:
        return OrderStatus(new) in next_states(current)
    except ValueError:
        return False


def is_terminal(status) -> bool:
    return not next_states(status)


def status_for_event(current, event) -> OrderStatus:
    """Resolve an event against the current status; raises InvalidTransition."""
    try:
        target = EVENT_TARGETS[OrderEvent(event)]
    except ValueError:
        raise InvalidTransition(f"Unknown order event '{event}'", current=current, requested=event)
    if not is_valid_transition(current, target):
        raise InvalidTransition(
            f"Cannot {OrderEvent(event).value} an order that is {current}",
            current=current,
            requested=target.value,
        )
    return target


class Order(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    orderNumber: Optional[str] = None

    buyerId: str = Field(..., min_length=1)
    buyerName: str
    farmerId: str = Field(..., min_length=1)
    farmerName: str
    cropId: str = Field(..., min_length=1)
    cropName: str
    variety: Optional[str] = None

    quantity: float = Field(..., gt=0)
    unit: str
    pricePerUnit: float
    # quantity * pricePerUnit, fixed at creation
    totalAmount: float

    status: OrderStatus = OrderStatus.PENDING
    orderDate: datetime
    deliveryDate: Optional[datetime] = None
    location: Location = Field(default_factory=Location)
    notes: Optional[str] = None
    idempotencyKey: Optional[str] = None

    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Order":
        return cls.model_validate(record)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})


# ========= API payloads =========
class PlaceOrderRequest(BaseModel):
    cropId: str
    quantity: float = Field(..., gt=0)
    deliveryDate: Optional[datetime] = None
    notes: Optional[str] = None
    deliveryAddress: Optional[str] = None
    idempotencyKey: Optional[str] = None


class OrderStatusUpdateRequest(BaseModel):
    # plain string: unknown values reach the service and come back as invalid_transition
    status: str = Field(..., min_length=1)
