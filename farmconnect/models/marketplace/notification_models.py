from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    CONTRACT_CREATED = "contract_created"
    CONTRACT_RESPONSE = "contract_response"
    MESSAGE_RECEIVED = "message_received"


class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    userId: str = Field(..., min_length=1)
    type: NotificationType
    title: str
    message: str
    # correlation payload: orderId, buyerName, cropName, amount, ...
    data: Dict[str, Any] = Field(default_factory=dict)
    isRead: bool = False
    createdAt: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Notification":
        return cls.model_validate(record)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})
