# farmconnect/services/marketplace/system_notifications.py
"""
Local "system" mirror of inbox notifications (desktop/OS popups).

The inbox record is the source of truth; the mirror is best effort.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from farmconnect.models.marketplace.notification_models import Notification, NotificationType

logger = logging.getLogger(__name__)

ICONS = {
    NotificationType.ORDER_PLACED.value: "🛒",
    NotificationType.ORDER_CONFIRMED.value: "✅",
    NotificationType.ORDER_SHIPPED.value: "🚚",
    NotificationType.ORDER_DELIVERED.value: "📦",
    NotificationType.ORDER_CANCELLED.value: "❌",
    NotificationType.CONTRACT_CREATED.value: "📋",
    NotificationType.CONTRACT_RESPONSE.value: "📝",
    NotificationType.MESSAGE_RECEIVED.value: "💬",
}


@dataclass
class SystemAlert:
    title: str
    body: str
    tag: str
    data: Dict[str, Any] = field(default_factory=dict)


def build_system_alert(notification: Notification) -> SystemAlert:
    ntype = notification.type
    data = notification.data or {}

    if ntype.startswith("order_"):
        tag = f"order-{data.get('orderId') or notification.id}"
    elif ntype.startswith("contract_"):
        tag = f"contract-{data.get('contractId') or notification.id}"
    else:
        tag = f"message-{data.get('chatRoomId') or notification.id}"

    icon = ICONS.get(ntype, "🔔")
    return SystemAlert(
        title=f"{icon} {notification.title}",
        body=notification.message,
        tag=tag,
        data=dict(data),
    )


class SystemNotifier:
    def show(self, alert: SystemAlert) -> None:
        raise NotImplementedError

    def mirror(self, notification: Notification) -> None:
        self.show(build_system_alert(notification))


class LoggingSystemNotifier(SystemNotifier):
    """Writes alerts to the log; handy for headless deployments."""

    def show(self, alert: SystemAlert) -> None:
        logger.info("System alert [%s] %s: %s", alert.tag, alert.title, alert.body)
