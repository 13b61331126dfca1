# farmconnect/services/marketplace/notification_service.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from farmconnect.errors import InvalidReference
from farmconnect.models.marketplace.common import utcnow
from farmconnect.models.marketplace.notification_models import Notification, NotificationType
from farmconnect.services.marketplace.system_notifications import SystemNotifier
from farmconnect.store import DESCENDING, NOTIFICATIONS, DocumentStore
from farmconnect.store.document_store import sort_records

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "confirmed": "Your order has been confirmed by the farmer",
    "shipped": "Your order has been shipped",
    "delivered": "Your order has been delivered",
    "cancelled": "Your order has been cancelled",
}


def _fmt_qty(qty: float) -> str:
    return f"{qty:g}"


class NotificationService:
    """
    Per-user inbox stored in the `notifications` collection.

    notify() writes the inbox record first and then hands it to the optional
    system mirror; a mirror failure is logged and never reaches the caller.
    """

    def __init__(
        self,
        store: DocumentStore,
        mirror: Optional[SystemNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.mirror = mirror
        self.clock = clock

    # =========================
    # CORE
    # =========================
    def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> str:
        notification = Notification(
            userId=user_id,
            type=type,
            title=title,
            message=message,
            data={k: v for k, v in (data or {}).items() if v is not None},
            isRead=False,
            createdAt=self.clock(),
        )
        notification.id = self.store.create(NOTIFICATIONS, notification.to_record())
        logger.info("Notification %s (%s) -> user %s", notification.id, notification.type, user_id)

        if self.mirror is not None:
            try:
                self.mirror.mirror(notification)
            except Exception as e:
                logger.warning("System mirror failed for notification %s: %s", notification.id, e)

        return notification.id

    # =========================
    # ORDER EVENTS
    # =========================
    def notify_order_placed(
        self,
        farmer_id: str,
        buyer_name: str,
        crop_name: str,
        quantity: float,
        unit: str,
        total_amount: float,
        order_id: str,
    ) -> str:
        return self.notify(
            farmer_id,
            NotificationType.ORDER_PLACED,
            "New Order Received!",
            f"{buyer_name or 'A buyer'} has placed an order for {_fmt_qty(quantity)} {unit} "
            f"of {crop_name} worth ${total_amount:.2f}",
            {
                "orderId": order_id,
                "buyerName": buyer_name,
                "cropName": crop_name,
                "amount": total_amount,
            },
        )

    def notify_order_status_update(
        self,
        buyer_id: str,
        farmer_name: str,
        crop_name: str,
        status: str,
        order_id: str,
    ) -> str:
        status = getattr(status, "value", status)
        if status not in STATUS_MESSAGES:
            raise ValueError(f"No buyer notification for order status '{status}'")
        return self.notify(
            buyer_id,
            NotificationType(f"order_{status}"),
            "Order Update",
            f"{STATUS_MESSAGES[status]} for {crop_name} from {farmer_name}",
            {
                "orderId": order_id,
                "farmerName": farmer_name,
                "cropName": crop_name,
            },
        )

    # =========================
    # CONTRACTS / CHAT
    # =========================
    def notify_contract_created(self, farmer_id: str, buyer_name: str, crop_type: str, contract_id: str) -> str:
        return self.notify(
            farmer_id,
            NotificationType.CONTRACT_CREATED,
            "New Contract Request",
            f"{buyer_name} has created a contract for {crop_type}",
            {"contractId": contract_id, "buyerName": buyer_name, "cropName": crop_type},
        )

    def notify_contract_response(
        self,
        buyer_id: str,
        farmer_name: str,
        crop_type: str,
        contract_id: str,
        price_per_unit: Optional[float] = None,
    ) -> str:
        message = f"{farmer_name} has responded to your contract for {crop_type}"
        if price_per_unit is not None:
            message += f" at ${price_per_unit:.2f} per unit"
        return self.notify(
            buyer_id,
            NotificationType.CONTRACT_RESPONSE,
            "New Contract Response",
            message,
            {"contractId": contract_id, "farmerName": farmer_name, "cropName": crop_type},
        )

    def notify_message_received(self, user_id: str, sender_name: str, chat_room_id: str) -> str:
        return self.notify(
            user_id,
            NotificationType.MESSAGE_RECEIVED,
            "New Message",
            f"You have a new message from {sender_name}",
            {"chatRoomId": chat_room_id, "senderName": sender_name},
        )

    # =========================
    # INBOX
    # =========================
    def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        filters: Dict[str, Any] = {"userId": user_id}
        if unread_only:
            filters["isRead"] = False
        rows = self.store.query(NOTIFICATIONS, filters, sort=[("createdAt", DESCENDING)])
        return [Notification.from_record(r) for r in rows]

    def unread_count(self, user_id: str) -> int:
        return self.store.count(NOTIFICATIONS, {"userId": user_id, "isRead": False})

    def mark_as_read(self, notification_id: str, user_id: Optional[str] = None) -> Notification:
        where = {"userId": user_id} if user_id else None
        doc = self.store.find_and_update(NOTIFICATIONS, notification_id, where=where, set_fields={"isRead": True})
        if doc is None:
            raise InvalidReference(f"Notification {notification_id} not found")
        return Notification.from_record(doc)

    def mark_all_as_read(self, user_id: str) -> int:
        updated = 0
        for row in self.store.query(NOTIFICATIONS, {"userId": user_id, "isRead": False}):
            if self.store.find_and_update(NOTIFICATIONS, row["id"], where={"isRead": False}, set_fields={"isRead": True}):
                updated += 1
        logger.info("Marked %d notifications read for user %s", updated, user_id)
        return updated

    def subscribe_to_notifications(self, user_id: str, callback: Callable[[List[Notification]], None]):
        """Callback receives the user's inbox, newest first, on every change."""

        def on_snapshot(rows):
            rows = sort_records(rows, [("createdAt", DESCENDING)])
            callback([Notification.from_record(r) for r in rows])

        return self.store.subscribe(NOTIFICATIONS, {"userId": user_id}, on_snapshot)
