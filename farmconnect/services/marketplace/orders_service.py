# farmconnect/services/marketplace/orders_service.py

from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from farmconnect.errors import (
    DocumentExists,
    InsufficientStock,
    InvalidOrder,
    InvalidReference,
    InvalidTransition,
    NotOrderOwner,
    StoreUnavailable,
    Unauthenticated,
)
from farmconnect.models.marketplace.common import Coordinates, Location, parse_dt, utcnow
from farmconnect.models.marketplace.crop_models import QUANTITY_EPSILON, CropStatus
from farmconnect.models.marketplace.order_models import (
    Order,
    OrderEvent,
    OrderStatus,
    is_valid_transition,
    status_for_event,
)
from farmconnect.services.marketplace.crop_service import CropService
from farmconnect.services.marketplace.notification_service import NotificationService
from farmconnect.store import DESCENDING, ORDER_REQUESTS, ORDERS, DocumentStore

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order lifecycle: buyers place orders against crop listings, farmers move
    them through pending -> confirmed -> shipped -> delivered (or cancel a
    pending one).

    Write ordering per operation is fixed: order record, then crop, then
    notification. A crop failure after the order record exists is compensated
    by deleting the order again. Notifications are sent only after the state
    change is stored and a notifier failure never undoes it.
    """

    def __init__(
        self,
        store: DocumentStore,
        crops: CropService,
        notifier: NotificationService,
        clock: Callable[[], datetime] = utcnow,
        restore_stock_on_cancel: bool = False,
        claim_lease: timedelta = timedelta(minutes=5),
    ):
        self.store = store
        self.crops = crops
        self.notifier = notifier
        self.clock = clock
        self.restore_stock_on_cancel = restore_stock_on_cancel
        self.claim_lease = claim_lease

    # =========================
    # ID GENERATORS
    # =========================
    @staticmethod
    def generate_order_number(now: Optional[datetime] = None) -> str:
        # ORD-YYYYMMDD-XXXXX
        now = now or utcnow()
        date_part = now.strftime("%Y%m%d")
        suffix = random.randint(10000, 99999)
        return f"ORD-{date_part}-{suffix}"

    # =========================
    # IDENTITY HELPERS
    # =========================
    @staticmethod
    def _require_user(identity: Optional[Dict[str, Any]]) -> str:
        uid = (identity or {}).get("userId")
        if not uid:
            raise Unauthenticated("User not authenticated")
        return uid

    @staticmethod
    def _display_name(identity: Dict[str, Any]) -> str:
        return (
            identity.get("name")
            or identity.get("displayName")
            or identity.get("email")
            or "Unknown Buyer"
        )

    # =========================
    # READ
    # =========================
    def get_order(self, order_id: str) -> Order:
        record = self.store.get(ORDERS, order_id) if order_id else None
        if record is None:
            raise InvalidReference(f"Order {order_id} not found")
        try:
            return Order.from_record(record)
        except ValidationError as e:
            raise InvalidReference(f"Order {order_id} is malformed") from e

    def get_order_for_user(self, identity: Optional[Dict[str, Any]], order_id: str) -> Order:
        uid = self._require_user(identity)
        order = self.get_order(order_id)
        if uid not in (order.buyerId, order.farmerId):
            raise NotOrderOwner("You are not a party to this order")
        return order

    def _list(self, filters: Dict[str, Any]) -> List[Order]:
        rows = self.store.query(ORDERS, filters, sort=[("orderDate", DESCENDING)])
        orders = []
        for r in rows:
            try:
                orders.append(Order.from_record(r))
            except ValidationError:
                logger.warning("Skipping malformed order record %s", r.get("id"))
        return orders

    def list_orders_for_buyer(self, buyer_id: str) -> List[Order]:
        return self._list({"buyerId": buyer_id})

    def list_orders_for_farmer(self, farmer_id: str) -> List[Order]:
        return self._list({"farmerId": farmer_id})

    def get_kpis(self, farmer_id: str) -> Dict[str, Any]:
        orders = self.list_orders_for_farmer(farmer_id)
        by_status = {s.value: 0 for s in OrderStatus}
        for o in orders:
            by_status[o.status] = by_status.get(o.status, 0) + 1

        return {
            "total_orders": len(orders),
            "total_pending": by_status[OrderStatus.PENDING.value],
            "total_active": by_status[OrderStatus.CONFIRMED.value] + by_status[OrderStatus.SHIPPED.value],
            "total_delivered": by_status[OrderStatus.DELIVERED.value],
            "total_cancelled": by_status[OrderStatus.CANCELLED.value],
            "total_revenue": round(
                sum(o.totalAmount for o in orders if o.status == OrderStatus.DELIVERED.value), 2
            ),
        }

    # =========================
    # PLACE ORDER (buyer)
    # =========================
    def place_order(
        self,
        identity: Optional[Dict[str, Any]],
        crop_id: str,
        quantity: float,
        delivery_date: Any = None,
        notes: Optional[str] = None,
        delivery_address: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        buyer_id = self._require_user(identity)

        if quantity is None or not math.isfinite(quantity) or quantity <= 0:
            raise InvalidOrder("Please enter a valid quantity")

        if idempotency_key:
            existing = self._find_by_key(buyer_id, idempotency_key)
            if existing is not None:
                logger.info("Repeated submission %s:%s returns order %s", buyer_id, idempotency_key, existing.id)
                return existing

        crop = self.crops.get_crop(crop_id)
        if crop.status == CropStatus.DELETED.value:
            raise InvalidReference(f"Crop {crop_id} is no longer listed")
        if not crop.is_orderable:
            raise InsufficientStock(f"{crop.cropName} is {crop.status}", requested=quantity, available=0)
        if quantity > crop.quantity + QUANTITY_EPSILON:
            raise InsufficientStock(
                "Quantity exceeds available stock",
                requested=quantity,
                available=crop.quantity,
            )

        claim_id = None
        if idempotency_key:
            claim_id, existing = self._claim(buyer_id, crop_id, idempotency_key)
            if existing is not None:
                return existing

        now = self.clock()
        total_amount = quantity * crop.pricePerUnit
        order = Order(
            orderNumber=self.generate_order_number(now),
            buyerId=buyer_id,
            buyerName=self._display_name(identity),
            farmerId=crop.farmerId,
            farmerName=crop.farmerName,
            cropId=crop.id,
            cropName=crop.cropName,
            variety=crop.variety,
            quantity=quantity,
            unit=crop.unit,
            pricePerUnit=crop.pricePerUnit,
            totalAmount=total_amount,
            status=OrderStatus.PENDING,
            orderDate=now,
            deliveryDate=parse_dt(delivery_date),
            location=Location(
                address=delivery_address or crop.location.address or "Address not specified",
                coordinates=crop.location.coordinates or Coordinates(),
            ),
            notes=notes or "",
            idempotencyKey=idempotency_key,
            createdAt=now,
            updatedAt=now,
        )

        try:
            order.id = self.store.create(ORDERS, order.to_record())
        except Exception:
            self._release_claim(claim_id)
            raise
        logger.info("Order %s created: buyer %s, crop %s, qty %g", order.id, buyer_id, crop.id, quantity)

        try:
            self.crops.decrement_stock(crop.id, quantity)
        except (InsufficientStock, InvalidReference, StoreUnavailable) as e:
            logger.warning("Stock update failed for order %s (%s); rolling back", order.id, e.code)
            self._compensate_order(order.id, claim_id)
            raise

        if claim_id:
            try:
                self.store.update(ORDER_REQUESTS, claim_id, {"orderId": order.id})
            except StoreUnavailable as e:
                # the order itself carries the key, so a retry still finds it
                logger.warning("Could not link claim %s to order %s: %s", claim_id, order.id, e)

        self._send(
            order.id,
            lambda: self.notifier.notify_order_placed(
                farmer_id=order.farmerId,
                buyer_name=order.buyerName,
                crop_name=order.cropName,
                quantity=order.quantity,
                unit=order.unit,
                total_amount=order.totalAmount,
                order_id=order.id,
            ),
        )
        return order

    def _find_by_key(self, buyer_id: str, key: str) -> Optional[Order]:
        existing = self._list({"buyerId": buyer_id, "idempotencyKey": key})
        return existing[0] if existing else None

    def _claim(self, buyer_id: str, crop_id: str, key: str) -> Tuple[Optional[str], Optional[Order]]:
        """
        At-most-once guard for a buyer-supplied idempotency key.
        Returns (claim_id, None) for a fresh key, (None, order) for a repeat.

        A claim that never got its order (the placing process died) is taken
        over once it is older than `claim_lease`.
        """
        claim_id = f"{buyer_id}:{key}"
        now = self.clock()
        try:
            self.store.create(
                ORDER_REQUESTS,
                {"buyerId": buyer_id, "cropId": crop_id, "orderId": None, "createdAt": now},
                doc_id=claim_id,
            )
            return claim_id, None
        except DocumentExists:
            existing = self._find_by_key(buyer_id, key)
            if existing is not None:
                logger.info("Duplicate submission for key %s; returning order %s", claim_id, existing.id)
                return None, existing

            stale = self.store.find_and_update(
                ORDER_REQUESTS,
                claim_id,
                where={"orderId": None, "createdAt": {"$lte": now - self.claim_lease}},
                set_fields={"cropId": crop_id, "createdAt": now},
            )
            if stale is not None:
                logger.warning("Taking over abandoned idempotency claim %s", claim_id)
                return claim_id, None
            raise DocumentExists("An order with this idempotency key is already being placed")

    def _release_claim(self, claim_id: Optional[str]) -> None:
        if not claim_id:
            return
        try:
            self.store.delete(ORDER_REQUESTS, claim_id)
        except StoreUnavailable as e:
            logger.error("Could not release idempotency claim %s: %s", claim_id, e)

    def _compensate_order(self, order_id: str, claim_id: Optional[str]) -> None:
        try:
            self.store.delete(ORDERS, order_id)
        except StoreUnavailable as e:
            # left for the duplicate cleanup / manual repair
            logger.error("Compensation failed, order %s remains without stock: %s", order_id, e)
        self._release_claim(claim_id)

    # =========================
    # STATUS UPDATES (farmer)
    # =========================
    def update_order_status(self, identity: Optional[Dict[str, Any]], order_id: str, new_status) -> Order:
        farmer_id = self._require_user(identity)

        try:
            target = OrderStatus(getattr(new_status, "value", new_status))
        except ValueError:
            raise InvalidTransition(f"Unknown order status '{new_status}'", requested=new_status)

        order = self.get_order(order_id)
        if order.farmerId != farmer_id:
            raise NotOrderOwner("Only the farmer on this order can update it")
        if not is_valid_transition(order.status, target):
            raise InvalidTransition(
                f"Cannot move order from {order.status} to {target.value}",
                current=order.status,
                requested=target.value,
            )

        now = self.clock()
        doc = self.store.find_and_update(
            ORDERS,
            order_id,
            where={"status": order.status},
            set_fields={"status": target.value, "updatedAt": now},
        )
        if doc is None:
            latest = self.store.get(ORDERS, order_id)
            current = latest.get("status") if latest else None
            raise InvalidTransition(
                f"Order {order_id} changed to {current} before it could move to {target.value}",
                current=current,
                requested=target.value,
            )
        updated = Order.from_record(doc)
        logger.info("Order %s: %s -> %s", order_id, order.status, target.value)

        try:
            self._apply_crop_side_effects(updated, target)
        except StoreUnavailable:
            self._revert_status(order_id, target, order.status)
            raise

        self._send(
            order_id,
            lambda: self.notifier.notify_order_status_update(
                buyer_id=updated.buyerId,
                farmer_name=updated.farmerName,
                crop_name=updated.cropName,
                status=target.value,
                order_id=order_id,
            ),
        )
        return updated

    def _apply_crop_side_effects(self, order: Order, target: OrderStatus) -> None:
        if target == OrderStatus.CONFIRMED:
            try:
                self.crops.mark_sold_out(order.cropId, order.id)
            except InvalidReference as e:
                # weak reference; the listing may already be gone
                logger.warning("Order %s confirmed but crop not marked sold out: %s", order.id, e)
        elif target == OrderStatus.CANCELLED and self.restore_stock_on_cancel:
            self.crops.restore_stock(order.cropId, order.quantity)

    def _revert_status(self, order_id: str, from_status: OrderStatus, to_status: str) -> None:
        try:
            self.store.find_and_update(
                ORDERS,
                order_id,
                where={"status": from_status.value},
                set_fields={"status": to_status, "updatedAt": self.clock()},
            )
            logger.warning("Order %s reverted to %s after crop update failure", order_id, to_status)
        except StoreUnavailable as e:
            logger.error("Could not revert order %s to %s: %s", order_id, to_status, e)

    def apply_event(self, identity: Optional[Dict[str, Any]], order_id: str, event) -> Order:
        order = self.get_order(order_id)
        target = status_for_event(order.status, event)
        return self.update_order_status(identity, order_id, target)

    def confirm_order(self, identity, order_id: str) -> Order:
        return self.apply_event(identity, order_id, OrderEvent.CONFIRM)

    def ship_order(self, identity, order_id: str) -> Order:
        return self.apply_event(identity, order_id, OrderEvent.SHIP)

    def deliver_order(self, identity, order_id: str) -> Order:
        return self.apply_event(identity, order_id, OrderEvent.DELIVER)

    def cancel_order(self, identity, order_id: str) -> Order:
        return self.apply_event(identity, order_id, OrderEvent.CANCEL)

    # =========================
    # NOTIFICATIONS
    # =========================
    @staticmethod
    def _send(order_id: str, send: Callable[[], Any]) -> None:
        try:
            send()
        except Exception as e:
            logger.error("Failed to send notification for order %s, but the order was saved: %s", order_id, e)
