# farmconnect/services/marketplace/crop_service.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from farmconnect.errors import InsufficientStock, InvalidReference, StoreUnavailable
from farmconnect.models.marketplace.common import utcnow
from farmconnect.models.marketplace.crop_models import (
    ORDERABLE_CROP_STATUSES,
    QUANTITY_EPSILON,
    CropListing,
    CropStatus,
)
from farmconnect.store import CROPS, DocumentStore

logger = logging.getLogger(__name__)


class CropService:
    """
    Crop listing inventory.

    Every quantity change is a single conditional update against the store,
    so concurrent orders can never take the listing below zero. Deletion of a
    sold-out listing is recorded as a persisted `deleteAfter` timestamp and
    applied by sweep_due_deletions(), which a periodic job calls.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utcnow,
        delete_delay: timedelta = timedelta(hours=2),
    ):
        self.store = store
        self.clock = clock
        self.delete_delay = delete_delay

    # =========================
    # READ / CREATE
    # =========================
    def create_listing(self, listing: Union[CropListing, Dict[str, Any]]) -> CropListing:
        if isinstance(listing, dict):
            listing = CropListing.model_validate(listing)
        now = self.clock()
        listing.createdAt = listing.createdAt or now
        listing.updatedAt = now
        listing.id = self.store.create(CROPS, listing.to_record())
        logger.info("Crop listing %s created for farmer %s", listing.id, listing.farmerId)
        return listing

    def get_crop(self, crop_id: str) -> CropListing:
        if not crop_id:
            raise InvalidReference("Crop id is required")
        record = self.store.get(CROPS, crop_id)
        if record is None:
            raise InvalidReference(f"Crop {crop_id} not found")
        try:
            return CropListing.from_record(record)
        except ValidationError as e:
            raise InvalidReference(f"Invalid crop data for {crop_id}: missing required fields") from e

    def list_available(self, farmer_id: Optional[str] = None) -> List[CropListing]:
        filters: Dict[str, Any] = {"status": {"$in": list(ORDERABLE_CROP_STATUSES)}, "quantity": {"$gt": QUANTITY_EPSILON}}
        if farmer_id:
            filters["farmerId"] = farmer_id
        return [CropListing.from_record(r) for r in self.store.query(CROPS, filters)]

    # =========================
    # STOCK
    # =========================
    def decrement_stock(self, crop_id: str, quantity: float) -> CropListing:
        """
        Atomic "decrement if quantity >= requested". A listing drained to zero
        by purchases becomes `sold`.
        """
        now = self.clock()
        doc = self.store.find_and_update(
            CROPS,
            crop_id,
            where={
                "quantity": {"$gte": quantity - QUANTITY_EPSILON},
                "status": {"$in": list(ORDERABLE_CROP_STATUSES)},
            },
            set_fields={"updatedAt": now},
            inc={"quantity": -quantity},
        )
        if doc is None:
            current = self.store.get(CROPS, crop_id)
            if current is None:
                raise InvalidReference(f"Crop {crop_id} not found")
            available = current.get("quantity") if current.get("status") in ORDERABLE_CROP_STATUSES else 0
            raise InsufficientStock(
                f"Requested {quantity:g} but only {available or 0:g} available",
                requested=quantity,
                available=available,
            )

        if doc.get("quantity", 0) <= QUANTITY_EPSILON:
            sold = self.store.find_and_update(
                CROPS,
                crop_id,
                where={"quantity": {"$lte": QUANTITY_EPSILON}, "status": {"$in": list(ORDERABLE_CROP_STATUSES)}},
                set_fields={"status": CropStatus.SOLD.value, "quantity": 0, "updatedAt": now},
            )
            if sold is not None:
                doc = sold
                logger.info("Crop %s sold out by purchases", crop_id)

        return CropListing.from_record(doc)

    def restore_stock(self, crop_id: str, quantity: float) -> Optional[CropListing]:
        """Give quantity back (order compensation or cancellation). A `sold` listing reopens."""
        now = self.clock()
        doc = self.store.find_and_update(
            CROPS,
            crop_id,
            where={"status": {"$ne": CropStatus.DELETED.value}},
            set_fields={"updatedAt": now},
            inc={"quantity": quantity},
        )
        if doc is None:
            logger.warning("Stock for crop %s not restored (missing or deleted)", crop_id)
            return None

        if doc.get("status") == CropStatus.SOLD.value and doc.get("quantity", 0) > QUANTITY_EPSILON:
            reopened = self.store.find_and_update(
                CROPS,
                crop_id,
                where={"status": CropStatus.SOLD.value, "quantity": {"$gt": QUANTITY_EPSILON}},
                set_fields={"status": CropStatus.AVAILABLE.value, "updatedAt": now},
            )
            doc = reopened or doc

        logger.info("Restored %g to crop %s (now %g)", quantity, crop_id, doc.get("quantity", 0))
        return CropListing.from_record(doc)

    # =========================
    # SOLD OUT + DEFERRED DELETION
    # =========================
    def mark_sold_out(self, crop_id: str, order_id: str) -> CropListing:
        now = self.clock()
        doc = self.store.find_and_update(
            CROPS,
            crop_id,
            where={"status": {"$ne": CropStatus.DELETED.value}},
            set_fields={
                "status": CropStatus.SOLD_OUT.value,
                "soldOutAt": now,
                "soldToOrderId": order_id,
                "deleteAfter": now + self.delete_delay,
                "updatedAt": now,
            },
        )
        if doc is None:
            raise InvalidReference(f"Crop {crop_id} not found or already deleted")
        logger.info("Crop %s sold out to order %s; deletion due %s", crop_id, order_id, doc.get("deleteAfter"))
        return CropListing.from_record(doc)

    def sweep_due_deletions(self, now: Optional[datetime] = None) -> int:
        """Mark every sold-out listing whose deleteAfter has passed as deleted."""
        now = now or self.clock()
        due = {"status": CropStatus.SOLD_OUT.value, "deleteAfter": {"$lte": now}}

        deleted = 0
        for row in self.store.query(CROPS, due):
            try:
                doc = self.store.find_and_update(
                    CROPS,
                    row["id"],
                    where=due,
                    set_fields={"status": CropStatus.DELETED.value, "deletedAt": now, "updatedAt": now},
                )
            except StoreUnavailable as e:
                # picked up again on the next sweep
                logger.error("Error deleting crop %s: %s", row["id"], e)
                continue
            if doc is not None:
                deleted += 1

        if deleted:
            logger.info("Sweep marked %d crop listings deleted", deleted)
        return deleted
