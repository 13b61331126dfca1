# farmconnect/services/marketplace/duplicate_cleanup.py
"""
Duplicate order cleanup.

Retried or double-submitted checkouts can leave several identical order
records behind. Orders are grouped by

    (buyerId, farmerId, cropId, quantity, totalAmount, status)

and every group with more than one member is reduced to a single record,
by default the one with the latest orderDate. Status is part of the key, so
an order that has already moved on never collides with a pending copy.

This is a maintenance routine (see scripts/remove_duplicate_orders.py), not
part of the request path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from farmconnect.errors import PartialFailure
from farmconnect.models.marketplace.common import parse_dt
from farmconnect.store import ORDERS, DocumentStore
from farmconnect.store.document_store import Record

logger = logging.getLogger(__name__)

FINGERPRINT_FIELDS = ("buyerId", "farmerId", "cropId", "quantity", "totalAmount", "status")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def fingerprint(order: Record) -> Tuple[Any, ...]:
    return tuple(order.get(f) for f in FINGERPRINT_FIELDS)


def _key_part(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def group_key(fp: Tuple[Any, ...]) -> str:
    return "_".join(_key_part(v) for v in fp)


def order_date(order: Record) -> datetime:
    return parse_dt(order.get("orderDate")) or _EPOCH


@dataclass
class DuplicateGroup:
    key: str
    orders: List[Record] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.orders)


@dataclass
class CleanupReport:
    groups_found: int = 0
    deleted: int = 0
    failed_ids: List[str] = field(default_factory=list)
    final_count: Optional[int] = None
    dry_run: bool = False

    def raise_for_failures(self) -> None:
        if self.failed_ids:
            raise PartialFailure(
                f"{len(self.failed_ids)} duplicate orders could not be deleted",
                failed_ids=self.failed_ids,
            )


def select_for_deletion(group: DuplicateGroup, keep_most_recent: bool = True) -> List[Record]:
    """
    Everything in the group except the survivor. With keep_most_recent the
    survivor is the newest orderDate; ties keep scan order (stable sort).
    """
    if keep_most_recent:
        ordered = sorted(group.orders, key=order_date, reverse=True)
    else:
        ordered = list(group.orders)
    return ordered[1:]


class DuplicateOrderCleanup:

    def __init__(self, store: DocumentStore):
        self.store = store

    def find_duplicates(self) -> List[DuplicateGroup]:
        logger.info("Fetching all orders from database...")
        orders = self.store.query(ORDERS)
        logger.info("Found %d total orders", len(orders))

        groups: Dict[Tuple[Any, ...], List[Record]] = {}
        for order in orders:
            groups.setdefault(fingerprint(order), []).append(order)

        duplicates = [
            DuplicateGroup(key=group_key(fp), orders=members)
            for fp, members in groups.items()
            if len(members) > 1
        ]
        logger.info("Found %d groups of duplicate orders", len(duplicates))
        return duplicates

    def display_duplicates(self, duplicates: List[DuplicateGroup]) -> None:
        if not duplicates:
            logger.info("No duplicate orders found")
            return

        for index, group in enumerate(duplicates, start=1):
            logger.info("%d. Group key: %s (%d orders)", index, group.key, group.count)
            for o in group.orders:
                logger.info(
                    "   order %s | buyer %s (%s) | farmer %s (%s) | %s %s %s | $%s | %s | %s",
                    o.get("id"),
                    o.get("buyerName"), o.get("buyerId"),
                    o.get("farmerName"), o.get("farmerId"),
                    o.get("cropName"), o.get("quantity"), o.get("unit"),
                    o.get("totalAmount"),
                    o.get("status"),
                    o.get("orderDate"),
                )

    def _remove(self, duplicates: List[DuplicateGroup], keep_most_recent: bool) -> Tuple[int, List[str]]:
        deleted = 0
        failed: List[str] = []

        for group in duplicates:
            doomed = select_for_deletion(group, keep_most_recent)
            logger.info("Deleting %d duplicate orders for group %s", len(doomed), group.key)

            for order in doomed:
                order_id = order.get("id")
                try:
                    if self.store.delete(ORDERS, order_id):
                        deleted += 1
                        logger.info("   Deleted order %s", order_id)
                    else:
                        logger.warning("   Order %s was already gone", order_id)
                except Exception as e:
                    failed.append(order_id)
                    logger.error("   Failed to delete order %s: %s", order_id, e)

        return deleted, failed

    def remove_duplicates(self, duplicates: List[DuplicateGroup], keep_most_recent: bool = True) -> int:
        """Best effort: one failed delete is logged and the rest still run."""
        deleted, _ = self._remove(duplicates, keep_most_recent)
        return deleted

    def cleanup(self, keep_most_recent: bool = True, dry_run: bool = False) -> CleanupReport:
        logger.info("Starting duplicate order cleanup...")
        duplicates = self.find_duplicates()
        report = CleanupReport(groups_found=len(duplicates), dry_run=dry_run)

        if not duplicates:
            report.final_count = self.store.count(ORDERS)
            return report

        self.display_duplicates(duplicates)
        if dry_run:
            logger.info("Dry run: nothing deleted")
            report.final_count = self.store.count(ORDERS)
            return report

        strategy = "most recent" if keep_most_recent else "first scanned"
        logger.warning("Deleting duplicate orders; keeping the %s order of each group", strategy)
        report.deleted, report.failed_ids = self._remove(duplicates, keep_most_recent)
        logger.info("Cleanup complete! Deleted %d duplicate orders.", report.deleted)

        report.final_count = self.store.count(ORDERS)
        logger.info("Final order count: %d", report.final_count)
        return report
