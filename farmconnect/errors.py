# farmconnect/errors.py

from __future__ import annotations

from typing import List, Optional


class MarketplaceError(Exception):
    """Base class. `code` is stable and travels to the API boundary unchanged."""

    code = "marketplace_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class Unauthenticated(MarketplaceError):
    code = "unauthenticated"


class NotOrderOwner(MarketplaceError):
    code = "not_order_owner"


class InsufficientStock(MarketplaceError):
    code = "insufficient_stock"

    def __init__(self, message: str = "", requested: float = 0, available: Optional[float] = None, **details):
        super().__init__(message, requested=requested, available=available, **details)
        self.requested = requested
        self.available = available


class InvalidReference(MarketplaceError):
    code = "invalid_reference"


class InvalidOrder(MarketplaceError):
    code = "invalid_order"


class InvalidTransition(MarketplaceError):
    code = "invalid_transition"

    def __init__(self, message: str = "", current=None, requested=None, **details):
        super().__init__(message, current=current, requested=requested, **details)
        self.current = current
        self.requested = requested


class StoreUnavailable(MarketplaceError):
    code = "store_unavailable"


class DocumentExists(MarketplaceError):
    code = "document_exists"


class PartialFailure(MarketplaceError):
    code = "partial_failure"

    def __init__(self, message: str = "", failed_ids: Optional[List[str]] = None, **details):
        super().__init__(message, failed_ids=failed_ids or [], **details)
        self.failed_ids = list(failed_ids or [])


# HTTP status per error code (used by the FastAPI exception handler)
HTTP_STATUS = {
    Unauthenticated.code: 401,
    NotOrderOwner.code: 403,
    InvalidReference.code: 404,
    InvalidOrder.code: 422,
    InsufficientStock.code: 409,
    InvalidTransition.code: 409,
    DocumentExists.code: 409,
    PartialFailure.code: 500,
    StoreUnavailable.code: 503,
}
