from .document_store import ASCENDING, DESCENDING, DocumentStore, InMemoryDocumentStore

# collection names
CROPS = "crops"
ORDERS = "orders"
NOTIFICATIONS = "notifications"
ORDER_REQUESTS = "order_requests"

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "DocumentStore",
    "InMemoryDocumentStore",
    "CROPS",
    "ORDERS",
    "NOTIFICATIONS",
    "ORDER_REQUESTS",
]
