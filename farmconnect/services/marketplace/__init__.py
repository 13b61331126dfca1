from .crop_service import CropService
from .duplicate_cleanup import DuplicateGroup, DuplicateOrderCleanup
from .notification_service import NotificationService
from .orders_service import OrderService

__all__ = [
    "CropService",
    "DuplicateGroup",
    "DuplicateOrderCleanup",
    "NotificationService",
    "OrderService",
]
