"""
Pytest configuration and shared fixtures for marketplace tests.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# farmconnect.server builds an app at import time; keep it off Mongo and the scheduler
os.environ.setdefault("DISABLE_MONGO", "1")
os.environ.setdefault("ENABLE_SCHEDULER", "0")

from farmconnect.services.marketplace.crop_service import CropService  # noqa: E402
from farmconnect.services.marketplace.notification_service import NotificationService  # noqa: E402
from farmconnect.services.marketplace.orders_service import OrderService  # noqa: E402
from farmconnect.store import InMemoryDocumentStore  # noqa: E402


class FixedClock:
    """Deterministic clock; call advance() to move time forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def notifications(store, clock):
    return NotificationService(store, clock=clock)


@pytest.fixture
def crops(store, clock):
    return CropService(store, clock=clock)


@pytest.fixture
def orders(store, crops, notifications, clock):
    return OrderService(store, crops, notifications, clock=clock)


@pytest.fixture
def buyer():
    return {"userId": "buyer-1", "name": "Asha Traders", "email": "asha@example.com", "role": "buyer"}


@pytest.fixture
def farmer():
    return {"userId": "farmer-1", "name": "Ravi Patil", "email": "ravi@example.com", "role": "farmer"}


@pytest.fixture
def crop(crops, farmer):
    """Tomato listing with 10 kg at $2.50/kg."""
    return crops.create_listing({
        "farmerId": farmer["userId"],
        "farmerName": farmer["name"],
        "cropName": "Tomato",
        "variety": "Roma",
        "quantity": 10,
        "unit": "kg",
        "pricePerUnit": 2.5,
        "isOrganic": True,
        "location": {"address": "Nashik, MH", "coordinates": {"lat": 19.99, "lng": 73.78}},
    })
