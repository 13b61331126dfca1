from datetime import timedelta

import pytest

from farmconnect.errors import InsufficientStock, InvalidReference, StoreUnavailable
from farmconnect.services.marketplace.crop_service import CropService
from farmconnect.store import CROPS


class TestStock:
    def test_decrement_to_zero_marks_sold(self, crops, store, crop):
        listing = crops.decrement_stock(crop.id, 10)
        assert listing.quantity == 0
        assert listing.status == "sold"
        assert store.get(CROPS, crop.id)["status"] == "sold"

    def test_fractional_decrements_reach_zero(self, crops, store, farmer):
        listing = crops.create_listing({
            "farmerId": farmer["userId"], "farmerName": farmer["name"],
            "cropName": "Saffron", "quantity": 0.3, "pricePerUnit": 900.0,
        })
        crops.decrement_stock(listing.id, 0.1)
        crops.decrement_stock(listing.id, 0.1)
        assert crops.get_crop(listing.id).quantity == 0.1

        last = crops.decrement_stock(listing.id, 0.1)
        assert last.status == "sold"
        assert store.get(CROPS, listing.id)["quantity"] == 0
        assert crops.list_available(farmer["userId"]) == []

    def test_decrement_refuses_more_than_available(self, crops, store, crop):
        with pytest.raises(InsufficientStock) as exc:
            crops.decrement_stock(crop.id, 10.5)
        assert exc.value.available == 10
        assert store.get(CROPS, crop.id)["quantity"] == 10

    def test_decrement_missing_crop(self, crops):
        with pytest.raises(InvalidReference):
            crops.decrement_stock("ghost", 1)

    def test_restore_reopens_sold_listing(self, crops, crop):
        crops.decrement_stock(crop.id, 10)
        listing = crops.restore_stock(crop.id, 3)
        assert listing.quantity == 3
        assert listing.status == "available"

    def test_restore_skips_deleted_listing(self, crops, store, crop):
        store.update(CROPS, crop.id, {"status": "deleted"})
        assert crops.restore_stock(crop.id, 3) is None
        assert store.get(CROPS, crop.id)["quantity"] == 10

    def test_list_available(self, crops, crop, farmer):
        sold = crops.create_listing({
            "farmerId": farmer["userId"], "farmerName": farmer["name"],
            "cropName": "Onion", "quantity": 2, "pricePerUnit": 1.0,
        })
        crops.decrement_stock(sold.id, 2)
        assert [c.id for c in crops.list_available(farmer["userId"])] == [crop.id]
        assert crops.list_available("someone-else") == []


class TestDeferredDeletion:
    def test_sold_out_crop_deleted_only_after_delay(self, crops, store, crop, clock):
        crops.mark_sold_out(crop.id, "order-1")
        assert store.get(CROPS, crop.id)["deleteAfter"] == clock() + timedelta(hours=2)

        clock.advance(hours=1, minutes=59)
        assert crops.sweep_due_deletions() == 0
        assert store.get(CROPS, crop.id)["status"] == "sold_out"

        clock.advance(minutes=1)
        assert crops.sweep_due_deletions() == 1
        rec = store.get(CROPS, crop.id)
        assert rec["status"] == "deleted"
        assert rec["deletedAt"] == clock()

        clock.advance(hours=1)
        assert crops.sweep_due_deletions() == 0

    def test_deletion_survives_restart(self, store, crop, clock):
        CropService(store, clock=clock).mark_sold_out(crop.id, "order-1")

        clock.advance(hours=3)
        restarted = CropService(store, clock=clock)
        assert restarted.sweep_due_deletions() == 1
        assert store.get(CROPS, crop.id)["status"] == "deleted"

    def test_custom_delay(self, store, crop, clock):
        svc = CropService(store, clock=clock, delete_delay=timedelta(minutes=30))
        svc.mark_sold_out(crop.id, "order-1")
        clock.advance(minutes=30)
        assert svc.sweep_due_deletions() == 1

    def test_mark_sold_out_on_deleted_crop(self, crops, store, crop):
        store.update(CROPS, crop.id, {"status": "deleted"})
        with pytest.raises(InvalidReference):
            crops.mark_sold_out(crop.id, "order-1")

    def test_sweep_continues_past_failing_row(self, crops, store, crop, farmer, clock, monkeypatch):
        other = crops.create_listing({
            "farmerId": farmer["userId"], "farmerName": farmer["name"],
            "cropName": "Onion", "quantity": 2, "pricePerUnit": 1.0,
        })
        crops.mark_sold_out(crop.id, "order-1")
        crops.mark_sold_out(other.id, "order-2")
        clock.advance(hours=2)

        original = store.find_and_update

        def flaky(collection, doc_id, *args, **kwargs):
            if doc_id == crop.id:
                raise StoreUnavailable("timeout")
            return original(collection, doc_id, *args, **kwargs)

        monkeypatch.setattr(store, "find_and_update", flaky)
        assert crops.sweep_due_deletions() == 1
        assert store.get(CROPS, other.id)["status"] == "deleted"
        assert store.get(CROPS, crop.id)["status"] == "sold_out"
