from datetime import datetime, timezone

import pytest

from farmconnect.errors import PartialFailure, StoreUnavailable
from farmconnect.services.marketplace.duplicate_cleanup import (
    DuplicateGroup,
    DuplicateOrderCleanup,
    fingerprint,
    group_key,
    select_for_deletion,
)
from farmconnect.store import ORDERS


def _day(d):
    return datetime(2024, 1, d, tzinfo=timezone.utc)


def _order(store, day=None, **overrides):
    data = {
        "buyerId": "b1", "buyerName": "Asha", "farmerId": "f1", "farmerName": "Ravi",
        "cropId": "c1", "cropName": "Tomato", "quantity": 6.0, "unit": "kg",
        "totalAmount": 15.0, "status": "pending",
    }
    if day is not None:
        data["orderDate"] = _day(day)
    data.update(overrides)
    return store.create(ORDERS, data)


@pytest.fixture
def cleanup(store):
    return DuplicateOrderCleanup(store)


class TestGrouping:
    def test_group_key_format(self):
        fp = fingerprint({"buyerId": "b1", "farmerId": "f1", "cropId": "c1",
                          "quantity": 6.0, "totalAmount": 15.5, "status": "pending"})
        assert group_key(fp) == "b1_f1_c1_6_15.5_pending"

    def test_status_is_part_of_the_key(self, cleanup, store):
        _order(store, 1)
        _order(store, 2, status="confirmed")
        assert cleanup.find_duplicates() == []

    def test_finds_groups(self, cleanup, store):
        _order(store, 1)
        _order(store, 2)
        _order(store, 3, cropId="c2")
        (group,) = cleanup.find_duplicates()
        assert group.count == 2
        assert group.key == "b1_f1_c1_6_15_pending"


class TestSelection:
    def test_keeps_most_recent(self):
        group = DuplicateGroup("k", [
            {"id": "a", "orderDate": _day(1)},
            {"id": "b", "orderDate": _day(3)},
            {"id": "c", "orderDate": _day(2)},
        ])
        assert sorted(o["id"] for o in select_for_deletion(group)) == ["a", "c"]

    def test_keep_first_uses_scan_order(self):
        group = DuplicateGroup("k", [{"id": "a", "orderDate": _day(1)}, {"id": "b", "orderDate": _day(3)}])
        assert [o["id"] for o in select_for_deletion(group, keep_most_recent=False)] == ["b"]

    def test_missing_dates_sort_oldest(self):
        group = DuplicateGroup("k", [{"id": "a"}, {"id": "b", "orderDate": "2024-01-02"}, {"id": "c"}])
        assert sorted(o["id"] for o in select_for_deletion(group)) == ["a", "c"]

    def test_ties_keep_scan_order(self):
        group = DuplicateGroup("k", [{"id": "a", "orderDate": _day(1)}, {"id": "b", "orderDate": _day(1)}])
        assert [o["id"] for o in select_for_deletion(group)] == ["b"]


class TestCleanup:
    def test_removes_all_but_newest(self, cleanup, store):
        _order(store, 1)
        newest = _order(store, 3)
        _order(store, 2)
        loner = _order(store, 1, quantity=2.0, totalAmount=5.0)

        report = cleanup.cleanup()
        assert report.groups_found == 1
        assert report.deleted == 2
        assert report.failed_ids == []
        assert report.final_count == 2
        assert sorted(r["id"] for r in store.query(ORDERS)) == sorted([newest, loner])

    def test_second_run_is_a_no_op(self, cleanup, store):
        _order(store, 1)
        _order(store, 2)
        cleanup.cleanup()
        report = cleanup.cleanup()
        assert report.groups_found == 0
        assert report.deleted == 0
        assert report.final_count == 1

    def test_dry_run_deletes_nothing(self, cleanup, store):
        _order(store, 1)
        _order(store, 2)
        report = cleanup.cleanup(dry_run=True)
        assert report.dry_run
        assert report.groups_found == 1
        assert report.deleted == 0
        assert store.count(ORDERS) == 2

    def test_keep_first(self, cleanup, store):
        first = _order(store, 1)
        _order(store, 3)
        cleanup.cleanup(keep_most_recent=False)
        assert [r["id"] for r in store.query(ORDERS)] == [first]

    def test_failed_delete_is_reported_and_others_continue(self, cleanup, store, monkeypatch):
        ids = [_order(store, d) for d in (1, 2, 3)]
        original = store.delete

        def flaky(collection, doc_id):
            if doc_id == ids[0]:
                raise StoreUnavailable("timeout")
            return original(collection, doc_id)

        monkeypatch.setattr(store, "delete", flaky)
        report = cleanup.cleanup()
        assert report.failed_ids == [ids[0]]
        assert report.deleted == 1
        with pytest.raises(PartialFailure) as exc:
            report.raise_for_failures()
        assert exc.value.failed_ids == [ids[0]]
        assert sorted(r["id"] for r in store.query(ORDERS)) == sorted([ids[0], ids[2]])

    def test_remove_duplicates_returns_count(self, cleanup, store):
        _order(store, 1)
        _order(store, 2)
        assert cleanup.remove_duplicates(cleanup.find_duplicates()) == 1
