from datetime import datetime, timezone

import pytest

from farmconnect.errors import DocumentExists
from farmconnect.store import ASCENDING, DESCENDING, InMemoryDocumentStore
from farmconnect.store.document_store import matches


@pytest.fixture
def mem():
    return InMemoryDocumentStore()


class TestCrud:
    def test_create_assigns_id_and_get_returns_copy(self, mem):
        doc_id = mem.create("crops", {"cropName": "Onion", "tags": ["red"]})
        rec = mem.get("crops", doc_id)
        assert rec["id"] == doc_id
        assert rec["cropName"] == "Onion"

        rec["tags"].append("mutated")
        assert mem.get("crops", doc_id)["tags"] == ["red"]

    def test_create_with_existing_id_raises(self, mem):
        mem.create("order_requests", {"a": 1}, doc_id="k1")
        with pytest.raises(DocumentExists):
            mem.create("order_requests", {"a": 2}, doc_id="k1")
        assert mem.get("order_requests", "k1")["a"] == 1

    def test_update_and_delete(self, mem):
        doc_id = mem.create("crops", {"quantity": 5, "location": {"address": "x"}})
        assert mem.update("crops", doc_id, {"quantity": 3, "location.address": "y"})
        rec = mem.get("crops", doc_id)
        assert rec["quantity"] == 3
        assert rec["location"] == {"address": "y"}

        assert mem.delete("crops", doc_id)
        assert mem.get("crops", doc_id) is None
        assert not mem.delete("crops", doc_id)
        assert not mem.update("crops", doc_id, {"quantity": 1})

    def test_get_missing_returns_none(self, mem):
        assert mem.get("crops", "nope") is None


class TestQuery:
    def test_filter_operators(self, mem):
        mem.create("crops", {"name": "a", "qty": 1, "status": "available"})
        mem.create("crops", {"name": "b", "qty": 5, "status": "reserved"})
        mem.create("crops", {"name": "c", "qty": 9, "status": "sold"})

        def names(filters):
            return sorted(r["name"] for r in mem.query("crops", filters))

        assert names({"qty": {"$gte": 5}}) == ["b", "c"]
        assert names({"qty": {"$lt": 5}}) == ["a"]
        assert names({"status": {"$in": ["available", "reserved"]}}) == ["a", "b"]
        assert names({"status": {"$nin": ["sold"]}}) == ["a", "b"]
        assert names({"status": {"$ne": "sold"}, "qty": {"$gt": 1}}) == ["b"]
        assert names({"missing": {"$exists": False}}) == ["a", "b", "c"]
        assert names({"name": "c"}) == ["c"]

    def test_comparison_on_missing_or_none_never_matches(self):
        assert not matches({"a": None}, {"a": {"$lte": 3}})
        assert not matches({}, {"a": {"$gte": 0}})

    def test_datetime_comparison(self, mem):
        t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        mem.create("crops", {"deleteAfter": t})
        assert len(mem.query("crops", {"deleteAfter": {"$lte": t}})) == 1
        assert mem.query("crops", {"deleteAfter": {"$lt": t}}) == []

    def test_sort_is_stable(self, mem):
        mem.create("orders", {"n": 1, "d": 2})
        mem.create("orders", {"n": 2, "d": 3})
        mem.create("orders", {"n": 3, "d": 2})
        rows = mem.query("orders", sort=[("d", DESCENDING)])
        assert [r["n"] for r in rows] == [2, 1, 3]
        rows = mem.query("orders", sort=[("d", ASCENDING)])
        assert [r["n"] for r in rows] == [1, 3, 2]

    def test_count(self, mem):
        mem.create("orders", {"status": "pending"})
        mem.create("orders", {"status": "pending"})
        mem.create("orders", {"status": "shipped"})
        assert mem.count("orders") == 3
        assert mem.count("orders", {"status": "pending"}) == 2


class TestFindAndUpdate:
    def test_applies_when_condition_matches(self, mem):
        doc_id = mem.create("crops", {"quantity": 10})
        rec = mem.find_and_update("crops", doc_id, where={"quantity": {"$gte": 6}}, inc={"quantity": -6})
        assert rec["quantity"] == 4

    def test_no_change_when_condition_fails(self, mem):
        doc_id = mem.create("crops", {"quantity": 4})
        assert mem.find_and_update("crops", doc_id, where={"quantity": {"$gte": 6}}, inc={"quantity": -6}) is None
        assert mem.get("crops", doc_id)["quantity"] == 4

    def test_missing_record(self, mem):
        assert mem.find_and_update("crops", "ghost", set_fields={"x": 1}) is None

    def test_set_and_inc_together(self, mem):
        doc_id = mem.create("crops", {"quantity": 1, "status": "available"})
        rec = mem.find_and_update("crops", doc_id, set_fields={"status": "sold"}, inc={"quantity": -1})
        assert rec["status"] == "sold"
        assert rec["quantity"] == 0


class TestSubscribe:
    def test_initial_snapshot_and_updates(self, mem):
        seen = []
        unsubscribe = mem.subscribe("notifications", {"userId": "u1"}, lambda rows: seen.append(len(rows)))
        mem.create("notifications", {"userId": "u1"})
        mem.create("notifications", {"userId": "u2"})
        assert seen == [0, 1, 1]

        unsubscribe()
        mem.create("notifications", {"userId": "u1"})
        assert seen == [0, 1, 1]

    def test_failing_callback_does_not_break_writes(self, mem):
        def boom(rows):
            raise RuntimeError("ui crashed")

        mem.subscribe("orders", None, boom)
        doc_id = mem.create("orders", {"x": 1})
        assert mem.get("orders", doc_id) is not None
