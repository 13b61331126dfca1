# farmconnect/store/mongo_store.py

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from farmconnect.errors import DocumentExists, StoreUnavailable
from farmconnect.store.document_store import (
    DocumentStore,
    Filters,
    Record,
    SnapshotCallback,
    Sort,
    Unsubscribe,
)

logger = logging.getLogger(__name__)


class MongoDocumentStore(DocumentStore):
    """
    pymongo adapter. Store-assigned ids are ObjectIds exposed as strings;
    caller-chosen ids (idempotency claims) are stored as-is.
    """

    def __init__(self, db: Database, poll_interval: float = 0.5):
        self.db = db
        self.poll_interval = poll_interval

    # =========================
    # ID / DOC HELPERS
    # =========================
    @staticmethod
    def _oid(doc_id):
        if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
            return ObjectId(doc_id)
        return doc_id

    @staticmethod
    def _out(doc: Dict[str, Any]) -> Record:
        out = dict(doc)
        out["id"] = str(out.pop("_id"))
        return out

    @classmethod
    def _translate(cls, filters: Optional[Filters]) -> Dict[str, Any]:
        q = dict(filters or {})
        if "id" in q:
            cond = q.pop("id")
            if isinstance(cond, dict):
                cond = {
                    op: [cls._oid(v) for v in val] if isinstance(val, (list, tuple)) else cls._oid(val)
                    for op, val in cond.items()
                }
            else:
                cond = cls._oid(cond)
            q["_id"] = cond
        return q

    @staticmethod
    def _sort_spec(sort: Optional[Sort]):
        return [("_id" if field == "id" else field, direction) for field, direction in (sort or [])]

    @contextmanager
    def _guard(self, op: str, collection: str):
        try:
            yield
        except DuplicateKeyError as e:
            raise DocumentExists(f"{collection}: {e}") from e
        except PyMongoError as e:
            logger.error("Mongo %s on %s failed: %s", op, collection, e)
            raise StoreUnavailable(f"Document store unavailable during {op} on {collection}") from e

    # =========================
    # CRUD
    # =========================
    def create(self, collection: str, data: Record, doc_id: Optional[str] = None) -> str:
        doc = {k: v for k, v in data.items() if k != "id"}
        if doc_id is not None:
            doc["_id"] = doc_id
        with self._guard("create", collection):
            inserted = self.db[collection].insert_one(doc)
        return str(inserted.inserted_id)

    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        with self._guard("get", collection):
            doc = self.db[collection].find_one({"_id": self._oid(doc_id)})
        return self._out(doc) if doc else None

    def update(self, collection: str, doc_id: str, data: Record) -> bool:
        fields = {k: v for k, v in data.items() if k != "id"}
        if not fields:
            return self.get(collection, doc_id) is not None
        with self._guard("update", collection):
            res = self.db[collection].update_one({"_id": self._oid(doc_id)}, {"$set": fields})
        return res.matched_count > 0

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._guard("delete", collection):
            res = self.db[collection].delete_one({"_id": self._oid(doc_id)})
        return res.deleted_count > 0

    def query(self, collection: str, filters: Optional[Filters] = None, sort: Optional[Sort] = None) -> List[Record]:
        with self._guard("query", collection):
            cursor = self.db[collection].find(self._translate(filters))
            spec = self._sort_spec(sort)
            if spec:
                cursor = cursor.sort(spec)
            return [self._out(d) for d in cursor]

    def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        with self._guard("count", collection):
            return self.db[collection].count_documents(self._translate(filters))

    def find_and_update(
        self,
        collection: str,
        doc_id: str,
        where: Optional[Filters] = None,
        set_fields: Optional[Record] = None,
        inc: Optional[Dict[str, float]] = None,
    ) -> Optional[Record]:
        q = self._translate(where)
        q["_id"] = self._oid(doc_id)
        change: Dict[str, Any] = {}
        if set_fields:
            change["$set"] = dict(set_fields)
        if inc:
            change["$inc"] = dict(inc)
        if not change:
            with self._guard("find", collection):
                doc = self.db[collection].find_one(q)
            return self._out(doc) if doc else None

        with self._guard("find_and_update", collection):
            doc = self.db[collection].find_one_and_update(q, change, return_document=ReturnDocument.AFTER)
        return self._out(doc) if doc else None

    # =========================
    # SUBSCRIPTIONS (change streams; needs a replica set)
    # =========================
    def subscribe(self, collection: str, filters: Optional[Filters], callback: SnapshotCallback) -> Unsubscribe:
        stop = threading.Event()

        def deliver():
            try:
                callback(self.query(collection, filters))
            except StoreUnavailable:
                raise
            except Exception:
                logger.exception("Subscriber callback failed for collection %s", collection)

        deliver()

        def run():
            try:
                with self.db[collection].watch() as stream:
                    while not stop.is_set():
                        change = stream.try_next()
                        if change is None:
                            stop.wait(self.poll_interval)
                            continue
                        deliver()
            except (PyMongoError, StoreUnavailable) as e:
                logger.warning("Change stream on %s stopped: %s", collection, e)

        t = threading.Thread(target=run, name=f"watch-{collection}", daemon=True)
        t.start()
        return stop.set
