# farmconnect/store/document_store.py
"""
Collection-oriented document store used by every marketplace service.

Services receive a DocumentStore instance; they never reach for a global
database handle. Two implementations ship with the package:

- InMemoryDocumentStore: lock-guarded dicts, used for tests and DISABLE_MONGO=1
- MongoDocumentStore (store/mongo_store.py): pymongo adapter

Filters use a small subset of MongoDB query syntax so the same filter dict
works against both implementations:

    {"status": "pending"}
    {"quantity": {"$gte": 5}, "status": {"$in": ["available", "reserved"]}}
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from farmconnect.errors import DocumentExists

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Filters = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]
SnapshotCallback = Callable[[List[Record]], None]
Unsubscribe = Callable[[], None]

ASCENDING = 1
DESCENDING = -1


class DocumentStore(ABC):

    @abstractmethod
    def create(self, collection: str, data: Record, doc_id: Optional[str] = None) -> str:
        """Insert `data`; returns the new id. Raises DocumentExists if doc_id is taken."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        """Returns the record (with "id") or None."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: Record) -> bool:
        """Set the given fields. False when the record does not exist."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """False when the record does not exist."""

    @abstractmethod
    def query(self, collection: str, filters: Optional[Filters] = None, sort: Optional[Sort] = None) -> List[Record]:
        ...

    @abstractmethod
    def find_and_update(
        self,
        collection: str,
        doc_id: str,
        where: Optional[Filters] = None,
        set_fields: Optional[Record] = None,
        inc: Optional[Dict[str, float]] = None,
    ) -> Optional[Record]:
        """
        Atomically apply `set_fields` and `inc` if the record exists AND matches
        `where`. Returns the updated record, or None when nothing matched.
        """

    @abstractmethod
    def subscribe(self, collection: str, filters: Optional[Filters], callback: SnapshotCallback) -> Unsubscribe:
        """
        Deliver the matching snapshot now and after every change to the
        collection. Returns a function that stops delivery.
        """

    def count(self, collection: str, filters: Optional[Filters] = None) -> int:
        return len(self.query(collection, filters))


# =========================
# FILTER / SORT HELPERS
# =========================
_MISSING = object()


def _lookup(record: Record, path: str):
    cur: Any = record
    for part in path.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        else:
            return _MISSING
    return cur


def _set_path(record: Record, path: str, value: Any) -> None:
    parts = path.split(".")
    cur = record
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def _compare(value, op: str, operand) -> bool:
    if value is _MISSING or value is None:
        return False
    try:
        if op == "$gt":
            return value > operand
        if op == "$gte":
            return value >= operand
        if op == "$lt":
            return value < operand
        if op == "$lte":
            return value <= operand
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator {op}")


def _match_condition(value, cond) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, operand in cond.items():
            if op == "$eq":
                if value is _MISSING or value != operand:
                    return False
            elif op == "$ne":
                if value is not _MISSING and value == operand:
                    return False
            elif op == "$in":
                if value is _MISSING or value not in operand:
                    return False
            elif op == "$nin":
                if value is not _MISSING and value in operand:
                    return False
            elif op == "$exists":
                if (value is not _MISSING) != bool(operand):
                    return False
            elif not _compare(value, op, operand):
                return False
        return True
    if value is _MISSING:
        return cond is None
    return value == cond


def matches(record: Record, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    return all(_match_condition(_lookup(record, field), cond) for field, cond in filters.items())


def sort_records(records: List[Record], sort: Optional[Sort]) -> List[Record]:
    # apply keys right-to-left; Python's sort is stable so earlier keys win
    for field, direction in reversed(list(sort or [])):
        def key(r, field=field):
            v = _lookup(r, field)
            present = v is not _MISSING and v is not None
            return (present, v if present else 0)
        try:
            records.sort(key=key, reverse=direction == DESCENDING)
        except TypeError:
            records.sort(key=lambda r, k=key: (k(r)[0], str(k(r)[1])), reverse=direction == DESCENDING)
    return records


# =========================
# IN-MEMORY IMPLEMENTATION
# =========================
class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe dict-backed store. Every read returns a deep copy, so callers
    can't mutate stored state behind the store's back.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Record]] = {}
        self._subscribers: Dict[str, Dict[int, Tuple[Optional[Filters], SnapshotCallback]]] = {}
        self._next_sub = 0

    def _col(self, collection: str) -> Dict[str, Record]:
        return self._collections.setdefault(collection, {})

    @staticmethod
    def _view(doc_id: str, data: Record) -> Record:
        out = copy.deepcopy(data)
        out["id"] = doc_id
        return out

    def create(self, collection: str, data: Record, doc_id: Optional[str] = None) -> str:
        with self._lock:
            col = self._col(collection)
            doc_id = doc_id or uuid.uuid4().hex
            if doc_id in col:
                raise DocumentExists(f"{collection}/{doc_id} already exists")
            stored = copy.deepcopy(data)
            stored.pop("id", None)
            col[doc_id] = stored
        self._publish(collection)
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Record]:
        with self._lock:
            data = self._col(collection).get(doc_id)
            return self._view(doc_id, data) if data is not None else None

    def update(self, collection: str, doc_id: str, data: Record) -> bool:
        with self._lock:
            stored = self._col(collection).get(doc_id)
            if stored is None:
                return False
            for k, v in data.items():
                if k != "id":
                    _set_path(stored, k, copy.deepcopy(v))
        self._publish(collection)
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            removed = self._col(collection).pop(doc_id, None)
        if removed is None:
            return False
        self._publish(collection)
        return True

    def query(self, collection: str, filters: Optional[Filters] = None, sort: Optional[Sort] = None) -> List[Record]:
        with self._lock:
            rows = [
                self._view(doc_id, data)
                for doc_id, data in self._col(collection).items()
                if matches(self._view_shallow(doc_id, data), filters)
            ]
        return sort_records(rows, sort)

    @staticmethod
    def _view_shallow(doc_id: str, data: Record) -> Record:
        return {**data, "id": doc_id}

    def find_and_update(
        self,
        collection: str,
        doc_id: str,
        where: Optional[Filters] = None,
        set_fields: Optional[Record] = None,
        inc: Optional[Dict[str, float]] = None,
    ) -> Optional[Record]:
        with self._lock:
            stored = self._col(collection).get(doc_id)
            if stored is None or not matches(self._view_shallow(doc_id, stored), where):
                return None
            for k, v in (set_fields or {}).items():
                _set_path(stored, k, copy.deepcopy(v))
            for k, delta in (inc or {}).items():
                current = _lookup(stored, k)
                base = 0 if current is _MISSING or current is None else current
                _set_path(stored, k, base + delta)
            result = self._view(doc_id, stored)
        self._publish(collection)
        return result

    def subscribe(self, collection: str, filters: Optional[Filters], callback: SnapshotCallback) -> Unsubscribe:
        with self._lock:
            sub_id = self._next_sub
            self._next_sub += 1
            self._subscribers.setdefault(collection, {})[sub_id] = (filters, callback)
        self._deliver(collection, filters, callback)

        def unsubscribe():
            with self._lock:
                self._subscribers.get(collection, {}).pop(sub_id, None)

        return unsubscribe

    def _publish(self, collection: str) -> None:
        with self._lock:
            subs = list(self._subscribers.get(collection, {}).values())
        for filters, callback in subs:
            self._deliver(collection, filters, callback)

    def _deliver(self, collection: str, filters: Optional[Filters], callback: SnapshotCallback) -> None:
        try:
            callback(self.query(collection, filters))
        except Exception:
            logger.exception("Subscriber callback failed for collection %s", collection)

    def clear(self) -> None:
        """Drop all collections (for testing)."""
        with self._lock:
            self._collections.clear()
