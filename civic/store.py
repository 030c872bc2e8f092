"""Document storage.

Handlers talk to a small set of primitives (get / find / update / push /
increment ...) so the same code runs against MongoDB in production and the
in-process ``MemoryStore`` in demo mode and tests. Documents carry their id
in ``_id``; field paths may be dotted (``capacity.current``).
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from pymongo import MongoClient, ReturnDocument, ASCENDING, DESCENDING

logger = logging.getLogger(__name__)

TICKETS = "tickets"
TEAMS = "teams"
PORTAL_USERS = "portal_users"
AUDIT_LOGS = "audit_logs"
SYSTEM_FEED = "system_feed"
COUNTERS = "counters"


class DocumentStore:
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        raise NotImplementedError

    def find_one(self, collection: str, where: Dict[str, Any]) -> Optional[dict]:
        raise NotImplementedError

    def find(self, collection: str, where: Optional[Dict[str, Any]] = None, order_by: Optional[str] = None,
             descending: bool = False, limit: Optional[int] = None) -> List[dict]:
        raise NotImplementedError

    def count(self, collection: str, where: Optional[Dict[str, Any]] = None) -> int:
        raise NotImplementedError

    def insert(self, collection: str, doc: dict) -> None:
        raise NotImplementedError

    def put(self, collection: str, doc: dict) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def push(self, collection: str, doc_id: str, field: str, value: Any,
             set_fields: Optional[Dict[str, Any]] = None) -> bool:
        raise NotImplementedError

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1,
                  set_fields: Optional[Dict[str, Any]] = None) -> bool:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def delete_all(self, collection: str) -> int:
        raise NotImplementedError

    def next_sequence(self, name: str, start: int = 1000) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------
class MongoStore(DocumentStore):
    def __init__(self, url: str, db_name: str):
        self.client = MongoClient(url, tz_aware=True)
        self.db = self.client[db_name]

    def ensure_indexes(self) -> None:
        self.db[TICKETS].create_index("created_at")
        self.db[TICKETS].create_index("status")
        self.db[TICKETS].create_index("assigned_department")
        self.db[TICKETS].create_index("location.ward")
        self.db[TEAMS].create_index("department")
        self.db[PORTAL_USERS].create_index([("email", ASCENDING)], unique=True)
        self.db[AUDIT_LOGS].create_index("timestamp")
        self.db[SYSTEM_FEED].create_index("timestamp")
        logger.info("Database indexes ensured")

    def get(self, collection, doc_id):
        return self.db[collection].find_one({"_id": doc_id})

    def find_one(self, collection, where):
        return self.db[collection].find_one(where)

    def find(self, collection, where=None, order_by=None, descending=False, limit=None):
        cursor = self.db[collection].find(where or {})
        if order_by:
            cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, collection, where=None):
        return self.db[collection].count_documents(where or {})

    def insert(self, collection, doc):
        self.db[collection].insert_one(doc)

    def put(self, collection, doc):
        self.db[collection].replace_one({"_id": doc["_id"]}, doc, upsert=True)

    def update(self, collection, doc_id, fields):
        return self.db[collection].update_one({"_id": doc_id}, {"$set": fields}).matched_count > 0

    def push(self, collection, doc_id, field, value, set_fields=None):
        ops: Dict[str, Any] = {"$push": {field: value}}
        if set_fields:
            ops["$set"] = set_fields
        return self.db[collection].update_one({"_id": doc_id}, ops).matched_count > 0

    def increment(self, collection, doc_id, field, amount=1, set_fields=None):
        ops: Dict[str, Any] = {"$inc": {field: amount}}
        if set_fields:
            ops["$set"] = set_fields
        return self.db[collection].update_one({"_id": doc_id}, ops).matched_count > 0

    def delete(self, collection, doc_id):
        return self.db[collection].delete_one({"_id": doc_id}).deleted_count > 0

    def delete_all(self, collection):
        return self.db[collection].delete_many({}).deleted_count

    def next_sequence(self, name, start=1000):
        counter = self.db[COUNTERS].find_one_and_update(
            {"_id": name}, {"$inc": {"seq": 1}, "$setOnInsert": {"start": start}},
            upsert=True, return_document=ReturnDocument.AFTER)
        return start + counter["seq"]

    def close(self):
        self.client.close()


# ---------------------------------------------------------------------------
# In-process store (demo mode / tests)
# ---------------------------------------------------------------------------
def _get_path(doc: dict, path: str) -> Any:
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    node = doc
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def _matches(doc: dict, where: Optional[Dict[str, Any]]) -> bool:
    return all(_get_path(doc, k) == v for k, v in (where or {}).items())


class MemoryStore(DocumentStore):
    def __init__(self):
        self._data: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.Lock()

    def _coll(self, collection: str) -> Dict[str, dict]:
        return self._data.setdefault(collection, {})

    def get(self, collection, doc_id):
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find_one(self, collection, where):
        with self._lock:
            for doc in self._coll(collection).values():
                if _matches(doc, where):
                    return copy.deepcopy(doc)
        return None

    def find(self, collection, where=None, order_by=None, descending=False, limit=None):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._coll(collection).values() if _matches(d, where)]
        if order_by:
            present = [d for d in docs if _get_path(d, order_by) is not None]
            missing = [d for d in docs if _get_path(d, order_by) is None]
            present.sort(key=lambda d: _get_path(d, order_by), reverse=descending)
            docs = present + missing
        return docs[:limit] if limit else docs

    def count(self, collection, where=None):
        with self._lock:
            return sum(1 for d in self._coll(collection).values() if _matches(d, where))

    def insert(self, collection, doc):
        with self._lock:
            coll = self._coll(collection)
            if doc["_id"] in coll:
                raise KeyError(f"Duplicate _id {doc['_id']} in {collection}")
            coll[doc["_id"]] = copy.deepcopy(doc)

    def put(self, collection, doc):
        with self._lock:
            self._coll(collection)[doc["_id"]] = copy.deepcopy(doc)

    def update(self, collection, doc_id, fields):
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            if doc is None:
                return False
            for path, value in fields.items():
                _set_path(doc, path, copy.deepcopy(value))
            return True

    def push(self, collection, doc_id, field, value, set_fields=None):
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            if doc is None:
                return False
            items = _get_path(doc, field)
            if items is None:
                items = []
                _set_path(doc, field, items)
            items.append(copy.deepcopy(value))
            for path, v in (set_fields or {}).items():
                _set_path(doc, path, copy.deepcopy(v))
            return True

    def increment(self, collection, doc_id, field, amount=1, set_fields=None):
        with self._lock:
            doc = self._coll(collection).get(doc_id)
            if doc is None:
                return False
            _set_path(doc, field, (_get_path(doc, field) or 0) + amount)
            for path, v in (set_fields or {}).items():
                _set_path(doc, path, copy.deepcopy(v))
            return True

    def delete(self, collection, doc_id):
        with self._lock:
            return self._coll(collection).pop(doc_id, None) is not None

    def delete_all(self, collection):
        with self._lock:
            n = len(self._coll(collection))
            self._data[collection] = {}
            return n

    def next_sequence(self, name, start=1000):
        with self._lock:
            counter = self._coll(COUNTERS).setdefault(name, {"_id": name, "seq": 0})
            counter["seq"] += 1
            return start + counter["seq"]


def create_store(backend: str, mongodb_url: str, db_name: str) -> DocumentStore:
    if backend == "memory":
        logger.warning("Using in-memory document store; data is lost on restart")
        return MemoryStore()
    if backend != "mongo":
        raise ValueError(f"Unknown STORE_BACKEND: {backend}")
    store = MongoStore(mongodb_url, db_name)
    store.ensure_indexes()
    return store
