from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.server_api import ServerApi

from carecamp.config import Config
from carecamp.models import FEEDBACKS, PAYMENTS, USERS


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


Sort = Sequence[Tuple[str, int]]


class InvalidIdError(ValueError):
    """A path/body identifier that is not a valid ObjectId."""


def to_object_id(value: str | None) -> ObjectId:
    s = (value or "").strip()
    try:
        return ObjectId(s)
    except (InvalidId, TypeError) as e:
        raise InvalidIdError(f"invalid_id: {value!r}") from e


def id_filter(value: str | None) -> Dict[str, Any]:
    return {"_id": to_object_id(value)}


def contains_filter(fields: Iterable[str], text: str | None) -> Dict[str, Any]:
    """Case-insensitive substring match on any of `fields`.

    Returns an empty filter when `text` is blank so callers can merge it unconditionally.
    """
    q = (text or "").strip()
    if not q:
        return {}
    pattern = {"$regex": re.escape(q), "$options": "i"}
    return {"$or": [{f: pattern} for f in fields]}


def public_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """JSON-safe copy of a stored document (`_id` as a string)."""
    if doc is None:
        return None
    d = dict(doc)
    if isinstance(d.get("_id"), ObjectId):
        d["_id"] = str(d["_id"])
    return d


class ResourceStore:
    """Thin data-access layer over the CareCamp collections.

    One instance is created per application and shared by every request.
    pymongo's client pools connections and is safe for concurrent use.
    """

    def __init__(self, database: Database):
        self._db = database

    def _col(self, collection: str):
        return self._db[collection]

    def ping(self) -> bool:
        self._db.command("ping")
        return True

    def ensure_indexes(self) -> None:
        # One user document per email.
        self._col(USERS).create_index([("email", ASCENDING)], unique=True)
        # One feedback per (camp, participant).
        self._col(FEEDBACKS).create_index(
            [("camp_id", ASCENDING), ("participant_email", ASCENDING)],
            unique=True,
        )
        # One payment per registration.
        self._col(PAYMENTS).create_index([("registration_id", ASCENDING)], unique=True)

    # -----------------------------
    # Reads
    # -----------------------------

    def find_many(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        *,
        sort: Optional[Sort] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self._col(collection).find(filter or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(int(skip))
        if limit:
            cursor = cursor.limit(int(limit))
        return [public_doc(d) for d in cursor]

    def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return public_doc(self._col(collection).find_one(filter))

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return int(self._col(collection).count_documents(filter or {}))

    def sum_field(self, collection: str, field: str, filter: Optional[Dict[str, Any]] = None) -> int:
        pipeline = [
            {"$match": filter or {}},
            {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
        ]
        rows = list(self._col(collection).aggregate(pipeline))
        return int(rows[0]["total"]) if rows else 0

    # -----------------------------
    # Writes
    # -----------------------------

    def insert_one(self, collection: str, document: Dict[str, Any]) -> str:
        # insert_one mutates its argument (adds _id); keep the caller's dict clean.
        res = self._col(collection).insert_one(dict(document))
        return str(res.inserted_id)

    def update_one(self, collection: str, filter: Dict[str, Any], fields: Dict[str, Any]) -> int:
        """Set only the named fields. Returns the modified count."""
        if not fields:
            return 0
        res = self._col(collection).update_one(filter, {"$set": dict(fields)})
        return int(res.modified_count)

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> int:
        res = self._col(collection).delete_one(filter)
        return int(res.deleted_count)

    def increment_field(self, collection: str, filter: Dict[str, Any], field: str, delta: int) -> int:
        res = self._col(collection).update_one(filter, {"$inc": {field: int(delta)}})
        return int(res.modified_count)

    def upsert_one(self, collection: str, filter: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        res = self._col(collection).update_one(filter, {"$set": dict(fields)}, upsert=True)
        return {
            "matched": int(res.matched_count),
            "modified": int(res.modified_count),
            "upserted_id": str(res.upserted_id) if res.upserted_id is not None else None,
        }


def connect(cfg: Config) -> ResourceStore:
    """Create the long-lived client + store for the configured database.

    MongoClient connects lazily; the first command opens the pool.
    """
    client: MongoClient = MongoClient(
        cfg.MONGODB_URI,
        server_api=ServerApi("1", strict=True, deprecation_errors=True),
        serverSelectionTimeoutMS=int(cfg.MONGODB_TIMEOUT_MS),
        tz_aware=True,
    )
    _debug(f"MongoClient created db={cfg.MONGODB_DB_NAME}")
    return ResourceStore(client[cfg.MONGODB_DB_NAME])
