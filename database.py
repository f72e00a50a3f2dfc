"""
MongoDB access helpers

The client is created at import time from DATABASE_URL / DATABASE_NAME.
Every helper looks up the module-level ``db`` when called, so the handle can be
swapped (tests use an in-memory client).
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

from errors import UpstreamStoreError

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL, tz_aware=True, serverSelectionTimeoutMS=5000)
    db = _client[DATABASE_NAME]


def now() -> datetime:
    return datetime.now(timezone.utc)


def get_db():
    if db is None:
        raise UpstreamStoreError("Database not available")
    return db


def collection(name: str):
    return get_db()[name]


def to_object_id(doc_id: Any) -> Optional[ObjectId]:
    """Parse a path id; None when it is not a valid ObjectId."""
    if isinstance(doc_id, ObjectId):
        return doc_id
    try:
        return ObjectId(str(doc_id))
    except (InvalidId, TypeError):
        return None


def _key(doc_id: Any) -> Any:
    # Singleton documents use fixed string keys instead of ObjectIds
    oid = to_object_id(doc_id)
    return oid if oid is not None else doc_id


def _coerce_to_dict(data: Any) -> Dict[str, Any]:
    if hasattr(data, "model_dump"):
        return data.model_dump(by_alias=True)
    return dict(data)


def to_public(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc = {**doc}
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection_name: str, data: Any) -> str:
    data_dict = _coerce_to_dict(data)
    stamp = now()
    data_dict.setdefault("createdAt", stamp)
    data_dict["updatedAt"] = stamp
    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    skip: int = 0,
) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, doc_id: Any) -> Optional[dict]:
    return collection(collection_name).find_one({"_id": _key(doc_id)})


def find_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    return collection(collection_name).find_one(filter_dict)


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    return collection(collection_name).count_documents(filter_dict or {})


def update_document(
    collection_name: str,
    doc_id: Any,
    changes: dict,
    upsert: bool = False,
    match: Optional[dict] = None,
) -> Optional[dict]:
    """Apply ``$set`` to one document and return it as it is after the write.

    ``match`` adds conditions to the id lookup; nothing is written (and None
    is returned) when they do not hold.
    """
    query = {"_id": _key(doc_id), **(match or {})}
    update: Dict[str, Any] = {"$set": {**changes, "updatedAt": now()}}
    if upsert:
        update["$setOnInsert"] = {"createdAt": now()}
    return collection(collection_name).find_one_and_update(
        query, update, upsert=upsert, return_document=ReturnDocument.AFTER
    )


def increment_field(collection_name: str, doc_id: Any, field: str, amount: int = 1) -> Optional[dict]:
    """Atomically add ``amount`` to a numeric field."""
    return collection(collection_name).find_one_and_update(
        {"_id": _key(doc_id)},
        {"$inc": {field: amount}},
        return_document=ReturnDocument.AFTER,
    )


def delete_document(collection_name: str, doc_id: Any) -> Optional[dict]:
    """Delete one document and return what was removed."""
    return collection(collection_name).find_one_and_delete({"_id": _key(doc_id)})


def delete_documents(collection_name: str, doc_ids: Sequence[Any]) -> int:
    keys = [_key(i) for i in doc_ids]
    return collection(collection_name).delete_many({"_id": {"$in": keys}}).deleted_count


def ensure_indexes() -> None:
    database = get_db()
    database["user"].create_index("email", unique=True)
    database["skill"].create_index("name", unique=True)
    database["skill"].create_index([("category", ASCENDING), ("order", ASCENDING)])
    database["project"].create_index([("status", ASCENDING), ("publishDate", DESCENDING)])
    database["project"].create_index("featured")
    database["message"].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    database["message"].create_index("isStarred")


def ping() -> bool:
    get_db().command("ping")
    return True
