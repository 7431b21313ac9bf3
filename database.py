"""
MongoDB access for SprintCart.

``db`` is the shared database handle. Helpers below take a collection name
(the lowercased schema class name, e.g. ``Order`` -> ``"order"``).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument

import config

# MongoClient connects lazily, so importing this module never blocks.
client = MongoClient(config.DATABASE_URL)
db = client[config.DATABASE_NAME]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = _now()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, newest_first: bool = False) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if newest_first:
        cursor = cursor.sort("created_at", -1)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(collection_name: str, doc_id: Any) -> Optional[Dict[str, Any]]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return db[collection_name].find_one({"_id": oid})


def update_document(collection_name: str, doc_id: Any, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return update_once(collection_name, doc_id, {}, changes)


def update_once(collection_name: str, doc_id: Any, guard: Dict[str, Any],
                changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply ``changes`` only if the document still matches ``guard``.

    Returns the updated document, or None when the id is unknown or the
    guard no longer holds.
    """
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    query = {"_id": oid}
    query.update(guard)
    return db[collection_name].find_one_and_update(
        query,
        {"$set": dict(changes, updated_at=_now())},
        return_document=ReturnDocument.AFTER,
    )


def delete_document(collection_name: str, doc_id: Any) -> bool:
    oid = to_object_id(doc_id)
    if oid is None:
        return False
    return db[collection_name].delete_one({"_id": oid}).deleted_count == 1


def to_public(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``doc`` with the ObjectId replaced by a string ``id``."""
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    return out
