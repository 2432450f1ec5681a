"""
MongoDB access helpers

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; routes go
through get_db() so the app can still start and report its status on /test.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


class DatabaseUnavailable(RuntimeError):
    pass


def get_db():
    if db is None:
        logger.error("Database requested but DATABASE_URL/DATABASE_NAME are not set")
        raise DatabaseUnavailable("Database not available")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_dict(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def _stamped(data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    doc = _as_dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    result = get_db()[collection_name].insert_one(_stamped(data))
    return str(result.inserted_id)


def create_documents(collection_name: str, items: Iterable[Union[BaseModel, Dict[str, Any]]]) -> List[str]:
    docs = [_stamped(item) for item in items]
    if not docs:
        return []
    result = get_db()[collection_name].insert_many(docs)
    return [str(i) for i in result.inserted_ids]


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort: Optional[List[tuple]] = None) -> List[Dict[str, Any]]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(collection_name: str, oid: ObjectId, fields: Dict[str, Any]) -> bool:
    fields = dict(fields)
    fields["updated_at"] = utcnow()
    result = get_db()[collection_name].update_one({"_id": oid}, {"$set": fields})
    return result.matched_count > 0


def ensure_indexes() -> None:
    database = get_db()
    database["month"].create_index([("user_id", ASCENDING), ("order", ASCENDING)], unique=True)
    database["weeklytask"].create_index([("user_id", ASCENDING), ("month_id", ASCENDING)])
    database["user"].create_index("email", unique=True)
    database["passwordreset"].create_index("token", unique=True)


def to_object_id(value: str) -> ObjectId:
    """Raises bson.errors.InvalidId for anything that is not a 24-hex id."""
    if not isinstance(value, str):
        raise InvalidId(f"{value!r} is not a valid ObjectId")
    return ObjectId(value)


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    # Convert ObjectId to string
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc
