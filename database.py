"""
Database helpers

Owns the MongoDB connection. Collections are named after the lowercased
schema class (User -> "user", Festival -> "festival", ...).
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient, ASCENDING, DESCENDING

from config import Config

logger = logging.getLogger(__name__)

_client = None
db = None

if Config.DATABASE_URL:
    try:
        _client = MongoClient(Config.DATABASE_URL)
        db = _client[Config.DATABASE_NAME]
    except Exception as e:
        logger.error("MongoDB connection error: %s", e)
        db = None


def get_collection(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db[name]


def now() -> datetime:
    # stored as naive UTC, which is what pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value):
    """Convert aware datetimes (also inside dicts and lists) to naive UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, dict):
        return {k: to_utc(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_utc(v) for v in value]
    return value


def create_document(collection_name: str, data) -> str:
    """Insert a document (dict or pydantic model) with timestamps, return its id as str."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    doc = to_utc(doc)
    doc["created_at"] = now()
    doc["updated_at"] = now()
    result = get_collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, sort=None, limit: Optional[int] = None):
    cursor = get_collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(collection_name: str, doc_id: str, changes: dict):
    """Apply a $set to one document and return the fresh copy (None if missing)."""
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    fields = to_utc(dict(changes))
    fields["updated_at"] = now()
    coll = get_collection(collection_name)
    coll.update_one({"_id": oid}, {"$set": fields})
    return coll.find_one({"_id": oid})


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


def find_by_id(collection_name: str, doc_id, not_found: str = "Not found"):
    """Fetch a document by id or raise 404 (malformed ids count as missing)."""
    oid = to_object_id(doc_id)
    doc = get_collection(collection_name).find_one({"_id": oid}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail=not_found)
    return doc


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: `_id` -> `id`, ObjectIds -> str, datetimes -> isoformat."""
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        if doc.tzinfo is None:
            doc = doc.replace(tzinfo=timezone.utc)
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = serialize_doc(v)
    return out


def ensure_indexes():
    if db is None:
        logger.warning("Database not configured; skipping index creation")
        return
    db["user"].create_index("email", unique=True)
    db["festival"].create_index([("start_date", ASCENDING)])
    db["comment"].create_index([("festival_id", ASCENDING), ("created_at", DESCENDING)])
    db["comment"].create_index([("parent_comment", ASCENDING), ("created_at", DESCENDING)])
    db["topic"].create_index([("festival_id", ASCENDING), ("is_pinned", DESCENDING), ("created_at", DESCENDING)])
    db["topic"].create_index([("parent_comment", ASCENDING)])
    db["notification"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
