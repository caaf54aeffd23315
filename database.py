"""
MongoDB access helpers.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; callers
check for that before touching a collection.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Optional[Database]:
    url = url or config.DATABASE_URL
    name = name or config.DATABASE_NAME
    if not url or not name:
        return None
    client = MongoClient(url, serverSelectionTimeoutMS=5000, tz_aware=True)
    logger.info(f"Connected to MongoDB database {name}")
    return client[name]


db = connect() if config.REPOSITORY_BACKEND == "mongo" else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a public id; None when it cannot be an ObjectId."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _require(database: Optional[Database]) -> Database:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not available")
    return database


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]],
                    database: Optional[Database] = None) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    database = _require(database)
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, database: Optional[Database] = None) -> List[Dict[str, Any]]:
    database = _require(database)
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
