"""
MongoDB access.

The connection is configured from DATABASE_URL / DATABASE_NAME. When either is
missing `db` is None and the HTTP layer reports the database as unavailable.
"""
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = MongoClient(DATABASE_URL) if DATABASE_URL and DATABASE_NAME else None
db: Optional[Database] = client[DATABASE_NAME] if client is not None else None


def create_document(collection_name: str, data: Dict[str, Any], database: Optional[Database] = None) -> Any:
    """Insert a document stamped with created_at/updated_at and return its id."""
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured")
    now = datetime.utcnow()
    doc = dict(data)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    return target[collection_name].insert_one(doc).inserted_id


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, database: Optional[Database] = None) -> List[Dict[str, Any]]:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured")
    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
