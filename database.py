"""
MongoDB connection and document helpers.

Collections are named after the lowercased schema class (School -> "school",
CorporateInquiry -> "corporateinquiry").
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import NotFoundError
from settings import DATABASE_NAME, DATABASE_URL, DB_TIMEOUT_MS

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    # strip quotes copied along with the connection string from .env files
    client = MongoClient(
        DATABASE_URL.strip().strip("\"'"),
        serverSelectionTimeoutMS=DB_TIMEOUT_MS,
        tz_aware=True,
    )
    db = client[DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, label: str = "Document") -> ObjectId:
    """Parse an id from a path or payload; malformed ids read as missing documents."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f"{label} not found")


def serialize(value: Any) -> Any:
    """Return a JSON-friendly copy of a document with ObjectIds rendered as strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = now_utc()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    skip: int = 0,
    sort: Optional[List[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    """Create the unique constraints and lookup indexes the application relies on."""
    database["school"].create_index([("name", ASCENDING)], unique=True)
    database["school"].create_index([("slug", ASCENDING)], unique=True)
    database["school"].create_index([("lifecycle", ASCENDING)])

    database["product"].create_index([("sku", ASCENDING)], unique=True)
    database["product"].create_index([("school", ASCENDING), ("category", ASCENDING)])
    database["product"].create_index([("lifecycle", ASCENDING)])

    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["order"].create_index([("status", ASCENDING)])
    database["order"].create_index([("created_at", DESCENDING)])

    database["admin"].create_index([("email", ASCENDING)], unique=True)

    database["corporateinquiry"].create_index([("status", ASCENDING)])
    database["corporateinquiry"].create_index([("created_at", DESCENDING)])
    logger.info("Indexes ensured on database %s", database.name)
