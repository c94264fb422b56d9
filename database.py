"""
MongoDB access helpers.

Each pydantic model in `schemas.py` maps to one collection. Handlers receive
the database through the application context rather than a module global.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings
from errors import BadRequest

logger = logging.getLogger(__name__)

SUB_RESOURCE_COLLECTIONS = (
    "introduction",
    "education",
    "experience",
    "skill",
    "project",
    "certification",
    "sociallink",
    "testimonial",
)

ONE_PER_OWNER_COLLECTIONS = ("introduction",)

# Fields never returned from any read path
PRIVATE_USER_FIELDS = ("password", "refresh_token")
PUBLIC_USER_PROJECTION = {name: 0 for name in PRIVATE_USER_FIELDS}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def connect(settings: Settings) -> MongoClient:
    """Open a client and make sure the server answers; raises if it does not."""
    client = MongoClient(settings.database_url, serverSelectionTimeoutMS=5000, tz_aware=True)
    client.admin.command("ping")
    logger.info("MongoDB connected, database=%s", settings.database_name)
    return client


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["project"].create_index([("slug", ASCENDING)], unique=True)
    for name in SUB_RESOURCE_COLLECTIONS:
        # a single user_id index per collection, unique where one record per owner
        db[name].create_index([("user_id", ASCENDING)], unique=name in ONE_PER_OWNER_COLLECTIONS)


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a document with created/updated timestamps and return it (with `_id`)."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
    projection: Optional[dict] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def _public_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_public_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _public_value(v) for k, v in value.items()}
    return value


def to_public(doc: Optional[dict], exclude: Iterable[str] = ()) -> Optional[dict]:
    if not doc:
        return doc
    doc = {k: v for k, v in doc.items() if k not in exclude}
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return _public_value(doc)


def public_user(doc: Optional[dict]) -> Optional[dict]:
    return to_public(doc, exclude=PRIVATE_USER_FIELDS)


def parse_object_id(value: str, name: str = "id") -> ObjectId:
    if not value or not ObjectId.is_valid(value):
        raise BadRequest(f"Invalid {name}")
    return ObjectId(value)
