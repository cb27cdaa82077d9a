from __future__ import annotations
import logging
from typing import Any, Optional
from datetime import datetime, timezone
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from storefront.config import settings
from storefront.errors import NotFound

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        logger.info("Connecting to %s/%s", settings.DATABASE_URL, settings.DATABASE_NAME)
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


def set_db(db: Optional[AsyncIOMotorDatabase]) -> None:
    """Swap the active database (used by tests to inject an in-memory one)."""
    global _db
    _db = db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_object_id(id_str: str, what: str = "Document") -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise NotFound(f"{what} {id_str} not found")


def doc_out(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if doc and "_id" in doc:
        doc = dict(doc)
        doc["id"] = str(doc.pop("_id"))
    return doc


async def create_document(collection_name: str, data: dict[str, Any], doc_id: Optional[ObjectId] = None) -> dict[str, Any]:
    db = await get_db()
    now = utcnow()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    if doc_id is not None:
        data_with_meta["_id"] = doc_id
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return doc_out(inserted) or {}


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 0,
    sort: list[tuple[str, int]] | None = None,
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(doc_out(d))
    return docs


async def get_document(collection_name: str, id_str: str, what: str = "Document") -> dict[str, Any]:
    db = await get_db()
    doc = await db[collection_name].find_one({"_id": to_object_id(id_str, what)})
    if not doc:
        raise NotFound(f"{what} {id_str} not found")
    return doc_out(doc)


async def update_document(collection_name: str, id_str: str, data: dict[str, Any], what: str = "Document") -> dict[str, Any]:
    db = await get_db()
    oid = to_object_id(id_str, what)
    update = {**data, "updated_at": utcnow()}
    result = await db[collection_name].update_one({"_id": oid}, {"$set": update})
    if result.matched_count == 0:
        raise NotFound(f"{what} {id_str} not found")
    return doc_out(await db[collection_name].find_one({"_id": oid}))


async def delete_document(collection_name: str, id_str: str, what: str = "Document") -> None:
    db = await get_db()
    result = await db[collection_name].delete_one({"_id": to_object_id(id_str, what)})
    if result.deleted_count == 0:
        raise NotFound(f"{what} {id_str} not found")
