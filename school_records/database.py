"""
MongoDB access through Motor.

Collections are named after the record they hold (lowercase, singular), e.g.
``student``, ``teacher``, ``homework``. The helpers here are the only place
``created_at`` / ``updated_at`` are assigned.
"""

import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from . import config
from .errors import InvalidArgument

logger = logging.getLogger(__name__)

USER_COLLECTION = "user"
CLASS_COLLECTION = "class"
BATCH_COLLECTION = "batch"
SUBJECT_COLLECTION = "subject"


def connect(url: str = config.DATABASE_URL, name: str = config.DATABASE_NAME) -> AsyncIOMotorDatabase:
    client = AsyncIOMotorClient(url)
    logger.info("Using MongoDB database %s", name)
    return client[name]


def get_db(request: Request) -> AsyncIOMotorDatabase:
    return request.app.state.db


# ----------------------- Identifiers -----------------------

def is_valid_id(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


def to_object_id(value: Union[str, ObjectId], label: str = "ID") -> ObjectId:
    """Parse an identifier, failing with ``InvalidArgument`` on malformed input."""
    if isinstance(value, ObjectId):
        return value
    if not is_valid_id(value):
        raise InvalidArgument(f"Invalid {label}")
    return ObjectId(value)


# ----------------------- Dates -----------------------

def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes; keep everything in that form.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return datetime(value.year, value.month, value.day)
    return datetime.combine(value, time.min)


def day_range(start: Union[date, datetime], end: Optional[Union[date, datetime]] = None) -> Dict[str, datetime]:
    """Filter covering whole calendar days from ``start`` through ``end``."""
    lower = start_of_day(start)
    upper = start_of_day(end if end is not None else start) + timedelta(days=1)
    return {"$gte": lower, "$lt": upper}


# ----------------------- Writes -----------------------

async def insert_document(collection: AsyncIOMotorCollection, data: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = await collection.insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


async def update_document(
    collection: AsyncIOMotorCollection, oid: ObjectId, changes: Dict[str, Any]
) -> Optional[Dict[str, Any]]:
    update = {"$set": dict(changes, updated_at=utcnow())}
    return await collection.find_one_and_update(
        {"_id": oid}, update, return_document=ReturnDocument.AFTER
    )


# ----------------------- Reads -----------------------

def page_window(page: Optional[int], limit: Optional[int]) -> Tuple[int, int, int]:
    current = max(1, int(page or 1))
    size = config.DEFAULT_PAGE_SIZE if limit is None else int(limit)
    size = max(1, min(config.MAX_PAGE_SIZE, size))
    return current, size, (current - 1) * size


async def paginate(
    collection: AsyncIOMotorCollection,
    filt: Dict[str, Any],
    page: Optional[int] = 1,
    limit: Optional[int] = config.DEFAULT_PAGE_SIZE,
    sort: Sequence[Tuple[str, int]] = (("created_at", -1),),
) -> Tuple[List[Dict[str, Any]], int, int, int]:
    current, size, skip = page_window(page, limit)
    total = await collection.count_documents(filt)
    cursor = collection.find(filt).sort(list(sort)).skip(skip).limit(size)
    docs = await cursor.to_list(length=size)
    return docs, total, current, size


def page_payload(items: List[Any], total: int, page: int, limit: int) -> Dict[str, Any]:
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def search_filter(term: str, fields: Sequence[str]) -> Dict[str, Any]:
    pattern = re.escape(term)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}
