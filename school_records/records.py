"""
Base service for the record collections.

A concrete service declares its collection, natural keys, transformation
steps and reference targets; reads, deletes, soft-delete toggling and
response shaping are shared here. Creates and updates always go through the
``UniquenessCoordinator``.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from .database import (
    USER_COLLECTION,
    page_payload,
    paginate,
    start_of_day,
    to_object_id,
    update_document,
)
from .errors import NotFound, StorageFailure
from .references import Populate, populate, serialize
from .uniqueness import Document, Step, UniqueKey, UniquenessCoordinator

logger = logging.getLogger(__name__)

USER_SUMMARY = Populate(USER_COLLECTION, ("username", "email"))


# ----------------------- Transformation steps -----------------------

def normalize_day(*fields: str) -> Step:
    """Truncate the given date fields to the start of their calendar day."""

    def step(values: Document, current: Optional[Document]) -> Document:
        for field in fields:
            if values.get(field) is not None:
                values[field] = start_of_day(values[field])
        return values

    return step


def as_datetime(*fields: str) -> Step:
    """BSON has no plain date type; store dates as naive UTC datetimes."""

    def step(values: Document, current: Optional[Document]) -> Document:
        for field in fields:
            value = values.get(field)
            if isinstance(value, datetime):
                if value.tzinfo is not None:
                    values[field] = value.astimezone(timezone.utc).replace(tzinfo=None)
            elif isinstance(value, date):
                values[field] = start_of_day(value)
        return values

    return step


def object_ids(*fields: str) -> Step:
    """Parse foreign identifiers (single or list) into ObjectIds."""

    def step(values: Document, current: Optional[Document]) -> Document:
        for field in fields:
            value = values.get(field)
            label = field[:-3] if field.endswith("_id") else field
            if isinstance(value, list):
                values[field] = [to_object_id(v, f"{label} ID") for v in value]
            elif value is not None:
                values[field] = to_object_id(value, f"{label} ID")
        return values

    return step


def drop_none(*fields: str) -> Step:
    """Leave absent optional fields out of the document so sparse indexes skip them."""

    def step(values: Document, current: Optional[Document]) -> Document:
        for field in fields:
            if field in values and values[field] is None:
                del values[field]
        return values

    return step


@contextmanager
def storage_errors(label: str, action: str):
    try:
        yield
    except PyMongoError as exc:
        logger.error("%s %s failed", label, action, exc_info=exc)
        raise StorageFailure(f"Failed to {action} {label.lower()}") from exc


# ----------------------- Service -----------------------

class RecordService:
    collection_name: str = ""
    label: str = "Record"
    keys: Sequence[UniqueKey] = ()
    # Non-unique indexes for list filters.
    indexes: Sequence[Tuple[str, ...]] = ()
    references: Mapping[str, Populate] = {}
    hidden: Tuple[str, ...] = ()

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[self.collection_name]
        self.coordinator = UniquenessCoordinator(self.collection, self.keys, self.steps(), self.label)

    def steps(self) -> Iterable[Step]:
        return ()

    async def ensure_indexes(self) -> None:
        await self.coordinator.ensure_indexes()
        for fields in self.indexes:
            await self.collection.create_index([(f, ASCENDING) for f in fields])

    # Response shaping

    async def present(self, docs: Sequence[Document]) -> List[Dict[str, Any]]:
        with storage_errors(self.label, "load"):
            populated = await populate(self.db, docs, self.references)
        return [serialize(d, hidden=self.hidden) for d in populated]

    async def present_one(self, doc: Document) -> Dict[str, Any]:
        return (await self.present([doc]))[0]

    # Reads

    async def get(self, record_id: Any) -> Document:
        oid = to_object_id(record_id, f"{self.label.lower()} ID")
        with storage_errors(self.label, "load"):
            doc = await self.collection.find_one({"_id": oid})
        if doc is None:
            raise NotFound(f"{self.label} with ID {record_id} not found")
        return doc

    async def find_one(self, record_id: Any) -> Dict[str, Any]:
        return await self.present_one(await self.get(record_id))

    async def find_by(self, filt: Document, missing: str) -> Dict[str, Any]:
        with storage_errors(self.label, "load"):
            doc = await self.collection.find_one(filt)
        if doc is None:
            raise NotFound(missing)
        return await self.present_one(doc)

    async def list_page(
        self,
        filt: Document,
        page: Optional[int],
        limit: Optional[int],
        sort: Sequence[Tuple[str, int]] = (("created_at", -1),),
    ) -> Dict[str, Any]:
        with storage_errors(self.label, "list"):
            docs, total, page, limit = await paginate(self.collection, filt, page, limit, sort)
        return page_payload(await self.present(docs), total, page, limit)

    async def count(self, filt: Optional[Document] = None) -> int:
        with storage_errors(self.label, "count"):
            return await self.collection.count_documents(filt or {})

    async def group_count(self, field: str, match: Optional[Document] = None) -> List[Dict[str, Any]]:
        pipeline = [
            {"$match": match or {}},
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"_id": 1}},
        ]
        with storage_errors(self.label, "aggregate"):
            rows = await self.collection.aggregate(pipeline).to_list(length=None)
        return [{field: row["_id"], "count": row["count"]} for row in rows]

    # Writes

    async def update_fields(self, record_id: Any, changes: Document, user_id: Any) -> Dict[str, Any]:
        """Patch through the coordinator, attributing the change to ``user_id``."""
        patch = dict(changes)
        patch["updated_by"] = to_object_id(user_id, "user ID")
        doc = await self.coordinator.update(record_id, patch)
        logger.info("%s %s updated by %s (%s)", self.label, doc["_id"], user_id, ", ".join(sorted(changes)))
        return await self.present_one(doc)

    async def toggle_active(self, record_id: Any, user_id: Any) -> Dict[str, Any]:
        current = await self.get(record_id)
        changes = {"is_active": not current.get("is_active", True), "updated_by": to_object_id(user_id, "user ID")}
        with storage_errors(self.label, "update"):
            doc = await update_document(self.collection, current["_id"], changes)
        if doc is None:
            raise NotFound(f"{self.label} with ID {record_id} not found")
        logger.info("%s %s is_active -> %s", self.label, doc["_id"], doc["is_active"])
        return await self.present_one(doc)

    async def remove(self, record_id: Any) -> None:
        oid = to_object_id(record_id, f"{self.label.lower()} ID")
        with storage_errors(self.label, "delete"):
            doc = await self.collection.find_one_and_delete({"_id": oid})
        if doc is None:
            raise NotFound(f"{self.label} with ID {record_id} not found")
        logger.info("%s %s deleted", self.label, oid)


def optional_id(value: Optional[str], label: str):
    return to_object_id(value, label) if value else None
