"""
Natural-key enforcement shared by every record collection.

Each collection declares its natural keys once as ``UniqueKey`` objects. The
same declaration drives both the advisory ``find_one`` pre-check and the
unique index created at startup, so the two layers cannot drift apart. The
pre-check only gives an early, readable conflict; the index is what holds
under concurrent writes, and a violation of it is reported with exactly the
same ``DuplicateKey`` error.

Soft-deleted records (``is_active = False``) are not excluded from either
layer: an inactive record still blocks its key.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .database import insert_document, to_object_id, update_document
from .errors import DuplicateKey, NotFound, StorageFailure

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

# A transformation step receives the incoming values and, on update, the
# stored document, and returns the values to persist.
Step = Callable[[Document, Optional[Document]], Document]


@dataclass(frozen=True)
class UniqueKey:
    fields: Tuple[str, ...]
    message: str
    # Sparse keys only apply to records that carry every field.
    sparse: bool = False

    @property
    def index_name(self) -> str:
        return "uniq_" + "_".join(self.fields)

    def filter_for(self, values: Document) -> Optional[Document]:
        filt = {}
        for field in self.fields:
            value = values.get(field)
            if value is None and self.sparse:
                return None
            filt[field] = value
        return filt


class UniquenessCoordinator:
    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        keys: Sequence[UniqueKey],
        steps: Iterable[Step] = (),
        label: str = "Record",
    ):
        self.collection = collection
        self.keys = tuple(keys)
        self.steps = tuple(steps)
        self.label = label

    async def ensure_indexes(self) -> None:
        for key in self.keys:
            await self.collection.create_index(
                [(field, ASCENDING) for field in key.fields],
                unique=True,
                sparse=key.sparse,
                name=key.index_name,
            )

    def prepare(self, values: Document, current: Optional[Document] = None) -> Document:
        for step in self.steps:
            values = step(values, current)
        return values

    async def check(self, values: Document, exclude_id: Optional[ObjectId] = None) -> None:
        """Raise ``DuplicateKey`` if any other record already holds one of ``values``' keys."""
        for key in self.keys:
            filt = key.filter_for(values)
            if filt is None:
                continue
            if exclude_id is not None:
                filt["_id"] = {"$ne": exclude_id}
            if await self.collection.find_one(filt, projection={"_id": 1}) is not None:
                raise self._duplicate(key)

    async def create(self, candidate: Document) -> Document:
        data = self.prepare(dict(candidate))
        try:
            await self.check(data)
            return await insert_document(self.collection, data)
        except DuplicateKeyError as exc:
            raise await self._translate(exc, data) from exc
        except PyMongoError as exc:
            raise self._storage_failure("create", exc) from exc

    async def update(self, record_id: Any, patch: Document) -> Document:
        oid = to_object_id(record_id, f"{self.label.lower()} ID")
        try:
            current = await self.collection.find_one({"_id": oid})
            if current is None:
                raise NotFound(f"{self.label} with ID {record_id} not found")

            changes = self.prepare(dict(patch), current)
            # The record's key after the patch: absent fields keep their stored value.
            prospective = {**current, **changes}
            await self.check(prospective, exclude_id=oid)

            updated = await update_document(self.collection, oid, changes)
        except DuplicateKeyError as exc:
            raise await self._translate(exc, prospective, exclude_id=oid) from exc
        except PyMongoError as exc:
            raise self._storage_failure("update", exc) from exc

        if updated is None:
            raise NotFound(f"{self.label} with ID {record_id} not found")
        return updated

    def _duplicate(self, key: UniqueKey) -> DuplicateKey:
        logger.warning("%s rejected: duplicate %s", self.label, ", ".join(key.fields))
        return DuplicateKey(key.message, key=key.index_name, fields=key.fields)

    async def _translate(
        self, exc: DuplicateKeyError, values: Document, exclude_id: Optional[ObjectId] = None
    ) -> DuplicateKey:
        """Map an index violation onto the ``UniqueKey`` it came from."""
        pattern = (exc.details or {}).get("keyPattern") or {}
        for key in self.keys:
            if set(pattern) == set(key.fields):
                return self._duplicate(key)

        message = str(exc)
        for key in self.keys:
            if key.index_name in message:
                return self._duplicate(key)

        # The winning record is committed by now, so the pre-check can name it.
        try:
            await self.check(values, exclude_id=exclude_id)
        except DuplicateKey as dup:
            return dup
        except PyMongoError:
            logger.exception("%s: could not identify violated key", self.label)
        return self._duplicate(self.keys[0])

    def _storage_failure(self, action: str, exc: PyMongoError) -> StorageFailure:
        logger.error("%s %s failed", self.label, action, exc_info=exc)
        return StorageFailure(f"Failed to {action} {self.label.lower()}")
