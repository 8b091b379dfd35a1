"""Homework assignments, unique by name, class, subject and day."""

import logging
import re
from datetime import date, datetime

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import (
    BATCH_COLLECTION,
    CLASS_COLLECTION,
    SUBJECT_COLLECTION,
    day_range,
    get_db,
    search_filter,
    to_object_id,
    utcnow,
)
from .errors import InvalidArgument
from .records import USER_SUMMARY, RecordService, normalize_day, object_ids, optional_id, storage_errors
from .references import Populate
from .schemas import CreateHomework, HomeworkQuery, UpdateHomework
from .security import ADMINS, MANAGERS, READERS, require_roles
from .uniqueness import UniqueKey

logger = logging.getLogger(__name__)

ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_day(value: str) -> date:
    if not ISO_DAY.match(value):
        raise InvalidArgument("Invalid date format. Use YYYY-MM-DD")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidArgument("Invalid date format. Use YYYY-MM-DD")


class HomeworkService(RecordService):
    collection_name = "homework"
    label = "Homework"
    keys = (
        UniqueKey(
            ("homework_name", "class_id", "subject_id", "homework_date"),
            "Homework with this name already exists for the same class, subject and date",
        ),
    )
    indexes = (("homework_date",), ("class_id", "subject_id"), ("created_by",), ("is_active",))
    references = {
        "class_id": Populate(CLASS_COLLECTION, ("classname",)),
        "subject_id": Populate(SUBJECT_COLLECTION, ("subject_name",)),
        "batch_ids": Populate(BATCH_COLLECTION, ("batch_name",)),
        "created_by": USER_SUMMARY,
        "updated_by": USER_SUMMARY,
    }

    def steps(self):
        return (object_ids("class_id", "subject_id", "batch_ids"), normalize_day("homework_date"))

    async def create(self, payload: CreateHomework, user_id):
        data = payload.model_dump()
        data["created_by"] = to_object_id(user_id, "user ID")
        data["updated_by"] = None
        doc = await self.coordinator.create(data)
        logger.info("Homework %s (%s) created by %s", doc["_id"], doc["homework_name"], user_id)
        return await self.present_one(doc)

    async def find_all(self, query: HomeworkQuery):
        filt = {}
        if query.search:
            filt.update(search_filter(query.search, ["homework_name", "description"]))
        if query.class_id:
            filt["class_id"] = optional_id(query.class_id, "class ID")
        if query.subject_id:
            filt["subject_id"] = optional_id(query.subject_id, "subject ID")
        if query.batch_id:
            filt["batch_ids"] = {"$in": [optional_id(query.batch_id, "batch ID")]}
        if query.date:
            filt["homework_date"] = day_range(query.date)
        if query.created_by:
            filt["created_by"] = optional_id(query.created_by, "user ID")
        if query.is_active is not None:
            filt["is_active"] = query.is_active

        direction = 1 if query.sort_order == "asc" else -1
        return await self.list_page(filt, query.page, query.limit, [(query.sort_by, direction)])

    async def update(self, record_id, payload: UpdateHomework, user_id):
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        return await self.update_fields(record_id, changes, user_id)

    async def stats(self):
        now = utcnow()
        return {
            "total_homework": await self.count(),
            "active_homework": await self.count({"is_active": True}),
            "upcoming_homework": await self.count({"homework_date": {"$gt": now}}),
            "completed_homework": await self.count({"homework_date": {"$lt": now}}),
        }

    async def by_date_range(self, start: str, end: str):
        first, last = parse_day(start), parse_day(end)
        if first > last:
            raise InvalidArgument("Start date must be before end date")
        with storage_errors(self.label, "list"):
            cursor = self.collection.find({"homework_date": day_range(first, last)}).sort("homework_date", 1)
            docs = await cursor.to_list(length=None)
        return await self.present(docs)


def get_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> HomeworkService:
    return HomeworkService(db)


router = APIRouter(prefix="/homework", tags=["homework"])


@router.post("", status_code=201)
async def create_homework(
    payload: CreateHomework,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.create(payload, current["id"])


@router.get("")
async def list_homework(
    query: HomeworkQuery = Depends(),
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*READERS)),
):
    return await service.find_all(query)


@router.get("/stats/overview")
async def homework_stats(
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.stats()


@router.get("/date-range/{start_date}/{end_date}")
async def homework_by_date_range(
    start_date: str,
    end_date: str,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*READERS)),
):
    return await service.by_date_range(start_date, end_date)


@router.get("/{homework_id}")
async def get_homework(
    homework_id: str,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*READERS)),
):
    return await service.find_one(homework_id)


@router.patch("/{homework_id}")
async def update_homework(
    homework_id: str,
    payload: UpdateHomework,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update(homework_id, payload, current["id"])


@router.patch("/{homework_id}/toggle-active")
async def toggle_homework(
    homework_id: str,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.toggle_active(homework_id, current["id"])


@router.delete("/{homework_id}", status_code=204)
async def delete_homework(
    homework_id: str,
    service: HomeworkService = Depends(get_service),
    current=Depends(require_roles(*ADMINS)),
):
    await service.remove(homework_id)
    return Response(status_code=204)
