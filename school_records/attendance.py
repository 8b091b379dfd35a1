"""Student attendance: one record per class, batch and calendar day."""

import logging

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import BATCH_COLLECTION, CLASS_COLLECTION, day_range, get_db, search_filter, to_object_id
from .errors import InvalidArgument
from .records import USER_SUMMARY, RecordService, normalize_day, object_ids, optional_id
from .references import Populate
from .schemas import AttendanceQuery, CreateAttendance, UpdateAttendance
from .security import ADMINS, MANAGERS, READERS, require_roles
from .uniqueness import UniqueKey

logger = logging.getLogger(__name__)


class AttendanceService(RecordService):
    collection_name = "student_attendance"
    label = "Attendance"
    keys = (
        UniqueKey(
            ("class_id", "batch_id", "attendance_date"),
            "Attendance already exists for this class, batch and date",
        ),
    )
    indexes = (("class_id",), ("batch_id",), ("attendance_date",), ("attendance_type",), ("is_active",), ("created_by",))
    references = {
        "class_id": Populate(CLASS_COLLECTION, ("classname",)),
        "batch_id": Populate(BATCH_COLLECTION, ("batch_name",)),
        "created_by": USER_SUMMARY,
        "updated_by": USER_SUMMARY,
    }

    def steps(self):
        return (object_ids("class_id", "batch_id"), normalize_day("attendance_date"))

    async def create(self, payload: CreateAttendance, user_id):
        data = payload.model_dump()
        data["created_by"] = to_object_id(user_id, "user ID")
        data["updated_by"] = None
        doc = await self.coordinator.create(data)
        logger.info("Attendance %s created for class %s on %s", doc["_id"], doc["class_id"], doc["attendance_date"].date())
        return await self.present_one(doc)

    async def find_all(self, query: AttendanceQuery):
        filt = {}
        if query.search:
            filt.update(search_filter(query.search, ["remarks"]))
        if query.class_id:
            filt["class_id"] = optional_id(query.class_id, "class ID")
        if query.batch_id:
            filt["batch_id"] = optional_id(query.batch_id, "batch ID")
        if query.attendance_type:
            filt["attendance_type"] = query.attendance_type

        if query.date:
            filt["attendance_date"] = day_range(query.date)
        elif query.start_date or query.end_date:
            if query.start_date and query.end_date and query.start_date > query.end_date:
                raise InvalidArgument("start_date must not be after end_date")
            window = {}
            if query.start_date:
                window["$gte"] = day_range(query.start_date)["$gte"]
            if query.end_date:
                window["$lt"] = day_range(query.end_date)["$lt"]
            filt["attendance_date"] = window

        if query.created_by:
            filt["created_by"] = optional_id(query.created_by, "user ID")
        if query.is_active is not None:
            filt["is_active"] = query.is_active

        direction = 1 if query.sort_order == "asc" else -1
        return await self.list_page(filt, query.page, query.limit, [(query.sort_by, direction)])

    async def update(self, record_id, payload: UpdateAttendance, user_id):
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        return await self.update_fields(record_id, changes, user_id)


def get_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> AttendanceService:
    return AttendanceService(db)


router = APIRouter(prefix="/student-attendance", tags=["student-attendance"])


@router.post("", status_code=201)
async def create_attendance(
    payload: CreateAttendance,
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.create(payload, current["id"])


@router.get("")
async def list_attendance(
    query: AttendanceQuery = Depends(),
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*READERS)),
):
    return await service.find_all(query)


@router.get("/{attendance_id}")
async def get_attendance(
    attendance_id: str,
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*READERS)),
):
    return await service.find_one(attendance_id)


@router.patch("/{attendance_id}")
async def update_attendance(
    attendance_id: str,
    payload: UpdateAttendance,
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update(attendance_id, payload, current["id"])


@router.patch("/{attendance_id}/toggle-active")
async def toggle_attendance(
    attendance_id: str,
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.toggle_active(attendance_id, current["id"])


@router.delete("/{attendance_id}", status_code=204)
async def delete_attendance(
    attendance_id: str,
    service: AttendanceService = Depends(get_service),
    current=Depends(require_roles(*ADMINS)),
):
    await service.remove(attendance_id)
    return Response(status_code=204)
