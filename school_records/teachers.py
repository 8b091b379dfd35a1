"""Teacher profiles. Emails are stored lowercased; passwords only as bcrypt hashes."""

import logging

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import get_db, search_filter, to_object_id
from .errors import InvalidArgument
from .records import USER_SUMMARY, RecordService, as_datetime, drop_none, optional_id
from .schemas import (
    ChangePasswordRequest,
    CreateTeacher,
    TeacherQuery,
    TeacherStatusUpdate,
    UpdateTeacher,
)
from .security import ADMINS, MANAGERS, SUPER_ADMIN, get_password_hash, require_roles
from .uniqueness import UniqueKey

logger = logging.getLogger(__name__)

EMAIL_FIELDS = ("email", "system_email", "secondary_email")
MONTHLY_ASSIGN_TYPES = ("monthly_basis", "both")
ASSIGNMENT_FIELDS = ("assign_type", "monthly_total_class", "salary")


# ----------------------- Transformation steps -----------------------

def lowercase_emails(values, current):
    for field in EMAIL_FIELDS:
        if isinstance(values.get(field), str):
            values[field] = values[field].lower()
    return values


def hash_password(values, current):
    if values.get("password"):
        values["password"] = get_password_hash(values["password"])
    return values


def require_assignment_terms(values, current):
    """Monthly-paid teachers need a class count and a salary."""
    if current is not None and not any(field in values for field in ASSIGNMENT_FIELDS):
        return values
    merged = {**(current or {}), **values}
    if merged.get("assign_type") in MONTHLY_ASSIGN_TYPES:
        if merged.get("monthly_total_class") is None or merged.get("salary") is None:
            raise InvalidArgument("monthly_total_class and salary are required for monthly_basis or both assign types")
    return values


class TeacherService(RecordService):
    collection_name = "teacher"
    label = "Teacher"
    keys = (
        UniqueKey(("email",), "Teacher with this email already exists"),
        UniqueKey(("system_email",), "Teacher with this system email already exists", sparse=True),
        UniqueKey(("national_id",), "Teacher with this national ID already exists", sparse=True),
    )
    indexes = (("designation",), ("assign_type",), ("status",), ("is_active",), ("created_by",))
    references = {"created_by": USER_SUMMARY, "updated_by": USER_SUMMARY}
    hidden = ("password",)

    def steps(self):
        return (
            lowercase_emails,
            hash_password,
            require_assignment_terms,
            as_datetime("date_of_birth", "joining_date"),
            drop_none("system_email", "national_id"),
        )

    async def create(self, payload: CreateTeacher, user_id):
        data = payload.model_dump()
        data.update(is_email_verified=False, is_phone_verified=False)
        data["created_by"] = to_object_id(user_id, "user ID")
        data["updated_by"] = None
        doc = await self.coordinator.create(data)
        logger.info("Teacher %s (%s) created by %s", doc["_id"], doc["email"], user_id)
        return await self.present_one(doc)

    def _filter(self, query: TeacherQuery):
        filt = {}
        if query.search:
            filt.update(search_filter(query.search, ["full_name", "email", "contact_number", "national_id"]))
        for field in ("designation", "assign_type", "status", "gender", "religion"):
            value = getattr(query, field)
            if value:
                filt[field] = value
        if query.is_active is not None:
            filt["is_active"] = query.is_active
        if query.created_by:
            filt["created_by"] = optional_id(query.created_by, "user ID")
        return filt

    async def find_all(self, query: TeacherQuery):
        return await self.list_page(self._filter(query), query.page, query.limit)

    async def my_teachers(self, user_id, query: TeacherQuery):
        filt = self._filter(query)
        filt["created_by"] = to_object_id(user_id, "user ID")
        return await self.list_page(filt, query.page, query.limit)

    async def find_by_email(self, email: str):
        return await self.find_by({"email": email.lower()}, f"Teacher with email {email} not found")

    async def update(self, record_id, payload: UpdateTeacher, user_id):
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        return await self.update_fields(record_id, changes, user_id)

    async def update_status(self, record_id, payload: TeacherStatusUpdate, user_id):
        return await self.update_fields(record_id, payload.model_dump(), user_id)

    async def verify_email(self, record_id, user_id):
        return await self.update_fields(record_id, {"is_email_verified": True}, user_id)

    async def verify_phone(self, record_id, user_id):
        return await self.update_fields(record_id, {"is_phone_verified": True}, user_id)

    async def change_password(self, record_id, new_password: str, user_id):
        return await self.update_fields(record_id, {"password": new_password}, user_id)

    async def statistics(self, created_by=None):
        match = {}
        if created_by is not None:
            match["created_by"] = to_object_id(created_by, "user ID")
        total = await self.count(match)
        active = await self.count({**match, "is_active": True})
        return {
            "total_teachers": total,
            "active_teachers": active,
            "inactive_teachers": total - active,
            "verified_email": await self.count({**match, "is_email_verified": True}),
            "verified_phone": await self.count({**match, "is_phone_verified": True}),
            "by_designation": await self.group_count("designation", match),
            "by_assign_type": await self.group_count("assign_type", match),
            "gender_distribution": await self.group_count("gender", match),
        }

    async def my_stats(self, user_id):
        stats = await self.statistics(created_by=user_id)
        keys = ("total_teachers", "active_teachers", "inactive_teachers", "verified_email", "verified_phone")
        return {key: stats[key] for key in keys}


def get_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> TeacherService:
    return TeacherService(db)


router = APIRouter(prefix="/teachers", tags=["teachers"])


@router.post("", status_code=201)
async def create_teacher(
    payload: CreateTeacher,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.create(payload, current["id"])


@router.get("")
async def list_teachers(
    query: TeacherQuery = Depends(),
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_all(query)


@router.get("/statistics/overview")
async def teacher_statistics(
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.statistics()


@router.get("/my-teachers")
async def my_teachers(
    query: TeacherQuery = Depends(),
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.my_teachers(current["id"], query)


@router.get("/my-stats/summary")
async def my_stats_summary(
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.my_stats(current["id"])


@router.get("/email/{email}")
async def get_teacher_by_email(
    email: str,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_by_email(email)


@router.get("/{teacher_id}")
async def get_teacher(
    teacher_id: str,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_one(teacher_id)


@router.patch("/{teacher_id}")
async def update_teacher(
    teacher_id: str,
    payload: UpdateTeacher,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update(teacher_id, payload, current["id"])


@router.patch("/{teacher_id}/status")
async def update_teacher_status(
    teacher_id: str,
    payload: TeacherStatusUpdate,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update_status(teacher_id, payload, current["id"])


@router.patch("/{teacher_id}/verify-email")
async def verify_teacher_email(
    teacher_id: str,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.verify_email(teacher_id, current["id"])


@router.patch("/{teacher_id}/verify-phone")
async def verify_teacher_phone(
    teacher_id: str,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.verify_phone(teacher_id, current["id"])


@router.patch("/{teacher_id}/change-password")
async def change_teacher_password(
    teacher_id: str,
    payload: ChangePasswordRequest,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(*ADMINS)),
):
    return await service.change_password(teacher_id, payload.new_password, current["id"])


@router.delete("/{teacher_id}", status_code=204)
async def delete_teacher(
    teacher_id: str,
    service: TeacherService = Depends(get_service),
    current=Depends(require_roles(SUPER_ADMIN)),
):
    await service.remove(teacher_id)
    return Response(status_code=204)
