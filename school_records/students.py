"""
Student admissions.

Students are identified by ``registration_id`` (generated as the current year
followed by six random digits when not supplied). A student's mobile number
and ward number are unique too, but only among students that have one.

``total_amount`` and ``due_amount`` are never accepted from clients; they are
recomputed from the admission type, the fees and the paid amount whenever any
of those change.
"""

import calendar
import logging
import random
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import BATCH_COLLECTION, CLASS_COLLECTION, get_db, search_filter, to_object_id, utcnow
from .errors import InvalidArgument
from .records import (
    USER_SUMMARY,
    RecordService,
    as_datetime,
    drop_none,
    object_ids,
    optional_id,
    storage_errors,
)
from .references import Populate
from .schemas import CreateStudent, PaymentRequest, StudentQuery, StudentStatusUpdate, UpdateStudent
from .security import ADMINS, MANAGERS, require_roles
from .uniqueness import UniqueKey

logger = logging.getLogger(__name__)

FEE_FIELDS = ("admission_type", "admission_fee", "monthly_tuition_fee", "course_fee", "paid_amount")


def add_months(value: datetime, months: int) -> datetime:
    month = value.month - 1 + months
    year = value.year + month // 12
    month = month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def money(value) -> float:
    return round(value or 0, 2)


def fee_totals(values) -> tuple:
    admission_fee = values.get("admission_fee") or 0
    if values.get("admission_type") == "monthly":
        tuition = values.get("monthly_tuition_fee") or 0
    elif values.get("admission_type") == "course":
        tuition = values.get("course_fee") or 0
    else:
        tuition = 0
    total = money(admission_fee + tuition)
    return total, money(total - (values.get("paid_amount") or 0))


# ----------------------- Transformation steps -----------------------

def generate_registration_id(values, current):
    if current is None and not values.get("registration_id"):
        values["registration_id"] = f"{utcnow().year}{random.randint(100000, 999999)}"
    return values


def default_admission_date(values, current):
    if current is None and values.get("admission_date") is None:
        values["admission_date"] = utcnow()
    return values


def derive_fee_totals(values, current):
    if current is not None and not any(field in values for field in FEE_FIELDS):
        return values
    total, due = fee_totals({**(current or {}), **values})
    if due < 0:
        raise InvalidArgument("Paid amount cannot exceed the total amount")
    values["total_amount"] = total
    values["due_amount"] = due
    return values


class StudentService(RecordService):
    collection_name = "student"
    label = "Student"
    keys = (
        UniqueKey(("registration_id",), "Student with this registration ID already exists"),
        UniqueKey(("student_mobile_number",), "Student with this mobile number already exists", sparse=True),
        UniqueKey(("ward_number",), "Student with this ward number already exists", sparse=True),
    )
    indexes = (("class_id",), ("batch_id",), ("status",), ("is_active",), ("name_english",))
    references = {
        "class_id": Populate(CLASS_COLLECTION, ("classname",)),
        "batch_id": Populate(BATCH_COLLECTION, ("batch_name", "session_year")),
        "created_by": USER_SUMMARY,
        "updated_by": USER_SUMMARY,
    }

    def steps(self):
        return (
            object_ids("class_id", "batch_id"),
            generate_registration_id,
            default_admission_date,
            as_datetime("date_of_birth", "admission_date"),
            drop_none("student_mobile_number", "ward_number"),
            derive_fee_totals,
        )

    async def create(self, payload: CreateStudent, user_id):
        data = payload.model_dump()
        data["created_by"] = to_object_id(user_id, "user ID")
        data["updated_by"] = None
        doc = await self.coordinator.create(data)
        logger.info("Student %s registered as %s by %s", doc["_id"], doc["registration_id"], user_id)
        return await self.present_one(doc)

    async def find_all(self, query: StudentQuery):
        filt = {}
        if query.search:
            filt.update(
                search_filter(
                    query.search,
                    ["name_english", "registration_id", "father_name", "father_mobile_number"],
                )
            )
        if query.class_id:
            filt["class_id"] = optional_id(query.class_id, "class ID")
        if query.batch_id:
            filt["batch_id"] = optional_id(query.batch_id, "batch ID")
        if query.status:
            filt["status"] = query.status
        if query.is_active is not None:
            filt["is_active"] = query.is_active
        if query.gender:
            filt["gender"] = query.gender
        if query.admission_type:
            filt["admission_type"] = query.admission_type
        return await self.list_page(filt, query.page, query.limit)

    async def find_by_registration_id(self, registration_id: str):
        return await self.find_by(
            {"registration_id": registration_id},
            f"Student with registration ID {registration_id} not found",
        )

    async def update(self, record_id, payload: UpdateStudent, user_id):
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        return await self.update_fields(record_id, changes, user_id)

    async def update_status(self, record_id, payload: StudentStatusUpdate, user_id):
        return await self.update_fields(record_id, payload.model_dump(), user_id)

    async def make_payment(self, record_id, amount: float, user_id):
        current = await self.get(record_id)
        amount = money(amount)
        due = money(current.get("due_amount"))
        if amount > due:
            raise InvalidArgument(f"Payment amount exceeds the due amount of {due}")

        changes = {"paid_amount": money((current.get("paid_amount") or 0) + amount)}
        if current.get("admission_type") == "monthly":
            changes["next_payment_date"] = add_months(utcnow(), 1)
        result = await self.update_fields(current["_id"], changes, user_id)
        logger.info("Payment of %s recorded for student %s, due now %s", amount, current["_id"], result["due_amount"])
        return result

    async def statistics(self):
        total = await self.count()
        active = await self.count({"is_active": True})
        with storage_errors(self.label, "aggregate"):
            due_rows = await self.collection.aggregate(
                [{"$group": {"_id": None, "total": {"$sum": "$due_amount"}}}]
            ).to_list(length=None)
            class_rows = await self.collection.aggregate(
                [
                    {"$group": {"_id": "$class_id", "count": {"$sum": 1}}},
                    {"$lookup": {"from": CLASS_COLLECTION, "localField": "_id", "foreignField": "_id", "as": "class"}},
                    {"$sort": {"count": -1}},
                ]
            ).to_list(length=None)

        distribution = []
        for row in class_rows:
            classes = row.get("class") or []
            distribution.append(
                {
                    "class_id": str(row["_id"]) if row["_id"] is not None else None,
                    "classname": classes[0].get("classname") if classes else None,
                    "count": row["count"],
                }
            )
        return {
            "total_students": total,
            "active_students": active,
            "inactive_students": total - active,
            "total_due_amount": due_rows[0]["total"] if due_rows else 0,
            "class_distribution": distribution,
        }


def get_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> StudentService:
    return StudentService(db)


router = APIRouter(prefix="/students", tags=["students"])


@router.post("", status_code=201)
async def create_student(
    payload: CreateStudent,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.create(payload, current["id"])


@router.get("")
async def list_students(
    query: StudentQuery = Depends(),
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_all(query)


@router.get("/statistics/overview")
async def student_statistics(
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.statistics()


@router.get("/registration/{registration_id}")
async def get_student_by_registration(
    registration_id: str,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_by_registration_id(registration_id)


@router.get("/{student_id}")
async def get_student(
    student_id: str,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.find_one(student_id)


@router.patch("/{student_id}")
async def update_student(
    student_id: str,
    payload: UpdateStudent,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update(student_id, payload, current["id"])


@router.patch("/{student_id}/status")
async def update_student_status(
    student_id: str,
    payload: StudentStatusUpdate,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.update_status(student_id, payload, current["id"])


@router.post("/{student_id}/payment")
async def make_payment(
    student_id: str,
    payload: PaymentRequest,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*MANAGERS)),
):
    return await service.make_payment(student_id, payload.amount, current["id"])


@router.delete("/{student_id}", status_code=204)
async def delete_student(
    student_id: str,
    service: StudentService = Depends(get_service),
    current=Depends(require_roles(*ADMINS)),
):
    await service.remove(student_id)
    return Response(status_code=204)
