import re
from datetime import date, datetime

import pytest
from bson import ObjectId

from school_records.database import utcnow
from school_records.errors import DuplicateKey, InvalidArgument
from school_records.schemas import CreateStudent, StudentQuery, StudentStatusUpdate, UpdateStudent
from school_records.students import add_months

CLASS_ID = ObjectId()


def student(**overrides):
    data = dict(
        class_id=str(CLASS_ID),
        batch_id=str(ObjectId()),
        name_english="Rahim Uddin",
        date_of_birth=date(2012, 3, 9),
        gender="male",
        present_address="Mirpur, Dhaka",
        permanent_address="Comilla",
        father_name="Karim Uddin",
        father_mobile_number="01711000000",
        admission_type="monthly",
        admission_fee=500,
        monthly_tuition_fee=200,
        paid_amount=300,
    )
    data.update(overrides)
    return CreateStudent(**data)


async def test_monthly_fees_and_payments(student_service, user_id):
    created = await student_service.create(student(), user_id)
    assert created["total_amount"] == 700
    assert created["due_amount"] == 400
    assert "next_payment_date" not in created

    with pytest.raises(InvalidArgument):
        await student_service.make_payment(created["id"], 500, user_id)

    paid = await student_service.make_payment(created["id"], 400, user_id)
    assert paid["paid_amount"] == 700
    assert paid["due_amount"] == 0
    assert paid["next_payment_date"] > utcnow()


async def test_course_admission_uses_course_fee(student_service, user_id):
    created = await student_service.create(
        student(admission_type="course", course_fee=3000, monthly_tuition_fee=200, paid_amount=1000),
        user_id,
    )
    assert created["total_amount"] == 3500
    assert created["due_amount"] == 2500

    paid = await student_service.make_payment(created["id"], 500, user_id)
    assert paid["due_amount"] == 2000
    assert "next_payment_date" not in paid


async def test_overpaid_create_is_rejected(student_service, user_id):
    with pytest.raises(InvalidArgument):
        await student_service.create(student(paid_amount=800), user_id)
    assert await student_service.count() == 0


async def test_update_rederives_fees_from_stored_values(student_service, user_id):
    created = await student_service.create(student(), user_id)

    updated = await student_service.update(created["id"], UpdateStudent(monthly_tuition_fee=600), user_id)
    assert updated["total_amount"] == 1100
    assert updated["due_amount"] == 800

    switched = await student_service.update(
        created["id"], UpdateStudent(admission_type="course", course_fee=1000), user_id
    )
    assert switched["total_amount"] == 1500
    assert switched["due_amount"] == 1200

    with pytest.raises(InvalidArgument):
        await student_service.update(created["id"], UpdateStudent(admission_fee=0, course_fee=100), user_id)


async def test_registration_id_generated_and_unique(student_service, user_id):
    created = await student_service.create(student(), user_id)
    assert re.fullmatch(rf"{utcnow().year}\d{{6}}", created["registration_id"])
    assert isinstance(created["admission_date"], datetime)
    assert created["date_of_birth"] == datetime(2012, 3, 9)

    with pytest.raises(DuplicateKey) as info:
        await student_service.create(student(registration_id=created["registration_id"]), user_id)
    assert info.value.fields == ("registration_id",)

    found = await student_service.find_by_registration_id(created["registration_id"])
    assert found["id"] == created["id"]


async def test_optional_mobile_number_only_unique_when_present(student_service, user_id):
    await student_service.create(student(), user_id)
    await student_service.create(student(), user_id)
    first = await student_service.create(student(student_mobile_number="01800000000"), user_id)
    assert first["student_mobile_number"] == "01800000000"

    with pytest.raises(DuplicateKey) as info:
        await student_service.create(student(student_mobile_number="01800000000"), user_id)
    assert info.value.message == "Student with this mobile number already exists"


async def test_status_update_and_filtering(student_service, user_id):
    created = await student_service.create(student(), user_id)
    await student_service.create(student(name_english="Fatima Begum", gender="female"), user_id)

    suspended = await student_service.update_status(
        created["id"], StudentStatusUpdate(status="suspended", is_active=False), user_id
    )
    assert suspended["status"] == "suspended"
    assert suspended["is_active"] is False

    page = await student_service.find_all(StudentQuery(search="fatima"))
    assert page["total"] == 1
    assert page["items"][0]["name_english"] == "Fatima Begum"

    page = await student_service.find_all(StudentQuery(is_active=False))
    assert [s["id"] for s in page["items"]] == [created["id"]]


async def test_statistics(db, student_service, user_id):
    await db["class"].insert_one({"_id": CLASS_ID, "classname": "Class Seven"})
    await student_service.create(student(), user_id)
    other = await student_service.create(student(paid_amount=700), user_id)
    await student_service.update_status(other["id"], StudentStatusUpdate(status="inactive", is_active=False), user_id)

    stats = await student_service.statistics()
    assert stats["total_students"] == 2
    assert stats["active_students"] == 1
    assert stats["inactive_students"] == 1
    assert stats["total_due_amount"] == 400
    assert stats["class_distribution"] == [{"class_id": str(CLASS_ID), "classname": "Class Seven", "count": 2}]


async def test_class_reference_is_expanded(db, student_service, user_id):
    await db["class"].insert_one({"_id": CLASS_ID, "classname": "Class Seven"})
    created = await student_service.create(student(), user_id)

    assert created["class_id"] == {"id": str(CLASS_ID), "classname": "Class Seven"}
    # Missing batch: the bare identifier comes back.
    assert isinstance(created["batch_id"], str)


def test_add_months_clamps_day():
    assert add_months(datetime(2025, 1, 31, 10, 0), 1) == datetime(2025, 2, 28, 10, 0)
    assert add_months(datetime(2025, 12, 15), 1) == datetime(2026, 1, 15)


async def test_fractional_fees_can_be_paid_off_exactly(student_service, user_id):
    created = await student_service.create(
        student(admission_fee=500, monthly_tuition_fee=99.9, paid_amount=300.1), user_id
    )
    assert created["total_amount"] == 599.9
    assert created["due_amount"] == 299.8

    paid = await student_service.make_payment(created["id"], 299.8, user_id)
    assert paid["paid_amount"] == 599.9
    assert paid["due_amount"] == 0
