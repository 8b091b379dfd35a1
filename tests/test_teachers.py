from datetime import date

import pytest
from bson import ObjectId

from school_records.errors import DuplicateKey, InvalidArgument, NotFound
from school_records.schemas import CreateTeacher, TeacherQuery, TeacherStatusUpdate, UpdateTeacher
from school_records.security import verify_password


def teacher(**overrides):
    data = dict(
        full_name="Nasrin Akter",
        gender="female",
        date_of_birth=date(1990, 5, 1),
        contact_number="01711111111",
        emergency_contact_number="01722222222",
        present_address="Dhanmondi, Dhaka",
        permanent_address="Sylhet",
        email="Nasrin@Example.com",
        password="teach123",
        designation="subject_teacher",
        assign_type="class_basis",
        joining_date=date(2024, 1, 1),
    )
    data.update(overrides)
    return CreateTeacher(**data)


async def test_create_lowercases_email_and_hides_password(teacher_service, user_id):
    created = await teacher_service.create(teacher(), user_id)

    assert created["email"] == "nasrin@example.com"
    assert "password" not in created
    assert created["is_email_verified"] is False

    stored = await teacher_service.collection.find_one({"email": "nasrin@example.com"})
    assert stored["password"] != "teach123"
    assert verify_password("teach123", stored["password"])


async def test_email_is_unique_regardless_of_case(teacher_service, user_id):
    await teacher_service.create(teacher(), user_id)

    with pytest.raises(DuplicateKey) as info:
        await teacher_service.create(teacher(email="NASRIN@example.com", full_name="Someone Else"), user_id)
    assert info.value.message == "Teacher with this email already exists"


async def test_optional_keys_are_sparse(teacher_service, user_id):
    await teacher_service.create(teacher(email="a@example.com"), user_id)
    await teacher_service.create(teacher(email="b@example.com"), user_id)
    await teacher_service.create(teacher(email="c@example.com", national_id="1990123456"), user_id)

    with pytest.raises(DuplicateKey) as info:
        await teacher_service.create(teacher(email="d@example.com", national_id="1990123456"), user_id)
    assert info.value.fields == ("national_id",)

    await teacher_service.create(teacher(email="e@example.com", system_email="Staff1@School.org"), user_id)
    with pytest.raises(DuplicateKey):
        await teacher_service.create(teacher(email="f@example.com", system_email="staff1@school.org"), user_id)


async def test_monthly_assignment_needs_class_count_and_salary(teacher_service, user_id):
    with pytest.raises(InvalidArgument):
        await teacher_service.create(teacher(assign_type="monthly_basis", salary=20000), user_id)

    created = await teacher_service.create(teacher(assign_type="class_basis"), user_id)
    with pytest.raises(InvalidArgument):
        await teacher_service.update(created["id"], UpdateTeacher(assign_type="both"), user_id)

    updated = await teacher_service.update(
        created["id"], UpdateTeacher(assign_type="both", monthly_total_class=20, salary=15000), user_id
    )
    assert updated["assign_type"] == "both"


async def test_update_rehashes_password_and_keeps_own_email(teacher_service, user_id):
    created = await teacher_service.create(teacher(), user_id)

    updated = await teacher_service.update(
        created["id"], UpdateTeacher(email="nasrin@example.com", full_name="Nasrin A."), user_id
    )
    assert updated["full_name"] == "Nasrin A."

    await teacher_service.change_password(created["id"], "newpass1", user_id)
    stored = await teacher_service.get(created["id"])
    assert verify_password("newpass1", stored["password"])
    assert not verify_password("teach123", stored["password"])


async def test_verification_and_status(teacher_service, user_id):
    created = await teacher_service.create(teacher(), user_id)

    assert (await teacher_service.verify_email(created["id"], user_id))["is_email_verified"] is True
    assert (await teacher_service.verify_phone(created["id"], user_id))["is_phone_verified"] is True

    resigned = await teacher_service.update_status(
        created["id"], TeacherStatusUpdate(status="resigned", is_active=False), user_id
    )
    assert resigned["status"] == "resigned"
    assert resigned["is_active"] is False


async def test_find_by_email(teacher_service, user_id):
    created = await teacher_service.create(teacher(), user_id)

    found = await teacher_service.find_by_email("NASRIN@EXAMPLE.COM")
    assert found["id"] == created["id"]
    with pytest.raises(NotFound):
        await teacher_service.find_by_email("nobody@example.com")


async def test_statistics_scoped_to_creator(teacher_service, user_id):
    someone_else = str(ObjectId())
    mine = await teacher_service.create(teacher(email="a@example.com"), user_id)
    await teacher_service.create(teacher(email="b@example.com", designation="head_teacher"), user_id)
    await teacher_service.create(teacher(email="c@example.com", gender="male"), someone_else)
    await teacher_service.verify_email(mine["id"], user_id)

    overall = await teacher_service.statistics()
    assert overall["total_teachers"] == 3
    assert {"gender": "male", "count": 1} in overall["gender_distribution"]

    summary = await teacher_service.my_stats(user_id)
    assert summary == {
        "total_teachers": 2,
        "active_teachers": 2,
        "inactive_teachers": 0,
        "verified_email": 1,
        "verified_phone": 0,
    }

    page = await teacher_service.my_teachers(user_id, TeacherQuery(designation="head_teacher"))
    assert page["total"] == 1
    assert page["items"][0]["email"] == "b@example.com"
