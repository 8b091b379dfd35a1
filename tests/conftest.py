import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from school_records.attendance import AttendanceService
from school_records.homework import HomeworkService
from school_records.main import create_app
from school_records.students import StudentService
from school_records.teachers import TeacherService

PASSWORD = "secret123"


@pytest.fixture
def db():
    return AsyncMongoMockClient()["school_records_test"]


@pytest.fixture
def user_id():
    return str(ObjectId())


async def _service(cls, db):
    service = cls(db)
    await service.ensure_indexes()
    return service


@pytest.fixture
async def attendance_service(db):
    return await _service(AttendanceService, db)


@pytest.fixture
async def homework_service(db):
    return await _service(HomeworkService, db)


@pytest.fixture
async def student_service(db):
    return await _service(StudentService, db)


@pytest.fixture
async def teacher_service(db):
    return await _service(TeacherService, db)


@pytest.fixture
def client(db):
    with TestClient(create_app(database=db)) as c:
        yield c


@pytest.fixture
def login(client):
    """Register an account with ``role`` and return bearer headers for it."""

    def _login(role="super_admin", email=None):
        email = email or f"{role}@example.com"
        client.post(
            "/auth/register",
            json={"username": role, "email": email, "password": PASSWORD, "role": role},
        )
        resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
