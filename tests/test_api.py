from bson import ObjectId

CLASS_ID = str(ObjectId())
BATCH_ID = str(ObjectId())


def attendance_body(**overrides):
    body = {"class_id": CLASS_ID, "batch_id": BATCH_ID, "attendance_date": "2025-12-14T15:30:00"}
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json()["ok"] is True


def test_register_login_me(client, login):
    headers = login("staff", email="Clerk@Example.com")

    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "clerk@example.com"
    assert me.json()["role"] == "staff"

    again = client.post(
        "/auth/register",
        json={"username": "x", "email": "clerk@example.com", "password": "secret123"},
    )
    assert again.status_code == 400

    wrong = client.post("/auth/login", json={"email": "clerk@example.com", "password": "nope-nope"})
    assert wrong.status_code == 400


def test_requests_without_token_are_rejected(client):
    assert client.get("/student-attendance").status_code == 401
    bad = client.get("/student-attendance", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_role_checks(client, login):
    student = login("student")
    assert client.get("/student-attendance", headers=student).status_code == 200
    assert client.post("/student-attendance", json=attendance_body(), headers=student).status_code == 403

    staff = login("staff")
    created = client.post("/student-attendance", json=attendance_body(), headers=staff)
    assert created.status_code == 201
    assert client.delete(f"/student-attendance/{created.json()['id']}", headers=staff).status_code == 403


def test_attendance_lifecycle(client, login):
    admin = login()

    created = client.post("/student-attendance", json=attendance_body(remarks="first"), headers=admin)
    assert created.status_code == 201
    record = created.json()
    assert record["attendance_date"].startswith("2025-12-14T00:00:00")
    assert record["created_by"]["username"] == "super_admin"

    duplicate = client.post("/student-attendance", json=attendance_body(attendance_date="2025-12-14"), headers=admin)
    assert duplicate.status_code == 409
    assert duplicate.json() == {"detail": "Attendance already exists for this class, batch and date"}

    listed = client.get("/student-attendance", params={"date": "2025-12-14", "limit": 500}, headers=admin).json()
    assert listed["total"] == 1
    assert listed["limit"] == 100
    assert listed["total_pages"] == 1

    patched = client.patch(f"/student-attendance/{record['id']}", json={"attendance_type": "late"}, headers=admin)
    assert patched.status_code == 200
    assert patched.json()["attendance_type"] == "late"

    toggled = client.patch(f"/student-attendance/{record['id']}/toggle-active", headers=admin)
    assert toggled.json()["is_active"] is False

    assert client.delete(f"/student-attendance/{record['id']}", headers=admin).status_code == 204
    assert client.get(f"/student-attendance/{record['id']}", headers=admin).status_code == 404


def test_error_mapping(client, login):
    admin = login()

    assert client.get("/student-attendance/not-an-id", headers=admin).json() == {"detail": "Invalid attendance ID"}
    assert client.patch("/student-attendance/not-an-id", json={}, headers=admin).status_code == 400
    assert client.get("/student-attendance", params={"class_id": "zzz"}, headers=admin).status_code == 400
    assert client.post("/student-attendance", json=attendance_body(class_id="zzz"), headers=admin).status_code == 422


def test_fixed_routes_are_not_taken_for_ids(client, login):
    admin = login()

    stats = client.get("/homework/stats/overview", headers=admin)
    assert stats.status_code == 200
    assert stats.json()["total_homework"] == 0

    assert client.get("/homework/date-range/2025-12-01/2025-12-31", headers=admin).json() == []
    assert client.get("/homework/date-range/2025-12-31/2025-12-01", headers=admin).status_code == 400
    assert client.get("/students/statistics/overview", headers=admin).status_code == 200
    assert client.get("/students/registration/2025000000", headers=admin).status_code == 404
    assert client.get("/teachers/my-stats/summary", headers=admin).json()["total_teachers"] == 0
    assert client.get("/teachers/my-teachers", headers=admin).json()["items"] == []


def test_student_payment_over_http(client, login):
    staff = login("staff")
    body = {
        "class_id": CLASS_ID,
        "batch_id": BATCH_ID,
        "name_english": "Rahim Uddin",
        "date_of_birth": "2012-03-09",
        "gender": "male",
        "present_address": "Mirpur",
        "permanent_address": "Comilla",
        "father_name": "Karim Uddin",
        "father_mobile_number": "01711000000",
        "admission_type": "monthly",
        "admission_fee": 500,
        "monthly_tuition_fee": 200,
        "paid_amount": 300,
        "total_amount": 1,
    }
    created = client.post("/students", json=body, headers=staff)
    assert created.status_code == 201
    student = created.json()
    assert (student["total_amount"], student["due_amount"]) == (700, 400)

    over = client.post(f"/students/{student['id']}/payment", json={"amount": 500}, headers=staff)
    assert over.status_code == 400
    assert client.post(f"/students/{student['id']}/payment", json={"amount": 0}, headers=staff).status_code == 422

    paid = client.post(f"/students/{student['id']}/payment", json={"amount": 400}, headers=staff)
    assert paid.json()["due_amount"] == 0


def test_teacher_delete_needs_super_admin(client, login):
    manager = login("user_admin")
    body = {
        "full_name": "Nasrin Akter",
        "gender": "female",
        "date_of_birth": "1990-05-01",
        "contact_number": "01711111111",
        "emergency_contact_number": "01722222222",
        "present_address": "Dhanmondi",
        "permanent_address": "Sylhet",
        "email": "nasrin@example.com",
        "password": "teach123",
        "designation": "head_teacher",
        "assign_type": "class_basis",
        "joining_date": "2024-01-01",
    }
    created = client.post("/teachers", json=body, headers=manager)
    assert created.status_code == 201
    assert "password" not in created.json()
    teacher_id = created.json()["id"]

    assert client.post("/teachers", json=body, headers=manager).status_code == 409
    assert client.get("/teachers/email/NASRIN@example.com", headers=manager).json()["id"] == teacher_id
    assert client.delete(f"/teachers/{teacher_id}", headers=manager).status_code == 403
    assert client.delete(f"/teachers/{teacher_id}", headers=login()).status_code == 204
