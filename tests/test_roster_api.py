from models import Identity, OtpRecord, Student, utcnow
from routers.auth import create_token
from routers.events import event_status


def test_create_student_normalizes_and_rejects_duplicates(client, db, admin_headers):
    payload = {
        "idNumber": "10211001",
        "name": "Kwame Mensah",
        "phone": "241000001",
        "gender": "male",
        "hall": "Commonwealth",
        "room": "A12",
    }
    resp = client.post("/api/students", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    student = resp.json()["student"]
    assert student["id"] == "010211001"
    assert student["phone"] == "0241000001"
    assert student["gender"] == "MALE"
    assert db.get(Identity, "010211001") is not None

    dup = client.post("/api/students", json=payload, headers=admin_headers)
    assert dup.status_code == 409
    assert dup.json()["error"] == "Student with this ID Number already exists!"


def test_create_student_requires_every_field(client, admin_headers):
    resp = client.post(
        "/api/students",
        json={"idNumber": "1", "name": "", "phone": "2", "gender": "MALE", "hall": "h", "room": "r"},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "All fields are required."


def test_delete_student_revokes_identity_and_otp(client, db, admin_headers, make_student):
    make_student("010001", "FEMALE")
    db.add_all([Identity(uid="010001"), OtpRecord(subject_id="010001", code="123456", issued_at=utcnow())])
    db.commit()
    token = create_token(subject="010001", role="student")

    resp = client.delete("/api/students/010001", headers=admin_headers)
    assert resp.status_code == 200

    db.expire_all()
    assert db.get(Student, "010001") is None
    assert db.get(Identity, "010001") is None
    assert db.get(OtpRecord, "010001") is None
    assert client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_csv_import_reports_failed_rows(client, db, admin_headers, make_student):
    make_student("010003", "MALE")
    csv_text = (
        "idNumber,name,phone,gender,hall,room\n"
        "10001,Ama Owusu,241000003,FEMALE,Volta,C21\n"
        "\n"
        "10003,Duplicate,241000009,MALE,Volta,C22\n"
        "10004,No Hall,241000004,FEMALE,,C23\n"
    )
    resp = client.post(
        "/api/students/import",
        files={"file": ("students.csv", csv_text.encode("utf-8"), "text/csv")},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "created": 1, "failed": ["010003", "010004"]}

    db.expire_all()
    assert db.get(Student, "010001").name == "Ama Owusu"


def test_csv_export(client, admin_headers, make_student):
    make_student("010001", "MALE", name="Kwame", phone="0241000001")
    resp = client.get("/api/students/export", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    lines = resp.text.strip().split("\n")
    assert lines[0] == "idNumber,name,phone,gender,hall,room"
    assert lines[1] == "010001,Kwame,0241000001,MALE,Volta,A1"


def test_clear_students(client, db, admin_headers, make_student):
    make_student("010001", "MALE")
    make_student("010002", "FEMALE")

    assert client.delete("/api/students", headers=admin_headers).status_code == 400
    resp = client.delete("/api/students?confirm=true", headers=admin_headers)
    assert resp.json()["failed"] == []
    db.expire_all()
    assert db.query(Student).count() == 0


def test_student_updates_own_profile(client, db, make_student):
    make_student("010001", "FEMALE", name="Ama")
    db.add(Identity(uid="010001"))
    db.commit()
    headers = {"Authorization": f"Bearer {create_token(subject='010001', role='student')}"}

    resp = client.put(
        "/api/students/me",
        json={"name": "Ama Owusu", "profilePicUrl": "https://cdn.example.com/ama.jpg"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Ama Owusu"
    assert resp.json()["user"]["profilePicUrl"] == "https://cdn.example.com/ama.jpg"


def test_event_status_is_computed_from_wall_clock():
    from datetime import datetime

    now = datetime(2030, 2, 14, 19, 0)
    assert event_status("2030-02-14", "20:00", "22:00", now=now) == "Upcoming"
    assert event_status("2030-02-14", "18:00", "22:00", now=now) == "Ongoing"
    assert event_status("2030-02-14", "17:00", "18:30", now=now) == "Completed"


def test_event_crud_snapshots_roster_size(client, admin_headers, make_student):
    make_student("010001", "MALE")
    make_student("010002", "FEMALE")

    resp = client.post(
        "/api/events",
        json={"title": "Mixer", "description": "Night out", "date": "2999-01-01", "startTime": "18:00", "endTime": "21:00"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    event = resp.json()["event"]
    assert event["status"] == "Upcoming"
    assert event["students"] == 2

    bad = client.post(
        "/api/events",
        json={"title": "Mixer", "date": "01/01/2999", "startTime": "18:00", "endTime": "21:00"},
        headers=admin_headers,
    )
    assert bad.status_code == 400

    found = client.get("/api/events?q=night", headers=admin_headers).json()["events"]
    assert [e["id"] for e in found] == [event["id"]]

    assert client.delete(f"/api/events/{event['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/events", headers=admin_headers).json()["events"] == []


def test_dashboard_stats(client, admin_headers, make_student, make_event):
    make_student("010001", "MALE")
    make_student("010002", "FEMALE")
    make_event()

    stats = client.get("/api/dashboard/stats", headers=admin_headers).json()
    assert stats["students"] == 2
    assert stats["males"] == 1
    assert stats["females"] == 1
    assert stats["events"] == 1
    assert stats["upcoming_events"] == 1
    assert stats["partnerings"] == 0
