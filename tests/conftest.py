import os

# Must be set before the app modules read their configuration.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ARKESEL_API_KEY"] = "test-key"

import pytest
from fastapi.testclient import TestClient

import main
from database import Base, SessionLocal, engine
from models import Admin, Event, Student
from routers.auth import create_token, hash_password


@pytest.fixture(autouse=True)
def _fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sent_sms(monkeypatch):
    """Captures outgoing SMS instead of calling Arkesel."""
    sent = []

    def fake_send_sms(*, to_phone, sender, message):
        sent.append({"to": to_phone, "sender": sender, "message": message})
        return {"code": "ok"}

    monkeypatch.setattr("utils.otp_service.send_sms", fake_send_sms)
    monkeypatch.setattr("routers.announcements.send_sms", fake_send_sms)
    return sent


@pytest.fixture
def client(sent_sms):
    return TestClient(main.app)


@pytest.fixture
def admin_headers(db):
    admin = Admin(email="admin@example.com", password_hash=hash_password("secret123"))
    db.add(admin)
    db.commit()
    return {"Authorization": f"Bearer {create_token(subject=str(admin.id), role='admin')}"}


@pytest.fixture
def make_student(db):
    def _make(student_id, gender, name=None, phone=None):
        s = Student(
            id=student_id,
            name=name or f"Student {student_id}",
            phone=phone or f"02400{student_id[-4:]}",
            gender=gender,
            hall="Volta",
            room="A1",
        )
        db.add(s)
        db.commit()
        return s

    return _make


@pytest.fixture
def make_event(db):
    def _make(title="Valentine Mixer"):
        e = Event(
            title=title,
            description="Blind date night",
            date="2030-02-14",
            start_time="18:00",
            end_time="22:00",
            status="Upcoming",
            students=0,
        )
        db.add(e)
        db.commit()
        return e

    return _make
