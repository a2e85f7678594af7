import pytest
import requests

from models import Announcement
from utils import sms
from utils.errors import DispatchError


class _Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def test_send_sms_calls_arkesel(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return _Resp(payload={"code": "ok"})

    monkeypatch.setattr(sms.requests, "get", fake_get)
    assert sms.send_sms(to_phone="0241234567", sender="BlindDate", message="hello") == {"code": "ok"}

    url, params, timeout = calls[0]
    assert url == sms.ARKESEL_API_URL
    assert params == {
        "action": "send-sms",
        "api_key": "test-key",
        "to": "0241234567",
        "from": "BlindDate",
        "sms": "hello",
    }
    assert timeout == sms.SMS_TIMEOUT_SECONDS


def test_send_sms_without_api_key_fails(monkeypatch):
    monkeypatch.delenv("ARKESEL_API_KEY", raising=False)
    with pytest.raises(DispatchError):
        sms.send_sms(to_phone="0241234567", sender="BlindDate", message="hello")


def test_send_sms_provider_errors(monkeypatch):
    monkeypatch.setattr(sms.requests, "get", lambda *a, **k: _Resp(status_code=401, text="bad key"))
    with pytest.raises(DispatchError):
        sms.send_sms(to_phone="0241234567", sender="BlindDate", message="hello")

    def boom(*a, **k):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(sms.requests, "get", boom)
    with pytest.raises(DispatchError):
        sms.send_sms(to_phone="0241234567", sender="BlindDate", message="hello")


def test_sms_endpoint(client, admin_headers, sent_sms):
    resp = client.post("/api/sms/send", json={"phone": "0241234567"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Phone and message are required"

    resp = client.post("/api/sms/send", json={"phone": "0241234567", "message": "Hi"}, headers=admin_headers)
    assert resp.json() == {"success": True}
    assert sent_sms[-1]["message"] == "Hi"


def test_announcement_to_females_uses_greeting(client, db, admin_headers, sent_sms, make_student):
    make_student("010001", "MALE", name="Kwame", phone="0241000001")
    make_student("010002", "FEMALE", name="Ama", phone="0241000002")
    make_student("010003", "FEMALE", name="Esi", phone="0241000003")

    resp = client.post(
        "/api/announcements",
        json={"message": "the mixer starts at 6pm.", "recipientType": "females"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert [a["message"] for a in resp.json()["announcements"]] == [
        "Hi Miss Ama, the mixer starts at 6pm.",
        "Hi Miss Esi, the mixer starts at 6pm.",
    ]
    assert [s["to"] for s in sent_sms] == ["0241000002", "0241000003"]
    assert db.query(Announcement).count() == 2


def test_announcement_individual_and_failures(client, admin_headers, monkeypatch, make_student):
    make_student("010001", "MALE", name="Kwame", phone="0241000001")

    def failing_send(**kwargs):
        raise DispatchError("Failed to send SMS")

    monkeypatch.setattr("routers.announcements.send_sms", failing_send)
    resp = client.post(
        "/api/announcements",
        json={"message": "see you tonight", "recipientType": "individual", "studentId": "010001"},
        headers=admin_headers,
    )
    body = resp.json()
    assert body["announcements"][0]["message"] == "Hi Mr. Kwame, see you tonight"
    assert body["failed"] == ["0241000001"]

    listed = client.get("/api/announcements", headers=admin_headers).json()["announcements"]
    assert len(listed) == 1


def test_announcement_validation(client, admin_headers):
    resp = client.post("/api/announcements", json={"message": "  ", "recipientType": "all"}, headers=admin_headers)
    assert resp.json()["error"] == "Message cannot be empty."

    resp = client.post("/api/announcements", json={"message": "hi", "recipientType": "all"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No recipients match the selected criteria."
