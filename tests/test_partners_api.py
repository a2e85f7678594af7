from models import Identity
from routers.auth import create_token


def _seed(make_student, males, females):
    for i in range(1, males + 1):
        make_student(f"M{i}", "MALE", name=f"Male {i}")
    for i in range(1, females + 1):
        make_student(f"F{i}", "FEMALE", name=f"Female {i}")


def _student_headers(db, student_id):
    db.add(Identity(uid=student_id))
    db.commit()
    return {"Authorization": f"Bearer {create_token(subject=student_id, role='student')}"}


def test_partner_routes_require_admin(client, db, make_student):
    make_student("M1", "MALE")
    assert client.get("/api/partners").status_code == 401

    resp = client.get("/api/partners", headers=_student_headers(db, "M1"))
    assert resp.status_code == 403


def test_generate_then_list_and_group(client, admin_headers, make_student, make_event):
    _seed(make_student, 3, 5)
    first, second = make_event("First"), make_event("Second")

    resp = client.post("/api/partners/generate", json={"eventId": first.id}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Partners successfully generated!"
    assert [p["male"]["id"] for p in body["partners"]] == ["M1", "M2", "M3"]
    assert sorted(len(p["females"]) for p in body["partners"]) == [1, 2, 2]

    client.post("/api/partners/generate", json={"eventId": second.id}, headers=admin_headers)

    listed = client.get(f"/api/partners?eventId={first.id}", headers=admin_headers).json()["partners"]
    assert len(listed) == 3

    groups = client.get("/api/partners/grouped", headers=admin_headers).json()["groups"]
    assert set(groups) == {str(first.id), str(second.id)}
    assert len(groups[str(second.id)]) == 3


def test_generate_errors_are_specific(client, admin_headers, make_student, make_event):
    resp = client.post("/api/partners/generate", json={}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Please select an event first."

    event = make_event()
    _seed(make_student, 3, 1)
    resp = client.post("/api/partners/generate", json={"eventId": event.id}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json() == {
        "ok": False,
        "title": "Error!",
        "error": "Not enough females to pair with all males.",
    }


def test_create_edit_and_conflicts(client, admin_headers, make_student, make_event):
    _seed(make_student, 2, 3)
    event = make_event()

    resp = client.post(
        "/api/partners",
        json={"eventId": event.id, "maleId": "M1", "femaleIds": ["F1"]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    first = resp.json()["partner"]

    conflict = client.post(
        "/api/partners",
        json={"eventId": event.id, "maleId": "M2", "femaleIds": ["F1", "F2"]},
        headers=admin_headers,
    )
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "The following females are already paired: Female 1."
    assert conflict.json()["names"] == ["Female 1"]

    resp = client.put(f"/api/partners/{first['id']}", json={"femaleIds": ["F2", "F3"]}, headers=admin_headers)
    assert resp.status_code == 200
    edited = resp.json()["partner"]
    assert [f["id"] for f in edited["females"]] == ["F2", "F3"]
    assert edited["male"] == first["male"]
    assert edited["created_at"] == first["created_at"]

    empty = client.put(f"/api/partners/{first['id']}", json={"femaleIds": []}, headers=admin_headers)
    assert empty.status_code == 400
    assert empty.json()["error"] == "At least one female must be selected."


def test_clear_all_requires_confirm(client, admin_headers, make_student, make_event):
    _seed(make_student, 1, 1)
    event = make_event()
    client.post("/api/partners/generate", json={"eventId": event.id}, headers=admin_headers)

    resp = client.delete("/api/partners", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["title"] == "Are you sure?"

    resp = client.delete("/api/partners?confirm=true", headers=admin_headers)
    assert resp.json() == {"ok": True, "deleted": 1, "message": "All partners cleared!"}

    resp = client.delete("/api/partners?confirm=true", headers=admin_headers)
    assert resp.json()["message"] == "No partners to clear."


def test_my_dates_for_both_sides(client, db, admin_headers, make_student, make_event):
    _seed(make_student, 1, 2)
    event = make_event("Mixer")
    client.post(
        "/api/partners",
        json={"eventId": event.id, "maleId": "M1", "femaleIds": ["F1", "F2"]},
        headers=admin_headers,
    )

    male_view = client.get("/api/partners/mine", headers=_student_headers(db, "M1")).json()["dates"]
    assert male_view[0]["event_title"] == "Mixer"
    assert [p["name"] for p in male_view[0]["partners"]] == ["Female 1", "Female 2"]

    female_view = client.get("/api/partners/mine", headers=_student_headers(db, "F2")).json()["dates"]
    assert [p["id"] for p in female_view[0]["partners"]] == ["M1"]
