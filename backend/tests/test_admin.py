# tests/test_admin.py
import csv
import io
from datetime import datetime, timedelta

from dojo import auth, models


def _staff(db, email="owner@example.com", password="s3cret-pass", role=auth.ROLE_OWNER, active=True):
    staff = models.Staff(
        email=email,
        hashed_password=auth.hash_password(password),
        full_name="Gym Owner",
        role=role,
        is_active=active,
    )
    db.add(staff)
    db.commit()
    return staff


def test_login_returns_bearer_token(client, db):
    staff = _staff(db)

    r = client.post("/api/admin/login", data={"username": "Owner@Example.com", "password": "s3cret-pass"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["staff_id"] == staff.id
    assert body["role"] == "OWNER"

    r = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert r.status_code == 200


def test_login_wrong_password(client, db):
    _staff(db)
    r = client.post("/api/admin/login", data={"username": "owner@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid email or password"


def test_login_inactive_staff(client, db):
    _staff(db, email="gone@example.com", active=False)
    r = client.post("/api/admin/login", data={"username": "gone@example.com", "password": "s3cret-pass"})
    assert r.status_code == 403


def test_stats_require_token(client):
    assert client.get("/api/admin/stats").status_code == 401
    r = client.get("/api/admin/stats", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_stats_counts(client, db, make_member, admin_headers):
    member = make_member()
    make_member(waiver_age_days=350)
    make_member(status="inactive")
    client.post("/api/check-ins", json={"member_id": member.id})

    r = client.get("/api/admin/stats", headers=admin_headers)
    body = r.json()
    assert body["activeMembers"] == 2
    assert body["checkInsToday"] == 1
    assert body["checkInsThisWeek"] == 1
    assert body["expiringWaivers"] == 1


def _add_check_in(db, member, when):
    db.add(models.CheckIn(member_id=member.id, check_in_method="kiosk", class_type="general", checked_in_at=when))
    db.commit()


def test_export_csv(client, db, make_member, instructor_headers):
    member = make_member()
    _add_check_in(db, member, datetime(2024, 3, 5, 14, 7))
    _add_check_in(db, member, datetime(2024, 3, 9, 0, 30))
    _add_check_in(db, member, datetime(2024, 4, 2, 9, 0))

    r = client.get(
        "/api/admin/check-ins/export",
        params={"startDate": "2024-03-01", "endDate": "2024-03-31"},
        headers=instructor_headers,
    )
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert 'filename="check-ins-2024-03-01-to-2024-03-31.csv"' in r.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(r.text)))
    assert rows[0] == ["Date", "Time", "Member Name", "Email", "Class Type"]
    assert rows[1] == ["03/09/2024", "12:30 AM", member.full_name, member.email, "Adult Bjj"]
    assert rows[2] == ["03/05/2024", "2:07 PM", member.full_name, member.email, "Adult Bjj"]
    assert len(rows) == 3


def test_export_default_window(client, db, make_member, instructor_headers):
    member = make_member()
    _add_check_in(db, member, datetime.utcnow() - timedelta(days=3))
    _add_check_in(db, member, datetime.utcnow() - timedelta(days=20))

    r = client.get("/api/admin/check-ins/export", params={"range": "last-7"}, headers=instructor_headers)
    rows = list(csv.reader(io.StringIO(r.text)))
    assert len(rows) == 2

    r = client.get("/api/admin/check-ins/export", headers=instructor_headers)
    rows = list(csv.reader(io.StringIO(r.text)))
    assert len(rows) == 3


def test_export_rejects_inverted_dates(client, instructor_headers):
    r = client.get(
        "/api/admin/check-ins/export",
        params={"startDate": "2024-03-10", "endDate": "2024-03-01"},
        headers=instructor_headers,
    )
    assert r.status_code == 400


def test_export_requires_staff(client):
    assert client.get("/api/admin/check-ins/export").status_code == 401
