# tests/test_checkin.py
from dojo import models


def test_member_check_in_records_visit(client, db, make_member):
    member = make_member()

    r = client.post("/api/check-in", json={"memberId": member.id, "classType": "gi"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["alreadyCheckedIn"] is False
    assert body["checkIn"]["classType"] == "gi"

    db.expire_all()
    assert db.get(models.Member, member.id).total_classes_attended == 1


def test_second_check_in_same_class_is_idempotent(client, db, make_member):
    member = make_member()
    client.post("/api/check-in", json={"memberId": member.id, "classType": "gi"})

    r = client.post("/api/check-in", json={"memberId": member.id, "classType": "gi"})
    assert r.status_code == 200
    assert r.json()["alreadyCheckedIn"] is True

    r = client.post("/api/check-in", json={"memberId": member.id, "classType": "nogi"})
    assert r.json()["alreadyCheckedIn"] is False

    assert db.query(models.CheckIn).filter_by(member_id=member.id).count() == 2


def test_inactive_member_is_refused(client, make_member):
    member = make_member(payment_status="past_due")

    r = client.post("/api/check-in", json={"memberId": member.id})
    assert r.status_code == 403
    body = r.json()
    assert body["error"] == "Membership not active"
    assert body["paymentStatus"] == "past_due"


def test_unknown_member_is_404(client):
    r = client.post("/api/check-in", json={"memberId": 9999})
    assert r.status_code == 404
    assert r.json() == {"error": "Member not found"}


def test_missing_member_id_is_400(client):
    r = client.post("/api/check-in", json={})
    assert r.status_code == 400
    assert "memberId" in r.json()["error"]


def test_history_counts(client, make_member):
    member = make_member()
    client.post("/api/check-in", json={"memberId": member.id})

    r = client.get("/api/check-in", params={"memberId": member.id})
    assert r.status_code == 200
    body = r.json()
    assert body["totalCount"] == 1
    assert body["thisMonthCount"] == 1
    assert body["checkIns"][0]["method"] == "qr"


def test_kiosk_qr_check_in(client, make_member):
    member = make_member(qr_code="QR-ABC-123")

    r = client.post("/api/kiosk/check-in-qr", json={"qrCode": "QR-ABC-123"})
    assert r.status_code == 200, r.text
    assert r.json()["memberName"] == member.full_name
    assert r.json()["alreadyCheckedIn"] is False

    r = client.post("/api/kiosk/check-in-qr", json={"qrCode": "QR-ABC-123"})
    assert r.json()["alreadyCheckedIn"] is True


def test_kiosk_unknown_qr(client):
    r = client.post("/api/kiosk/check-in-qr", json={"qrCode": "nope"})
    assert r.status_code == 404


def test_kiosk_requires_valid_waiver(client, make_member):
    make_member(qr_code="QR-EXPIRED", waiver_age_days=400)

    r = client.post("/api/kiosk/check-in-qr", json={"qrCode": "QR-EXPIRED"})
    assert r.status_code == 403
    assert r.json()["error"] == "No valid waiver on file"


def test_kiosk_rejects_parent_waiver_for_new_adult(client, make_member):
    make_member(qr_code="QR-TEEN", waiver_relationship="parent")

    r = client.post("/api/kiosk/check-in-qr", json={"qrCode": "QR-TEEN"})
    assert r.status_code == 403


def test_kiosk_pin(client, make_member):
    member = make_member(pin_code="4821")

    r = client.post("/api/kiosk/check-in-pin", json={"pin": "4821"})
    assert r.status_code == 200
    assert r.json()["memberName"] == member.full_name


def test_kiosk_pin_ambiguous(client, make_member):
    make_member(pin_code="7777")
    make_member(pin_code="7777")

    r = client.post("/api/kiosk/check-in-pin", json={"pin": "7777"})
    assert r.status_code == 409


def test_staff_check_in_conflict(client, make_member):
    member = make_member()

    r = client.post("/api/check-ins", json={"member_id": member.id, "check_in_method": "admin"})
    assert r.status_code == 201
    assert r.json()["checkIn"]["check_in_method"] == "admin"

    r = client.post("/api/check-ins", json={"member_id": member.id})
    assert r.status_code == 409
    assert r.json()["already_checked_in"] is True


def test_staff_check_in_unknown_class(client, make_member):
    member = make_member()
    r = client.post("/api/check-ins", json={"member_id": member.id, "class_id": 42})
    assert r.status_code == 404
    assert r.json()["error"] == "Class not found"


def test_todays_log_and_recent(client, make_member):
    member = make_member()
    client.post("/api/check-ins", json={"member_id": member.id})

    r = client.get("/api/check-ins")
    assert r.json()["count"] == 1
    assert r.json()["checkIns"][0]["member"]["id"] == member.id

    r = client.get("/api/check-ins/recent", params={"limit": 5})
    assert r.json()["checkIns"][0]["member_id"] == member.id
