# tests/test_waiver_routes.py
import pytest

from dojo import models
from dojo.routers import waivers as waiver_routes


@pytest.fixture()
def outbox(monkeypatch):
    sent = []

    def _send(to_email, subject, body, reply_to=None):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(waiver_routes, "send_email_if_configured", _send)
    return sent


def test_walk_in_waiver_creates_trial_member(client, db):
    r = client.post(
        "/api/waiver-sign",
        json={
            "firstName": "Kai",
            "lastName": "Lopes",
            "email": "KAI@example.com",
            "dateOfBirth": "1995-08-08",
            "signatureData": "data:image/png;base64,AAAA",
            "signerName": "Kai Lopes",
        },
        headers={"User-Agent": "kiosk-tablet", "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert r.status_code == 200, r.text
    member_id = r.json()["member"]["id"]

    m = db.get(models.Member, member_id)
    assert m.email == "kai@example.com"
    assert m.status == "trial"
    assert m.total_classes_attended == 1
    w = m.waivers[0]
    assert w.signer_relationship == "self"
    assert w.ip_address == "203.0.113.7"
    assert w.user_agent == "kiosk-tablet"

    check_in = db.query(models.CheckIn).filter_by(member_id=member_id).one()
    assert check_in.notes == "Trial/waiver sign-up check-in"


def test_walk_in_waiver_reuses_existing_member(client, db, make_member):
    member = make_member(with_waiver=False)
    r = client.post(
        "/api/waiver-sign",
        json={
            "firstName": "X",
            "lastName": "Y",
            "email": member.email,
            "signatureData": "sig",
            "signerName": member.full_name,
        },
    )
    assert r.json()["member"]["id"] == member.id
    assert db.query(models.Member).count() == 1


def test_walk_in_waiver_checks_in_once_per_day(client, db, make_member):
    member = make_member(with_waiver=False)
    body = {
        "firstName": "X",
        "lastName": "Y",
        "email": member.email,
        "signatureData": "sig",
        "signerName": member.full_name,
    }

    assert client.post("/api/waiver-sign", json=body).json()["alreadyCheckedIn"] is False
    assert client.post("/api/waiver-sign", json=body).json()["alreadyCheckedIn"] is True

    db.expire_all()
    assert db.query(models.CheckIn).filter_by(member_id=member.id).count() == 1
    assert db.get(models.Member, member.id).total_classes_attended == 1
    assert len(db.get(models.Member, member.id).waivers) == 2


def test_waiver_status_none(client, make_member):
    member = make_member(with_waiver=False)
    r = client.get("/api/waiver-status", params={"memberId": member.id})
    body = r.json()
    assert body["valid"] is False
    assert body["needsRenewal"] is True


def test_waiver_status_expiring(client, make_member):
    member = make_member(waiver_age_days=350)
    body = client.get("/api/waiver-status", params={"memberId": member.id}).json()
    assert body["valid"] is True
    assert body["warningType"] == "expiring_soon"
    assert body["daysUntilExpiration"] == 15


def test_waiver_status_turned_adult(client, make_member):
    member = make_member(waiver_relationship="parent")
    body = client.get("/api/waiver-status", params={"memberId": member.id}).json()
    assert body["valid"] is False
    assert body["turnedAdult"] is True
    assert body["warningType"] == "turned_18"


def test_renew_waiver(client, make_member):
    member = make_member(waiver_age_days=400)
    r = client.post(
        "/api/member/renew-waiver",
        json={"memberId": member.id, "signatureData": "sig", "signerName": member.full_name},
    )
    assert r.status_code == 200
    assert r.json()["waiver"]["signerRelationship"] == "self"

    body = client.get("/api/waiver-status", params={"memberId": member.id}).json()
    assert body["valid"] is True


def test_cron_requires_secret(client):
    assert client.get("/api/cron/waiver-reminders").status_code == 401
    r = client.get("/api/cron/waiver-reminders", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401


def test_cron_sends_reminders_once_per_member(client, make_member, outbox):
    due = make_member(waiver_age_days=335)
    make_member(waiver_age_days=335, status="inactive")
    make_member(waiver_age_days=200)

    r = client.get("/api/cron/waiver-reminders", params={"secret": "cron-test-secret"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["emailsSent"] == 1
    assert body["activeMembers"] == 1
    assert body["results"][0]["memberId"] == due.id
    assert outbox[0]["to"] == due.email
    assert "expires in 30 days" in outbox[0]["subject"]


def test_cron_skips_renewed_members(client, db, make_member, outbox):
    member = make_member(waiver_age_days=335)
    db.add(models.Waiver(member_id=member.id, signer_name="Renewed", signer_relationship="self"))
    db.commit()

    r = client.get("/api/cron/waiver-reminders", headers={"Authorization": "Bearer cron-test-secret"})
    assert r.json()["emailsSent"] == 0
    assert outbox == []
