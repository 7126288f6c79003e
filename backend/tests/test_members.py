# tests/test_members.py
from types import SimpleNamespace

import stripe

from dojo import models


def test_kiosk_lookup_by_phone_suffix(client, make_member):
    member = make_member(phone="555-222-9876")
    r = client.get("/api/members/lookup", params={"code": "9876"})
    assert r.status_code == 200
    body = r.json()
    assert body["member"]["id"] == member.id
    assert body["member"]["hasValidWaiver"] is True
    assert body["hasFamilyAccount"] is False


def test_kiosk_lookup_by_name_and_qr(client, make_member):
    member = make_member(first_name="Marcelo", qr_code="QR-MARCELO")
    assert client.get("/api/members/lookup", params={"code": "marce"}).json()["member"]["id"] == member.id
    assert client.get("/api/members/lookup", params={"code": "QR-MARCELO"}).json()["member"]["id"] == member.id


def test_kiosk_lookup_skips_inactive(client, make_member):
    make_member(first_name="Zed", status="inactive")
    r = client.get("/api/members/lookup", params={"code": "Zed"})
    assert r.status_code == 404
    assert r.json() == {"error": "Member not found", "member": None}


def test_member_lookup_state(client, make_member):
    member = make_member(payment_status="past_due")
    r = client.post("/api/member-lookup", json={"email": member.email.upper()})
    body = r.json()
    assert body["found"] is True
    assert body["member"]["status"] == "past_due"
    assert body["member"]["hasActiveSubscription"] is False

    r = client.post("/api/member-lookup", json={"email": "nobody@example.com"})
    assert r.json() == {"found": False, "member": None}


def test_portal_by_id_and_email(client, make_member):
    parent = make_member()
    kid = make_member(family_account_id=parent.id, is_primary_account_holder=False, program="kids-bjj")

    r = client.get(f"/api/member/{parent.id}")
    assert [f["id"] for f in r.json()["familyMembers"]] == [parent.id, kid.id]

    r = client.get(f"/api/member/{kid.email}")
    assert r.json()["member"]["id"] == kid.id

    r = client.get("/api/member/by-email", params={"email": parent.email})
    assert [f["id"] for f in r.json()["familyMembers"]] == [kid.id]

    assert client.get("/api/member/not-a-member").status_code == 404


def test_update_member_limited_fields(client, db, make_member):
    member = make_member()
    r = client.put(
        f"/api/member/{member.id}",
        json={"phone": "555-999-0000", "medical_conditions": "Asthma", "email": "hijack@example.com"},
    )
    assert r.status_code == 200
    db.expire_all()
    m = db.get(models.Member, member.id)
    assert m.phone == "555-999-0000"
    assert m.medical_conditions == "Asthma"
    assert m.email == member.email

    r = client.put(f"/api/member/{member.id}", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "No valid fields to update"


def test_member_waivers_history(client, make_member):
    member = make_member(waiver_age_days=400)
    r = client.get(f"/api/member/{member.id}/waivers")
    body = r.json()
    assert body["totalWaivers"] == 1
    assert body["hasValidWaiver"] is False
    assert body["validWaiver"] is None
    assert body["waivers"][0]["isValid"] is False


def test_member_check_in_history(client, make_member):
    member = make_member()
    client.post("/api/check-ins", json={"member_id": member.id})
    r = client.get(f"/api/member/{member.id}/check-ins", params={"days": 7})
    body = r.json()
    assert len(body["checkIns"]) == 1
    assert body["totalClassesAttended"] == 1
    assert body["period"] == "last 7 days"


def test_subscription_without_stripe_id(client, make_member):
    member = make_member()
    r = client.get("/api/member/subscription", params={"memberId": member.id})
    assert r.json() == {"hasSubscription": False, "message": "No active subscription found"}


def test_subscription_details(client, make_member, monkeypatch):
    member = make_member(stripe_subscription_id="sub_9")
    sub = {
        "id": "sub_9",
        "status": "active",
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"unit_amount": 10000, "recurring": {"interval": "month"}},
                            "current_period_start": 1717200000, "current_period_end": 1719792000}]},
    }
    monkeypatch.setattr(stripe.Subscription, "retrieve", lambda sub_id: sub)

    r = client.get("/api/member/subscription", params={"memberId": member.id})
    s = r.json()["subscription"]
    assert s["amount"] == 100
    assert s["interval"] == "month"
    assert s["currentPeriodEnd"] == "2024-07-01T00:00:00"
    assert s["isInTrial"] is False


def test_cancel_membership_schedules_stripe_cancel(client, db, make_member, monkeypatch):
    member = make_member(stripe_subscription_id="sub_5")
    seen = {}

    def _modify(sub_id, **params):
        seen[sub_id] = params
        return {"id": sub_id, "current_period_end": 1719792000}

    monkeypatch.setattr(stripe.Subscription, "modify", _modify)

    r = client.post("/api/member/cancel-membership", json={"memberId": member.id, "reason": "moving"})
    assert r.status_code == 200
    assert r.json()["cancelAt"] == "2024-07-01T00:00:00"
    assert seen["sub_5"] == {"cancel_at_period_end": True}

    db.expire_all()
    assert db.get(models.Member, member.id).status == "cancelled"


def test_resubscribe_offers_trial(client, make_member, monkeypatch):
    member = make_member(status="cancelled", stripe_customer_id="cus_7")
    captured = {}

    def _session(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_7", url="https://checkout.stripe.test/cs_7")

    monkeypatch.setattr(stripe.checkout.Session, "create", _session)

    r = client.post("/api/member/resubscribe", json={"memberId": member.id})
    assert r.status_code == 200, r.text
    assert r.json()["checkoutUrl"] == "https://checkout.stripe.test/cs_7"
    assert captured["subscription_data"]["trial_period_days"] == 7
    assert captured["success_url"].endswith("&resubscribe=true")


def test_staff_member_list(client, make_member, instructor_headers):
    make_member(first_name="Alpha")
    make_member(first_name="Beta", status="inactive")

    assert client.get("/api/members").status_code == 401
    r = client.get("/api/members", headers=instructor_headers)
    assert [m["firstName"] for m in r.json()["members"]] == ["Alpha"]

    r = client.get("/api/members", params={"status": "all"}, headers=instructor_headers)
    assert r.json()["count"] == 2


def test_qr_assignment(client, make_member, admin_headers, instructor_headers):
    a = make_member()
    b = make_member()

    r = client.put(f"/api/members/{a.id}/qr-code", json={"qr_code": "BADGE-1"}, headers=admin_headers)
    assert r.json()["qrCode"] == "BADGE-1"

    r = client.put(f"/api/members/{b.id}/qr-code", json={"qr_code": "BADGE-1"}, headers=admin_headers)
    assert r.status_code == 409

    r = client.put(f"/api/members/{b.id}/qr-code", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["qrCode"]

    assert client.put(f"/api/members/{a.id}/qr-code", headers=instructor_headers).status_code == 403

    r = client.get(f"/api/members/{a.id}/qr-code.png", headers=instructor_headers)
    assert r.status_code == 200
    assert r.content[:8] == b"\x89PNG\r\n\x1a\n"

    r = client.delete(f"/api/members/{a.id}/qr-code", headers=admin_headers)
    assert r.json()["qrCode"] is None


def test_pin_assignment(client, db, make_member, admin_headers):
    a = make_member()
    b = make_member()

    r = client.put(f"/api/members/{a.id}/pin", json={"pin": "2468"}, headers=admin_headers)
    assert r.json()["pin"] == "2468"

    r = client.put(f"/api/members/{b.id}/pin", json={"pin": "2468"}, headers=admin_headers)
    assert r.status_code == 409

    r = client.put(f"/api/members/{b.id}/pin", headers=admin_headers)
    pin = r.json()["pin"]
    assert len(pin) == 4 and pin != "2468"

    assert client.post("/api/kiosk/check-in-pin", json={"pin": pin}).json()["memberName"] == b.full_name

    r = client.put(f"/api/members/{a.id}/pin", json={"pin": "12ab"}, headers=admin_headers)
    assert r.status_code == 400

    r = client.put(f"/api/members/{a.id}/pin", json={"pin": "123456"}, headers=admin_headers)
    assert r.status_code == 400
