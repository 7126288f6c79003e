# tests/test_promotions.py
from datetime import datetime, timedelta

from dojo import models


def test_belt_catalog_listing(client, belt_catalog):
    r = client.get("/api/belts")
    assert r.status_code == 200
    body = r.json()
    assert [b["name"] for b in body["adult_belts"]] == ["white", "blue", "purple", "brown", "black"]
    assert len(body["kids_belts"]) == 13
    assert body["kids_belts"][0]["name"] == "kids_white"


def test_seed_belts_requires_admin(client, instructor_headers, admin_headers, belt_catalog):
    assert client.post("/api/admin/seed-belts").status_code == 401
    assert client.post("/api/admin/seed-belts", headers=instructor_headers).status_code == 403

    r = client.post("/api/admin/seed-belts", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"success": True, "created": 0, "updated": 0, "total": 18}


def test_promote_requires_staff(client, belt_catalog, make_member):
    member = make_member(current_belt_id=belt_catalog["white"].id)
    r = client.post(f"/api/members/{member.id}/belt", json={"new_belt_name": "blue"})
    assert r.status_code == 401


def test_belt_promotion(client, db, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["white"].id, current_stripes=4)

    r = client.post(
        f"/api/members/{member.id}/belt",
        json={"new_belt_name": "blue", "notes": "Great guard"},
        headers=instructor_headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "Member promoted to Blue Belt"
    assert body["member"]["current_belt"]["name"] == "blue"
    assert body["member"]["current_stripes"] == 0
    assert body["promotion"]["belt_rank"]["name"] == "blue"
    assert body["promotion"]["is_current"] is True

    notes = db.query(models.Notification).filter_by(member_id=member.id).all()
    assert [n.title for n in notes] == ["Belt Promotion!"]


def test_cannot_skip_belts(client, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["white"].id)

    r = client.post(
        f"/api/members/{member.id}/belt",
        json={"new_belt_name": "purple"},
        headers=instructor_headers,
    )
    assert r.status_code == 400
    assert r.json()["error"] == "Cannot skip belts. Next belt should be blue"


def test_unknown_belt_is_404(client, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["white"].id)
    r = client.post(
        f"/api/members/{member.id}/belt",
        json={"new_belt_name": "plaid"},
        headers=instructor_headers,
    )
    assert r.status_code == 404


def test_stripe_promotions_stop_at_four(client, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["blue"].id, current_stripes=3)
    url = f"/api/members/{member.id}/belt"

    r = client.post(url, json={"is_stripe_promotion": True}, headers=instructor_headers)
    assert r.status_code == 200
    assert r.json()["member"]["current_stripes"] == 4
    assert r.json()["message"] == "Member promoted to 4 stripes"

    r = client.post(url, json={"is_stripe_promotion": True}, headers=instructor_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Already at max stripes. Promote to the next belt instead."


def test_only_latest_history_row_is_current(client, db, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["white"].id)
    url = f"/api/members/{member.id}/belt"
    client.post(url, json={"is_stripe_promotion": True}, headers=instructor_headers)
    client.post(url, json={"is_stripe_promotion": True}, headers=instructor_headers)

    rows = db.query(models.MemberBeltHistory).filter_by(member_id=member.id).all()
    assert len(rows) == 2
    assert sum(1 for h in rows if h.is_current) == 1

    r = client.get(url)
    body = r.json()
    assert len(body["history"]) == 2
    assert body["history"][0]["stripes"] == 2
    assert body["eligibility"]["current_stripes"] == 2


def test_kids_graduate_to_adult_white(client, belt_catalog, make_member, instructor_headers):
    member = make_member(current_belt_id=belt_catalog["kids_green_black"].id, program="kids-bjj")
    r = client.post(
        f"/api/members/{member.id}/belt",
        json={"new_belt_name": "white"},
        headers=instructor_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["member"]["current_belt"]["is_kids_belt"] is False


def test_promotion_board(client, belt_catalog, make_member, instructor_headers):
    long_ago = datetime.utcnow() - timedelta(days=400)
    ready = make_member(
        current_belt_id=belt_catalog["blue"].id,
        belt_updated_at=long_ago,
        total_classes_attended=80,
    )
    fresh = make_member(current_belt_id=belt_catalog["blue"].id, belt_updated_at=datetime.utcnow())

    r = client.get("/api/admin/promotions", headers=instructor_headers)
    assert r.status_code == 200
    body = r.json()
    ids = [m["id"] for m in body["members"]]
    assert ids.index(ready.id) < ids.index(fresh.id)
    by_id = {m["id"]: m for m in body["members"]}
    assert by_id[ready.id]["recommendation"] == "Ready for stripe promotion"
    assert by_id[fresh.id]["eligible"] is False
    assert body["stats"]["eligible_count"] == 1
    assert body["stats"]["by_belt"]["Blue Belt"] == 2


def test_promotion_board_uses_kids_minimums(client, belt_catalog, make_member, instructor_headers):
    since = datetime.utcnow() - timedelta(days=150)
    kid = make_member(
        current_belt_id=belt_catalog["kids_grey"].id,
        program="kids-bjj",
        belt_updated_at=since,
        total_classes_attended=40,
    )
    adult = make_member(current_belt_id=belt_catalog["blue"].id, belt_updated_at=since, total_classes_attended=40)

    body = client.get("/api/admin/promotions", headers=instructor_headers).json()
    by_id = {m["id"]: m for m in body["members"]}
    assert by_id[kid.id]["eligible"] is True
    assert by_id[adult.id]["eligible"] is False
    assert by_id[adult.id]["recommendation"] == "Need 30 more days at current belt"

    body = client.get(
        "/api/admin/promotions",
        params={"min_days": 100, "min_classes": 45},
        headers=instructor_headers,
    ).json()
    by_id = {m["id"]: m for m in body["members"]}
    assert by_id[kid.id]["recommendation"] == "Need 5 more classes"
    assert by_id[adult.id]["eligible"] is False


def test_batch_promotion_reports_failures(client, belt_catalog, make_member, instructor_headers):
    ok = make_member(current_belt_id=belt_catalog["white"].id)
    bad = make_member(current_belt_id=belt_catalog["white"].id)

    r = client.post(
        "/api/admin/promotions",
        json={
            "promotions": [
                {"member_id": ok.id, "new_belt_name": "blue"},
                {"member_id": bad.id, "new_belt_name": "brown"},
                {"member_id": 99999, "is_stripe_promotion": True},
            ]
        },
        headers=instructor_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["promoted"] == 1
    assert body["failed"] == 2
    assert body["errors"][0]["member_id"] == bad.id
    assert body["errors"][1]["error"] == "Member not found"
