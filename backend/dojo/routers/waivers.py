# dojo/routers/waivers.py
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import email_templates, models, schemas
from dojo.attendance import record_check_in, todays_check_in
from dojo.billing import get_base_url
from dojo.database import get_db
from dojo.dependencies import client_meta, get_member_or_404, require_cron_secret
from dojo.emailer import send_email_if_configured
from dojo.waivers import (
    EXPIRING_SOON_DAYS,
    WAIVER_VALIDITY_DAYS,
    build_waiver,
    days_until_expiration,
    get_waiver_expiration,
    is_waiver_valid,
    latest_waiver,
    needs_adult_waiver,
    waiver_warning,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["waivers"])


def _gym_name() -> str:
    return (os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()


# -----------------------------
# Walk-in waiver (kiosk / trial class)
# -----------------------------
@router.post("/waiver-sign")
def waiver_sign(
    payload: schemas.WaiverSignIn,
    meta: dict = Depends(client_meta),
    db: Session = Depends(get_db),
):
    email = payload.email.strip().lower()
    member = db.scalar(select(models.Member).where(models.Member.email == email))

    if not member:
        member = models.Member(
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=email,
            phone=payload.phone,
            birth_date=payload.date_of_birth,
            program="adult-bjj",
            skill_level="beginner",
            status="trial",
            membership_type="trial",
            payment_status="none",
            is_primary_account_holder=True,
            individual_monthly_cost=0,
        )
        db.add(member)
        db.flush()
        log.info("Created trial member %s from waiver sign-up", member.id)

    db.add(build_waiver(member, payload.signer_name, payload.signature_data, **meta))
    already_checked_in = todays_check_in(db, member.id, class_type="general") is not None
    if not already_checked_in:
        record_check_in(db, member, method="kiosk", notes="Trial/waiver sign-up check-in")
    db.commit()

    return {
        "success": True,
        "member": {
            "id": member.id,
            "firstName": member.first_name,
            "lastName": member.last_name,
            "email": member.email,
        },
        "alreadyCheckedIn": already_checked_in,
        "message": "Waiver signed successfully!",
    }


# -----------------------------
# Status / renewal (member portal)
# -----------------------------
@router.get("/waiver-status")
def waiver_status(memberId: int = Query(...), db: Session = Depends(get_db)):
    member = get_member_or_404(db, memberId)
    last = latest_waiver(member.waivers)

    if not last:
        return {
            "valid": False,
            "expiresAt": None,
            "needsRenewal": True,
            "turnedAdult": False,
            "daysUntilExpiration": None,
            "warning": None,
            "warningType": None,
        }

    now = datetime.utcnow()
    turned_adult = needs_adult_waiver(member.birth_date, last.signer_relationship, now.date())
    valid = is_waiver_valid(last.signed_at, now) and not turned_adult
    warning = waiver_warning(member.birth_date, last.signed_at, last.signer_relationship, now)

    return {
        "valid": valid,
        "expiresAt": get_waiver_expiration(last.signed_at).isoformat(),
        "needsRenewal": not valid,
        "turnedAdult": turned_adult,
        "daysUntilExpiration": days_until_expiration(last.signed_at, now),
        "warning": warning.message,
        "warningType": warning.type,
        "signedAt": last.signed_at.isoformat(),
        "signerRelationship": last.signer_relationship,
    }


@router.post("/member/renew-waiver")
def renew_waiver(
    payload: schemas.RenewWaiverIn,
    meta: dict = Depends(client_meta),
    db: Session = Depends(get_db),
):
    member = get_member_or_404(db, payload.member_id)

    waiver = build_waiver(member, payload.signer_name, payload.signature_data, **meta)
    db.add(waiver)
    db.commit()
    db.refresh(waiver)
    log.info("Member %s renewed waiver (%s)", member.id, waiver.signer_relationship)

    return {
        "success": True,
        "message": "Waiver renewed successfully",
        "waiver": {
            "id": waiver.id,
            "signedAt": waiver.signed_at.isoformat(),
            "expiresAt": get_waiver_expiration(waiver.signed_at).isoformat(),
            "signerRelationship": waiver.signer_relationship,
        },
    }


# -----------------------------
# Scheduled: 30-day expiration reminders
# -----------------------------
@router.get("/cron/waiver-reminders", dependencies=[Depends(require_cron_secret)])
def waiver_reminders(db: Session = Depends(get_db)):
    """
    Emails members whose current waiver expires in EXPIRING_SOON_DAYS,
    i.e. was signed between (validity - 30 + 1) and (validity - 30) days ago.
    Run once a day.
    """
    now = datetime.utcnow()
    newest = now - timedelta(days=WAIVER_VALIDITY_DAYS - EXPIRING_SOON_DAYS)
    oldest = newest - timedelta(days=1)

    waivers = db.scalars(
        select(models.Waiver)
        .where(models.Waiver.signed_at >= oldest, models.Waiver.signed_at <= newest)
        .order_by(models.Waiver.signed_at.desc())
    ).all()

    log.info("Waiver reminder run: %d waivers signed between %s and %s", len(waivers), oldest, newest)
    if not waivers:
        return {"success": True, "message": "No waivers expiring in 30 days", "emailsSent": 0, "waivers": []}

    per_member = {}
    for w in waivers:
        per_member.setdefault(w.member_id, w)

    due = []
    for member_id, w in per_member.items():
        member = db.get(models.Member, member_id)
        if not member or member.status != "active":
            continue
        # Skip members who already renewed
        if latest_waiver(member.waivers).id != w.id:
            continue
        due.append((member, w))

    gym = _gym_name()
    base_url = get_base_url()
    sent = 0
    failed = 0
    results = []
    for member, w in due:
        expires_at = get_waiver_expiration(w.signed_at)
        days_left = days_until_expiration(w.signed_at, now)
        parts = email_templates.waiver_expiration_reminder(gym, member.first_name, expires_at, days_left, base_url)
        to_email = w.signer_email or member.email
        ok = send_email_if_configured(to_email, parts.subject, parts.body)
        if ok:
            sent += 1
        else:
            failed += 1
        results.append(
            {
                "memberId": member.id,
                "memberName": member.full_name,
                "email": to_email,
                "expiresAt": expires_at.isoformat(),
                "daysUntilExpiration": days_left,
                "sent": ok,
            }
        )

    log.info("Waiver reminders: %d sent, %d failed", sent, failed)
    return {
        "success": True,
        "message": f"Sent {sent} waiver expiration reminders",
        "emailsSent": sent,
        "emailsFailed": failed,
        "totalWaivers": len(waivers),
        "uniqueMembers": len(per_member),
        "activeMembers": len(due),
        "results": results,
    }
