# dojo/routers/members.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from dojo import auth, billing, models, schemas
from dojo.attendance import month_start
from dojo.database import get_db
from dojo.dependencies import get_member_or_404
from dojo.families import family_root_id, get_family_members
from dojo.qr import generate_qr_png, new_pin, new_qr_token
from dojo.waivers import (
    get_waiver_expiration,
    is_minor,
    is_waiver_valid,
    latest_waiver,
    member_has_valid_waiver,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["members"])


# -----------------------------
# Payload builders
# -----------------------------
def _iso(v) -> Optional[str]:
    return v.isoformat() if v else None


def _belt_block(m: models.Member) -> Optional[dict]:
    belt = m.current_belt
    if not belt:
        return None
    return {
        "id": belt.id,
        "name": belt.name,
        "displayName": belt.display_name,
        "colorHex": belt.color_hex,
        "isKidsBelt": bool(belt.is_kids_belt),
        "stripes": m.current_stripes or 0,
        "updatedAt": _iso(m.belt_updated_at),
    }


def _member_payload(m: models.Member) -> dict:
    return {
        "id": m.id,
        "firstName": m.first_name,
        "lastName": m.last_name,
        "email": m.email,
        "phone": m.phone,
        "birthDate": _iso(m.birth_date),
        "status": m.status,
        "paymentStatus": m.payment_status or "pending",
        "membershipType": m.membership_type or "monthly",
        "program": m.program,
        "skillLevel": m.skill_level or "beginner",
        "isActive": m.status == "active",
        "individualMonthlyCost": m.individual_monthly_cost,
        "isPrimaryAccountHolder": bool(m.is_primary_account_holder),
        "familyAccountId": m.family_account_id,
        "stripeCustomerId": m.stripe_customer_id,
        "stripeSubscriptionId": m.stripe_subscription_id,
        "totalClassesAttended": m.total_classes_attended or 0,
        "emergencyContact": {
            "name": m.emergency_contact_name,
            "phone": m.emergency_contact_phone,
            "relationship": m.emergency_contact_relationship,
        },
        "medicalConditions": m.medical_conditions,
        "qrCode": m.qr_code,
        "hasValidWaiver": member_has_valid_waiver(m),
        "belt": _belt_block(m),
        "createdAt": _iso(m.created_at),
        "updatedAt": _iso(m.updated_at),
    }


def _family_entry(m: models.Member) -> dict:
    return {
        "id": m.id,
        "firstName": m.first_name,
        "lastName": m.last_name,
        "email": m.email,
        "program": m.program,
        "status": m.status,
        "isPrimaryAccountHolder": bool(m.is_primary_account_holder),
        "qrCode": m.qr_code,
    }


def _family_of(db: Session, m: models.Member) -> list:
    return get_family_members(db, family_root_id(m)) or [m]


def _member_state(m: models.Member) -> str:
    if m.status == "active" and m.payment_status == "active":
        return "active"
    if m.status == "cancelled" or m.payment_status == "cancelled":
        return "cancelled"
    if m.payment_status == "past_due":
        return "past_due"
    if m.status == "pending":
        return "pending"
    return "inactive"


def _resolve_member(db: Session, ref: str) -> models.Member:
    """Member by numeric id or by email address."""
    ref = (ref or "").strip()
    member = None
    if "@" in ref:
        member = db.scalar(select(models.Member).where(models.Member.email == ref.lower()))
    elif ref.isdigit():
        member = db.get(models.Member, int(ref))
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


# -----------------------------
# Kiosk lookup
# -----------------------------
@router.get("/members/lookup")
def lookup_member(code: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Kiosk search: QR token, member id, last 4 of phone, email, then name."""
    code = code.strip()
    active = select(models.Member).where(models.Member.status == "active")

    member = db.scalar(active.where(models.Member.qr_code == code))
    if not member and code.isdigit():
        member = db.scalar(active.where(models.Member.id == int(code)))
    if not member and len(code) == 4 and code.isdigit():
        member = db.scalars(active.where(models.Member.phone.like(f"%{code}")).order_by(models.Member.first_name)).first()
    if not member and "@" in code:
        member = db.scalar(active.where(models.Member.email == code.lower()))
    if not member and len(code) >= 2:
        pattern = f"%{code}%"
        member = db.scalars(
            active.where(
                or_(
                    models.Member.first_name.ilike(pattern),
                    models.Member.last_name.ilike(pattern),
                    (models.Member.first_name + " " + models.Member.last_name).ilike(pattern),
                )
            ).order_by(models.Member.first_name)
        ).first()

    if not member:
        raise HTTPException(status_code=404, detail={"error": "Member not found", "member": None})

    family = _family_of(db, member)
    return {
        "member": _member_payload(member),
        "familyMembers": [_family_entry(f) for f in family],
        "hasFamilyAccount": len(family) > 1,
    }


@router.post("/member-lookup")
def member_lookup(payload: schemas.MemberLookupIn, db: Session = Depends(get_db)):
    m = db.scalar(select(models.Member).where(models.Member.email == payload.email.strip().lower()))
    if not m:
        return {"found": False, "member": None}

    last = latest_waiver(m.waivers)
    state = _member_state(m)
    return {
        "found": True,
        "member": {
            "id": m.id,
            "firstName": m.first_name,
            "lastName": m.last_name,
            "email": m.email,
            "membershipType": m.membership_type,
            "program": m.program,
            "status": state,
            "hasValidWaiver": member_has_valid_waiver(m),
            "waiverExpires": _iso(get_waiver_expiration(last.signed_at)) if last else None,
            "hasStripeCustomer": bool(m.stripe_customer_id),
            "hasActiveSubscription": bool(m.stripe_subscription_id) and state == "active",
            "memberSince": _iso(m.created_at),
        },
    }


# -----------------------------
# Member portal
# -----------------------------
@router.get("/member/by-email")
def member_by_email(email: str = Query(..., min_length=3), db: Session = Depends(get_db)):
    m = db.scalar(select(models.Member).where(models.Member.email == email.strip().lower()))
    if not m:
        raise HTTPException(status_code=404, detail="Member not found")
    family = [f for f in _family_of(db, m) if f.id != m.id]
    return {"member": _member_payload(m), "familyMembers": [_family_entry(f) for f in family]}


@router.get("/member/subscription")
def member_subscription(memberId: int = Query(...), db: Session = Depends(get_db)):
    m = get_member_or_404(db, memberId)
    if not m.stripe_subscription_id:
        return {"hasSubscription": False, "message": "No active subscription found"}

    billing.init_stripe()
    try:
        sub = stripe.Subscription.retrieve(m.stripe_subscription_id)
    except stripe.StripeError as e:
        log.error("Subscription lookup failed for member %s: %s", m.id, e)
        raise HTTPException(status_code=502, detail="Failed to fetch subscription details")

    items = sub["items"]["data"] if "items" in sub else []
    price = items[0]["price"] if items and "price" in items[0] else None
    amount = (price["unit_amount"] or 0) if price else 0
    recurring = price["recurring"] if price and "recurring" in price else None
    trial_end = billing.unix_to_dt(sub["trial_end"] if "trial_end" in sub else None)
    period_end = billing.subscription_period(sub, "current_period_end")

    return {
        "hasSubscription": True,
        "subscription": {
            "id": sub["id"],
            "status": sub["status"],
            "currentPeriodStart": _iso(billing.subscription_period(sub, "current_period_start")),
            "currentPeriodEnd": _iso(period_end),
            "nextBillingDate": _iso(period_end),
            "cancelAtPeriodEnd": bool(sub["cancel_at_period_end"]) if "cancel_at_period_end" in sub else False,
            "cancelAt": _iso(billing.unix_to_dt(sub["cancel_at"] if "cancel_at" in sub else None)),
            "amount": amount / 100,
            "interval": recurring["interval"] if recurring else "month",
            "isInTrial": bool(trial_end and trial_end > datetime.utcnow()),
            "trialEnd": _iso(trial_end),
        },
    }


@router.get("/member/{member_ref}")
def get_member(member_ref: str, db: Session = Depends(get_db)):
    m = _resolve_member(db, member_ref)
    family = get_family_members(db, family_root_id(m))
    return {"member": _member_payload(m), "familyMembers": [_family_entry(f) for f in family]}


@router.put("/member/{member_ref}")
def update_member(member_ref: str, payload: schemas.MemberUpdateIn, db: Session = Depends(get_db)):
    m = _resolve_member(db, member_ref)

    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    for field, value in changes.items():
        setattr(m, field, value)

    db.commit()
    db.refresh(m)
    return {"success": True, "member": _member_payload(m)}


@router.get("/member/{member_ref}/check-ins")
def member_check_ins(member_ref: str, days: int = Query(30, ge=1, le=365), db: Session = Depends(get_db)):
    m = _resolve_member(db, member_ref)
    since = datetime.utcnow() - timedelta(days=days)

    rows = db.scalars(
        select(models.CheckIn)
        .where(models.CheckIn.member_id == m.id, models.CheckIn.checked_in_at >= since)
        .order_by(models.CheckIn.checked_in_at.desc())
    ).all()
    this_month = db.scalar(
        select(func.count(models.CheckIn.id)).where(
            models.CheckIn.member_id == m.id,
            models.CheckIn.checked_in_at >= month_start(),
        )
    )
    return {
        "checkIns": [
            {
                "id": r.id,
                "checkedInAt": _iso(r.checked_in_at),
                "classType": r.class_type,
                "method": r.check_in_method,
                "className": r.gym_class.name if r.gym_class else None,
            }
            for r in rows
        ],
        "thisMonthCount": this_month or 0,
        "totalClassesAttended": m.total_classes_attended or 0,
        "period": f"last {days} days",
    }


@router.get("/member/{member_ref}/waivers")
def member_waivers(member_ref: str, db: Session = Depends(get_db)):
    m = _resolve_member(db, member_ref)
    now = datetime.utcnow()

    out = []
    for w in m.waivers:
        out.append(
            {
                "id": w.id,
                "waiverType": w.waiver_type,
                "waiverVersion": w.waiver_version,
                "signerName": w.signer_name,
                "signerRelationship": w.signer_relationship,
                "signedAt": _iso(w.signed_at),
                "expiresAt": _iso(get_waiver_expiration(w.signed_at)),
                "isValid": is_waiver_valid(w.signed_at, now),
            }
        )

    has_valid = member_has_valid_waiver(m, now)
    return {
        "waivers": out,
        "hasValidWaiver": has_valid,
        "validWaiver": out[0] if (out and has_valid) else None,
        "totalWaivers": len(out),
    }


# -----------------------------
# Self-service membership changes
# -----------------------------
@router.post("/member/cancel-membership")
def cancel_membership(payload: schemas.CancelMembershipIn, db: Session = Depends(get_db)):
    m = get_member_or_404(db, payload.member_id)

    cancel_at = None
    if m.stripe_subscription_id and billing.billing_enabled():
        try:
            billing.init_stripe()
            sub = billing.cancel_at_period_end(m.stripe_subscription_id)
            cancel_at = billing.subscription_period(sub, "current_period_end")
        except stripe.StripeError as e:
            # Local status still flips; the webhook reconciles later
            log.error("Stripe cancellation failed for member %s: %s", m.id, e)

    m.status = "cancelled"
    db.commit()
    log.info("Member %s cancelled membership (reason=%r)", m.id, payload.reason)

    return {
        "success": True,
        "message": "Your membership has been scheduled for cancellation",
        "cancelAt": _iso(cancel_at),
        "note": "You will continue to have access until the end of your current billing period.",
    }


@router.post("/member/resubscribe")
def resubscribe(payload: schemas.MemberIdIn, db: Session = Depends(get_db)):
    m = get_member_or_404(db, payload.member_id)
    billing.init_stripe()

    membership_type = billing.PROGRAM_TO_MEMBERSHIP.get(m.program or "adult-bjj", "adult")
    try:
        if not m.stripe_customer_id:
            minor = bool(m.birth_date and is_minor(m.birth_date))
            m.stripe_customer_id = billing.create_customer(
                m.parent_email if (minor and m.parent_email) else m.email,
                m.full_name,
                {"member_id": str(m.id)},
            )
        session = billing.create_checkout_session(
            customer_id=m.stripe_customer_id,
            membership_type=membership_type,
            member_id=m.id,
            success_query="&resubscribe=true",
            cancel_path="/member?resubscribe=cancelled",
            extra_metadata={"payment_type": "resubscribe"},
            subscription_data={"trial_period_days": 7, "metadata": {"member_id": str(m.id)}},
        )
    except stripe.StripeError as e:
        db.rollback()
        log.error("Resubscribe checkout failed for member %s: %s", m.id, e)
        raise HTTPException(status_code=400, detail=f"Payment error: {e}")

    db.commit()
    return {"success": True, "checkoutUrl": session.url}


# -----------------------------
# Staff views
# -----------------------------
@router.get("/members")
def list_members(
    status: str = Query("active"),
    program: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    stmt = select(models.Member)
    if status != "all":
        stmt = stmt.where(models.Member.status == status)
    if program:
        stmt = stmt.where(models.Member.program == program)
    rows = db.scalars(stmt.order_by(models.Member.first_name, models.Member.last_name)).all()
    return {"members": [_member_payload(m) for m in rows], "count": len(rows)}


@router.get("/members/quick-login")
def quick_login_members(db: Session = Depends(get_db)):
    rows = db.scalars(
        select(models.Member)
        .where(models.Member.one_click_login_enabled.is_(True), models.Member.status == "active")
        .order_by(models.Member.first_name)
    ).all()
    return {
        "members": [
            {
                "id": m.id,
                "firstName": m.first_name,
                "lastName": m.last_name,
                "program": m.program,
                "qrCode": m.qr_code,
                "belt": _belt_block(m),
            }
            for m in rows
        ]
    }


# -----------------------------
# QR badges
# -----------------------------
@router.put("/members/{member_id}/qr-code")
def assign_qr_code(
    member_id: int,
    payload: Optional[schemas.QrAssignIn] = None,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    m = get_member_or_404(db, member_id)
    code = payload.qr_code.strip() if payload else new_qr_token()

    holder = db.scalar(select(models.Member).where(models.Member.qr_code == code, models.Member.id != m.id))
    if holder:
        raise HTTPException(status_code=409, detail=f"QR code already assigned to {holder.first_name} {holder.last_name}")

    m.qr_code = code
    db.commit()
    return {"success": True, "memberId": m.id, "qrCode": m.qr_code}


@router.delete("/members/{member_id}/qr-code")
def clear_qr_code(
    member_id: int,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    m = get_member_or_404(db, member_id)
    m.qr_code = None
    db.commit()
    return {"success": True, "memberId": m.id, "qrCode": None}


@router.get("/members/{member_id}/qr-code.png")
def qr_code_png(
    member_id: int,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    m = get_member_or_404(db, member_id)
    if not m.qr_code:
        raise HTTPException(status_code=404, detail="Member has no QR code")
    return Response(content=generate_qr_png(m.qr_code), media_type="image/png")


def _pin_taken(db: Session, pin: str, member_id: int) -> bool:
    return db.scalar(
        select(func.count(models.Member.id)).where(models.Member.pin_code == pin, models.Member.id != member_id)
    ) > 0


@router.put("/members/{member_id}/pin")
def assign_pin(
    member_id: int,
    payload: Optional[schemas.PinAssignIn] = None,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    m = get_member_or_404(db, member_id)

    if payload:
        pin = payload.pin
        if _pin_taken(db, pin, m.id):
            raise HTTPException(status_code=409, detail="PIN already assigned to another member")
    else:
        for _ in range(20):
            pin = new_pin()
            if not _pin_taken(db, pin, m.id):
                break
        else:
            raise HTTPException(status_code=409, detail="Could not generate a free PIN, assign one manually")

    m.pin_code = pin
    db.commit()
    log.info("PIN assigned to member %s by staff %s", m.id, staff.id)
    return {"success": True, "memberId": m.id, "pin": pin}
