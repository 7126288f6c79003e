# dojo/routers/signup.py
from __future__ import annotations

import logging

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import billing, models, schemas
from dojo.database import get_db
from dojo.dependencies import client_meta, get_member_or_404
from dojo.pricing import MEMBERSHIP_PRICES
from dojo.waivers import build_waiver, is_minor, member_has_valid_waiver

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["signup"])

_PROGRAM_FOR_TYPE = {"kids": "kids-bjj", "adult": "adult-bjj", "drop-in": "adult-bjj"}
_PRICE_KEY_FOR_TYPE = {"kids": "kid", "adult": "adult", "drop-in": "drop-in"}


def _stripe_error_message(e: stripe.StripeError) -> str:
    return getattr(e, "user_message", None) or str(e) or "Stripe request failed"


# -----------------------------
# New member signup -> Stripe Checkout
# -----------------------------
@router.post("/signup")
def signup(
    payload: schemas.SignupIn,
    meta: dict = Depends(client_meta),
    db: Session = Depends(get_db),
):
    if not payload.waiver_agreed or not payload.signature_data or not payload.signer_name:
        raise HTTPException(status_code=400, detail="Waiver must be signed")

    minor = is_minor(payload.date_of_birth)
    if minor and not (payload.parent_first_name and payload.parent_last_name and payload.parent_email):
        raise HTTPException(status_code=400, detail="Parent/Guardian information is required for minors under 18")

    email = payload.email.strip().lower()
    if db.scalar(select(models.Member).where(models.Member.email == email)):
        raise HTTPException(status_code=400, detail="A member with this email already exists")

    billing.init_stripe()

    # A parent who already trains here: join their family and reuse their Stripe customer
    parent = None
    if payload.link_to_parent_id:
        parent = db.get(models.Member, payload.link_to_parent_id)
    elif minor and payload.parent_email:
        parent = db.scalar(
            select(models.Member).where(models.Member.email == payload.parent_email.strip().lower())
        )

    family_account_id = None
    customer_id = None
    if parent:
        family_account_id = parent.id if parent.is_primary_account_holder else parent.family_account_id
        customer_id = parent.stripe_customer_id

    mtype = payload.membership_type
    try:
        if not customer_id:
            if minor:
                customer_id = billing.create_customer(
                    payload.parent_email,
                    f"{payload.parent_first_name} {payload.parent_last_name} (for {payload.first_name})",
                    {"member_type": "minor", "child_name": f"{payload.first_name} {payload.last_name}"},
                )
            else:
                customer_id = billing.create_customer(
                    email,
                    f"{payload.first_name} {payload.last_name}",
                    {"member_type": "adult"},
                )

        member = models.Member(
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=email,
            phone=payload.phone,
            birth_date=payload.date_of_birth,
            program=_PROGRAM_FOR_TYPE[mtype],
            status="pending",
            membership_type="drop-in" if mtype == "drop-in" else "monthly",
            parent_first_name=payload.parent_first_name if minor else None,
            parent_last_name=payload.parent_last_name if minor else None,
            parent_email=payload.parent_email.lower() if (minor and payload.parent_email) else None,
            parent_phone=payload.parent_phone if minor else None,
            emergency_contact_name=payload.emergency_contact_name,
            emergency_contact_phone=payload.emergency_contact_phone,
            emergency_contact_relationship=payload.emergency_contact_relationship,
            medical_conditions=payload.medical_conditions,
            family_account_id=family_account_id,
            is_primary_account_holder=family_account_id is None,
            family_role="child" if (family_account_id and minor) else None,
            individual_monthly_cost=MEMBERSHIP_PRICES[_PRICE_KEY_FOR_TYPE[mtype]],
            stripe_customer_id=customer_id,
            payment_status="pending",
        )
        db.add(member)
        db.flush()

        db.add(build_waiver(member, payload.signer_name, payload.signature_data, **meta))
        db.flush()

        session = billing.create_checkout_session(
            customer_id=customer_id,
            membership_type=mtype,
            member_id=member.id,
            promo_code=payload.promo_code,
        )
    except stripe.StripeError as e:
        db.rollback()
        log.error("Signup checkout failed for %s: %s", email, e)
        raise HTTPException(status_code=400, detail=f"Payment error: {_stripe_error_message(e)}")

    db.commit()
    log.info("Signup created member %s (%s), checkout %s", member.id, mtype, session.id)
    return {"success": True, "checkoutUrl": session.url, "memberId": member.id}


# -----------------------------
# Promo codes
# -----------------------------
@router.post("/validate-promo")
def validate_promo(payload: schemas.PromoIn):
    billing.init_stripe()
    code = payload.promo_code.strip().upper()
    coupon_id = billing.PROMO_CODE_MAP.get(code)

    if coupon_id:
        fallback = billing.PROMO_DESCRIPTIONS.get(coupon_id, "Discount applied")
        try:
            coupon = stripe.Coupon.retrieve(coupon_id)
        except stripe.StripeError as e:
            # Known code whose coupon is not in this Stripe account yet
            log.warning("Promo %s -> coupon %s not retrievable: %s", code, coupon_id, e)
            return {
                "valid": True,
                "discount": fallback,
                "message": f"Promo code applied: {fallback}",
                "couponId": coupon_id,
            }
        if not getattr(coupon, "valid", True):
            raise HTTPException(status_code=400, detail="This promo code has expired")
        discount = billing.describe_coupon(coupon, fallback)
        return {
            "valid": True,
            "discount": discount,
            "message": f"Promo code applied: {discount}",
            "couponId": coupon_id,
        }

    try:
        coupon = stripe.Coupon.retrieve(code)
    except stripe.StripeError:
        raise HTTPException(status_code=400, detail="Invalid promo code")
    if not getattr(coupon, "valid", True):
        raise HTTPException(status_code=400, detail="This promo code has expired")
    discount = billing.describe_coupon(coupon, "Discount applied")
    return {
        "valid": True,
        "discount": discount,
        "message": f"Promo code applied: {discount}",
        "couponId": code,
    }


# -----------------------------
# Drop-in (single visit) payment for an existing member
# -----------------------------
@router.post("/drop-in")
def drop_in(
    payload: schemas.DropInIn,
    meta: dict = Depends(client_meta),
    db: Session = Depends(get_db),
):
    member = get_member_or_404(db, payload.member_id)
    billing.init_stripe()

    if payload.needs_waiver:
        if not payload.signature_data or not payload.signer_name:
            raise HTTPException(status_code=400, detail="Waiver must be signed")
        db.add(build_waiver(member, payload.signer_name, payload.signature_data, **meta))

    try:
        if not member.stripe_customer_id:
            member.stripe_customer_id = billing.create_customer(
                member.email, member.full_name, {"member_id": str(member.id)}
            )
        session = billing.create_checkout_session(
            customer_id=member.stripe_customer_id,
            membership_type="drop-in",
            member_id=member.id,
            success_path="/drop-in/success",
            extra_metadata={"type": "drop-in"},
        )
    except stripe.StripeError as e:
        db.rollback()
        log.error("Drop-in checkout failed for member %s: %s", member.id, e)
        raise HTTPException(status_code=400, detail=f"Payment error: {_stripe_error_message(e)}")

    db.commit()
    return {
        "success": True,
        "checkoutUrl": session.url,
        "hasValidWaiver": member_has_valid_waiver(member),
    }


# -----------------------------
# Checkout return page
# -----------------------------
@router.get("/verify-payment")
def verify_payment(session_id: str = Query(..., min_length=1)):
    billing.init_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        log.warning("verify-payment could not load session %s: %s", session_id, e)
        raise HTTPException(status_code=400, detail="Invalid session")

    if session.payment_status != "paid":
        return {"success": False, "paymentStatus": session.payment_status}

    metadata = session.metadata or {}
    details = session.customer_details
    return {
        "success": True,
        "customerEmail": details.email if details else None,
        "membershipType": metadata["membership_type"] if "membership_type" in metadata else None,
    }
