# dojo/routers/family.py
from __future__ import annotations

import json
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import billing, email_templates, models, schemas
from dojo.database import get_db
from dojo.dependencies import get_member_or_404
from dojo.emailer import send_email_if_configured
from dojo.families import (
    ensure_family_account,
    family_pricing,
    family_root_id,
    get_family_members,
    member_brief,
)
from dojo.pricing import (
    calculate_family_price,
    individual_price,
    member_type_for_program,
)
from dojo.waivers import is_minor

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/family", tags=["family"])

ALLOWED_PRICING_TYPES = ("adult", "kid")


def _billing_block(primary: Optional[models.Member], members: list) -> Optional[dict]:
    if not primary:
        return None
    pricing = family_pricing(members)
    return {
        "primaryMemberId": primary.id,
        "stripeCustomerId": primary.stripe_customer_id,
        "stripeSubscriptionId": primary.stripe_subscription_id,
        "paymentStatus": primary.payment_status,
        "lastPaymentDate": primary.last_payment_date.isoformat() if primary.last_payment_date else None,
        "monthlyTotal": pricing.monthly_total,
        "memberCount": pricing.member_count,
    }


def _account_out(acct: Optional[models.FamilyAccount]) -> Optional[dict]:
    if not acct:
        return None
    return {
        "id": acct.id,
        "primaryMemberId": acct.primary_member_id,
        "familyName": acct.family_name,
        "metadata": json.loads(acct.metadata_json) if acct.metadata_json else {},
        "monthlyRate": acct.monthly_rate,
        "isActive": bool(acct.is_active),
    }


def _reprice(db: Session, primary: models.Member) -> tuple:
    """Recompute the family's rate, store it and push it to Stripe. Caller commits."""
    members = get_family_members(db, primary.id)
    pricing = family_pricing(members)
    ensure_family_account(db, primary, monthly_rate=pricing.monthly_total)
    ok, err = billing.update_family_subscription(primary.stripe_subscription_id, len(members))
    if not ok:
        log.warning("Family %s subscription not updated: %s", primary.id, err)
    return members, pricing, ok


# -----------------------------
# Family overview / linking
# -----------------------------
@router.get("")
def get_family(memberId: int = Query(...), db: Session = Depends(get_db)):
    member = get_member_or_404(db, memberId)
    family_id = family_root_id(member)
    members = get_family_members(db, family_id) or [member]
    primary = members[0] if members[0].is_primary_account_holder else None

    acct = None
    if family_id:
        acct = db.scalar(select(models.FamilyAccount).where(models.FamilyAccount.primary_member_id == family_id))

    return {
        "success": True,
        "familyMembers": [member_brief(m) for m in members],
        "billing": _billing_block(primary, members),
        "pricing": family_pricing(members).as_dict(),
        "familyAccount": _account_out(acct),
    }


@router.post("/link")
def link_family(payload: schemas.FamilyLinkIn, db: Session = Depends(get_db)):
    parent = db.get(models.Member, payload.parent_member_id)
    if not parent:
        raise HTTPException(status_code=404, detail="Parent member not found")
    child = db.get(models.Member, payload.child_member_id)
    if not child:
        raise HTTPException(status_code=404, detail="Child member not found")

    if child.family_account_id:
        raise HTTPException(status_code=400, detail="This member is already linked to a family account")
    if not parent.is_primary_account_holder:
        raise HTTPException(status_code=400, detail="Parent must be a primary account holder")

    child.family_account_id = parent.id
    child.is_primary_account_holder = False
    child.stripe_customer_id = parent.stripe_customer_id
    db.flush()
    members, pricing, _ = _reprice(db, parent)
    db.commit()

    return {
        "success": True,
        "message": (
            f"{child.first_name} {child.last_name} has been linked to "
            f"{parent.first_name} {parent.last_name}'s family account"
        ),
        "billing": _billing_block(parent, members),
        "pricing": pricing.as_dict(),
    }


@router.put("")
def update_family(payload: schemas.FamilyUpdateIn, db: Session = Depends(get_db)):
    primary = get_member_or_404(db, payload.primary_member_id)
    if not primary.is_primary_account_holder:
        raise HTTPException(status_code=400, detail="Member is not a primary account holder")

    acct = ensure_family_account(db, primary)
    if payload.family_name is not None:
        acct.family_name = payload.family_name
    if payload.metadata is not None:
        acct.metadata_json = json.dumps(payload.metadata)
    db.commit()
    db.refresh(acct)

    return {"success": True, "familyAccount": _account_out(acct)}


# -----------------------------
# Add / remove members
# -----------------------------
@router.post("/add-member")
def add_family_member(payload: schemas.FamilyAddMemberIn, db: Session = Depends(get_db)):
    primary = db.get(models.Member, payload.primary_account_holder_id)
    if not primary:
        raise HTTPException(status_code=404, detail="Primary account holder not found")
    if not primary.is_primary_account_holder:
        raise HTTPException(status_code=400, detail="Specified member is not a primary account holder")

    email = payload.email.strip().lower()
    existing = db.scalar(select(models.Member).where(models.Member.email == email))

    if existing:
        if existing.family_account_id or existing.id == primary.id:
            raise HTTPException(
                status_code=400,
                detail=f"{existing.first_name} {existing.last_name} is already linked to a family account",
            )
        existing.family_account_id = primary.id
        existing.is_primary_account_holder = False
        existing.family_role = payload.family_role or "other"
        existing.relationship_to_primary = payload.relationship_to_primary or existing.relationship_to_primary
        existing.stripe_customer_id = primary.stripe_customer_id
        added = existing
        key = "linkedMember"
        action = "linked to"
    else:
        minor = is_minor(payload.date_of_birth)
        added = models.Member(
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=email,
            phone=payload.phone,
            birth_date=payload.date_of_birth,
            program=payload.program,
            skill_level="beginner",
            status="active",
            membership_type="monthly",
            payment_status="active",
            parent_first_name=primary.first_name if minor else None,
            parent_last_name=primary.last_name if minor else None,
            parent_email=primary.email if minor else None,
            parent_phone=primary.phone if minor else None,
            emergency_contact_name=payload.emergency_contact_name,
            emergency_contact_phone=payload.emergency_contact_phone,
            emergency_contact_relationship=payload.emergency_contact_relationship,
            medical_conditions=payload.medical_conditions,
            family_account_id=primary.id,
            is_primary_account_holder=False,
            family_role=payload.family_role or ("child" if minor else "other"),
            relationship_to_primary=payload.relationship_to_primary or ("child" if minor else "family member"),
            individual_monthly_cost=individual_price(member_type_for_program(payload.program)),
            stripe_customer_id=primary.stripe_customer_id,
        )
        db.add(added)
        key = "newMember"
        action = "added to"

    db.flush()
    members, pricing, stripe_updated = _reprice(db, primary)
    db.commit()
    db.refresh(added)
    log.info("Member %s %s family %s (%d members)", added.id, action, primary.id, len(members))

    if key == "newMember":
        gym = (os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()
        parts = email_templates.family_member_welcome(
            gym, added.first_name, primary.full_name, len(members), pricing.monthly_total, billing.get_base_url()
        )
        send_email_if_configured(added.parent_email or added.email, parts.subject, parts.body)

    return {
        "success": True,
        "message": f"{added.first_name} {added.last_name} has been {action} the family account",
        key: member_brief(added),
        "familyMembers": [member_brief(m) for m in members],
        "memberCount": len(members),
        "pricing": pricing.as_dict(),
        "stripeUpdated": stripe_updated,
    }


@router.post("/remove-member")
def remove_family_member(payload: schemas.FamilyRemoveMemberIn, db: Session = Depends(get_db)):
    if payload.primary_account_holder_id == payload.member_id_to_remove:
        raise HTTPException(status_code=400, detail="Cannot remove the primary account holder from the family")

    primary = db.get(models.Member, payload.primary_account_holder_id)
    if not primary:
        raise HTTPException(status_code=404, detail="Primary account holder not found")
    if not primary.is_primary_account_holder:
        raise HTTPException(status_code=403, detail="Only the primary account holder can remove family members")

    target = db.get(models.Member, payload.member_id_to_remove)
    if not target:
        raise HTTPException(status_code=404, detail="Member to remove not found")
    if target.family_account_id != primary.id:
        raise HTTPException(status_code=400, detail="Member is not part of this family account")

    target.family_account_id = None
    target.stripe_customer_id = None
    target.family_role = None
    target.status = "inactive"
    target.payment_status = "cancelled"
    db.flush()

    remaining = get_family_members(db, primary.id)
    converted = False
    stripe_updated = False
    if len(remaining) <= 1 and payload.convert_to_individual:
        primary.is_primary_account_holder = False
        primary.individual_monthly_cost = individual_price(member_type_for_program(primary.program))
        acct = db.scalar(select(models.FamilyAccount).where(models.FamilyAccount.primary_member_id == primary.id))
        if acct:
            acct.is_active = False
            acct.monthly_rate = primary.individual_monthly_cost
        converted = True
        pricing = calculate_family_price([member_type_for_program(primary.program)])
        pricing_message = (
            "Family account converted to an individual membership. "
            f"New monthly rate: ${pricing.monthly_total}"
        )
    else:
        remaining, pricing, stripe_updated = _reprice(db, primary)
        pricing_message = f"Family subscription updated. New monthly rate: ${pricing.monthly_total}"

    db.commit()
    log.info("Member %s removed from family %s (converted=%s)", target.id, primary.id, converted)

    return {
        "success": True,
        "message": f"{target.first_name} {target.last_name} has been removed from the family account",
        "pricingMessage": pricing_message,
        "unlinkedMember": member_brief(target),
        "remainingMembers": [member_brief(m) for m in remaining],
        "memberCount": len(remaining),
        "pricing": pricing.as_dict(),
        "convertedToIndividual": converted,
        "stripeUpdated": stripe_updated,
    }


# -----------------------------
# Pricing calculator
# -----------------------------
@router.post("/pricing")
def price_family(payload: schemas.FamilyPricingIn):
    if payload.member_count < 0:
        raise HTTPException(status_code=400, detail="Valid member count is required")

    invalid = [t for t in payload.member_types if t not in ALLOWED_PRICING_TYPES]
    if invalid:
        raise HTTPException(
            status_code=400,
            detail=f'Invalid member types: {", ".join(invalid)}. Must be "adult" or "kid"',
        )
    if len(payload.member_types) != payload.member_count:
        raise HTTPException(
            status_code=400,
            detail=(
                f"memberTypes array length ({len(payload.member_types)}) "
                f"must match memberCount ({payload.member_count})"
            ),
        )

    return {"success": True, **calculate_family_price(payload.member_types).as_dict()}


@router.get("/pricing")
def price_family_by_counts(
    kids: int = Query(0),
    adults: int = Query(0),
):
    if kids < 0 or adults < 0:
        raise HTTPException(status_code=400, detail="Member counts cannot be negative")
    types = ["adult"] * adults + ["kid"] * kids
    return {"success": True, **calculate_family_price(types).as_dict()}
