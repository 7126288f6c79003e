# dojo/families.py
"""
Family account helpers.

A family is identified by its primary account holder's member id: the primary
carries is_primary_account_holder=True and every other member of the family
points at them through family_account_id.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import FamilyAccount, Member
from .pricing import FamilyPricing, calculate_family_price, member_type_for_program

log = logging.getLogger(__name__)


def family_root_id(member: Member) -> Optional[int]:
    if member.is_primary_account_holder:
        return member.id
    return member.family_account_id


def get_family_members(db: Session, family_id: Optional[int]) -> List[Member]:
    """Primary holder first, then the rest in the order they joined."""
    if not family_id:
        return []
    primary = db.get(Member, family_id)
    others = db.scalars(
        select(Member)
        .where(Member.family_account_id == family_id, Member.id != family_id)
        .order_by(Member.created_at, Member.id)
    ).all()
    return ([primary] if primary else []) + list(others)


def family_pricing(members: List[Member]) -> FamilyPricing:
    return calculate_family_price([member_type_for_program(m.program) for m in members])


def ensure_family_account(db: Session, primary: Member, monthly_rate: Optional[float] = None) -> FamilyAccount:
    acct = db.scalar(select(FamilyAccount).where(FamilyAccount.primary_member_id == primary.id))
    if not acct:
        acct = FamilyAccount(
            primary_member_id=primary.id,
            family_name=f"{primary.last_name} Family",
        )
        db.add(acct)
        log.info("Created family account for primary member %s", primary.id)
    acct.is_active = True
    if monthly_rate is not None:
        acct.monthly_rate = monthly_rate
    return acct


def member_brief(m: Member) -> dict:
    return {
        "id": m.id,
        "firstName": m.first_name,
        "lastName": m.last_name,
        "email": m.email,
        "program": m.program,
        "status": m.status,
        "familyRole": m.family_role,
        "relationshipToPrimary": m.relationship_to_primary,
        "isPrimaryAccountHolder": bool(m.is_primary_account_holder),
        "individualMonthlyCost": m.individual_monthly_cost,
        "birthDate": m.birth_date.isoformat() if m.birth_date else None,
    }
