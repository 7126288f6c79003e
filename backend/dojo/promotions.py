# dojo/promotions.py
"""
Database side of the belt system: seeding the rank catalog, reading a
member's standing and recording promotions. The rules themselves live in
dojo.belts.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import belts, email_templates
from .emailer import send_email_if_configured
from .models import BeltRank, Member, MemberBeltHistory, Notification, Staff

log = logging.getLogger(__name__)


def seed_belt_ranks(db: Session) -> dict:
    """Upsert BELT_CATALOG by name. Safe to run on every boot."""
    existing = {b.name: b for b in db.scalars(select(BeltRank)).all()}
    created = 0
    updated = 0
    for row in belts.BELT_CATALOG:
        belt = existing.get(row["name"])
        if belt is None:
            db.add(BeltRank(**row))
            created += 1
            continue
        changed = False
        for key, value in row.items():
            if getattr(belt, key) != value:
                setattr(belt, key, value)
                changed = True
        updated += int(changed)
    db.commit()
    if created or updated:
        log.info("Belt catalog seeded: %d created, %d updated", created, updated)
    return {"created": created, "updated": updated, "total": len(belts.BELT_CATALOG)}


def current_history(db: Session, member_id: int) -> Optional[MemberBeltHistory]:
    return db.scalars(
        select(MemberBeltHistory)
        .where(MemberBeltHistory.member_id == member_id, MemberBeltHistory.is_current.is_(True))
        .order_by(MemberBeltHistory.promoted_at.desc())
    ).first()


def belt_history(db: Session, member_id: int) -> list:
    rows = db.scalars(select(MemberBeltHistory).where(MemberBeltHistory.member_id == member_id)).all()
    return belts.sort_belt_history(rows)


def days_at_belt(member: Member, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    since = member.belt_updated_at or member.created_at
    return max(0, (now - since).days) if since else 0


def classes_at_belt(db: Session, member: Member) -> int:
    row = current_history(db, member.id)
    baseline = (row.classes_attended_at_promotion or 0) if row else 0
    return max(0, (member.total_classes_attended or 0) - baseline)


def member_standing(db: Session, member: Member, now: Optional[datetime] = None) -> dict:
    belt = member.current_belt
    days = days_at_belt(member, now)
    classes = classes_at_belt(db, member)
    stripes = member.current_stripes or 0
    is_kids = bool(belt.is_kids_belt) if belt else False
    check = belts.is_eligible_for_promotion(days, classes, stripes, is_kids)
    return {
        "days_at_belt": days,
        "classes_at_belt": classes,
        "current_stripes": stripes,
        "eligible": check.eligible,
        "reason": check.reason,
        "next_belt": belts.get_next_belt(belt.name, is_kids) if belt else None,
        "estimated_time": belts.estimated_time_to_next_belt(days),
        "formatted_rank": belts.format_belt_rank(belt.display_name, stripes) if belt else None,
    }


def _notify(db: Session, member: Member, title: str, message: str) -> None:
    db.add(
        Notification(
            member_id=member.id,
            type="belt_promotion",
            title=title,
            message=message,
            action_url="/member",
        )
    )


def _email_member(member: Member, message: str) -> None:
    gym = (os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()
    parts = email_templates.belt_promotion(gym, member.first_name, message)
    send_email_if_configured(member.parent_email or member.email, parts.subject, parts.body)


def promote_member(
    db: Session,
    member: Member,
    *,
    staff: Optional[Staff] = None,
    new_belt_id: Optional[int] = None,
    new_belt_name: Optional[str] = None,
    stripes: int = 0,
    notes: str = "",
    is_stripe_promotion: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    """
    Record a stripe or belt promotion for `member` and commit.

    Raises HTTPException(400/404) when the promotion is not allowed.
    """
    now = now or datetime.utcnow()
    current = member.current_belt

    if is_stripe_promotion:
        if not current:
            raise HTTPException(status_code=400, detail="Member has no belt to add a stripe to")
        cap = min(belts.MAX_STRIPES, current.max_stripes if current.max_stripes is not None else belts.MAX_STRIPES)
        have = member.current_stripes or 0
        if have >= cap:
            raise HTTPException(status_code=400, detail="Already at max stripes. Promote to the next belt instead.")
        target_belt = current
        new_stripes = min(cap, have + 1)
        days_prev = None
    else:
        if not new_belt_id and not new_belt_name:
            raise HTTPException(status_code=400, detail="New belt ID or name is required for belt promotion")
        if new_belt_id:
            target_belt = db.get(BeltRank, new_belt_id)
        else:
            target_belt = db.scalar(select(BeltRank).where(BeltRank.name == new_belt_name))
        if not target_belt:
            raise HTTPException(status_code=404, detail="New belt not found")

        # First belt assignment is unrestricted
        if current:
            check = belts.is_valid_promotion(current.name, target_belt.name, bool(current.is_kids_belt))
            if not check.valid:
                raise HTTPException(status_code=400, detail=check.error)

        new_stripes = max(0, min(belts.MAX_STRIPES, stripes or 0))
        days_prev = days_at_belt(member, now) if current else None

    db.execute(
        update(MemberBeltHistory)
        .where(MemberBeltHistory.member_id == member.id, MemberBeltHistory.is_current.is_(True))
        .values(is_current=False)
    )
    history = MemberBeltHistory(
        member_id=member.id,
        belt_rank_id=target_belt.id,
        stripes=new_stripes,
        promoted_by_staff_id=staff.id if staff else None,
        notes=notes or None,
        classes_attended_at_promotion=member.total_classes_attended or 0,
        days_at_previous_belt=days_prev,
        is_current=True,
        promoted_at=now,
    )
    db.add(history)

    member.current_stripes = new_stripes
    if not is_stripe_promotion:
        member.current_belt_id = target_belt.id
        member.belt_updated_at = now
        _notify(
            db,
            member,
            "Belt Promotion!",
            f"Congratulations! You've been promoted to {target_belt.display_name}!",
        )
        message = f"Member promoted to {target_belt.display_name}"
    else:
        message = f"Member promoted to {new_stripes} stripes"

    db.commit()
    db.refresh(history)
    log.info(
        "Promotion member=%s belt=%s stripes=%s by staff=%s",
        member.id, target_belt.name, new_stripes, staff.id if staff else None,
    )

    _email_member(
        member,
        belts.get_promotion_message(member.first_name, target_belt.display_name, new_stripes, is_stripe_promotion),
    )
    return {"message": message, "history": history, "belt": target_belt, "stripes": new_stripes}
