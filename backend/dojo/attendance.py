# dojo/attendance.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import CheckIn, Member


def day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """[start, end) of the UTC calendar day containing `now`."""
    now = now or datetime.utcnow()
    start = datetime(now.year, now.month, now.day)
    return start, start + timedelta(days=1)


def week_start(now: Optional[datetime] = None) -> datetime:
    """Monday 00:00 of the current week."""
    start, _ = day_bounds(now)
    return start - timedelta(days=start.weekday())


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return datetime(now.year, now.month, 1)


def todays_check_in(
    db: Session,
    member_id: int,
    class_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[CheckIn]:
    start, end = day_bounds(now)
    stmt = select(CheckIn).where(
        CheckIn.member_id == member_id,
        CheckIn.checked_in_at >= start,
        CheckIn.checked_in_at < end,
    )
    if class_type is not None:
        stmt = stmt.where(CheckIn.class_type == class_type)
    return db.scalars(stmt.order_by(CheckIn.checked_in_at.desc())).first()


def record_check_in(
    db: Session,
    member: Member,
    *,
    method: str = "kiosk",
    class_type: str = "general",
    class_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> CheckIn:
    """Adds the row and bumps the member's attendance counter. Caller commits."""
    row = CheckIn(
        member_id=member.id,
        class_id=class_id,
        class_type=class_type or "general",
        check_in_method=method,
        notes=notes,
        checked_in_at=datetime.utcnow(),
    )
    db.add(row)
    member.total_classes_attended = (member.total_classes_attended or 0) + 1
    return row
