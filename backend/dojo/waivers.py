# dojo/waivers.py
"""
Waiver validity and age rules.

A liability waiver is valid for exactly WAIVER_VALIDITY_DAYS from signing.
A waiver signed by a parent/guardian stops covering a member who has since
turned 18; they must sign their own.

All datetimes are naive UTC, like the rest of the backend.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from .models import Waiver

WAIVER_VALIDITY_DAYS = 365
EXPIRING_SOON_DAYS = 30
ADULT_AGE = 18

RELATIONSHIP_SELF = "self"
RELATIONSHIP_PARENT = "parent"
RELATIONSHIP_GUARDIAN = "guardian"

WARNING_TURNED_18 = "turned_18"
WARNING_EXPIRED = "expired"
WARNING_EXPIRING_SOON = "expiring_soon"


@dataclass(frozen=True)
class WaiverWarning:
    type: Optional[str]
    message: Optional[str]
    days_until: Optional[int]


def get_waiver_expiration(signed_at: datetime) -> datetime:
    return signed_at + timedelta(days=WAIVER_VALIDITY_DAYS)


def is_waiver_valid(signed_at: datetime, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return get_waiver_expiration(signed_at) > now


def days_until_expiration(signed_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days left, rounded up. Negative once expired."""
    now = now or datetime.utcnow()
    seconds = (get_waiver_expiration(signed_at) - now).total_seconds()
    return math.ceil(seconds / 86400)


def age_on(birth_date: date, day: date) -> int:
    years = day.year - birth_date.year
    if (day.month, day.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


def is_minor(birth_date: date, today: Optional[date] = None) -> bool:
    today = today or datetime.utcnow().date()
    return age_on(birth_date, today) < ADULT_AGE


def needs_adult_waiver(
    birth_date: Optional[date],
    last_waiver_relationship: Optional[str],
    today: Optional[date] = None,
) -> bool:
    """True when the latest waiver was signed by a parent/guardian and the member is now an adult."""
    if not birth_date or not last_waiver_relationship:
        return False
    if last_waiver_relationship == RELATIONSHIP_SELF:
        return False
    if is_minor(birth_date, today):
        return False
    return last_waiver_relationship in (RELATIONSHIP_PARENT, RELATIONSHIP_GUARDIAN)


def waiver_warning(
    birth_date: Optional[date],
    last_signed_at: Optional[datetime],
    last_relationship: Optional[str],
    now: Optional[datetime] = None,
) -> WaiverWarning:
    if not last_signed_at:
        return WaiverWarning(None, None, None)

    now = now or datetime.utcnow()
    days_until = days_until_expiration(last_signed_at, now)

    if needs_adult_waiver(birth_date, last_relationship, now.date()):
        return WaiverWarning(
            WARNING_TURNED_18,
            "You've turned 18 since your last waiver. You need to sign your own waiver now.",
            None,
        )

    if days_until < 0:
        return WaiverWarning(
            WARNING_EXPIRED,
            f"Your waiver expired {abs(days_until)} days ago. You need to sign a new waiver.",
            days_until,
        )

    if days_until <= EXPIRING_SOON_DAYS:
        return WaiverWarning(
            WARNING_EXPIRING_SOON,
            f"Your waiver expires in {days_until} days. Please renew it soon.",
            days_until,
        )

    return WaiverWarning(None, None, days_until)


def signer_relationship(birth_date: Optional[date], is_parent_signing: bool, today: Optional[date] = None) -> str:
    if birth_date and is_minor(birth_date, today):
        return RELATIONSHIP_PARENT if is_parent_signing else RELATIONSHIP_GUARDIAN
    return RELATIONSHIP_SELF


def latest_waiver(waivers):
    """Most recently signed waiver from an iterable of Waiver rows, or None."""
    rows = [w for w in (waivers or []) if w.signed_at is not None]
    if not rows:
        return None
    return max(rows, key=lambda w: w.signed_at)


def member_has_valid_waiver(member, now: Optional[datetime] = None) -> bool:
    """
    Member is covered when their latest waiver is inside the validity window
    and was not signed on their behalf before they turned 18.
    """
    last = latest_waiver(getattr(member, "waivers", None))
    if not last:
        return False
    now = now or datetime.utcnow()
    if not is_waiver_valid(last.signed_at, now):
        return False
    return not needs_adult_waiver(member.birth_date, last.signer_relationship, now.date())


def parent_is_signing(member, signer_name: Optional[str]) -> bool:
    parent = f"{member.parent_first_name or ''} {member.parent_last_name or ''}".strip().lower()
    return bool(parent) and (signer_name or "").strip().lower() == parent


def build_waiver(
    member,
    signer_name: str,
    signature_data: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    today: Optional[date] = None,
) -> Waiver:
    """New liability waiver row for `member`; relationship follows the member's current age."""
    relationship = signer_relationship(member.birth_date, parent_is_signing(member, signer_name), today)
    minor_signer = relationship != RELATIONSHIP_SELF and member.parent_email
    return Waiver(
        member_id=member.id,
        waiver_type="liability",
        waiver_version="1.0",
        signer_name=signer_name.strip(),
        signer_email=member.parent_email if minor_signer else member.email,
        signer_relationship=relationship,
        signature_data=signature_data,
        ip_address=ip_address,
        user_agent=user_agent,
    )
