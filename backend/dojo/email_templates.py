# dojo/email_templates.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class EmailParts:
    subject: str
    body: str


INTEREST_LABELS = {
    "general": "General Inquiry",
    "kids": "Kids Classes",
    "adult": "Adult Classes",
    "morning": "Morning Rolls",
    "private": "Private Training",
}


def _clean(s: Optional[str]) -> str:
    return (s or "").strip()


def _line(label: str, value: Optional[str]) -> str:
    v = _clean(value) or "-"
    return f"{label}: {v}"


def _footer(gym_name: str) -> str:
    return (
        "\n\n"
        "See you on the mats,\n"
        f"{gym_name}\n"
    )


def _links_block(base_url: str) -> str:
    base = _clean(base_url).rstrip("/")
    if not base:
        return ""
    return (
        "\n\n"
        "Links:\n"
        f"- Member Portal: {base}/member\n"
        f"- Renew Waiver:  {base}/member/renew-waiver\n"
    )


def welcome(gym_name: str, first_name: str, program: Optional[str], base_url: str = "") -> EmailParts:
    subject = f"Welcome to {gym_name}, {_clean(first_name) or 'friend'}!"
    body = (
        f"Hello {_clean(first_name) or 'there'},\n\n"
        "Your membership is set up and your waiver is on file. "
        "Bring water, a gi if you have one, and arrive 10 minutes early for your first class.\n\n"
        f"{_line('Program', (program or '').replace('-', ' ').title())}"
        f"{_links_block(base_url)}"
        f"{_footer(gym_name)}"
    )
    return EmailParts(subject=subject, body=body)


def waiver_expiration_reminder(
    gym_name: str,
    first_name: str,
    expires_at: datetime,
    days_until_expiration: int,
    base_url: str = "",
) -> EmailParts:
    subject = f"{gym_name} - Your waiver expires in {days_until_expiration} days"
    body = (
        f"Hello {_clean(first_name) or 'there'},\n\n"
        "Your liability waiver is about to expire. "
        "You will not be able to check in after it expires, so please sign a new one before your next class.\n\n"
        f"{_line('Expires On', expires_at.strftime('%m/%d/%Y'))}\n"
        f"{_line('Days Remaining', str(days_until_expiration))}"
        f"{_links_block(base_url)}"
        f"{_footer(gym_name)}"
    )
    return EmailParts(subject=subject, body=body)


def family_member_welcome(
    gym_name: str,
    member_name: str,
    primary_name: str,
    member_count: int,
    monthly_rate: int,
    base_url: str = "",
) -> EmailParts:
    family_name = f"{_clean(primary_name)} Family"
    subject = f"Welcome to {family_name} at {gym_name}!"
    body = (
        f"Hello {_clean(member_name) or 'there'},\n\n"
        f"{_clean(primary_name)} added you to their family membership.\n\n"
        f"{_line('Family Members', str(member_count))}\n"
        f"{_line('Family Monthly Rate', f'${monthly_rate}')}"
        f"{_links_block(base_url)}"
        f"{_footer(gym_name)}"
    )
    return EmailParts(subject=subject, body=body)


def belt_promotion(gym_name: str, member_name: str, message: str) -> EmailParts:
    subject = f"{gym_name} - Promotion!"
    body = (
        f"Hello {_clean(member_name) or 'there'},\n\n"
        f"{_clean(message)}"
        f"{_footer(gym_name)}"
    )
    return EmailParts(subject=subject, body=body)


def contact_notification(
    gym_name: str,
    name: str,
    email: str,
    phone: Optional[str],
    interest: Optional[str],
    message: str,
) -> EmailParts:
    label = INTEREST_LABELS.get(_clean(interest), _clean(interest) or "Inquiry")
    subject = f"New Contact: {_clean(name)} - {label}"
    body = (
        f"New contact form submission - {gym_name}\n\n"
        f"{_line('Name', name)}\n"
        f"{_line('Email', email)}\n"
        f"{_line('Phone', phone or 'Not provided')}\n"
        f"{_line('Interest', label)}\n\n"
        "Message:\n"
        f"{_clean(message) or '-'}\n\n"
        f"Submitted at {datetime.utcnow().strftime('%Y-%m-%d %H:%M')} UTC\n"
    )
    return EmailParts(subject=subject, body=body)


def contact_confirmation(gym_name: str, name: str) -> EmailParts:
    subject = f"Thank you for contacting {gym_name}"
    body = (
        f"Hello {_clean(name) or 'there'},\n\n"
        "We received your message and will get back to you within one business day."
        f"{_footer(gym_name)}"
    )
    return EmailParts(subject=subject, body=body)
