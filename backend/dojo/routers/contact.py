# dojo/routers/contact.py
from __future__ import annotations

import logging
import os

from fastapi import APIRouter

from dojo import email_templates, schemas
from dojo.emailer import send_email_if_configured

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["contact"])


@router.post("/contact")
def contact(payload: schemas.ContactIn):
    gym = (os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()
    notify_to = (os.getenv("CONTACT_NOTIFY_EMAIL") or os.getenv("SMTP_FROM_EMAIL") or "").strip()

    if notify_to:
        parts = email_templates.contact_notification(
            gym, payload.name, payload.email, payload.phone, payload.interest, payload.message
        )
        send_email_if_configured(notify_to, parts.subject, parts.body, reply_to=payload.email)
    else:
        log.warning("Contact form from %s not forwarded: CONTACT_NOTIFY_EMAIL not set", payload.email)

    confirm = email_templates.contact_confirmation(gym, payload.name)
    send_email_if_configured(payload.email, confirm.subject, confirm.body)

    return {"success": True, "message": "Message sent successfully"}
