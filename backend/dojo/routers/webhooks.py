# dojo/routers/webhooks.py
from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import billing, email_templates, models
from dojo.database import get_db
from dojo.emailer import send_email_if_configured

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _find_by_customer(db: Session, customer_id: Optional[str]) -> Optional[models.Member]:
    if not customer_id:
        return None
    # Family members share the primary's customer id; the primary owns the subscription
    return db.scalars(
        select(models.Member)
        .where(models.Member.stripe_customer_id == customer_id)
        .order_by(models.Member.is_primary_account_holder.desc(), models.Member.id)
    ).first()


def _send_welcome(member: models.Member) -> None:
    gym = (os.getenv("GYM_NAME") or "The Fort Jiu-Jitsu").strip()
    parts = email_templates.welcome(gym, member.first_name, member.program, billing.get_base_url())
    send_email_if_configured(member.parent_email or member.email, parts.subject, parts.body)


def _checkout_completed(db: Session, obj: dict) -> None:
    metadata = obj.get("metadata") or {}
    member_id = metadata.get("member_id")
    if not member_id:
        log.info("checkout.session.completed without member_id metadata; ignored")
        return
    try:
        member = db.get(models.Member, int(member_id))
    except (TypeError, ValueError):
        member = None
    if not member:
        log.warning("checkout.session.completed for unknown member %s", member_id)
        return

    first_activation = member.status != "active"
    member.status = "active"
    member.payment_status = "active"
    member.last_payment_date = datetime.utcnow()
    if obj.get("subscription"):
        member.stripe_subscription_id = obj["subscription"]
    if obj.get("customer") and not member.stripe_customer_id:
        member.stripe_customer_id = obj["customer"]
    db.commit()
    log.info("Member %s activated by checkout %s", member.id, obj.get("id"))

    if first_activation:
        _send_welcome(member)


def _subscription_updated(db: Session, obj: dict) -> None:
    member = _find_by_customer(db, obj.get("customer"))
    if not member:
        return
    sub_status = (obj.get("status") or "").strip()
    member.status = "active" if sub_status == "active" else "past_due"
    member.payment_status = sub_status or member.payment_status
    if obj.get("id"):
        member.stripe_subscription_id = obj["id"]
    db.commit()
    log.info("Member %s subscription %s -> %s", member.id, obj.get("id"), sub_status)


def _subscription_deleted(db: Session, obj: dict) -> None:
    member = _find_by_customer(db, obj.get("customer"))
    if not member:
        return
    member.status = "cancelled"
    member.payment_status = "cancelled"
    db.commit()
    log.info("Member %s subscription %s cancelled", member.id, obj.get("id"))


def _payment_failed(db: Session, obj: dict) -> None:
    member = _find_by_customer(db, obj.get("customer"))
    if not member:
        return
    member.payment_status = "past_due"
    db.commit()
    log.warning("Payment failed for member %s (invoice %s)", member.id, obj.get("id"))


def _payment_succeeded(db: Session, obj: dict) -> None:
    member = _find_by_customer(db, obj.get("customer"))
    if not member:
        return
    member.payment_status = "active"
    member.last_payment_date = datetime.utcnow()
    db.commit()
    log.info("Payment received for member %s (invoice %s)", member.id, obj.get("id"))


HANDLERS = {
    "checkout.session.completed": _checkout_completed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
    "invoice.payment_failed": _payment_failed,
    "invoice.payment_succeeded": _payment_succeeded,
    "invoice.paid": _payment_succeeded,
}


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    wh_secret = billing.webhook_secret()

    payload = await request.body()
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing signature")

    try:
        stripe.Webhook.construct_event(payload=payload, sig_header=sig, secret=wh_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.warning("Rejected Stripe webhook: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")

    # Verified above; read the raw JSON so handlers work on plain dicts
    event = json.loads(payload)
    etype = (event.get("type") or "").strip()
    obj = (event.get("data") or {}).get("object") or {}

    handler = HANDLERS.get(etype)
    if handler is None:
        log.debug("Ignoring Stripe event %s", etype)
        return {"received": True}

    handler(db, obj)
    return {"received": True}
