# dojo/billing.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional

import stripe
from fastapi import HTTPException

from .pricing import family_rate

log = logging.getLogger(__name__)

# -----------------------------
# Checkout price table (cents)
# -----------------------------
CHECKOUT_PRICES = {
    "kids": {
        "amount": 7500,
        "mode": "subscription",
        "name": "Kids Gi Classes",
        "description": "Brazilian Jiu-Jitsu for kids - Tue & Wed 5:30-6:30 PM",
    },
    "adult": {
        "amount": 10000,
        "mode": "subscription",
        "name": "Adult Gi Classes",
        "description": "Brazilian Jiu-Jitsu for adults - Tue & Wed 6:30-8:00 PM + Morning Rolls",
    },
    "drop-in": {
        "amount": 2000,
        "mode": "payment",
        "name": "Drop-in Class",
        "description": "Single class visit",
    },
}

PROGRAM_TO_MEMBERSHIP = {"kids-bjj": "kids", "adult-bjj": "adult"}

# Public code -> Stripe coupon id
PROMO_CODE_MAP = {
    "TEST1": "TEST_1_DOLLAR",
    "TESTFREE": "TEST_FREE",
    "FAMILY_DISCOUNT_25": "FAMILY_DISCOUNT_25",
    "FIRST_WEEK_FREE": "FIRST_WEEK_FREE",
    "GRAND_OPENING_50": "GRAND_OPENING_50",
    "GRANDOPENING": "GRAND_OPENING_50",
    "FOUNDER": "FOUNDER_DISCOUNT",
}

PROMO_DESCRIPTIONS = {
    "TEST_1_DOLLAR": "$1 test signup",
    "TEST_FREE": "100% off for testing",
    "FAMILY_DISCOUNT_25": "25% off",
    "FIRST_WEEK_FREE": "First week free",
    "GRAND_OPENING_50": "50% off first month",
    "FOUNDER_DISCOUNT": "Founder discount",
}


# -----------------------------
# Config helpers
# -----------------------------
def billing_enabled() -> bool:
    v = (os.getenv("BILLING_ENABLED") or "").strip().lower()
    # default = enabled unless explicitly false-like
    return v not in ("0", "false", "no", "off")


def get_base_url() -> str:
    base = (os.getenv("APP_BASE_URL") or "").strip().rstrip("/")
    return base or "http://127.0.0.1:8000"


def init_stripe() -> None:
    if not billing_enabled():
        raise HTTPException(status_code=503, detail="Billing disabled")
    key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    if not key:
        log.error("Stripe call attempted without STRIPE_SECRET_KEY")
        raise HTTPException(status_code=500, detail="Payment system not configured. Please contact support.")
    stripe.api_key = key


def webhook_secret() -> str:
    wh = (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
    if not wh:
        raise HTTPException(status_code=500, detail="Missing STRIPE_WEBHOOK_SECRET")
    return wh


def unix_to_dt(v: Optional[int]) -> Optional[datetime]:
    if not v:
        return None
    try:
        return datetime.utcfromtimestamp(int(v))
    except (TypeError, ValueError, OverflowError):
        return None


# -----------------------------
# Customers / checkout
# -----------------------------
def create_customer(email: str, name: str, metadata: Optional[dict] = None) -> str:
    customer = stripe.Customer.create(
        email=email,
        name=name,
        metadata={"source": "dojo", **(metadata or {})},
    )
    return customer["id"]


def line_item(membership_type: str) -> dict:
    cfg = CHECKOUT_PRICES[membership_type]
    price_data = {
        "currency": "usd",
        "unit_amount": cfg["amount"],
        "product_data": {"name": cfg["name"], "description": cfg["description"]},
    }
    if cfg["mode"] == "subscription":
        price_data["recurring"] = {"interval": "month"}
    return {"price_data": price_data, "quantity": 1}


def resolve_coupon(promo_code: Optional[str]) -> Optional[str]:
    """Map a public promo code to a coupon id that exists in Stripe, else None."""
    code = (promo_code or "").strip().upper()
    if not code:
        return None
    coupon_id = PROMO_CODE_MAP.get(code, code)
    try:
        stripe.Coupon.retrieve(coupon_id)
    except stripe.StripeError:
        log.warning("Coupon %s not found in Stripe, proceeding without discount", coupon_id)
        return None
    return coupon_id


def create_checkout_session(
    *,
    customer_id: str,
    membership_type: str,
    member_id: int,
    promo_code: Optional[str] = None,
    success_path: str = "/signup/success",
    success_query: str = "",
    cancel_path: str = "/signup?cancelled=true",
    extra_metadata: Optional[dict] = None,
    subscription_data: Optional[dict] = None,
):
    cfg = CHECKOUT_PRICES[membership_type]
    base = get_base_url()

    params = dict(
        customer=customer_id,
        mode=cfg["mode"],
        payment_method_types=["card"],
        line_items=[line_item(membership_type)],
        success_url=f"{base}{success_path}?session_id={{CHECKOUT_SESSION_ID}}{success_query}",
        cancel_url=f"{base}{cancel_path}",
        metadata={
            "member_id": str(member_id),
            "membership_type": membership_type,
            "promo_code": promo_code or "",
            **(extra_metadata or {}),
        },
    )
    if subscription_data and cfg["mode"] == "subscription":
        params["subscription_data"] = subscription_data

    coupon_id = resolve_coupon(promo_code)
    if coupon_id:
        params["discounts"] = [{"coupon": coupon_id}]
    else:
        params["allow_promotion_codes"] = True

    return stripe.checkout.Session.create(**params)


def describe_coupon(coupon, fallback: str) -> str:
    percent_off = getattr(coupon, "percent_off", None)
    amount_off = getattr(coupon, "amount_off", None)
    if percent_off:
        return f"{percent_off:g}% off"
    if amount_off:
        return f"${amount_off / 100:.2f} off"
    return fallback


# -----------------------------
# Subscriptions
# -----------------------------
def cancel_at_period_end(subscription_id: str):
    return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)


def update_family_subscription(subscription_id: Optional[str], member_count: int) -> tuple[bool, Optional[str]]:
    """
    Re-price a family's subscription for `member_count` members.

    Returns (ok, error). Never raises.
    """
    if not subscription_id:
        return False, "No subscription on file"
    if not billing_enabled() or not (os.getenv("STRIPE_SECRET_KEY") or "").strip():
        return False, "Billing not configured"

    stripe.api_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    rate = family_rate(member_count) if member_count >= 2 else None

    try:
        sub = stripe.Subscription.retrieve(subscription_id)
        items = sub["items"]["data"] if "items" in sub else []
        params = {
            "metadata": {
                "family_member_count": str(member_count),
                "family_monthly_rate": str(rate or ""),
            },
        }
        product_id = (os.getenv("STRIPE_MEMBERSHIP_PRODUCT_ID") or "").strip()
        if rate and items and product_id:
            params["items"] = [
                {
                    "id": items[0]["id"],
                    "price_data": {
                        "currency": "usd",
                        "product": product_id,
                        "unit_amount": rate * 100,
                        "recurring": {"interval": "month"},
                    },
                }
            ]
            params["proration_behavior"] = "create_prorations"
        stripe.Subscription.modify(subscription_id, **params)
    except stripe.StripeError as e:
        log.error("Family subscription update failed for %s: %s", subscription_id, e)
        return False, str(e)

    return True, None


def subscription_period(sub, key: str) -> Optional[datetime]:
    """current_period_start/end; newer API versions carry them on the subscription item."""
    value = sub[key] if key in sub else None
    if not value:
        items = sub["items"]["data"] if "items" in sub else []
        if items and key in items[0]:
            value = items[0][key]
    return unix_to_dt(value)
