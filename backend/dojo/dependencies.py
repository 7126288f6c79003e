# dojo/dependencies.py

import os
import secrets
from typing import Optional

from fastapi import HTTPException, Query, Request
from sqlalchemy.orm import Session

from .models import Member


def client_meta(request: Request) -> dict:
    """ip_address / user_agent recorded on every signed waiver."""
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    ip = forwarded or request.headers.get("x-real-ip") or (request.client.host if request.client else None)
    return {
        "ip_address": ip or "unknown",
        "user_agent": (request.headers.get("user-agent") or "unknown")[:500],
    }


def get_member_or_404(db: Session, member_id: Optional[int]) -> Member:
    member = db.get(Member, member_id) if member_id else None
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


def require_cron_secret(
    request: Request,
    secret: Optional[str] = Query(None),
) -> None:
    """
    Scheduled jobs authenticate with CRON_SECRET, sent either as
    `Authorization: Bearer <secret>` or `?secret=<secret>`.
    """
    expected = (os.getenv("CRON_SECRET") or "").strip()
    if not expected:
        raise HTTPException(status_code=503, detail="Cron jobs are not configured")

    auth_header = (request.headers.get("authorization") or "").strip()
    provided = auth_header[7:].strip() if auth_header.lower().startswith("bearer ") else (secret or "")
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
