# dojo/routers/admin.py
from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from dojo import auth, models, schemas
from dojo.attendance import day_bounds, week_start
from dojo.database import get_db
from dojo.waivers import EXPIRING_SOON_DAYS, WAIVER_VALIDITY_DAYS, latest_waiver

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


# -------------------------------------------------
# AUTH / LOGIN
# -------------------------------------------------
@router.post("/login", response_model=schemas.TokenOut)
def admin_login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    staff = auth.authenticate(db, form_data.username, form_data.password)
    token = auth.create_access_token(staff_id=staff.id, subject=staff.email, role=staff.role)
    log.info("Staff login: %s", staff.email)
    return schemas.TokenOut(access_token=token, staff_id=staff.id, role=auth.normalize_role(staff.role))


# -------------------------------------------------
# DASHBOARD
# -------------------------------------------------
@router.get("/stats")
def admin_stats(
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    now = datetime.utcnow()
    today, tomorrow = day_bounds(now)

    active_members = db.scalar(select(func.count(models.Member.id)).where(models.Member.status == "active"))
    today_count = db.scalar(
        select(func.count(models.CheckIn.id)).where(
            models.CheckIn.checked_in_at >= today,
            models.CheckIn.checked_in_at < tomorrow,
        )
    )
    week_count = db.scalar(
        select(func.count(models.CheckIn.id)).where(models.CheckIn.checked_in_at >= week_start(now))
    )

    # Latest waiver expires within the next 30 days
    window_start = now - timedelta(days=WAIVER_VALIDITY_DAYS)
    window_end = window_start + timedelta(days=EXPIRING_SOON_DAYS)
    candidates = db.scalars(
        select(models.Member)
        .join(models.Waiver, models.Waiver.member_id == models.Member.id)
        .where(
            models.Member.status == "active",
            models.Waiver.signed_at > window_start,
            models.Waiver.signed_at <= window_end,
        )
        .distinct()
    ).all()
    expiring = 0
    for m in candidates:
        last = latest_waiver(m.waivers)
        if last and window_start < last.signed_at <= window_end:
            expiring += 1

    return {
        "activeMembers": active_members or 0,
        "checkInsToday": today_count or 0,
        "checkInsThisWeek": week_count or 0,
        "expiringWaivers": expiring,
    }


# -------------------------------------------------
# CSV EXPORT
# -------------------------------------------------
def _export_window(range_: str, start: Optional[date], end: Optional[date], now: datetime):
    if start and end:
        if end < start:
            raise HTTPException(status_code=400, detail="endDate must be on or after startDate")
        return datetime(start.year, start.month, start.day), datetime(end.year, end.month, end.day)

    end_day = datetime(now.year, now.month, now.day)
    if range_ == "last-7":
        return end_day - timedelta(days=7), end_day
    if range_ == "all":
        return datetime(2000, 1, 1), end_day
    return end_day - timedelta(days=30), end_day


def _fmt_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def _class_label(program: Optional[str]) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in (program or "").split("-") if w)


@router.get("/check-ins/export")
def export_check_ins(
    range_: str = Query("last-30", alias="range"),
    startDate: Optional[date] = Query(None),
    endDate: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    start, end_day = _export_window(range_, startDate, endDate, datetime.utcnow())
    end = end_day + timedelta(days=1)

    rows = db.scalars(
        select(models.CheckIn)
        .where(models.CheckIn.checked_in_at >= start, models.CheckIn.checked_in_at < end)
        .order_by(models.CheckIn.checked_in_at.desc())
    ).all()

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(["Date", "Time", "Member Name", "Email", "Class Type"])
    for r in rows:
        m = r.member
        writer.writerow(
            [
                r.checked_in_at.strftime("%m/%d/%Y"),
                _fmt_time(r.checked_in_at),
                m.full_name if m else "Unknown",
                (m.email if m else "") or "",
                _class_label(m.program if m else None),
            ]
        )
    buf.seek(0)

    filename = f"check-ins-{start.date().isoformat()}-to-{end_day.date().isoformat()}.csv"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(iter([buf.getvalue()]), media_type="text/csv; charset=utf-8", headers=headers)
