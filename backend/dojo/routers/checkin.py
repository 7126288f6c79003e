# dojo/routers/checkin.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func
from sqlalchemy.orm import Session

from dojo import models, schemas
from dojo.attendance import day_bounds, month_start, record_check_in, todays_check_in
from dojo.database import get_db
from dojo.dependencies import get_member_or_404
from dojo.waivers import member_has_valid_waiver

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["check-in"])


def _is_active(member: models.Member) -> bool:
    return member.status == "active" and member.payment_status == "active"


def _member_row(m: models.Member) -> dict:
    return {
        "id": m.id,
        "first_name": m.first_name,
        "last_name": m.last_name,
        "email": m.email,
        "program": m.program,
        "status": m.status,
    }


# -----------------------------
# Member-app check-in (by member id)
# -----------------------------
@router.post("/check-in")
def member_check_in(payload: schemas.CheckInIn, db: Session = Depends(get_db)):
    member = get_member_or_404(db, payload.member_id)

    if not _is_active(member):
        raise HTTPException(
            status_code=403,
            detail={
                "error": "Membership not active",
                "status": member.status,
                "paymentStatus": member.payment_status,
            },
        )

    existing = todays_check_in(db, member.id, class_type=payload.class_type)
    if existing:
        return {
            "success": True,
            "alreadyCheckedIn": True,
            "message": "You've already checked in for this class today!",
        }

    row = record_check_in(db, member, method="qr", class_type=payload.class_type)
    db.commit()
    db.refresh(row)
    return {
        "success": True,
        "alreadyCheckedIn": False,
        "checkIn": {
            "id": row.id,
            "time": row.checked_in_at.isoformat(),
            "classType": row.class_type,
        },
        "message": f"Welcome, {member.first_name}! You're checked in.",
    }


@router.get("/check-in")
def member_check_in_history(memberId: int = Query(...), db: Session = Depends(get_db)):
    member = get_member_or_404(db, memberId)

    rows = db.scalars(
        select(models.CheckIn)
        .where(models.CheckIn.member_id == member.id)
        .order_by(models.CheckIn.checked_in_at.desc())
        .limit(30)
    ).all()
    this_month = db.scalar(
        select(func.count(models.CheckIn.id)).where(
            models.CheckIn.member_id == member.id,
            models.CheckIn.checked_in_at >= month_start(),
        )
    )
    total = db.scalar(select(func.count(models.CheckIn.id)).where(models.CheckIn.member_id == member.id))

    return {
        "checkIns": [
            {"id": r.id, "time": r.checked_in_at.isoformat(), "classType": r.class_type, "method": r.check_in_method}
            for r in rows
        ],
        "thisMonthCount": this_month or 0,
        "totalCount": total or 0,
    }


# -----------------------------
# Front-desk kiosk (QR badge / PIN)
# -----------------------------
def _kiosk_check_in(db: Session, member: models.Member, method: str) -> dict:
    name = member.full_name
    if member.status != "active":
        raise HTTPException(status_code=403, detail={"error": "Member account is not active", "memberName": name})
    if member.payment_status != "active":
        raise HTTPException(status_code=403, detail={"error": "Payment status is not active", "memberName": name})
    if not member_has_valid_waiver(member):
        raise HTTPException(status_code=403, detail={"error": "No valid waiver on file", "memberName": name})

    existing = todays_check_in(db, member.id)
    if existing:
        return {
            "success": True,
            "alreadyCheckedIn": True,
            "message": "Already checked in today",
            "memberName": name,
            "checkedInAt": existing.checked_in_at.isoformat(),
        }

    row = record_check_in(db, member, method=method)
    db.commit()
    db.refresh(row)
    log.info("Kiosk check-in member=%s method=%s", member.id, method)
    return {
        "success": True,
        "alreadyCheckedIn": False,
        "message": "Check-in successful",
        "memberName": name,
        "checkedInAt": row.checked_in_at.isoformat(),
    }


@router.post("/kiosk/check-in-qr")
def kiosk_check_in_qr(payload: schemas.KioskQrIn, db: Session = Depends(get_db)):
    member = db.scalar(select(models.Member).where(models.Member.qr_code == payload.qr_code.strip()))
    if not member:
        raise HTTPException(status_code=404, detail="QR code not found")
    return _kiosk_check_in(db, member, "qr")


@router.post("/kiosk/check-in-pin")
def kiosk_check_in_pin(payload: schemas.KioskPinIn, db: Session = Depends(get_db)):
    matches = db.scalars(select(models.Member).where(models.Member.pin_code == payload.pin.strip())).all()
    if not matches:
        raise HTTPException(status_code=404, detail="PIN not found")
    if len(matches) > 1:
        raise HTTPException(status_code=409, detail="PIN matches more than one member. Please see staff.")
    return _kiosk_check_in(db, matches[0], "pin")


# -----------------------------
# Staff / kiosk check-in log
# -----------------------------
@router.get("/check-ins")
def todays_check_ins(member_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    start, end = day_bounds()
    stmt = (
        select(models.CheckIn)
        .where(models.CheckIn.checked_in_at >= start, models.CheckIn.checked_in_at < end)
        .order_by(models.CheckIn.checked_in_at.desc())
    )
    if member_id:
        stmt = stmt.where(models.CheckIn.member_id == member_id)

    rows = db.scalars(stmt).all()
    out = []
    for r in rows:
        item = schemas.CheckInOut.model_validate(r).model_dump(mode="json")
        item["member"] = _member_row(r.member)
        out.append(item)
    return {"checkIns": out, "count": len(out)}


@router.post("/check-ins", status_code=201)
def create_check_in(payload: schemas.CheckInCreateIn, db: Session = Depends(get_db)):
    member = get_member_or_404(db, payload.member_id)

    if member.status != "active":
        raise HTTPException(status_code=403, detail="Member is not active. Please contact staff.")

    if todays_check_in(db, member.id):
        raise HTTPException(
            status_code=409,
            detail={
                "error": "Already checked in today",
                "already_checked_in": True,
                "member_name": member.full_name,
            },
        )

    if payload.class_id and not db.get(models.GymClass, payload.class_id):
        raise HTTPException(status_code=404, detail="Class not found")

    row = record_check_in(
        db,
        member,
        method=payload.check_in_method,
        class_id=payload.class_id,
        notes=payload.notes,
    )
    db.commit()
    db.refresh(row)
    return {
        "success": True,
        "checkIn": schemas.CheckInOut.model_validate(row).model_dump(mode="json"),
        "member": _member_row(member),
        "message": f"Welcome, {member.first_name}!",
    }


@router.get("/check-ins/recent")
def recent_check_ins(limit: int = Query(10, ge=1, le=100), db: Session = Depends(get_db)):
    rows = db.scalars(
        select(models.CheckIn).order_by(models.CheckIn.checked_in_at.desc()).limit(limit)
    ).all()
    return {
        "checkIns": [
            {
                "id": r.id,
                "member_id": r.member_id,
                "first_name": r.member.first_name,
                "last_name": r.member.last_name,
                "program": r.member.program,
                "check_in_method": r.check_in_method,
                "class_name": r.gym_class.name if r.gym_class else None,
                "checked_in_at": r.checked_in_at.isoformat(),
            }
            for r in rows
        ]
    }
