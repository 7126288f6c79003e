# dojo/routers/belts.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import auth, belts, models, schemas
from dojo.database import get_db
from dojo.dependencies import get_member_or_404
from dojo.promotions import (
    belt_history,
    member_standing,
    promote_member,
    seed_belt_ranks,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["belts"])

PROMOTION_PROGRAMS = ("kids-bjj", "adult-bjj", "beginners")


def _belt_out(b: Optional[models.BeltRank]) -> Optional[dict]:
    return schemas.BeltRankOut.model_validate(b).model_dump() if b else None


def _history_out(rows) -> list:
    out = []
    for h in rows:
        item = schemas.BeltHistoryOut.model_validate(h).model_dump(mode="json")
        item["promoted_by"] = h.promoted_by.full_name if h.promoted_by else None
        out.append(item)
    return out


def _member_belt_row(m: models.Member) -> dict:
    return {
        "id": m.id,
        "first_name": m.first_name,
        "last_name": m.last_name,
        "program": m.program,
        "current_belt": _belt_out(m.current_belt),
        "current_stripes": m.current_stripes or 0,
        "belt_updated_at": m.belt_updated_at.isoformat() if m.belt_updated_at else None,
        "total_classes_attended": m.total_classes_attended or 0,
    }


# -----------------------------
# Catalog
# -----------------------------
@router.get("/belts")
def list_belts(member_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    if member_id:
        m = get_member_or_404(db, member_id)
        return {"member": _member_belt_row(m), "history": _history_out(belt_history(db, m.id))}

    rows = db.scalars(select(models.BeltRank).order_by(models.BeltRank.is_kids_belt, models.BeltRank.sort_order)).all()
    adult = [_belt_out(b) for b in rows if not b.is_kids_belt]
    kids = [_belt_out(b) for b in rows if b.is_kids_belt]
    return {"adult_belts": adult, "kids_belts": kids, "all_belts": adult + kids}


@router.post("/admin/seed-belts")
def seed_belts(
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    result = seed_belt_ranks(db)
    return {"success": True, **result}


# -----------------------------
# One member
# -----------------------------
@router.get("/members/{member_id}/belt")
def member_belt(member_id: int, db: Session = Depends(get_db)):
    m = get_member_or_404(db, member_id)
    return {
        "member": _member_belt_row(m),
        "history": _history_out(belt_history(db, m.id)),
        "eligibility": member_standing(db, m),
    }


@router.post("/members/{member_id}/belt")
def promote(
    member_id: int,
    payload: schemas.PromotionIn,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    m = get_member_or_404(db, member_id)
    result = promote_member(
        db,
        m,
        staff=staff,
        new_belt_id=payload.new_belt_id,
        new_belt_name=payload.new_belt_name,
        stripes=payload.stripes,
        notes=payload.notes,
        is_stripe_promotion=payload.is_stripe_promotion,
    )
    db.refresh(m)
    return {
        "success": True,
        "message": result["message"],
        "member": _member_belt_row(m),
        "promotion": _history_out([result["history"]])[0],
    }


# -----------------------------
# Promotion board (staff)
# -----------------------------
@router.get("/admin/promotions")
def promotion_candidates(
    program: Optional[str] = Query(None),
    belt: Optional[str] = Query(None),
    min_days: Optional[int] = Query(None, ge=0),
    min_classes: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    stmt = select(models.Member).where(
        models.Member.status == "active",
        models.Member.program.in_(PROMOTION_PROGRAMS),
    )
    if program:
        stmt = stmt.where(models.Member.program == program)
    members = db.scalars(stmt).all()

    candidates = []
    by_belt: dict = {}
    for m in members:
        current = m.current_belt
        if belt and (not current or current.name != belt):
            continue

        standing = member_standing(db, m)
        days = standing["days_at_belt"]
        classes = standing["classes_at_belt"]
        check = belts.is_eligible_for_promotion(
            days,
            classes,
            standing["current_stripes"],
            bool(current and current.is_kids_belt),
            min_days=min_days,
            min_classes=min_classes,
        )

        row = _member_belt_row(m)
        row.update(
            {
                "days_at_belt": days,
                "classes_at_belt": classes,
                "next_belt": standing["next_belt"],
                "eligible": check.eligible,
                "recommendation": check.reason,
            }
        )
        candidates.append(row)

        label = current.display_name if current else "No Belt"
        by_belt[label] = by_belt.get(label, 0) + 1

    candidates.sort(key=lambda r: (not r["eligible"], -r["days_at_belt"]))
    return {
        "members": candidates,
        "stats": {
            "total_members": len(candidates),
            "eligible_count": sum(1 for c in candidates if c["eligible"]),
            "by_belt": by_belt,
        },
        "filters": {"program": program, "belt": belt, "min_days": min_days, "min_classes": min_classes},
    }


@router.post("/admin/promotions")
def batch_promote(
    payload: schemas.BatchPromotionIn,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.get_current_staff),
):
    results = []
    errors = []
    for item in payload.promotions:
        m = db.get(models.Member, item.member_id)
        if not m:
            errors.append({"member_id": item.member_id, "error": "Member not found"})
            continue
        try:
            result = promote_member(
                db,
                m,
                staff=staff,
                new_belt_id=item.new_belt_id,
                new_belt_name=item.new_belt_name,
                stripes=item.stripes,
                notes=item.notes,
                is_stripe_promotion=item.is_stripe_promotion,
            )
        except HTTPException as e:
            db.rollback()
            log.warning("Batch promotion failed for member %s: %s", item.member_id, e.detail)
            errors.append({"member_id": item.member_id, "error": e.detail})
            continue
        results.append({"member_id": m.id, "success": True, "message": result["message"]})

    return {
        "success": len(errors) == 0,
        "promoted": len(results),
        "failed": len(errors),
        "results": results,
        "errors": errors,
    }
