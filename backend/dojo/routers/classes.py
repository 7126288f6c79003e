# dojo/routers/classes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from dojo import auth, models, schemas
from dojo.database import get_db

router = APIRouter(prefix="/api", tags=["classes"])


def _check_ages(age_min: Optional[int], age_max: Optional[int]) -> None:
    if age_min is not None and age_max is not None and age_min > age_max:
        raise HTTPException(status_code=400, detail="age_min cannot be greater than age_max")


def _check_times(start: Optional[str], end: Optional[str]) -> None:
    # "HH:MM" strings compare correctly
    if start and end and end <= start:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")


@router.get("/classes", response_model=list[schemas.ClassOut])
def list_classes(
    program: Optional[str] = Query(None),
    day_of_week: Optional[int] = Query(None, ge=0, le=6),
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    stmt = select(models.GymClass)
    if not include_inactive:
        stmt = stmt.where(models.GymClass.is_active.is_(True))
    if program:
        stmt = stmt.where(models.GymClass.program == program)
    if day_of_week is not None:
        stmt = stmt.where(models.GymClass.day_of_week == day_of_week)
    return db.scalars(stmt.order_by(models.GymClass.day_of_week, models.GymClass.start_time)).all()


@router.post("/admin/classes", response_model=schemas.ClassOut, status_code=201)
def create_class(
    payload: schemas.ClassIn,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    _check_ages(payload.age_min, payload.age_max)
    _check_times(payload.start_time, payload.end_time)

    gym_class = models.GymClass(**payload.model_dump())
    db.add(gym_class)
    db.commit()
    db.refresh(gym_class)
    return gym_class


@router.put("/admin/classes/{class_id}", response_model=schemas.ClassOut)
def update_class(
    class_id: int,
    payload: schemas.ClassUpdateIn,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    gym_class = db.get(models.GymClass, class_id)
    if not gym_class:
        raise HTTPException(status_code=404, detail="Class not found")

    changes = payload.model_dump(exclude_unset=True)
    _check_ages(changes.get("age_min", gym_class.age_min), changes.get("age_max", gym_class.age_max))
    _check_times(changes.get("start_time", gym_class.start_time), changes.get("end_time", gym_class.end_time))

    for field, value in changes.items():
        setattr(gym_class, field, value)
    db.commit()
    db.refresh(gym_class)
    return gym_class


@router.delete("/admin/classes/{class_id}")
def delete_class(
    class_id: int,
    db: Session = Depends(get_db),
    staff: models.Staff = Depends(auth.require_admin),
):
    """Soft delete: past check-ins keep pointing at the class."""
    gym_class = db.get(models.GymClass, class_id)
    if not gym_class:
        raise HTTPException(status_code=404, detail="Class not found")
    gym_class.is_active = False
    db.commit()
    return {"success": True, "id": class_id}
