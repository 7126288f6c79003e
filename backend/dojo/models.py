# dojo/models.py
from __future__ import annotations

from datetime import datetime, date

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Date,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Values: "OWNER" | "ADMIN" | "INSTRUCTOR"
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="ADMIN")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Member(Base):
    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    # Stored lower-cased
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Values: "kids-bjj" | "adult-bjj" | "beginners"
    program: Mapped[str | None] = mapped_column(String(40), nullable=True)
    skill_level: Mapped[str | None] = mapped_column(String(40), nullable=True)

    # pending -> active -> past_due / cancelled / inactive ("trial" for kiosk walk-ins)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    # Values: "monthly" | "drop-in" | "trial"
    membership_type: Mapped[str] = mapped_column(String(20), nullable=False, default="monthly")

    # Minors only
    parent_first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    parent_last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    parent_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parent_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    emergency_contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    emergency_contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    emergency_contact_relationship: Mapped[str | None] = mapped_column(String(60), nullable=True)
    medical_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Check-in credentials
    qr_code: Mapped[str | None] = mapped_column(String(120), unique=True, index=True, nullable=True)
    pin_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    one_click_login_enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    # Family linkage: family_account_id is the primary holder's member id
    family_account_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"), nullable=True, index=True)
    is_primary_account_holder: Mapped[bool] = mapped_column(Boolean, default=False)
    family_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    relationship_to_primary: Mapped[str | None] = mapped_column(String(40), nullable=True)
    individual_monthly_cost: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Stripe
    stripe_customer_id: Mapped[str | None] = mapped_column(String(80), index=True, nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(80), nullable=True)
    # Values: "pending" | "active" | "past_due" | "cancelled" | "none"
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Belt (denormalized from member_belt_history)
    current_belt_id: Mapped[int | None] = mapped_column(ForeignKey("belt_ranks.id"), nullable=True)
    current_stripes: Mapped[int] = mapped_column(Integer, default=0)
    belt_updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    total_classes_attended: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    current_belt = relationship("BeltRank", foreign_keys=[current_belt_id])
    waivers = relationship("Waiver", back_populates="member", order_by="Waiver.signed_at.desc()")
    check_ins = relationship("CheckIn", back_populates="member")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Waiver(Base):
    __tablename__ = "waivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)

    waiver_type: Mapped[str] = mapped_column(String(40), nullable=False, default="liability")
    waiver_version: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0")

    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Values: "self" | "parent" | "guardian"
    signer_relationship: Mapped[str] = mapped_column(String(20), nullable=False, default="self")
    signature_data: Mapped[str | None] = mapped_column(Text, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    signed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    member = relationship("Member", back_populates="waivers")


class GymClass(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    program: Mapped[str | None] = mapped_column(String(40), nullable=True)
    instructor: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # "HH:MM"
    start_time: Mapped[str | None] = mapped_column(String(8), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(8), nullable=True)

    max_capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    age_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    age_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    skill_level: Mapped[str | None] = mapped_column(String(40), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class CheckIn(Base):
    __tablename__ = "check_ins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    class_id: Mapped[int | None] = mapped_column(ForeignKey("classes.id"), nullable=True)

    class_type: Mapped[str] = mapped_column(String(40), nullable=False, default="general")
    # Values: "kiosk" | "qr" | "pin" | "admin"
    check_in_method: Mapped[str] = mapped_column(String(20), nullable=False, default="kiosk")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    checked_in_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    member = relationship("Member", back_populates="check_ins")
    gym_class = relationship("GymClass")


class BeltRank(Base):
    __tablename__ = "belt_ranks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(40), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(80), nullable=False)
    color_hex: Mapped[str | None] = mapped_column(String(9), nullable=True)
    gradient_from: Mapped[str | None] = mapped_column(String(9), nullable=True)
    gradient_to: Mapped[str | None] = mapped_column(String(9), nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_kids_belt: Mapped[bool] = mapped_column(Boolean, default=False)
    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    typical_time_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_stripes: Mapped[int] = mapped_column(Integer, nullable=False, default=4)


class MemberBeltHistory(Base):
    __tablename__ = "member_belt_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    belt_rank_id: Mapped[int] = mapped_column(ForeignKey("belt_ranks.id"), nullable=False)
    stripes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    promoted_by_staff_id: Mapped[int | None] = mapped_column(ForeignKey("staff.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    classes_attended_at_promotion: Mapped[int | None] = mapped_column(Integer, nullable=True)
    days_at_previous_belt: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Exactly one row per member carries is_current=True after a promotion
    is_current: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    promoted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    belt = relationship("BeltRank")
    promoted_by = relationship("Staff")


class FamilyAccount(Base):
    __tablename__ = "family_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    primary_member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), unique=True, nullable=False)
    family_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    monthly_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
