# dojo/schemas.py
from datetime import datetime, date
from typing import Optional, Literal, List

from pydantic import BaseModel, EmailStr, Field

MembershipType = Literal["kids", "adult", "drop-in"]
Program = Literal["kids-bjj", "adult-bjj", "beginners"]
CheckInMethod = Literal["kiosk", "qr", "pin", "admin"]


class CamelIn(BaseModel):
    """Request bodies accept the camelCase keys the web client sends, or snake_case."""

    class Config:
        populate_by_name = True


# -----------------------------
# AUTH
# -----------------------------
class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    staff_id: Optional[int] = None
    role: Optional[str] = None


# -----------------------------
# SIGNUP / BILLING
# -----------------------------
class SignupIn(CamelIn):
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: date = Field(alias="dateOfBirth")
    membership_type: MembershipType = Field(alias="membershipType")

    parent_first_name: Optional[str] = Field(None, alias="parentFirstName")
    parent_last_name: Optional[str] = Field(None, alias="parentLastName")
    parent_email: Optional[EmailStr] = Field(None, alias="parentEmail")
    parent_phone: Optional[str] = Field(None, alias="parentPhone")

    emergency_contact_name: Optional[str] = Field(None, alias="emergencyContactName")
    emergency_contact_phone: Optional[str] = Field(None, alias="emergencyContactPhone")
    emergency_contact_relationship: Optional[str] = Field(None, alias="emergencyContactRelationship")
    medical_conditions: Optional[str] = Field(None, alias="medicalConditions")

    waiver_agreed: bool = Field(False, alias="waiverAgreed")
    signature_data: Optional[str] = Field(None, alias="signatureData")
    signer_name: Optional[str] = Field(None, alias="signerName")

    link_to_parent_id: Optional[int] = Field(None, alias="linkToParentId")
    promo_code: Optional[str] = Field(None, alias="promoCode")


class PromoIn(CamelIn):
    promo_code: str = Field(alias="promoCode", min_length=1)


class MemberIdIn(CamelIn):
    member_id: int = Field(alias="memberId")


class CancelMembershipIn(MemberIdIn):
    reason: Optional[str] = None


class DropInIn(MemberIdIn):
    needs_waiver: bool = Field(False, alias="needsWaiver")
    signature_data: Optional[str] = Field(None, alias="signatureData")
    signer_name: Optional[str] = Field(None, alias="signerName")


# -----------------------------
# CHECK-IN
# -----------------------------
class CheckInIn(CamelIn):
    member_id: int = Field(alias="memberId")
    class_type: str = Field("general", alias="classType")


class CheckInCreateIn(BaseModel):
    member_id: int
    check_in_method: CheckInMethod = "kiosk"
    class_id: Optional[int] = None
    notes: Optional[str] = None


class KioskQrIn(CamelIn):
    qr_code: str = Field(alias="qrCode", min_length=1)


class KioskPinIn(CamelIn):
    pin: str = Field(min_length=4, max_length=12)


class CheckInOut(BaseModel):
    id: int
    member_id: int
    class_id: Optional[int] = None
    class_type: str
    check_in_method: str
    notes: Optional[str] = None
    checked_in_at: datetime

    class Config:
        from_attributes = True


# -----------------------------
# MEMBERS
# -----------------------------
class MemberLookupIn(BaseModel):
    email: str = Field(min_length=1)


class MemberUpdateIn(BaseModel):
    phone: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    medical_conditions: Optional[str] = None


class QrAssignIn(BaseModel):
    qr_code: str = Field(min_length=1)


class PinAssignIn(BaseModel):
    pin: str = Field(pattern=r"^\d{4}$")


# -----------------------------
# WAIVERS
# -----------------------------
class WaiverSignIn(CamelIn):
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: Optional[date] = Field(None, alias="dateOfBirth")
    signature_data: str = Field(alias="signatureData", min_length=1)
    signer_name: str = Field(alias="signerName", min_length=1)


class RenewWaiverIn(CamelIn):
    member_id: int = Field(alias="memberId")
    signature_data: str = Field(alias="signatureData", min_length=1)
    signer_name: str = Field(alias="signerName", min_length=1)


# -----------------------------
# BELTS
# -----------------------------
class BeltRankOut(BaseModel):
    id: int
    name: str
    display_name: str
    color_hex: Optional[str] = None
    gradient_from: Optional[str] = None
    gradient_to: Optional[str] = None
    sort_order: int
    is_kids_belt: bool
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    typical_time_months: Optional[int] = None
    max_stripes: int

    class Config:
        from_attributes = True


class BeltHistoryOut(BaseModel):
    id: int
    member_id: int
    belt_rank_id: int
    stripes: int
    promoted_by_staff_id: Optional[int] = None
    notes: Optional[str] = None
    classes_attended_at_promotion: Optional[int] = None
    days_at_previous_belt: Optional[int] = None
    is_current: bool
    promoted_at: datetime
    belt_rank: Optional[BeltRankOut] = Field(None, validation_alias="belt")

    class Config:
        from_attributes = True


class PromotionIn(BaseModel):
    new_belt_id: Optional[int] = None
    new_belt_name: Optional[str] = None
    stripes: int = Field(0, ge=0, le=4)
    notes: str = ""
    is_stripe_promotion: bool = False


class BatchPromotionItem(PromotionIn):
    member_id: int


class BatchPromotionIn(BaseModel):
    promotions: List[BatchPromotionItem] = Field(min_length=1)


# -----------------------------
# FAMILY
# -----------------------------
class FamilyLinkIn(CamelIn):
    parent_member_id: int = Field(alias="parentMemberId")
    child_member_id: int = Field(alias="childMemberId")


class FamilyUpdateIn(CamelIn):
    primary_member_id: int = Field(alias="primaryMemberId")
    family_name: Optional[str] = Field(None, alias="familyName")
    metadata: Optional[dict] = None


class FamilyAddMemberIn(CamelIn):
    primary_account_holder_id: int = Field(alias="primaryAccountHolderId")
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: date = Field(alias="dateOfBirth")
    program: Program
    family_role: Optional[str] = Field(None, alias="familyRole")
    relationship_to_primary: Optional[str] = Field(None, alias="relationshipToPrimary")
    emergency_contact_name: Optional[str] = Field(None, alias="emergencyContactName")
    emergency_contact_phone: Optional[str] = Field(None, alias="emergencyContactPhone")
    emergency_contact_relationship: Optional[str] = Field(None, alias="emergencyContactRelationship")
    medical_conditions: Optional[str] = Field(None, alias="medicalConditions")


class FamilyRemoveMemberIn(CamelIn):
    primary_account_holder_id: int = Field(alias="primaryAccountHolderId")
    member_id_to_remove: int = Field(alias="memberIdToRemove")
    convert_to_individual: bool = Field(True, alias="convertToIndividual")


class FamilyPricingIn(CamelIn):
    member_count: int = Field(alias="memberCount")
    member_types: List[str] = Field(alias="memberTypes")


# -----------------------------
# CLASSES
# -----------------------------
class ClassIn(BaseModel):
    name: str = Field(min_length=1)
    program: Optional[str] = None
    instructor: Optional[str] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    max_capacity: Optional[int] = Field(None, ge=1)
    age_min: Optional[int] = Field(None, ge=0)
    age_max: Optional[int] = Field(None, ge=0)
    skill_level: Optional[str] = None
    is_active: bool = True


class ClassUpdateIn(BaseModel):
    name: Optional[str] = None
    program: Optional[str] = None
    instructor: Optional[str] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    max_capacity: Optional[int] = Field(None, ge=1)
    age_min: Optional[int] = Field(None, ge=0)
    age_max: Optional[int] = Field(None, ge=0)
    skill_level: Optional[str] = None
    is_active: Optional[bool] = None


class ClassOut(BaseModel):
    id: int
    name: str
    program: Optional[str] = None
    instructor: Optional[str] = None
    day_of_week: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    max_capacity: Optional[int] = None
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    skill_level: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# -----------------------------
# CONTACT
# -----------------------------
class ContactIn(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    message: str = Field(min_length=1)
    interest: Optional[str] = "general"
    phone: Optional[str] = None
