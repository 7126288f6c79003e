# dojo/auth.py
import os
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import get_db
from .models import Staff

# -------------------------------------------------------------------
# Settings
# -------------------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_TO_SOMETHING_RANDOM_AND_LONG")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))

# -------------------------------------------------------------------
# Password hashing
# -------------------------------------------------------------------
pwd_context = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    deprecated="auto",
)

# Swagger will use this to send: Authorization: Bearer <token>
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login")

# -------------------------------------------------------------------
# Roles
# -------------------------------------------------------------------
ROLE_OWNER = "OWNER"
ROLE_ADMIN = "ADMIN"
ROLE_INSTRUCTOR = "INSTRUCTOR"
VALID_ROLES = {ROLE_OWNER, ROLE_ADMIN, ROLE_INSTRUCTOR}


def normalize_role(value: Optional[str]) -> str:
    r = (value or "").strip().upper()
    return r if r in VALID_ROLES else ROLE_INSTRUCTOR


def is_admin_role(staff: Staff) -> bool:
    """OWNER or ADMIN => admin-capable. Instructors can only promote."""
    return normalize_role(getattr(staff, "role", None)) in (ROLE_OWNER, ROLE_ADMIN)


# -------------------------------------------------------------------
# Password helpers
# -------------------------------------------------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# -------------------------------------------------------------------
# JWT create/verify
# -------------------------------------------------------------------
def create_access_token(*, staff_id: int, subject: str, role: Optional[str] = None,
                        expires_minutes: Optional[int] = None) -> str:
    """
    Token claims:
      sub: email
      sid: staff id
      rol: role (OWNER/ADMIN/INSTRUCTOR)
      exp: expiry datetime
    """
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": subject,
        "sid": int(staff_id),
        "rol": normalize_role(role),
        "exp": expire,
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if not payload.get("sid"):
            raise ValueError("Token missing required claims")
        return payload
    except (JWTError, ValueError) as e:
        raise ValueError("Invalid token") from e


def _auth_401() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_current_staff(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Staff:
    try:
        payload = decode_token(token)
        staff_id = int(payload["sid"])
    except (ValueError, KeyError):
        raise _auth_401()

    staff = db.get(Staff, staff_id)
    if not staff:
        raise _auth_401()
    if not staff.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive staff account")
    return staff


def require_admin(staff: Staff = Depends(get_current_staff)) -> Staff:
    if not is_admin_role(staff):
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return staff


def authenticate(db: Session, email: str, password: str) -> Staff:
    staff = db.scalar(select(Staff).where(Staff.email == (email or "").strip().lower()))
    if not staff or not verify_password(password, staff.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not staff.is_active:
        raise HTTPException(status_code=403, detail="Staff account is inactive")
    return staff
