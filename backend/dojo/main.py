# dojo/main.py
from __future__ import annotations

import logging
import os

from dotenv import load_dotenv, find_dotenv

# -------------------------------------------------
# LOAD .env ONCE (before any dojo module reads os.getenv at import)
# -------------------------------------------------
_env_path = find_dotenv(usecwd=True)
load_dotenv(_env_path, override=True)

from fastapi import FastAPI  # noqa: E402
from sqlalchemy import select  # noqa: E402

from dojo import auth, errors, models  # noqa: E402
from dojo.database import Base, SessionLocal, engine  # noqa: E402
from dojo.promotions import seed_belt_ranks  # noqa: E402
from dojo.routers import (  # noqa: E402
    admin,
    belts,
    checkin,
    classes,
    contact,
    family,
    members,
    signup,
    waivers,
    webhooks,
)

# -------------------------------------------------
# LOGGING
# -------------------------------------------------
logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("dojo")


# -------------------------------------------------
# DB SETUP
# -------------------------------------------------
Base.metadata.create_all(bind=engine)


# -------------------------------------------------
# APP SETUP
# -------------------------------------------------
app = FastAPI(title="Dojo Backend", version="1.0.0")
errors.register(app)

# Routers
app.include_router(signup.router)
app.include_router(checkin.router)
app.include_router(members.router)
app.include_router(waivers.router)
app.include_router(belts.router)
app.include_router(family.router)
app.include_router(admin.router)
app.include_router(classes.router)
app.include_router(webhooks.router)
app.include_router(contact.router)


# -------------------------------------------------
# HEALTH
# -------------------------------------------------
@app.get("/health")
def health():
    return {"status": "ok"}


# -------------------------------------------------
# STARTUP: BELT CATALOG + OPTIONAL DEFAULT ADMIN SEED
# -------------------------------------------------
def seed_admin_if_enabled(db) -> None:
    seed_admin = (os.getenv("SEED_ADMIN") or "").strip().lower() in ("1", "true", "yes", "on")
    if not seed_admin:
        return
    if db.scalar(select(models.Staff).where(models.Staff.role.in_((auth.ROLE_OWNER, auth.ROLE_ADMIN)))):
        return

    admin_email = (os.getenv("SEED_ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = (os.getenv("SEED_ADMIN_PASSWORD") or "AdminPassword123!").strip()
    db.add(
        models.Staff(
            email=admin_email,
            hashed_password=auth.hash_password(admin_password),
            full_name="Default Admin",
            role=auth.ROLE_OWNER,
            is_active=True,
        )
    )
    db.commit()
    log.info("Seeded default admin %s", admin_email)


@app.on_event("startup")
def bootstrap_startup():
    db = SessionLocal()
    try:
        seed_belt_ranks(db)
        seed_admin_if_enabled(db)
    finally:
        db.close()
