# tests/conftest.py
import os
from datetime import date, datetime, timedelta
from itertools import count

# Must be set before dojo.* is imported: database/auth read env at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["BILLING_ENABLED"] = "true"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ.pop("STRIPE_MEMBERSHIP_PRODUCT_ID", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dojo import auth, models  # noqa: E402
from dojo.database import Base, get_db  # noqa: E402
from dojo.main import app  # noqa: E402
from dojo.promotions import seed_belt_ranks  # noqa: E402

_seq = count(1)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def client(session_factory):
    def _override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def belt_catalog(db):
    seed_belt_ranks(db)
    return {b.name: b for b in db.query(models.BeltRank).all()}


@pytest.fixture()
def make_member(db):
    def _make(
        with_waiver: bool = True,
        waiver_age_days: int = 10,
        waiver_relationship: str = "self",
        **overrides,
    ) -> models.Member:
        n = next(_seq)
        fields = dict(
            first_name="Test",
            last_name=f"Member{n}",
            email=f"member{n}@example.com",
            phone=f"555-010-{n:04d}",
            birth_date=date(1990, 1, 1),
            program="adult-bjj",
            status="active",
            payment_status="active",
            membership_type="monthly",
            is_primary_account_holder=True,
            individual_monthly_cost=100,
        )
        fields.update(overrides)
        member = models.Member(**fields)
        db.add(member)
        db.flush()
        if with_waiver:
            db.add(
                models.Waiver(
                    member_id=member.id,
                    signer_name=member.full_name,
                    signer_email=member.email,
                    signer_relationship=waiver_relationship,
                    signature_data="data:image/png;base64,AAAA",
                    signed_at=datetime.utcnow() - timedelta(days=waiver_age_days),
                )
            )
        db.commit()
        db.refresh(member)
        return member

    return _make


def _staff_headers(db, role: str) -> dict:
    n = next(_seq)
    staff = models.Staff(
        email=f"staff{n}@example.com",
        hashed_password=auth.hash_password("Passw0rd!"),
        full_name=f"Coach {n}",
        role=role,
        is_active=True,
    )
    db.add(staff)
    db.commit()
    db.refresh(staff)
    token = auth.create_access_token(staff_id=staff.id, subject=staff.email, role=staff.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(db):
    return _staff_headers(db, auth.ROLE_ADMIN)


@pytest.fixture()
def instructor_headers(db):
    return _staff_headers(db, auth.ROLE_INSTRUCTOR)
