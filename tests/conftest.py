import os
import tempfile
from types import SimpleNamespace
from uuid import UUID

import pytest

# Settings are read at import time, so the environment has to be in place first.
_WORKDIR = tempfile.mkdtemp(prefix="leasing-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_WORKDIR, 'leasing.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_WORKDIR, "uploads")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["PORTAL_URL"] = "http://portal.test"
os.environ.pop("SMTP_HOST", None)

from fastapi.testclient import TestClient  # noqa: E402

from shared.core.auth import create_access_token  # noqa: E402
from shared.core.database import Base, LeasingSessionLocal, leasing_engine  # noqa: E402
from leasing_service.app.main import app  # noqa: E402
from leasing_service.app.models.leasing.leases import LeaseTenant  # noqa: E402
from leasing_service.app.models.leasing.orgs import Org  # noqa: E402
from leasing_service.app.models.leasing.tenants import Tenant  # noqa: E402
from leasing_service.app.models.leasing.units import Unit  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=leasing_engine)
    Base.metadata.create_all(bind=leasing_engine)
    yield


@pytest.fixture
def db():
    session = LeasingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def seed(db):
    org = Org(name="Maple Property Group", email="office@maple.test")
    unit = Unit(
        org=org,
        property_name="Maple Court",
        address="12 Maple Street",
        city="Springfield",
        state="IL",
        zip_code="62701",
        unit_number="4B",
        bedrooms=2,
        bathrooms=1,
        sq_ft=850,
    )
    alice = Tenant(org=org, user_id="tenant-alice", first_name="Alice", last_name="Nguyen",
                   email="alice@example.com")
    bob = Tenant(org=org, user_id="tenant-bob", first_name="Bob", last_name="Okafor",
                 email="bob@example.com")
    db.add_all([org, unit, alice, bob])
    db.commit()
    return SimpleNamespace(org_id=org.id, unit_id=unit.id, alice_id=alice.id, bob_id=bob.id)


def bearer(**claims) -> dict:
    return {"Authorization": f"Bearer {create_access_token(claims, expires_minutes=30)}"}


@pytest.fixture
def staff_headers(seed):
    return bearer(user_id="staff-1", org_id=str(seed.org_id), name="Morgan Lee",
                  email="morgan@maple.test", account_type="organization")


@pytest.fixture
def alice_headers(seed):
    return bearer(user_id="tenant-alice", name="Alice Nguyen",
                  email="alice@example.com", account_type="tenant")


def sign_payload(full_name: str, email: str, view_seconds: int = 120, **overrides) -> dict:
    payload = {
        "full_name": full_name,
        "email": email,
        "agreed_to_terms": True,
        "agreed_to_esign": True,
        "agreed_to_identity": True,
        "signing_metadata": {
            "screen_resolution": "1920x1080",
            "timezone": "America/Chicago",
            "browser_language": "en-US",
            "platform": "MacIntel",
            "total_view_time_seconds": view_seconds,
        },
    }
    payload.update(overrides)
    return payload


def create_lease(client, headers, seed, tenant_ids=None) -> str:
    resp = client.post("/api/leases/", headers=headers, json={
        "unit_id": str(seed.unit_id),
        "tenant_ids": [str(t) for t in (tenant_ids or [seed.alice_id, seed.bob_id])],
        "start_date": "2026-11-01",
        "end_date": "2027-10-31",
        "monthly_rent": "1850.00",
        "security_deposit": "1850.00",
        "rent_due_day": 1,
        "late_fee_amount": "75.00",
        "late_fee_grace_days": 5,
    })
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["id"]


def send_lease(client, headers, lease_id) -> dict:
    resp = client.post(f"/api/leases/{lease_id}/send-for-signature", headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def tokens_by_tenant(db, slot_model, parent_filter) -> dict:
    db.expire_all()
    return {slot.tenant_id: slot.signing_token for slot in db.query(slot_model).filter(parent_filter).all()}


@pytest.fixture
def sent_lease(client, db, seed, staff_headers):
    """A two-tenant lease that has been sent; returns ids and live tokens."""
    lease_id = create_lease(client, staff_headers, seed)
    send_lease(client, staff_headers, lease_id)
    tokens = tokens_by_tenant(db, LeaseTenant, LeaseTenant.lease_id == UUID(lease_id))
    return SimpleNamespace(id=lease_id, alice_token=tokens[seed.alice_id], bob_token=tokens[seed.bob_id])
