from datetime import date
from uuid import UUID

import pytest
from starlette.requests import Request

from conftest import create_lease, send_lease, sign_payload, tokens_by_tenant
from shared.helpers.client_context import get_client_context
from shared.utils.app_status_code import AppStatusCode
from shared.utils.blob_storage import get_blob_storage
from leasing_service.app.models.leasing.audit_logs import AuditLog
from leasing_service.app.models.leasing.document_artifacts import DocumentArtifact
from leasing_service.app.models.leasing.lease_addendums import (
    LeaseAddendum, LeaseAddendumSignature,
)
from leasing_service.app.models.leasing.leases import Lease
from leasing_service.app.models.leasing.tenants import Tenant
from leasing_service.app.models.leasing.units import Unit
from leasing_service.app.services.signing.document_renderer import DEFAULT_LEASE_CLAUSES


def test_create_validates_input(client, seed, staff_headers, alice_headers):
    body = {
        "unit_id": str(seed.unit_id),
        "tenant_ids": [str(seed.alice_id), str(seed.alice_id)],
        "start_date": "2026-11-01",
        "end_date": "2027-10-31",
        "monthly_rent": "1850.00",
    }
    assert client.post("/api/leases/", headers=staff_headers, json=body).status_code == 422

    body["tenant_ids"] = [str(seed.alice_id)]
    body["end_date"] = "2026-10-01"
    assert client.post("/api/leases/", headers=staff_headers, json=body).status_code == 422

    body["end_date"] = "2027-10-31"
    body["unit_id"] = "00000000-0000-0000-0000-000000000001"
    resp = client.post("/api/leases/", headers=staff_headers, json=body)
    assert resp.status_code == 400
    assert resp.json()["status_code"] == AppStatusCode.INVALID_INPUT

    body["unit_id"] = str(seed.unit_id)
    assert client.post("/api/leases/", headers=alice_headers, json=body).status_code == 403


def test_new_lease_is_a_draft_with_ordered_slots(client, seed, staff_headers):
    resp = client.post("/api/leases/", headers=staff_headers, json={
        "unit_id": str(seed.unit_id),
        "tenant_ids": [str(seed.alice_id), str(seed.bob_id)],
        "primary_tenant_id": str(seed.bob_id),
        "start_date": "2026-11-01",
        "end_date": "2027-10-31",
        "monthly_rent": "1850.00",
        "terms": [{"title": "Parking", "body": "One assigned space, number 14."}],
    })
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]

    assert data["status"] == "draft"
    assert data["document_url"] == ""
    assert [t["first_name"] for t in data["tenants"]] == ["Alice", "Bob"]
    assert [t["is_primary"] for t in data["tenants"]] == [False, True]
    assert data["terms"] == [{"title": "Parking", "body": "One assigned space, number 14."}]


def test_only_draft_leases_can_be_deleted(client, db, seed, staff_headers):
    draft_id = create_lease(client, staff_headers, seed)
    resp = client.delete(f"/api/leases/{draft_id}", headers=staff_headers)
    assert resp.status_code == 200
    assert client.get(f"/api/leases/{draft_id}", headers=staff_headers).status_code == 404

    sent_id = create_lease(client, staff_headers, seed)
    send_lease(client, staff_headers, sent_id)
    blocked = client.delete(f"/api/leases/{sent_id}", headers=staff_headers)
    assert blocked.status_code == 400
    assert db.get(Lease, UUID(sent_id)) is not None


def test_unit_cannot_carry_two_open_leases(client, seed, staff_headers):
    first = create_lease(client, staff_headers, seed)
    send_lease(client, staff_headers, first)
    second = create_lease(client, staff_headers, seed, tenant_ids=[seed.bob_id])

    resp = client.post(f"/api/leases/{second}/send-for-signature", headers=staff_headers)
    assert resp.status_code == 400
    assert "already has an active or pending lease" in resp.json()["message"]


def test_terminating_an_active_lease_vacates_the_unit(client, db, seed, staff_headers, sent_lease):
    client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=sign_payload("Alice Nguyen", "alice@example.com"))
    client.post(f"/api/leases/sign/{sent_lease.bob_token}", json=sign_payload("Bob Okafor", "bob@example.com"))

    resp = client.post(f"/api/leases/{sent_lease.id}/terminate", headers=staff_headers,
                       json={"reason": "Mutual agreement", "move_out_date": "2027-03-31"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["status"] == "terminated"

    db.expire_all()
    assert db.get(Unit, seed.unit_id).status == "vacant"
    for tenant_id in (seed.alice_id, seed.bob_id):
        tenant = db.get(Tenant, tenant_id)
        assert tenant.status == "former"
        assert tenant.current_unit_id is None
        assert tenant.move_out_date == date(2027, 3, 31)

    again = client.post(f"/api/leases/{sent_lease.id}/terminate", headers=staff_headers, json={})
    assert again.status_code == 400


def test_terminating_a_pending_lease_kills_its_links(client, db, seed, staff_headers, sent_lease):
    addendum = client.post(f"/api/leases/{sent_lease.id}/addendums", headers=staff_headers,
                           json={"title": "Storage", "content": "Basement locker 3 is included."})
    addendum_id = addendum.json()["data"]["id"]
    client.post(f"/api/leases/{sent_lease.id}/addendums/{addendum_id}/send", headers=staff_headers)
    addendum_tokens = tokens_by_tenant(db, LeaseAddendumSignature,
                                       LeaseAddendumSignature.addendum_id == UUID(addendum_id))

    resp = client.post(f"/api/leases/{sent_lease.id}/terminate", headers=staff_headers, json={})
    assert resp.status_code == 200

    attempt = client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                          json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert attempt.status_code == 400
    assert attempt.json()["status_code"] == AppStatusCode.SIGNING_DOCUMENT_NOT_SIGNABLE

    addendum_attempt = client.post(f"/api/leases/addendum/sign/{addendum_tokens[seed.alice_id]}",
                                   json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert addendum_attempt.status_code == 400

    db.expire_all()
    assert db.get(LeaseAddendum, UUID(addendum_id)).status == "void"
    # the unit was never occupied, so nothing moves out
    assert db.get(Unit, seed.unit_id).status == "vacant"
    assert db.get(Tenant, seed.alice_id).status == "pending"


def test_audit_and_artifact_rows_are_append_only(client, db, sent_lease):
    entry = db.query(AuditLog).first()
    entry.action = "TAMPERED"
    with pytest.raises(ValueError):
        db.commit()
    db.rollback()

    artifact = db.query(DocumentArtifact).first()
    db.delete(artifact)
    with pytest.raises(ValueError):
        db.commit()
    db.rollback()


def _request(headers, client=("10.0.0.9", 5555)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.parametrize("headers, expected", [
    ({"CF-Connecting-IP": "1.1.1.1", "X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3"}, "1.1.1.1"),
    ({"X-Real-IP": "2.2.2.2", "X-Forwarded-For": "3.3.3.3, 4.4.4.4"}, "2.2.2.2"),
    ({"X-Forwarded-For": " 3.3.3.3 , 4.4.4.4"}, "3.3.3.3"),
    ({}, "10.0.0.9"),
])
def test_client_ip_header_priority(headers, expected):
    assert get_client_context(_request(headers)).ip_address == expected


def test_unknown_country_is_dropped():
    ctx = get_client_context(_request({"CF-IPCountry": "XX", "User-Agent": "pytest"}))
    assert ctx.ip_country is None
    assert ctx.user_agent == "pytest"


def test_draft_lease_can_be_edited_before_sending(client, db, seed, staff_headers):
    lease_id = create_lease(client, staff_headers, seed)
    resp = client.patch(f"/api/leases/{lease_id}", headers=staff_headers, json={
        "monthly_rent": "1925.00",
        "terms": [{"title": "Pets", "body": "One cat is permitted."}],
    })
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["monthly_rent"] == 1925.0
    assert data["terms"] == [{"title": "Pets", "body": "One cat is permitted."}]
    assert data["start_date"] == "2026-11-01"

    bad_dates = client.patch(f"/api/leases/{lease_id}", headers=staff_headers,
                             json={"end_date": "2026-10-01"})
    assert bad_dates.status_code == 400

    document_url = send_lease(client, staff_headers, lease_id)["document_url"]
    assert b"One cat is permitted." in get_blob_storage().read(document_url)

    locked = client.patch(f"/api/leases/{lease_id}", headers=staff_headers,
                          json={"monthly_rent": "2000.00"})
    assert locked.status_code == 400
    assert locked.json()["status_code"] == AppStatusCode.SIGNING_INVALID_STATE
    assert float(db.get(Lease, UUID(lease_id)).monthly_rent) == 1925.0

    actions = [e.action for e in db.query(AuditLog).filter(AuditLog.entity_id == UUID(lease_id)).all()]
    assert actions.count("LEASE_UPDATED") == 1


def test_default_clauses_are_listed_for_staff(client, seed, staff_headers, alice_headers):
    resp = client.get("/api/leases/default-clauses", headers=staff_headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == DEFAULT_LEASE_CLAUSES

    assert client.get("/api/leases/default-clauses", headers=alice_headers).status_code == 403
