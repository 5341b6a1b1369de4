from datetime import timedelta
from uuid import UUID

from conftest import bearer, create_lease, send_lease, sign_payload, tokens_by_tenant
from shared.utils.app_status_code import AppStatusCode
from shared.utils.blob_storage import get_blob_storage
from leasing_service.app.core.time_utils import utcnow
from leasing_service.app.models.leasing.audit_logs import AuditLog
from leasing_service.app.models.leasing.document_artifacts import DocumentArtifact
from leasing_service.app.models.leasing.leases import Lease, LeaseTenant
from leasing_service.app.models.leasing.tenants import Tenant
from leasing_service.app.models.leasing.units import Unit
from leasing_service.app.services.signing.document_hasher import compute_document_hash


def _actions(db, lease_id):
    db.expire_all()
    return [e.action for e in db.query(AuditLog)
            .filter(AuditLog.entity_id == UUID(lease_id)).order_by(AuditLog.id).all()]


def test_health(client):
    resp = client.get("/api/leases/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"


def test_send_publishes_a_hashed_document(client, db, seed, staff_headers):
    lease_id = create_lease(client, staff_headers, seed)
    result = send_lease(client, staff_headers, lease_id)

    assert result["status"] == "pending_signature"
    assert sorted(result["sent_to"]) == ["alice@example.com", "bob@example.com"]
    content = get_blob_storage().read(result["document_url"])
    assert compute_document_hash(content) == result["document_hash"]
    assert result["document_url"].endswith(f"{result['document_hash']}.html")

    slots = db.query(LeaseTenant).filter(LeaseTenant.lease_id == UUID(lease_id)).all()
    assert all(s.signing_token and len(s.signing_token) >= 32 for s in slots)
    assert len({s.signing_token for s in slots}) == 2
    assert db.query(DocumentArtifact).filter(DocumentArtifact.entity_id == UUID(lease_id)).count() == 1


def test_send_twice_is_rejected(client, seed, staff_headers):
    lease_id = create_lease(client, staff_headers, seed)
    send_lease(client, staff_headers, lease_id)

    resp = client.post(f"/api/leases/{lease_id}/send-for-signature", headers=staff_headers)
    assert resp.status_code == 400
    assert resp.json()["status_code"] == AppStatusCode.SIGNING_INVALID_STATE


def test_signing_session_exposes_only_the_signer(client, db, seed, sent_lease):
    resp = client.get(f"/api/leases/sign/{sent_lease.alice_token}")

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["tenant"]["email"] == "alice@example.com"
    assert data["organization_name"] == "Maple Property Group"
    assert data["unit"]["unit_number"] == "4B"
    assert [s["first_name"] for s in data["signers"]] == ["Alice", "Bob"]
    assert "email" not in data["signers"][0]
    assert "SIGNING_LINK_OPENED" in _actions(db, sent_lease.id)


def test_unknown_token_is_not_found(client, sent_lease):
    resp = client.get("/api/leases/sign/not-a-real-token")

    assert resp.status_code == 404
    body = resp.json()
    assert body["status"] == "Failure"
    assert body["status_code"] == AppStatusCode.SIGNING_TOKEN_NOT_FOUND
    assert body["message"] == "This signing link is invalid"


def test_partial_signing_does_not_activate(client, db, seed, sent_lease):
    resp = client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                       json=sign_payload("Alice Nguyen", "alice@example.com"),
                       headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1", "CF-IPCountry": "us"})

    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["all_signed"] is False
    assert data["remaining_signatures"] == 1
    assert data["status"] == "pending_signature"
    assert data["receipt"]["ip_address"] == "198.51.100.7"
    assert data["receipt"]["location"] == "US"
    assert len(data["receipt"]["signature_id"]) == 16

    db.expire_all()
    lease = db.get(Lease, UUID(sent_lease.id))
    assert lease.status == "pending_signature"
    assert db.get(Unit, seed.unit_id).status == "vacant"
    assert db.get(Tenant, seed.alice_id).status == "pending"

    alice_slot = next(s for s in lease.tenants if s.tenant_id == seed.alice_id)
    assert alice_slot.signing_token is None
    assert alice_slot.token_expires_at is None
    assert alice_slot.signature_data["full_name"] == "Alice Nguyen"
    assert alice_slot.signature_data["screen_resolution"] == "1920x1080"
    assert alice_slot.signature_data["document_hash"]


def test_last_signature_runs_the_completion_cascade(client, db, seed, sent_lease):
    client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                json=sign_payload("Alice Nguyen", "alice@example.com"))
    resp = client.post(f"/api/leases/sign/{sent_lease.bob_token}",
                       json=sign_payload("Bob Okafor", "bob@example.com"))

    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["all_signed"] is True
    assert data["remaining_signatures"] == 0
    assert data["status"] == "active"

    db.expire_all()
    lease = db.get(Lease, UUID(sent_lease.id))
    assert lease.status == "active"
    assert db.get(Unit, seed.unit_id).status == "occupied"
    for tenant_id in (seed.alice_id, seed.bob_id):
        tenant = db.get(Tenant, tenant_id)
        assert tenant.status == "active"
        assert tenant.current_unit_id == seed.unit_id
        assert tenant.move_in_date == lease.start_date

    # the stored document now carries both tenant signatures
    content = get_blob_storage().read(lease.document_url)
    assert compute_document_hash(content) == lease.document_hash
    assert content.count(b"ELECTRONICALLY SIGNED") == 2
    assert b"Certificate of Completion" not in content
    assert _actions(db, sent_lease.id).count("ALL_PARTIES_SIGNED") == 1


def test_consumed_token_reports_already_signed(client, sent_lease):
    payload = sign_payload("Alice Nguyen", "alice@example.com")
    first = client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=payload)
    assert first.status_code == 200

    again = client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=payload)
    assert again.status_code == 409
    assert again.json()["status_code"] == AppStatusCode.SIGNING_ALREADY_SIGNED

    session = client.get(f"/api/leases/sign/{sent_lease.alice_token}")
    assert session.status_code == 409


def test_expired_token_is_gone(client, db, seed, sent_lease):
    slot = db.query(LeaseTenant).filter(LeaseTenant.signing_token == sent_lease.alice_token).one()
    slot.token_expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    resp = client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                       json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert resp.status_code == 410
    assert resp.json()["status_code"] == AppStatusCode.SIGNING_TOKEN_EXPIRED

    db.expire_all()
    assert db.get(LeaseTenant, slot.id).signed_at is None


def test_resend_replaces_unsigned_tokens(client, db, seed, staff_headers, sent_lease):
    client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                json=sign_payload("Alice Nguyen", "alice@example.com"))

    resp = client.post(f"/api/leases/{sent_lease.id}/resend", headers=staff_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["resent_to"] == ["bob@example.com"]

    fresh = tokens_by_tenant(db, LeaseTenant, LeaseTenant.lease_id == UUID(sent_lease.id))
    assert fresh[seed.alice_id] is None
    assert fresh[seed.bob_id] != sent_lease.bob_token

    assert client.get(f"/api/leases/sign/{sent_lease.bob_token}").status_code == 404
    ok = client.post(f"/api/leases/sign/{fresh[seed.bob_id]}",
                     json=sign_payload("Bob Okafor", "bob@example.com"))
    assert ok.status_code == 200
    assert ok.json()["data"]["all_signed"] is True


def test_agreements_are_required(client, sent_lease):
    payload = sign_payload("Alice Nguyen", "alice@example.com", agreed_to_esign=False)
    resp = client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=payload)

    assert resp.status_code == 422
    assert resp.json()["status_code"] == AppStatusCode.INVALID_INPUT


def test_rejected_attempts_are_audited(client, db, sent_lease):
    payload = sign_payload("Alice Nguyen", "alice@example.com")
    client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=payload)
    client.post(f"/api/leases/sign/{sent_lease.alice_token}", json=payload)

    actions = _actions(db, sent_lease.id)
    assert actions.count("SIGNATURE_SUBMITTED") == 1
    assert actions.count("SIGNATURE_REJECTED") == 1


def test_logged_in_tenant_can_sign_in_portal(client, db, seed, sent_lease, alice_headers):
    resp = client.post(f"/api/leases/{sent_lease.id}/sign", headers=alice_headers,
                       json=sign_payload("Alice Nguyen", "alice@example.com"))

    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["remaining_signatures"] == 1

    again = client.post(f"/api/leases/{sent_lease.id}/sign", headers=alice_headers,
                        json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert again.status_code == 409

    # the emailed link for the same slot is now spent as well
    link = client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                       json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert link.status_code == 409


def test_portal_signing_requires_being_on_the_lease(client, sent_lease):
    stranger = bearer(user_id="tenant-zed", account_type="tenant")
    resp = client.post(f"/api/leases/{sent_lease.id}/sign", headers=stranger,
                       json=sign_payload("Zed Stone", "zed@example.com"))
    assert resp.status_code == 403


def test_countersign_and_certificate(client, db, seed, staff_headers, sent_lease):
    early = client.post(f"/api/leases/{sent_lease.id}/countersign", headers=staff_headers,
                        json={"full_name": "Morgan Lee"})
    assert early.status_code == 400

    client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                json=sign_payload("Alice Nguyen", "alice@example.com", view_seconds=95))
    client.post(f"/api/leases/sign/{sent_lease.bob_token}",
                json=sign_payload("Bob Okafor", "bob@example.com", view_seconds=300))

    resp = client.post(f"/api/leases/{sent_lease.id}/countersign", headers=staff_headers,
                       json={"full_name": "Morgan Lee"})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["status"] == "active"
    assert data["receipt"]["email"] == "morgan@maple.test"

    content = get_blob_storage().read(data["document_url"]).decode("utf-8")
    assert compute_document_hash(content) == data["document_hash"]
    assert content.count("Certificate of Completion") == 1
    certificate = content[content.index("Certificate of Completion"):]
    for name in ("Alice Nguyen", "Bob Okafor", "Morgan Lee"):
        assert name in certificate
    assert certificate.count("<td>Tenant") == 2
    assert certificate.count("<td>Landlord</td>") == 1

    # the certificate hash is the hash of the agreement before it was attached
    cert_start = content.index('\n<div class="certificate-page"')
    cert_end = content.rindex("</body>")
    agreement = content[:cert_start] + content[cert_end:]
    assert compute_document_hash(agreement) in certificate

    assert db.query(DocumentArtifact).filter(
        DocumentArtifact.entity_id == UUID(sent_lease.id),
        DocumentArtifact.has_certificate.is_(True)).count() == 1

    twice = client.post(f"/api/leases/{sent_lease.id}/countersign", headers=staff_headers,
                        json={"full_name": "Morgan Lee"})
    assert twice.status_code == 409
    assert twice.json()["status_code"] == AppStatusCode.SIGNING_ALREADY_COUNTERSIGNED


def test_document_download_is_audited(client, db, seed, staff_headers, alice_headers, sent_lease):
    resp = client.get(f"/api/leases/{sent_lease.id}/document", headers=alice_headers)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert b"Residential Lease Agreement" in resp.content
    assert "SIGNED_DOCUMENT_DOWNLOADED" in _actions(db, sent_lease.id)


def test_regenerate_document_is_idempotent(client, db, staff_headers, sent_lease):
    before = client.get(f"/api/leases/{sent_lease.id}", headers=staff_headers).json()["data"]
    resp = client.post(f"/api/leases/{sent_lease.id}/regenerate-document", headers=staff_headers)

    assert resp.status_code == 200
    assert resp.json()["data"]["document_hash"] == before["document_hash"]
    assert db.query(DocumentArtifact).filter(
        DocumentArtifact.entity_id == UUID(sent_lease.id)).count() == 1


def test_regenerate_repairs_an_altered_document(client, db, staff_headers, sent_lease):
    storage = get_blob_storage()
    lease = db.get(Lease, UUID(sent_lease.id))
    with open(storage.path_for(lease.document_url), "ab") as f:
        f.write(b"<!-- tampered -->")

    resp = client.post(f"/api/leases/{sent_lease.id}/regenerate-document", headers=staff_headers)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert compute_document_hash(storage.read(data["document_url"])) == data["document_hash"]
    db.expire_all()
    lease = db.get(Lease, UUID(sent_lease.id))
    assert compute_document_hash(storage.read(lease.document_url)) == lease.document_hash
