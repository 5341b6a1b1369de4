from uuid import UUID

from conftest import create_lease, sign_payload, tokens_by_tenant
from shared.utils.app_status_code import AppStatusCode
from shared.utils.blob_storage import get_blob_storage
from leasing_service.app.models.leasing.lease_addendums import LeaseAddendumSignature


def _activate(client, lease):
    client.post(f"/api/leases/sign/{lease.alice_token}", json=sign_payload("Alice Nguyen", "alice@example.com"))
    client.post(f"/api/leases/sign/{lease.bob_token}", json=sign_payload("Bob Okafor", "bob@example.com"))


def _create_addendum(client, headers, lease_id) -> str:
    resp = client.post(f"/api/leases/{lease_id}/addendums", headers=headers, json={
        "title": "Pet Addendum",
        "content": "Tenants may keep one cat. A pet deposit of $300 applies.",
        "effective_date": "2027-01-01",
    })
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["id"]


def _send(client, db, headers, lease_id, addendum_id):
    resp = client.post(f"/api/leases/{lease_id}/addendums/{addendum_id}/send", headers=headers)
    assert resp.status_code == 200, resp.text
    return tokens_by_tenant(db, LeaseAddendumSignature,
                            LeaseAddendumSignature.addendum_id == UUID(addendum_id))


def test_draft_addendum_can_be_edited_until_sent(client, db, seed, staff_headers, sent_lease):
    addendum_id = _create_addendum(client, staff_headers, sent_lease.id)
    base = f"/api/leases/{sent_lease.id}/addendums/{addendum_id}"

    resp = client.patch(base, headers=staff_headers, json={"title": "Pet Policy Addendum"})
    assert resp.status_code == 200
    assert resp.json()["data"]["title"] == "Pet Policy Addendum"
    assert resp.json()["data"]["signatures"] == []

    _send(client, db, staff_headers, sent_lease.id, addendum_id)
    locked = client.patch(base, headers=staff_headers, json={"title": "Too late"})
    assert locked.status_code == 400


def test_addendum_signing_and_countersign(client, db, seed, staff_headers, sent_lease):
    _activate(client, sent_lease)
    addendum_id = _create_addendum(client, staff_headers, sent_lease.id)
    tokens = _send(client, db, staff_headers, sent_lease.id, addendum_id)
    base = f"/api/leases/{sent_lease.id}/addendums/{addendum_id}"

    session = client.get(f"/api/leases/addendum/sign/{tokens[seed.alice_id]}")
    assert session.status_code == 200
    assert session.json()["data"]["addendum"]["title"] == "Pet Addendum"

    # a lease token does not open an addendum and vice versa
    assert client.get(f"/api/leases/sign/{tokens[seed.alice_id]}").status_code == 404

    first = client.post(f"/api/leases/addendum/sign/{tokens[seed.alice_id]}",
                        json=sign_payload("Alice Nguyen", "alice@example.com"))
    assert first.json()["data"]["status"] == "pending_signature"
    last = client.post(f"/api/leases/addendum/sign/{tokens[seed.bob_id]}",
                       json=sign_payload("Bob Okafor", "bob@example.com"))
    assert last.status_code == 200
    assert last.json()["data"]["status"] == "signed"
    assert last.json()["data"]["message"] == "Addendum fully signed"

    resp = client.post(f"{base}/countersign", headers=staff_headers, json={"full_name": "Morgan Lee"})
    assert resp.status_code == 200, resp.text
    content = get_blob_storage().read(resp.json()["data"]["document_url"])
    assert b"Certificate of Completion" in content
    assert b"Pet Addendum" in content

    report = client.get(f"{base}/verify-signatures", headers=staff_headers).json()["data"]
    assert report["document_type"] == "lease_addendum"
    assert report["status"] == "complete"
    assert report["hash_verified"] is True
    assert len(report["signers"]) == 3


def test_void_invalidates_outstanding_tokens(client, db, seed, staff_headers, sent_lease):
    addendum_id = _create_addendum(client, staff_headers, sent_lease.id)
    tokens = _send(client, db, staff_headers, sent_lease.id, addendum_id)
    base = f"/api/leases/{sent_lease.id}/addendums/{addendum_id}"

    resp = client.post(f"{base}/void", headers=staff_headers, json={"reason": "Issued in error"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "void"

    for token in tokens.values():
        attempt = client.post(f"/api/leases/addendum/sign/{token}",
                              json=sign_payload("Alice Nguyen", "alice@example.com"))
        assert attempt.status_code == 400
        assert attempt.json()["status_code"] == AppStatusCode.SIGNING_DOCUMENT_NOT_SIGNABLE

    db.expire_all()
    slots = db.query(LeaseAddendumSignature).filter(
        LeaseAddendumSignature.addendum_id == UUID(addendum_id)).all()
    assert all(s.signing_token is None and s.signed_at is None for s in slots)

    report = client.get(f"{base}/verify-signatures", headers=staff_headers).json()["data"]
    assert report["status"] == "expired"

    again = client.post(f"{base}/void", headers=staff_headers, json={})
    assert again.status_code == 400


def test_addendum_cannot_be_sent_on_a_draft_lease(client, seed, staff_headers):
    lease_id = create_lease(client, staff_headers, seed)
    addendum_id = _create_addendum(client, staff_headers, lease_id)

    resp = client.post(f"/api/leases/{lease_id}/addendums/{addendum_id}/send", headers=staff_headers)
    assert resp.status_code == 400


def test_tenant_can_list_addendums_on_own_lease(client, staff_headers, alice_headers, sent_lease):
    _create_addendum(client, staff_headers, sent_lease.id)

    resp = client.get(f"/api/leases/{sent_lease.id}/addendums", headers=alice_headers)
    assert resp.status_code == 200
    assert [a["title"] for a in resp.json()["data"]] == ["Pet Addendum"]

    forbidden = client.post(f"/api/leases/{sent_lease.id}/addendums", headers=alice_headers,
                            json={"title": "x", "content": "y"})
    assert forbidden.status_code == 403
