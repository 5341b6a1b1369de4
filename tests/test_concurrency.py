from uuid import UUID

import pytest
from fastapi import BackgroundTasks

from conftest import sign_payload
from shared.core.database import LeasingSessionLocal
from shared.helpers.client_context import ClientContext
from shared.utils.app_status_code import AppStatusCode
from leasing_service.app.core.exceptions import AlreadySigned
from leasing_service.app.crud.leasing import signing_crud
from leasing_service.app.models.leasing.audit_logs import AuditLog
from leasing_service.app.models.leasing.leases import Lease, LeaseTenant
from leasing_service.app.models.leasing.units import Unit
from leasing_service.app.schemas.leasing.signing_schemas import SignSubmission
from leasing_service.app.services.signing import state_machine
from leasing_service.app.services.signing.state_machine import LEASE


def _submission(name, email):
    return SignSubmission(**sign_payload(name, email))


def test_racing_submissions_have_one_winner(client, db, seed, sent_lease, monkeypatch):
    client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                json=sign_payload("Alice Nguyen", "alice@example.com"))

    first, second = LeasingSessionLocal(), LeasingSessionLocal()
    accept = state_machine.accept_signature
    winners = []
    raced = []

    def interleaved(*args, **kwargs):
        # the first request has resolved the token; let the second one run to completion
        if not raced:
            raced.append(True)
            winners.append(signing_crud.submit_with_token(
                second, LEASE, sent_lease.bob_token, _submission("Bob Okafor", "bob@example.com"),
                ClientContext(ip_address="198.51.100.2"), BackgroundTasks()))
        return accept(*args, **kwargs)

    monkeypatch.setattr(state_machine, "accept_signature", interleaved)
    try:
        with pytest.raises(AlreadySigned) as lost:
            signing_crud.submit_with_token(
                first, LEASE, sent_lease.bob_token, _submission("Bob Okafor", "bob@example.com"),
                ClientContext(ip_address="198.51.100.1"), BackgroundTasks())
    finally:
        first.close()
        second.close()

    assert winners[0].all_signed is True
    assert lost.value.status_code == 409
    assert lost.value.app_status_code == AppStatusCode.SIGNING_ALREADY_SIGNED

    db.expire_all()
    lease = db.get(Lease, UUID(sent_lease.id))
    assert lease.status == "active"
    assert db.get(Unit, seed.unit_id).status == "occupied"
    bob_slot = db.query(LeaseTenant).filter(LeaseTenant.tenant_id == seed.bob_id).one()
    assert bob_slot.signature_data["ip_address"] == "198.51.100.2"

    actions = [e.action for e in db.query(AuditLog).filter(AuditLog.entity_id == lease.id).all()]
    assert actions.count("ALL_PARTIES_SIGNED") == 1
    assert actions.count("SIGNATURE_SUBMITTED") == 2
    assert actions.count("SIGNATURE_REJECTED") == 1


def test_cascade_failure_rolls_back_the_signature(client, db, seed, sent_lease, monkeypatch):
    client.post(f"/api/leases/sign/{sent_lease.alice_token}",
                json=sign_payload("Alice Nguyen", "alice@example.com"))

    def broken_cascade(*args, **kwargs):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(state_machine, "complete_lease", broken_cascade)
    session = LeasingSessionLocal()
    try:
        slot, _ = state_machine.find_slot_by_token(session, LEASE, sent_lease.bob_token)
        with pytest.raises(RuntimeError):
            state_machine.accept_signature(
                session, LEASE, slot.id, _submission("Bob Okafor", "bob@example.com"),
                ClientContext(), token=sent_lease.bob_token)
    finally:
        session.close()

    db.expire_all()
    bob_slot = db.query(LeaseTenant).filter(LeaseTenant.tenant_id == seed.bob_id).one()
    assert bob_slot.signed_at is None
    assert bob_slot.signing_token == sent_lease.bob_token
    assert db.get(Lease, UUID(sent_lease.id)).status == "pending_signature"
