import logging
from typing import List
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from shared.core.schemas import UserToken
from shared.helpers.client_context import ClientContext
from ...core.exceptions import InvalidLifecycleState, LeaseValidationError, NotFound
from ...core.time_utils import ensure_utc, utcnow
from ...enum.leasing_enum import (
    ActorType, AddendumStatus, AuditAction, EntityType, LeaseStatus,
)
from ...models.leasing.lease_addendums import LeaseAddendum, LeaseAddendumSignature
from ...schemas.leasing.addendums_schemas import (
    AddendumCreate, AddendumOut, AddendumSignatureOut, AddendumUpdate, VoidRequest,
)
from ...schemas.leasing.leases_schemas import ResendResult, SendResult
from ...schemas.leasing.signing_schemas import CountersignSubmission
from ...services import audit_service
from ...services.signing import state_machine, verification
from ...services.signing.regeneration import regenerate_addendum_document
from ...services.signing.state_machine import ADDENDUM
from ...services.signing.token_issuer import issue_token
from . import signing_crud
from .leases_crud import get_org_lease, get_visible_lease

logger = logging.getLogger(__name__)

CLOSED_LEASE_STATUSES = (LeaseStatus.terminated.value, LeaseStatus.expired.value)


def addendum_out(addendum: LeaseAddendum) -> AddendumOut:
    return AddendumOut(
        id=addendum.id,
        lease_id=addendum.lease_id,
        status=addendum.status,
        title=addendum.title,
        content=addendum.content,
        effective_date=addendum.effective_date,
        document_url=addendum.document_url,
        document_hash=addendum.document_hash,
        landlord_signed_at=ensure_utc(addendum.landlord_signed_at),
        voided_at=ensure_utc(addendum.voided_at),
        created_at=ensure_utc(addendum.created_at),
        signatures=[
            AddendumSignatureOut(
                id=slot.id,
                tenant_id=slot.tenant_id,
                first_name=slot.tenant.first_name,
                last_name=slot.tenant.last_name,
                email=slot.tenant.email,
                is_primary=slot.is_primary,
                signed=slot.signed_at is not None,
                signed_at=ensure_utc(slot.signed_at),
                token_expires_at=ensure_utc(slot.token_expires_at),
            )
            for slot in addendum.signatures
        ],
    )


def get_org_addendum(db: Session, lease_id: UUID, addendum_id: UUID, org_id: UUID) -> LeaseAddendum:
    addendum = (
        db.query(LeaseAddendum)
        .filter(LeaseAddendum.id == addendum_id,
                LeaseAddendum.lease_id == lease_id,
                LeaseAddendum.org_id == org_id)
        .first()
    )
    if not addendum:
        raise NotFound("Addendum not found")
    return addendum


def get_list(db: Session, lease_id: UUID, current_user: UserToken) -> List[AddendumOut]:
    lease = get_visible_lease(db, lease_id, current_user)
    addendums = (
        db.query(LeaseAddendum)
        .filter(LeaseAddendum.lease_id == lease.id)
        .order_by(LeaseAddendum.created_at.asc())
        .all()
    )
    return [addendum_out(a) for a in addendums]


def get_addendum(db: Session, lease_id: UUID, addendum_id: UUID, current_user: UserToken) -> AddendumOut:
    lease = get_visible_lease(db, lease_id, current_user)
    return addendum_out(get_org_addendum(db, lease.id, addendum_id, lease.org_id))


def create(db: Session, lease_id: UUID, payload: AddendumCreate, current_user: UserToken) -> AddendumOut:
    lease = get_org_lease(db, lease_id, current_user.org_id)
    if lease.status in CLOSED_LEASE_STATUSES:
        raise InvalidLifecycleState(f"Cannot add an addendum to a {lease.status} lease")

    addendum = LeaseAddendum(
        lease_id=lease.id,
        org_id=lease.org_id,
        status=AddendumStatus.draft.value,
        title=payload.title,
        content=payload.content,
        effective_date=payload.effective_date,
        source_document_url=payload.source_document_url,
        source_document_hash=payload.source_document_hash,
        created_by=current_user.user_id,
    )
    try:
        db.add(addendum)
        db.commit()
        db.refresh(addendum)
    except Exception:
        db.rollback()
        raise

    audit_service.record(
        db, addendum.org_id, AuditAction.ADDENDUM_CREATED, EntityType.lease_addendum, addendum.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"lease_id": str(lease.id), "title": addendum.title},
    )
    return addendum_out(addendum)


def update(
    db: Session,
    lease_id: UUID,
    addendum_id: UUID,
    payload: AddendumUpdate,
    current_user: UserToken,
) -> AddendumOut:
    addendum = get_org_addendum(db, lease_id, addendum_id, current_user.org_id)
    if addendum.status != AddendumStatus.draft.value:
        raise InvalidLifecycleState("Only draft addendums can be edited")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(addendum, key, value)
    try:
        db.commit()
        db.refresh(addendum)
    except Exception:
        db.rollback()
        raise

    audit_service.record(
        db, addendum.org_id, AuditAction.ADDENDUM_UPDATED, EntityType.lease_addendum, addendum.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={k: str(v) for k, v in changes.items()},
    )
    return addendum_out(addendum)


def send_for_signature(
    db: Session,
    lease_id: UUID,
    addendum_id: UUID,
    current_user: UserToken,
    background_tasks: BackgroundTasks,
) -> SendResult:
    org_id = current_user.org_id
    now = utcnow()
    try:
        get_org_addendum(db, lease_id, addendum_id, org_id)
        addendum = state_machine.lock_parent(db, ADDENDUM, addendum_id)
        if addendum.status != AddendumStatus.draft.value:
            raise InvalidLifecycleState(
                f"Only draft addendums can be sent for signature (currently {addendum.status})")
        lease = addendum.lease
        if lease.status not in (LeaseStatus.pending_signature.value, LeaseStatus.active.value):
            raise InvalidLifecycleState(
                f"Addendums can only be sent on pending or active leases (currently {lease.status})")
        if not lease.tenants:
            raise LeaseValidationError("The lease has no tenants to sign this addendum")

        for lease_tenant in lease.tenants:
            slot = LeaseAddendumSignature(
                tenant=lease_tenant.tenant,
                is_primary=lease_tenant.is_primary,
                position=lease_tenant.position,
            )
            issue_token(slot, now)
            addendum.signatures.append(slot)
        addendum.status = AddendumStatus.pending_signature.value
        db.flush()
        pointer = regenerate_addendum_document(db, addendum.id, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    addendum = get_org_addendum(db, lease_id, addendum_id, org_id)
    sent_to = signing_crud.send_signing_links(background_tasks, ADDENDUM, addendum, addendum.signatures)
    audit_service.record(
        db, org_id, AuditAction.SENT_FOR_SIGNATURE, EntityType.lease_addendum, addendum.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"sent_to": sent_to, "document_hash": pointer.hash},
    )
    return SendResult(
        id=addendum.id,
        status=addendum.status,
        document_url=pointer.url,
        document_hash=pointer.hash,
        sent_to=sent_to,
    )


def resend(
    db: Session,
    lease_id: UUID,
    addendum_id: UUID,
    current_user: UserToken,
    background_tasks: BackgroundTasks,
) -> ResendResult:
    org_id = current_user.org_id
    now = utcnow()
    try:
        get_org_addendum(db, lease_id, addendum_id, org_id)
        addendum = state_machine.lock_parent(db, ADDENDUM, addendum_id)
        if addendum.status != AddendumStatus.pending_signature.value:
            raise InvalidLifecycleState("Signing links can only be resent for pending addendums")
        for slot in addendum.signatures:
            if slot.signed_at is None:
                issue_token(slot, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    addendum = get_org_addendum(db, lease_id, addendum_id, org_id)
    unsigned = [slot for slot in addendum.signatures if slot.signed_at is None]
    resent_to = signing_crud.send_signing_links(background_tasks, ADDENDUM, addendum, unsigned)
    audit_service.record(
        db, org_id, AuditAction.SIGNING_LINKS_RESENT, EntityType.lease_addendum, addendum.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"resent_to": resent_to},
    )
    return ResendResult(id=addendum.id, resent_to=resent_to)


def void(
    db: Session,
    lease_id: UUID,
    addendum_id: UUID,
    payload: VoidRequest,
    current_user: UserToken,
) -> AddendumOut:
    get_org_addendum(db, lease_id, addendum_id, current_user.org_id)
    state_machine.void_addendum(db, addendum_id, payload.reason)

    addendum = get_org_addendum(db, lease_id, addendum_id, current_user.org_id)
    audit_service.record(
        db, addendum.org_id, AuditAction.ADDENDUM_VOIDED, EntityType.lease_addendum, addendum.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"reason": payload.reason},
    )
    return addendum_out(addendum)


def countersign(
    db: Session,
    lease_id: UUID,
    addendum_id: UUID,
    payload: CountersignSubmission,
    current_user: UserToken,
    client: ClientContext,
    background_tasks: BackgroundTasks,
):
    get_org_addendum(db, lease_id, addendum_id, current_user.org_id)
    return signing_crud.complete_countersign(
        db, ADDENDUM, addendum_id, payload, client, current_user, background_tasks)


def verify(db: Session, lease_id: UUID, addendum_id: UUID, current_user: UserToken):
    lease = get_visible_lease(db, lease_id, current_user)
    return verification.verify_addendum(db, lease.id, addendum_id, lease.org_id)
