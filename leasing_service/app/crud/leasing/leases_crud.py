import logging
from typing import List, Tuple
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from shared.core.auth import STAFF_ACCOUNT_TYPES
from shared.core.schemas import UserToken
from shared.helpers.client_context import ClientContext
from shared.utils.blob_storage import BlobNotFound, get_blob_storage
from ...core.exceptions import (
    InvalidLifecycleState, LeaseValidationError, NotAuthorized, NotFound,
)
from ...core.time_utils import ensure_utc, utcnow
from ...enum.leasing_enum import ActorType, AuditAction, EntityType, LeaseStatus
from ...models.leasing.leases import Lease, LeaseTenant
from ...models.leasing.tenants import Tenant
from ...models.leasing.units import Unit
from ...schemas.leasing.leases_schemas import (
    DocumentPointerOut, LeaseClause, LeaseCreate, LeaseOut, LeaseTenantOut, LeaseUpdate,
    ResendResult, SendResult, TerminateRequest,
)
from ...schemas.leasing.signing_schemas import CountersignSubmission, SignSubmission
from ...services import audit_service
from ...services.signing import state_machine, verification
from ...services.signing.document_renderer import DEFAULT_LEASE_CLAUSES
from ...services.signing.regeneration import regenerate_lease_document
from ...services.signing.state_machine import LEASE
from ...services.signing.token_issuer import issue_token
from . import signing_crud

logger = logging.getLogger(__name__)

OPEN_LEASE_STATUSES = (LeaseStatus.pending_signature.value, LeaseStatus.active.value)


# ----------------------------------------------------
# Lookups
# ----------------------------------------------------
def is_staff(current_user: UserToken) -> bool:
    return current_user.account_type.lower() in STAFF_ACCOUNT_TYPES


def get_org_lease(db: Session, lease_id: UUID, org_id: UUID) -> Lease:
    lease = db.query(Lease).filter(Lease.id == lease_id, Lease.org_id == org_id).first()
    if not lease:
        raise NotFound("Lease not found")
    return lease


def get_visible_lease(db: Session, lease_id: UUID, current_user: UserToken) -> Lease:
    """Staff see their organization's leases; tenants see only leases they are on."""
    if is_staff(current_user):
        return get_org_lease(db, lease_id, current_user.org_id)

    lease = (
        db.query(Lease)
        .join(LeaseTenant, LeaseTenant.lease_id == Lease.id)
        .join(Tenant, Tenant.id == LeaseTenant.tenant_id)
        .filter(Lease.id == lease_id, Tenant.user_id == current_user.user_id)
        .first()
    )
    if not lease:
        raise NotFound("Lease not found")
    return lease


def lease_out(lease: Lease) -> LeaseOut:
    return LeaseOut(
        id=lease.id,
        org_id=lease.org_id,
        unit_id=lease.unit_id,
        status=lease.status,
        start_date=lease.start_date,
        end_date=lease.end_date,
        monthly_rent=float(lease.monthly_rent),
        security_deposit=float(lease.security_deposit) if lease.security_deposit is not None else None,
        rent_due_day=lease.rent_due_day,
        late_fee_amount=float(lease.late_fee_amount) if lease.late_fee_amount is not None else None,
        late_fee_grace_days=lease.late_fee_grace_days,
        terms=lease.terms,
        document_url=lease.document_url,
        document_hash=lease.document_hash,
        landlord_signed_at=ensure_utc(lease.landlord_signed_at),
        created_at=ensure_utc(lease.created_at),
        tenants=[
            LeaseTenantOut(
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
            for slot in lease.tenants
        ],
    )


# ----------------------------------------------------
# Create / read / delete
# ----------------------------------------------------
def create(db: Session, payload: LeaseCreate, current_user: UserToken) -> LeaseOut:
    org_id = current_user.org_id
    unit = db.query(Unit).filter(Unit.id == payload.unit_id, Unit.org_id == org_id).first()
    if not unit:
        raise LeaseValidationError("Unit not found in this organization")

    tenants = db.query(Tenant).filter(Tenant.id.in_(payload.tenant_ids), Tenant.org_id == org_id).all()
    by_id = {t.id: t for t in tenants}
    missing = [str(tid) for tid in payload.tenant_ids if tid not in by_id]
    if missing:
        raise LeaseValidationError(f"Tenant(s) not found in this organization: {', '.join(missing)}")

    primary_id = payload.primary_tenant_id or payload.tenant_ids[0]
    lease = Lease(
        org_id=org_id,
        unit_id=unit.id,
        status=LeaseStatus.draft.value,
        start_date=payload.start_date,
        end_date=payload.end_date,
        monthly_rent=payload.monthly_rent,
        security_deposit=payload.security_deposit,
        rent_due_day=payload.rent_due_day,
        late_fee_amount=payload.late_fee_amount,
        late_fee_grace_days=payload.late_fee_grace_days,
        terms=[c.model_dump() for c in payload.terms] if payload.terms else None,
        source_document_url=payload.source_document_url,
        source_document_hash=payload.source_document_hash,
        notes=payload.notes,
        created_by=current_user.user_id,
    )
    for position, tenant_id in enumerate(payload.tenant_ids):
        lease.tenants.append(LeaseTenant(
            tenant=by_id[tenant_id],
            is_primary=tenant_id == primary_id,
            position=position,
        ))

    try:
        db.add(lease)
        db.commit()
        db.refresh(lease)
    except Exception:
        db.rollback()
        raise

    audit_service.record(
        db, org_id, AuditAction.LEASE_CREATED, EntityType.lease, lease.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"unit_id": str(unit.id), "tenant_ids": [str(t) for t in payload.tenant_ids]},
    )
    return lease_out(lease)


def get_lease(db: Session, lease_id: UUID, current_user: UserToken) -> LeaseOut:
    return lease_out(get_visible_lease(db, lease_id, current_user))


def get_default_clauses() -> List[LeaseClause]:
    return [LeaseClause(**clause) for clause in DEFAULT_LEASE_CLAUSES]


def update(db: Session, lease_id: UUID, payload: LeaseUpdate, current_user: UserToken) -> LeaseOut:
    lease = get_org_lease(db, lease_id, current_user.org_id)
    if lease.status != LeaseStatus.draft.value:
        raise InvalidLifecycleState("Only draft leases can be edited")

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    start_date = changes.get("start_date", lease.start_date)
    end_date = changes.get("end_date", lease.end_date)
    if end_date <= start_date:
        raise LeaseValidationError("end_date must be after start_date")

    for key, value in changes.items():
        setattr(lease, key, value)
    try:
        db.commit()
        db.refresh(lease)
    except Exception:
        db.rollback()
        raise

    audit_service.record(
        db, lease.org_id, AuditAction.LEASE_UPDATED, EntityType.lease, lease.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={k: v if k == "terms" else str(v) for k, v in changes.items()},
    )
    return lease_out(lease)


def delete(db: Session, lease_id: UUID, current_user: UserToken) -> dict:
    lease = get_org_lease(db, lease_id, current_user.org_id)
    if lease.status != LeaseStatus.draft.value:
        raise InvalidLifecycleState("Only draft leases can be deleted")

    org_id = lease.org_id
    try:
        db.delete(lease)
        db.commit()
    except Exception:
        db.rollback()
        raise

    audit_service.record(
        db, org_id, AuditAction.LEASE_DELETED, EntityType.lease, lease_id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
    )
    return {"id": str(lease_id), "message": "Lease deleted successfully"}


# ----------------------------------------------------
# Signing lifecycle
# ----------------------------------------------------
def send_for_signature(
    db: Session,
    lease_id: UUID,
    current_user: UserToken,
    background_tasks: BackgroundTasks,
) -> SendResult:
    org_id = current_user.org_id
    now = utcnow()
    try:
        get_org_lease(db, lease_id, org_id)
        lease = state_machine.lock_parent(db, LEASE, lease_id)
        if lease.status != LeaseStatus.draft.value:
            raise InvalidLifecycleState(
                f"Only draft leases can be sent for signature (currently {lease.status})")
        if not lease.tenants:
            raise LeaseValidationError("Add at least one tenant before sending for signature")
        if lease.unit.org_id != org_id or any(s.tenant.org_id != org_id for s in lease.tenants):
            raise LeaseValidationError("Unit and tenants must belong to the lease's organization")

        conflicting = (
            db.query(Lease)
            .filter(Lease.unit_id == lease.unit_id,
                    Lease.id != lease.id,
                    Lease.status.in_(OPEN_LEASE_STATUSES))
            .first()
        )
        if conflicting:
            raise LeaseValidationError("This unit already has an active or pending lease")

        for slot in lease.tenants:
            issue_token(slot, now)
        lease.status = LeaseStatus.pending_signature.value
        pointer = regenerate_lease_document(db, lease.id, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    lease = get_org_lease(db, lease_id, org_id)
    sent_to = signing_crud.send_signing_links(background_tasks, LEASE, lease, lease.tenants)
    audit_service.record(
        db, org_id, AuditAction.SENT_FOR_SIGNATURE, EntityType.lease, lease.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"sent_to": sent_to, "document_hash": pointer.hash},
    )
    return SendResult(
        id=lease.id,
        status=lease.status,
        document_url=pointer.url,
        document_hash=pointer.hash,
        sent_to=sent_to,
    )


def resend(
    db: Session,
    lease_id: UUID,
    current_user: UserToken,
    background_tasks: BackgroundTasks,
) -> ResendResult:
    org_id = current_user.org_id
    now = utcnow()
    try:
        get_org_lease(db, lease_id, org_id)
        lease = state_machine.lock_parent(db, LEASE, lease_id)
        if lease.status != LeaseStatus.pending_signature.value:
            raise InvalidLifecycleState("Signing links can only be resent for pending leases")
        unsigned = [slot for slot in lease.tenants if slot.signed_at is None]
        for slot in unsigned:
            issue_token(slot, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    lease = get_org_lease(db, lease_id, org_id)
    unsigned = [slot for slot in lease.tenants if slot.signed_at is None]
    resent_to = signing_crud.send_signing_links(background_tasks, LEASE, lease, unsigned)
    audit_service.record(
        db, org_id, AuditAction.SIGNING_LINKS_RESENT, EntityType.lease, lease.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"resent_to": resent_to},
    )
    return ResendResult(id=lease.id, resent_to=resent_to)


def sign_as_tenant(
    db: Session,
    lease_id: UUID,
    payload: SignSubmission,
    current_user: UserToken,
    client: ClientContext,
    background_tasks: BackgroundTasks,
):
    """In-portal signing by a logged-in tenant. Same checks as the link, no link expiry."""
    slot = (
        db.query(LeaseTenant)
        .join(Tenant, Tenant.id == LeaseTenant.tenant_id)
        .filter(LeaseTenant.lease_id == lease_id, Tenant.user_id == current_user.user_id)
        .first()
    )
    if not slot:
        raise NotAuthorized("You are not a tenant on this lease")

    result = state_machine.accept_signature(db, LEASE, slot.id, payload, client)
    return signing_crud.complete_signature(db, LEASE, result, client, background_tasks)


def countersign(
    db: Session,
    lease_id: UUID,
    payload: CountersignSubmission,
    current_user: UserToken,
    client: ClientContext,
    background_tasks: BackgroundTasks,
):
    get_org_lease(db, lease_id, current_user.org_id)
    return signing_crud.complete_countersign(
        db, LEASE, lease_id, payload, client, current_user, background_tasks)


def terminate(
    db: Session,
    lease_id: UUID,
    payload: TerminateRequest,
    current_user: UserToken,
) -> LeaseOut:
    get_org_lease(db, lease_id, current_user.org_id)
    previous_status = db.query(Lease.status).filter(Lease.id == lease_id).scalar()
    state_machine.terminate_lease(db, lease_id, payload.reason, payload.move_out_date)

    lease = get_org_lease(db, lease_id, current_user.org_id)
    audit_service.record(
        db, lease.org_id, AuditAction.LEASE_TERMINATED, EntityType.lease, lease.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"previous_status": previous_status, "reason": payload.reason},
    )
    return lease_out(lease)


# ----------------------------------------------------
# Documents
# ----------------------------------------------------
def regenerate_document(db: Session, lease_id: UUID, current_user: UserToken) -> DocumentPointerOut:
    lease = get_org_lease(db, lease_id, current_user.org_id)
    if lease.status == LeaseStatus.draft.value:
        raise InvalidLifecycleState("Draft leases have no document yet")
    org_id = lease.org_id

    pointer = regenerate_lease_document(db, lease_id)
    audit_service.record(
        db, org_id, AuditAction.DOCUMENT_REGENERATED, EntityType.lease, lease_id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={"document_hash": pointer.hash},
    )
    return DocumentPointerOut(id=lease_id, document_url=pointer.url, document_hash=pointer.hash)


def get_document(
    db: Session,
    lease_id: UUID,
    current_user: UserToken,
    client: ClientContext,
) -> Tuple[bytes, str]:
    lease = get_visible_lease(db, lease_id, current_user)
    if not lease.document_url:
        raise NotFound("No document has been generated for this lease")
    try:
        content = get_blob_storage().read(lease.document_url)
    except BlobNotFound:
        raise NotFound("Lease document file not found")

    audit_service.record(
        db, lease.org_id, AuditAction.SIGNED_DOCUMENT_DOWNLOADED, EntityType.lease, lease.id,
        actor_id=current_user.user_id,
        actor_type=ActorType.user if is_staff(current_user) else ActorType.tenant,
        changes={"document_hash": lease.document_hash, "user_agent": client.user_agent},
        ip_address=client.ip_address,
    )
    return content, f"lease-{lease_id}.html"


def verify(db: Session, lease_id: UUID, current_user: UserToken):
    lease = get_visible_lease(db, lease_id, current_user)
    return verification.verify_lease(db, lease.id, lease.org_id)
