"""Transactional core of the signing workflow.

Every function that writes takes the parent row lock first and re-validates
the slot inside the same transaction, so two racing requests resolve to one
winner and a clean error for the other.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.helpers.client_context import ClientContext
from ...core.exceptions import (
    AlreadyCountersigned, AlreadySigned, DocumentNotSignable, InvalidLifecycleState,
    NotFound, TokenExpired, TokenNotFound,
)
from ...core.time_utils import ensure_utc, utcnow
from ...enum.leasing_enum import (
    AddendumStatus, EntityType, LeaseStatus, TenantStatus, UnitStatus,
)
from ...models.leasing.lease_addendums import LeaseAddendum, LeaseAddendumSignature
from ...models.leasing.leases import Lease, LeaseTenant
from ...models.leasing.tenants import Tenant
from ...models.leasing.units import Unit
from ...schemas.leasing.signing_schemas import (
    CountersignSubmission, SignatureData, SignSubmission,
)
from .document_hasher import signature_fingerprint
from .token_issuer import consumed_token_values, retire_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentKind:
    entity_type: EntityType
    parent_model: type
    slot_model: type
    parent_fk: str
    signable_status: str
    completed_status: str
    label: str

    def slot_parent_id(self, slot):
        return getattr(slot, self.parent_fk)

    def slot_filter(self, parent_id):
        return getattr(self.slot_model, self.parent_fk) == parent_id


LEASE = DocumentKind(
    entity_type=EntityType.lease,
    parent_model=Lease,
    slot_model=LeaseTenant,
    parent_fk="lease_id",
    signable_status=LeaseStatus.pending_signature.value,
    completed_status=LeaseStatus.active.value,
    label="lease",
)

ADDENDUM = DocumentKind(
    entity_type=EntityType.lease_addendum,
    parent_model=LeaseAddendum,
    slot_model=LeaseAddendumSignature,
    parent_fk="addendum_id",
    signable_status=AddendumStatus.pending_signature.value,
    completed_status=AddendumStatus.signed.value,
    label="addendum",
)


@dataclass
class AcceptanceResult:
    parent_id: object
    slot_id: object
    tenant_id: object
    signature: SignatureData
    status: str
    completed: bool
    remaining: int


def lock_parent(db: Session, kind: DocumentKind, parent_id):
    """SELECT ... FOR UPDATE on the lease or addendum row."""
    parent = (
        db.query(kind.parent_model)
        .filter(kind.parent_model.id == parent_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not parent:
        raise NotFound(f"{kind.label.capitalize()} not found")
    return parent


def find_slot_by_token(db: Session, kind: DocumentKind, token: str):
    """Return ``(slot, is_live)``; a retired match is only used to explain a failure."""
    if not token:
        raise TokenNotFound()
    model = kind.slot_model
    slot = db.query(model).filter(model.signing_token == token).first()
    if slot:
        return slot, True
    slot = db.query(model).filter(model.retired_signing_token == token).first()
    if slot:
        return slot, False
    raise TokenNotFound()


def validate_slot(
    kind: DocumentKind,
    slot,
    parent,
    now: datetime,
    is_live: bool = True,
    check_expiry: bool = True,
) -> None:
    """Raise the first failing check, in order: not found, expired, signed, not signable."""
    if check_expiry and is_live:
        expires_at = ensure_utc(slot.token_expires_at)
        if expires_at is not None and expires_at < now:
            raise TokenExpired()
    if slot.signed_at is not None:
        raise AlreadySigned(f"You have already signed this {kind.label}")
    if parent.status != kind.signable_status:
        raise DocumentNotSignable(f"This {kind.label} is no longer available for signing")
    if not is_live:
        # retired without being signed and the document is still open
        raise TokenNotFound()


def resolve_token(db: Session, kind: DocumentKind, token: str, now: Optional[datetime] = None):
    """Read-only token resolution used to open a signing session."""
    now = now or utcnow()
    slot, is_live = find_slot_by_token(db, kind, token)
    parent = db.query(kind.parent_model).filter(
        kind.parent_model.id == kind.slot_parent_id(slot)).first()
    validate_slot(kind, slot, parent, now, is_live=is_live)
    return slot, parent


def build_signature_data(
    kind: DocumentKind,
    parent,
    slot,
    full_name: str,
    email: str,
    client: ClientContext,
    now: datetime,
    metadata=None,
    signature_image: Optional[str] = None,
    signer_id=None,
) -> SignatureData:
    fingerprint = signature_fingerprint(
        document_id=parent.id,
        signer_id=signer_id if signer_id is not None else slot.tenant_id,
        full_name=full_name,
        email=email,
        document_hash=parent.document_hash,
        timestamp=now,
    )
    evidence = metadata.model_dump(exclude_none=True) if metadata else {}
    client_signed_at = evidence.pop("signed_at", None)
    return SignatureData(
        full_name=full_name,
        email=email,
        ip_address=client.ip_address,
        ip_country=client.ip_country,
        user_agent=client.user_agent,
        client_signed_at=client_signed_at,
        signed_at=now,
        document_hash=parent.document_hash or "",
        fingerprint=fingerprint,
        signature_image=signature_image,
        signing_token=slot.signing_token if slot is not None else None,
        token_issued_at=ensure_utc(slot.token_issued_at) if slot is not None else None,
        token_expires_at=ensure_utc(slot.token_expires_at) if slot is not None else None,
        **evidence,
    )


def complete_lease(db: Session, lease: Lease, now: datetime) -> None:
    """Activate the lease, occupy the unit and move every tenant in."""
    rows = (
        db.query(Lease)
        .filter(Lease.id == lease.id, Lease.status == LeaseStatus.pending_signature.value)
        .update({"status": LeaseStatus.active.value, "updated_at": now},
                synchronize_session=False)
    )
    if rows != 1:
        raise DocumentNotSignable("This lease is no longer available for signing")

    db.query(Unit).filter(Unit.id == lease.unit_id).update(
        {"status": UnitStatus.occupied.value, "updated_at": now}, synchronize_session=False)

    tenant_ids = [
        row.tenant_id for row in
        db.query(LeaseTenant.tenant_id).filter(LeaseTenant.lease_id == lease.id).all()
    ]
    db.query(Tenant).filter(Tenant.id.in_(tenant_ids)).update(
        {
            "status": TenantStatus.active.value,
            "current_unit_id": lease.unit_id,
            "move_in_date": lease.start_date,
            "move_out_date": None,
            "updated_at": now,
        },
        synchronize_session=False,
    )


def complete_addendum(db: Session, addendum: LeaseAddendum, now: datetime) -> None:
    rows = (
        db.query(LeaseAddendum)
        .filter(LeaseAddendum.id == addendum.id,
                LeaseAddendum.status == AddendumStatus.pending_signature.value)
        .update({"status": AddendumStatus.signed.value, "updated_at": now},
                synchronize_session=False)
    )
    if rows != 1:
        raise DocumentNotSignable("This addendum is no longer available for signing")


def accept_signature(
    db: Session,
    kind: DocumentKind,
    slot_id,
    submission: SignSubmission,
    client: ClientContext,
    token: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AcceptanceResult:
    """Record one signer's signature and run the completion cascade when it is the last.

    ``token`` is given on the public link path; the authenticated tenant path
    passes None and skips the expiry check. Everything happens in one
    transaction which is rolled back on any failure.
    """
    now = now or utcnow()
    model = kind.slot_model
    try:
        slot = db.query(model).filter(model.id == slot_id).first()
        if not slot:
            raise TokenNotFound() if token else NotFound("Signing slot not found")
        parent = lock_parent(db, kind, kind.slot_parent_id(slot))
        db.refresh(slot)

        if token is not None and slot.signing_token != token:
            validate_slot(kind, slot, parent, now, is_live=False)
        validate_slot(kind, slot, parent, now, check_expiry=token is not None)

        signature = build_signature_data(
            kind, parent, slot,
            full_name=submission.full_name,
            email=str(submission.email),
            client=client,
            now=now,
            metadata=submission.signing_metadata,
            signature_image=submission.signature_image,
        )

        conditions = [model.id == slot.id, model.signed_at.is_(None)]
        if token is not None:
            conditions.append(model.signing_token == token)
        rows = (
            db.query(model)
            .filter(*conditions)
            .update(
                {"signed_at": now, "signature_data": signature.to_json(), **consumed_token_values(slot)},
                synchronize_session=False,
            )
        )
        if rows != 1:
            raise AlreadySigned(f"You have already signed this {kind.label}")

        remaining = (
            db.query(func.count(model.id))
            .filter(kind.slot_filter(parent.id), model.signed_at.is_(None))
            .scalar()
        )
        completed = remaining == 0
        if completed:
            if kind is LEASE:
                complete_lease(db, parent, now)
            else:
                complete_addendum(db, parent, now)

        result = AcceptanceResult(
            parent_id=parent.id,
            slot_id=slot.id,
            tenant_id=slot.tenant_id,
            signature=signature,
            status=kind.completed_status if completed else kind.signable_status,
            completed=completed,
            remaining=remaining,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Signature accepted on %s %s (remaining=%s)", kind.label, result.parent_id, remaining)
    return result


def countersign(
    db: Session,
    kind: DocumentKind,
    parent_id,
    submission: CountersignSubmission,
    client: ClientContext,
    signer_id: str,
    fallback_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SignatureData:
    """Write the landlord's signature once the tenants have finished."""
    now = now or utcnow()
    try:
        parent = lock_parent(db, kind, parent_id)
        if parent.status != kind.completed_status:
            raise InvalidLifecycleState(
                f"The {kind.label} can only be countersigned once every tenant has signed")
        if parent.landlord_signed_at is not None:
            raise AlreadyCountersigned()

        signature = build_signature_data(
            kind, parent, None,
            full_name=submission.full_name,
            email=str(submission.email or fallback_email or ""),
            client=client,
            now=now,
            metadata=submission.signing_metadata,
            signature_image=submission.signature_image,
            signer_id=signer_id,
        )
        rows = (
            db.query(kind.parent_model)
            .filter(kind.parent_model.id == parent.id,
                    kind.parent_model.landlord_signed_at.is_(None))
            .update({"landlord_signed_at": now, "landlord_signature_data": signature.to_json()},
                    synchronize_session=False)
        )
        if rows != 1:
            raise AlreadyCountersigned()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return signature


def retire_outstanding_tokens(db: Session, kind: DocumentKind, parent_id) -> int:
    slots = (
        db.query(kind.slot_model)
        .filter(kind.slot_filter(parent_id), kind.slot_model.signing_token.isnot(None))
        .all()
    )
    for slot in slots:
        retire_token(slot)
    return len(slots)


def terminate_lease(
    db: Session,
    lease_id,
    reason: Optional[str] = None,
    move_out_date=None,
    now: Optional[datetime] = None,
) -> Lease:
    """Forward-only move to terminated; vacates the unit when the lease was live."""
    now = now or utcnow()
    try:
        lease = lock_parent(db, LEASE, lease_id)
        if lease.status not in (LeaseStatus.pending_signature.value, LeaseStatus.active.value):
            raise InvalidLifecycleState(
                f"Only pending or active leases can be terminated (currently {lease.status})")

        was_active = lease.status == LeaseStatus.active.value
        lease.status = LeaseStatus.terminated.value
        lease.terminated_at = now
        lease.termination_reason = reason
        retire_outstanding_tokens(db, LEASE, lease.id)

        for addendum in lease.addendums:
            if addendum.status == AddendumStatus.pending_signature.value:
                addendum.status = AddendumStatus.void.value
                addendum.voided_at = now
                addendum.void_reason = "Lease terminated"
                retire_outstanding_tokens(db, ADDENDUM, addendum.id)

        if was_active:
            db.query(Unit).filter(Unit.id == lease.unit_id).update(
                {"status": UnitStatus.vacant.value, "updated_at": now}, synchronize_session=False)
            tenant_ids = [slot.tenant_id for slot in lease.tenants]
            db.query(Tenant).filter(
                Tenant.id.in_(tenant_ids),
                or_(Tenant.current_unit_id == lease.unit_id, Tenant.current_unit_id.is_(None)),
            ).update(
                {
                    "status": TenantStatus.former.value,
                    "current_unit_id": None,
                    "move_out_date": move_out_date or now.date(),
                    "updated_at": now,
                },
                synchronize_session=False,
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return lease


def void_addendum(
    db: Session,
    addendum_id,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> LeaseAddendum:
    """Void a pending addendum and retire every outstanding token in the same transaction."""
    now = now or utcnow()
    try:
        addendum = lock_parent(db, ADDENDUM, addendum_id)
        if addendum.status != AddendumStatus.pending_signature.value:
            raise InvalidLifecycleState(
                f"Only pending addendums can be voided (currently {addendum.status})")
        addendum.status = AddendumStatus.void.value
        addendum.voided_at = now
        addendum.void_reason = reason
        retired = retire_outstanding_tokens(db, ADDENDUM, addendum.id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Voided addendum %s, retired %s token(s)", addendum_id, retired)
    return addendum
