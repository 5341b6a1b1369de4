import logging
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from shared.helpers.client_context import ClientContext
from ...core.exceptions import SigningError, TokenNotFound
from ...core.time_utils import ensure_utc
from ...enum.leasing_enum import ActorType, AuditAction
from ...schemas.leasing.signing_schemas import (
    CountersignResult, CountersignSubmission, SessionAddendum, SessionLease, SessionSigner,
    SessionTenant, SessionToken, SessionUnit, SignatureReceipt, SignResult, SignSubmission,
    SigningSessionOut,
)
from ...services import audit_service, notification_service
from ...services.signing import state_machine
from ...services.signing.regeneration import (
    regenerate_addendum_document, regenerate_lease_document,
)
from ...services.signing.state_machine import ADDENDUM, LEASE, AcceptanceResult, DocumentKind

logger = logging.getLogger(__name__)


# ----------------------------------------------------
# Helpers shared by lease and addendum flows
# ----------------------------------------------------
def lease_of(kind: DocumentKind, parent):
    return parent.lease if kind is ADDENDUM else parent


def slots_of(kind: DocumentKind, parent):
    return parent.signatures if kind is ADDENDUM else parent.tenants


def document_label(kind: DocumentKind) -> str:
    return "lease addendum" if kind is ADDENDUM else "lease agreement"


def property_address(lease) -> str:
    return lease.unit.display_address or lease.unit.property_name


def regenerate(db: Session, kind: DocumentKind, parent_id, commit: bool = True):
    if kind is ADDENDUM:
        return regenerate_addendum_document(db, parent_id, commit=commit)
    return regenerate_lease_document(db, parent_id, commit=commit)


def regenerate_after_signing(db: Session, kind: DocumentKind, parent_id) -> Optional[str]:
    """Regeneration after a durable signature. Failure keeps the previous document."""
    try:
        return regenerate(db, kind, parent_id).url
    except Exception:
        logger.exception("Document regeneration failed for %s %s; previous version kept",
                         kind.label, parent_id)
        parent = db.query(kind.parent_model).filter(kind.parent_model.id == parent_id).first()
        return parent.document_url if parent else None


def notify_signers(background_tasks: BackgroundTasks, kind: DocumentKind, parent, all_signed: bool) -> None:
    lease = lease_of(kind, parent)
    for slot in slots_of(kind, parent):
        subject, html = notification_service.build_signed_confirmation_email(
            recipient_name=slot.tenant.full_name,
            property_address=property_address(lease),
            unit_number=lease.unit.unit_number,
            all_signed=all_signed,
            document_label=document_label(kind),
        )
        notification_service.queue_email(background_tasks, [slot.tenant.email], subject, html)


def send_signing_links(background_tasks: BackgroundTasks, kind: DocumentKind, parent, slots) -> list:
    lease = lease_of(kind, parent)
    sent_to = []
    for slot in slots:
        url = notification_service.signing_url(slot.signing_token, addendum=kind is ADDENDUM)
        subject, html = notification_service.build_signature_request_email(
            tenant_name=slot.tenant.full_name,
            property_address=property_address(lease),
            unit_number=lease.unit.unit_number,
            url=url,
            document_label=document_label(kind),
        )
        notification_service.queue_email(background_tasks, [slot.tenant.email], subject, html)
        sent_to.append(slot.tenant.email)
    return sent_to


def complete_signature(
    db: Session,
    kind: DocumentKind,
    result: AcceptanceResult,
    client: ClientContext,
    background_tasks: BackgroundTasks,
) -> SignResult:
    """Everything that follows a committed signature: audit, notify, regenerate."""
    signature = result.signature
    parent = db.query(kind.parent_model).filter(kind.parent_model.id == result.parent_id).first()

    audit_service.record(
        db, parent.org_id, AuditAction.SIGNATURE_SUBMITTED, kind.entity_type, parent.id,
        actor_id=result.tenant_id, actor_type=ActorType.tenant,
        changes={
            "full_name": signature.full_name,
            "email": signature.email,
            "user_agent": signature.user_agent,
            "ip_country": signature.ip_country,
            "signature_id": signature.signature_id,
            "view_time_seconds": signature.total_view_time_seconds,
        },
        ip_address=client.ip_address,
    )
    if result.completed:
        audit_service.record(
            db, parent.org_id, AuditAction.ALL_PARTIES_SIGNED, kind.entity_type, parent.id,
            actor_id=result.tenant_id, actor_type=ActorType.tenant,
            changes={"note": "All tenant signatures collected"},
            ip_address=client.ip_address,
        )

    notify_signers(background_tasks, kind, parent, result.completed)
    document_url = regenerate_after_signing(db, kind, parent.id)

    if result.completed:
        message = ("Lease fully signed and activated" if kind is LEASE
                   else "Addendum fully signed")
    else:
        message = "Signature recorded successfully"

    return SignResult(
        message=message,
        status=result.status,
        signed_at=signature.signed_at,
        all_signed=result.completed,
        remaining_signatures=result.remaining,
        document_url=document_url,
        receipt=SignatureReceipt(
            document_id=result.parent_id,
            signed_by=signature.full_name,
            email=signature.email,
            signed_at=signature.signed_at,
            ip_address=signature.ip_address,
            location=signature.ip_country,
            signature_id=signature.signature_id,
        ),
    )


def complete_countersign(
    db: Session,
    kind: DocumentKind,
    parent_id,
    payload: CountersignSubmission,
    client: ClientContext,
    current_user,
    background_tasks: BackgroundTasks,
) -> CountersignResult:
    signature = state_machine.countersign(
        db, kind, parent_id, payload, client,
        signer_id=current_user.user_id,
        fallback_email=current_user.email,
    )
    parent = db.query(kind.parent_model).filter(kind.parent_model.id == parent_id).first()

    audit_service.record(
        db, parent.org_id, AuditAction.LANDLORD_COUNTERSIGNED, kind.entity_type, parent.id,
        actor_id=current_user.user_id, actor_type=ActorType.user,
        changes={
            "full_name": signature.full_name,
            "email": signature.email,
            "signature_id": signature.signature_id,
        },
        ip_address=client.ip_address,
    )

    regenerate_after_signing(db, kind, parent.id)
    parent = db.query(kind.parent_model).filter(kind.parent_model.id == parent_id).first()

    lease = lease_of(kind, parent)
    for slot in slots_of(kind, parent):
        subject, html = notification_service.build_fully_executed_email(
            slot.tenant.full_name, property_address(lease), document_label(kind))
        notification_service.queue_email(background_tasks, [slot.tenant.email], subject, html)

    return CountersignResult(
        message=f"{kind.label.capitalize()} countersigned",
        status=parent.status,
        landlord_signed_at=signature.signed_at,
        document_url=parent.document_url,
        document_hash=parent.document_hash,
        receipt=SignatureReceipt(
            document_id=parent.id,
            signed_by=signature.full_name,
            email=signature.email,
            signed_at=signature.signed_at,
            ip_address=signature.ip_address,
            location=signature.ip_country,
            signature_id=signature.signature_id,
        ),
    )


# ----------------------------------------------------
# Public token flows
# ----------------------------------------------------
def _session(kind: DocumentKind, slot, parent, token: str) -> SigningSessionOut:
    lease = lease_of(kind, parent)
    unit = lease.unit
    tenant = slot.tenant
    addendum = None
    if kind is ADDENDUM:
        addendum = SessionAddendum(
            id=parent.id,
            status=parent.status,
            title=parent.title,
            content=parent.content,
            effective_date=parent.effective_date.isoformat() if parent.effective_date else None,
            document_url=parent.document_url,
            document_hash=parent.document_hash,
        )

    return SigningSessionOut(
        tenant=SessionTenant(
            id=tenant.id, first_name=tenant.first_name, last_name=tenant.last_name, email=tenant.email),
        organization_name=lease.org.name,
        unit=SessionUnit(
            id=unit.id,
            property_name=unit.property_name,
            unit_number=unit.unit_number,
            address=unit.display_address,
            bedrooms=unit.bedrooms,
            bathrooms=float(unit.bathrooms) if unit.bathrooms is not None else None,
            sq_ft=unit.sq_ft,
        ),
        lease=SessionLease(
            id=lease.id,
            status=lease.status,
            start_date=lease.start_date.isoformat(),
            end_date=lease.end_date.isoformat(),
            monthly_rent=float(lease.monthly_rent),
            security_deposit=float(lease.security_deposit) if lease.security_deposit is not None else None,
            rent_due_day=lease.rent_due_day,
            late_fee_amount=float(lease.late_fee_amount) if lease.late_fee_amount is not None else None,
            late_fee_grace_days=lease.late_fee_grace_days,
            terms=lease.terms,
            document_url=lease.document_url,
            document_hash=lease.document_hash,
        ),
        addendum=addendum,
        signers=[
            SessionSigner(
                first_name=s.tenant.first_name,
                last_name=s.tenant.last_name,
                is_primary=s.is_primary,
                signed=s.signed_at is not None,
            )
            for s in slots_of(kind, parent)
        ],
        signing_token=SessionToken(
            token=token,
            created_at=ensure_utc(slot.token_issued_at),
            expires_at=ensure_utc(slot.token_expires_at),
        ),
    )


def open_signing_session(db: Session, kind: DocumentKind, token: str, client: ClientContext) -> SigningSessionOut:
    slot, parent = state_machine.resolve_token(db, kind, token)
    session = _session(kind, slot, parent, token)

    audit_service.record(
        db, parent.org_id, AuditAction.SIGNING_LINK_OPENED, kind.entity_type, parent.id,
        actor_id=slot.tenant_id, actor_type=ActorType.tenant,
        changes={
            "tenant_name": slot.tenant.full_name,
            "email": slot.tenant.email,
            "user_agent": client.user_agent,
        },
        ip_address=client.ip_address,
    )
    return session


def submit_with_token(
    db: Session,
    kind: DocumentKind,
    token: str,
    payload: SignSubmission,
    client: ClientContext,
    background_tasks: BackgroundTasks,
) -> SignResult:
    slot, _ = state_machine.find_slot_by_token(db, kind, token)
    slot_id, tenant_id = slot.id, slot.tenant_id
    parent = db.query(kind.parent_model).filter(
        kind.parent_model.id == kind.slot_parent_id(slot)).first()
    org_id, parent_id = parent.org_id, parent.id

    try:
        result = state_machine.accept_signature(db, kind, slot_id, payload, client, token=token)
    except SigningError as exc:
        if not isinstance(exc, TokenNotFound):
            audit_service.record(
                db, org_id, AuditAction.SIGNATURE_REJECTED, kind.entity_type, parent_id,
                actor_id=tenant_id, actor_type=ActorType.tenant,
                changes={
                    "full_name": payload.full_name,
                    "email": str(payload.email),
                    "reason": exc.message,
                },
                ip_address=client.ip_address,
            )
        raise

    return complete_signature(db, kind, result, client, background_tasks)


def get_lease_signing_session(db: Session, token: str, client: ClientContext):
    return open_signing_session(db, LEASE, token, client)


def submit_lease_signature(db: Session, token: str, payload: SignSubmission,
                           client: ClientContext, background_tasks: BackgroundTasks):
    return submit_with_token(db, LEASE, token, payload, client, background_tasks)


def get_addendum_signing_session(db: Session, token: str, client: ClientContext):
    return open_signing_session(db, ADDENDUM, token, client)


def submit_addendum_signature(db: Session, token: str, payload: SignSubmission,
                              client: ClientContext, background_tasks: BackgroundTasks):
    return submit_with_token(db, ADDENDUM, token, payload, client, background_tasks)
