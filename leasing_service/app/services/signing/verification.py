"""Integrity and anomaly report for a signed lease or addendum. Read-only."""
from collections import OrderedDict
from typing import List, Optional

from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.utils.blob_storage import LocalBlobStorage, get_blob_storage
from ...core.exceptions import NotFound
from ...core.time_utils import ensure_utc, utcnow
from ...enum.leasing_enum import (
    AddendumStatus, EntityType, LeaseStatus, SIGNING_ATTEMPT_ACTIONS, VerificationStatus,
)
from ...models.leasing.audit_logs import AuditLog
from ...models.leasing.lease_addendums import LeaseAddendum
from ...models.leasing.leases import Lease
from ...schemas.leasing.verification_schemas import (
    AuditTrailEntry, SignerVerification, VerificationReport,
)
from .. import audit_service
from .document_hasher import verify_document_hash


def signer_rows(slots, landlord_signed_at, landlord_data: Optional[dict], landlord_name: str) -> List[SignerVerification]:
    rows = []
    for slot in slots:
        data = slot.signature_data or {}
        rows.append(SignerVerification(
            role="Tenant (Primary)" if slot.is_primary else "Tenant",
            name=data.get("full_name") or slot.tenant.full_name,
            email=data.get("email") or slot.tenant.email,
            signed=slot.signed_at is not None,
            signed_at=ensure_utc(slot.signed_at),
            ip_address=data.get("ip_address"),
            location=data.get("ip_country"),
            user_agent=data.get("user_agent"),
            view_time_seconds=data.get("total_view_time_seconds"),
            signature_id=(data.get("fingerprint") or "")[:16],
        ))

    data = landlord_data or {}
    rows.append(SignerVerification(
        role="Landlord",
        name=data.get("full_name") or landlord_name,
        email=data.get("email") or "",
        signed=landlord_signed_at is not None,
        signed_at=ensure_utc(landlord_signed_at),
        ip_address=data.get("ip_address"),
        location=data.get("ip_country"),
        user_agent=data.get("user_agent"),
        view_time_seconds=data.get("total_view_time_seconds"),
        signature_id=(data.get("fingerprint") or "")[:16],
    ))
    return rows


def short_view_anomalies(signers: List[SignerVerification], threshold: int = None) -> List[str]:
    threshold = settings.SHORT_VIEW_THRESHOLD_SECONDS if threshold is None else threshold
    return [
        f"{s.name} viewed the document for less than {threshold} seconds ({s.view_time_seconds}s)"
        for s in signers
        if s.signed and s.view_time_seconds is not None and s.view_time_seconds < threshold
    ]


def repeated_attempt_anomalies(entries: List[AuditLog]) -> List[str]:
    attempts = OrderedDict()
    for entry in entries:
        if entry.action not in SIGNING_ATTEMPT_ACTIONS:
            continue
        email = (entry.changes or {}).get("email") or "unknown"
        attempts[email] = attempts.get(email, 0) + 1
    return [
        f"Multiple signing attempts detected for {email} ({count} attempts)"
        for email, count in attempts.items()
        if count > 1
    ]


def report_status(all_signed: bool, closed: bool) -> str:
    if all_signed:
        return VerificationStatus.complete.value
    if closed:
        return VerificationStatus.expired.value
    return VerificationStatus.pending.value


def _build_report(
    db: Session,
    entity_type: EntityType,
    parent,
    slots,
    landlord_name: str,
    closed: bool,
    storage: LocalBlobStorage,
) -> VerificationReport:
    signers = signer_rows(slots, parent.landlord_signed_at, parent.landlord_signature_data, landlord_name)
    entries = audit_service.trail(db, entity_type, parent.id, parent.org_id)
    all_signed = bool(slots) and all(s.signed for s in signers)

    return VerificationReport(
        document_id=parent.id,
        document_type=entity_type.value,
        document_url=parent.document_url,
        document_hash=parent.document_hash,
        hash_verified=verify_document_hash(storage, parent.document_url, parent.document_hash),
        status=report_status(all_signed, closed),
        signers=signers,
        audit_trail=[
            AuditTrailEntry(
                action=e.action,
                actor_id=e.actor_id,
                actor_type=e.actor_type,
                ip_address=e.ip_address,
                changes=e.changes,
                created_at=ensure_utc(e.created_at),
            )
            for e in entries
        ],
        anomalies=short_view_anomalies(signers) + repeated_attempt_anomalies(entries),
        verified_at=utcnow(),
    )


def verify_lease(db: Session, lease_id, org_id, storage: LocalBlobStorage = None) -> VerificationReport:
    lease = db.query(Lease).filter(Lease.id == lease_id, Lease.org_id == org_id).first()
    if not lease:
        raise NotFound("Lease not found")
    closed = lease.status in (LeaseStatus.terminated.value, LeaseStatus.expired.value)
    return _build_report(db, EntityType.lease, lease, lease.tenants, lease.org.name, closed,
                         storage or get_blob_storage())


def verify_addendum(db: Session, lease_id, addendum_id, org_id, storage: LocalBlobStorage = None) -> VerificationReport:
    addendum = (
        db.query(LeaseAddendum)
        .filter(LeaseAddendum.id == addendum_id,
                LeaseAddendum.lease_id == lease_id,
                LeaseAddendum.org_id == org_id)
        .first()
    )
    if not addendum:
        raise NotFound("Addendum not found")
    lease = addendum.lease
    closed = (
        addendum.status == AddendumStatus.void.value
        or lease.status in (LeaseStatus.terminated.value, LeaseStatus.expired.value)
    )
    return _build_report(db, EntityType.lease_addendum, addendum, addendum.signatures,
                         lease.org.name, closed, storage or get_blob_storage())
