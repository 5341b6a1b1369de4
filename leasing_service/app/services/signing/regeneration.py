import logging
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from shared.utils.blob_storage import LocalBlobStorage, get_blob_storage
from ...core.exceptions import NotFound
from ...core.time_utils import ensure_utc, utcnow
from ...enum.leasing_enum import EntityType
from ...models.leasing.document_artifacts import DocumentArtifact
from ...models.leasing.lease_addendums import LeaseAddendum
from ...models.leasing.leases import Lease
from .document_hasher import compute_document_hash
from .document_renderer import (
    AddendumDocumentData, CertificateData, CertificateSigner, Clause, LeaseDocumentData,
    SignatureBlock, attach_certificate, render_addendum_html, render_certificate_html,
    render_lease_html,
)

logger = logging.getLogger(__name__)


class DocumentPointer(BaseModel):
    url: str
    hash: str


def tenant_label(slot) -> str:
    return f"Tenant{' (Primary)' if slot.is_primary else ''}: {slot.tenant.full_name}"


def landlord_label(organization_name: str) -> str:
    return f"Landlord: {organization_name}"


def signature_block(label: str, signed_at, data: Optional[dict]) -> SignatureBlock:
    if not signed_at or not data:
        return SignatureBlock(label=label)
    return SignatureBlock(
        label=label,
        signed=True,
        full_name=data.get("full_name"),
        signed_at=ensure_utc(signed_at),
        ip_address=data.get("ip_address"),
        signature_id=(data.get("fingerprint") or "")[:16] or None,
        signature_image=data.get("signature_image"),
    )


def certificate_signers(slots, landlord_signed_at, landlord_data: dict) -> List[CertificateSigner]:
    signers = []
    for slot in slots:
        data = slot.signature_data or {}
        signers.append(CertificateSigner(
            role="Tenant (Primary)" if slot.is_primary else "Tenant",
            name=data.get("full_name") or slot.tenant.full_name,
            email=data.get("email") or slot.tenant.email,
            signed_at=ensure_utc(slot.signed_at),
            ip_address=data.get("ip_address"),
            location=data.get("ip_country"),
            view_time_seconds=data.get("total_view_time_seconds"),
        ))
    signers.append(CertificateSigner(
        role="Landlord",
        name=landlord_data.get("full_name") or "",
        email=landlord_data.get("email") or "",
        signed_at=ensure_utc(landlord_signed_at),
        ip_address=landlord_data.get("ip_address"),
        location=landlord_data.get("ip_country"),
        view_time_seconds=landlord_data.get("total_view_time_seconds"),
    ))
    return signers


def fully_executed(slots, landlord_signed_at) -> bool:
    return bool(slots) and all(s.signed_at for s in slots) and landlord_signed_at is not None


def _completed_at(slots, landlord_signed_at):
    times = [ensure_utc(s.signed_at) for s in slots] + [ensure_utc(landlord_signed_at)]
    return max(t for t in times if t is not None)


def _store(
    db: Session,
    storage: LocalBlobStorage,
    entity_type: EntityType,
    parent,
    folder: str,
    html: str,
    has_certificate: bool,
) -> DocumentPointer:
    content = html.encode("utf-8")
    content_hash = compute_document_hash(content)
    url = storage.save(content, f"{folder}/{parent.id}/{content_hash}.html")

    latest = (
        db.query(DocumentArtifact)
        .filter(DocumentArtifact.entity_type == entity_type.value,
                DocumentArtifact.entity_id == parent.id)
        .order_by(DocumentArtifact.id.desc())
        .first()
    )
    if not latest or latest.content_hash != content_hash:
        db.add(DocumentArtifact(
            entity_type=entity_type.value,
            entity_id=parent.id,
            url=url,
            content_hash=content_hash,
            has_certificate=has_certificate,
        ))

    parent.document_url = url
    parent.document_hash = content_hash
    return DocumentPointer(url=url, hash=content_hash)


def build_lease_document_data(lease: Lease) -> LeaseDocumentData:
    unit = lease.unit
    org_name = lease.org.name
    return LeaseDocumentData(
        lease_id=str(lease.id),
        organization_name=org_name,
        tenant_names=[slot.tenant.full_name for slot in lease.tenants],
        property_name=unit.property_name,
        property_address=unit.display_address,
        unit_number=unit.unit_number,
        bedrooms=unit.bedrooms,
        bathrooms=unit.bathrooms,
        sq_ft=unit.sq_ft,
        start_date=lease.start_date,
        end_date=lease.end_date,
        monthly_rent=lease.monthly_rent,
        security_deposit=lease.security_deposit,
        rent_due_day=lease.rent_due_day or 1,
        late_fee_amount=lease.late_fee_amount,
        late_fee_grace_days=lease.late_fee_grace_days,
        clauses=[Clause(**c) for c in (lease.terms or [])],
        source_document_url=lease.source_document_url,
        source_document_hash=lease.source_document_hash,
        tenant_blocks=[
            signature_block(tenant_label(slot), slot.signed_at, slot.signature_data)
            for slot in lease.tenants
        ],
        landlord_block=signature_block(
            landlord_label(org_name), lease.landlord_signed_at, lease.landlord_signature_data),
    )


def regenerate_lease_document(
    db: Session,
    lease_id: UUID,
    storage: LocalBlobStorage = None,
    commit: bool = True,
) -> DocumentPointer:
    """Re-render the lease from its current signature state and publish a new artifact.

    With ``commit=False`` the pointer change joins the caller's transaction.
    """
    storage = storage or get_blob_storage()
    lease = db.query(Lease).filter(Lease.id == lease_id).first()
    if not lease:
        raise NotFound("Lease not found")

    html = render_lease_html(build_lease_document_data(lease))
    has_certificate = fully_executed(lease.tenants, lease.landlord_signed_at)
    if has_certificate:
        certificate = render_certificate_html(CertificateData(
            document_title="Residential Lease Agreement",
            document_id=str(lease.id),
            property_address=f"{lease.unit.display_address}, Unit {lease.unit.unit_number}",
            created_at=ensure_utc(lease.created_at),
            completed_at=_completed_at(lease.tenants, lease.landlord_signed_at),
            document_hash=compute_document_hash(html),
            signers=certificate_signers(
                lease.tenants, lease.landlord_signed_at, lease.landlord_signature_data or {}),
            generated_at=utcnow(),
        ))
        html = attach_certificate(html, certificate)

    try:
        pointer = _store(db, storage, EntityType.lease, lease, "leases", html, has_certificate)
        if commit:
            db.commit()
    except Exception:
        if commit:
            db.rollback()
        raise

    logger.info("Regenerated lease %s document %s", lease.id, pointer.hash)
    return pointer


def build_addendum_document_data(addendum: LeaseAddendum) -> AddendumDocumentData:
    lease = addendum.lease
    org_name = lease.org.name
    slots = addendum.signatures
    return AddendumDocumentData(
        addendum_id=str(addendum.id),
        lease_id=str(lease.id),
        organization_name=org_name,
        title=addendum.title,
        content=addendum.content,
        effective_date=addendum.effective_date,
        property_address=lease.unit.display_address,
        unit_number=lease.unit.unit_number,
        lease_start_date=lease.start_date,
        tenant_names=[slot.tenant.full_name for slot in (slots or lease.tenants)],
        source_document_url=addendum.source_document_url,
        source_document_hash=addendum.source_document_hash,
        tenant_blocks=[
            signature_block(tenant_label(slot), slot.signed_at, slot.signature_data)
            for slot in slots
        ],
        landlord_block=signature_block(
            landlord_label(org_name), addendum.landlord_signed_at, addendum.landlord_signature_data),
    )


def regenerate_addendum_document(
    db: Session,
    addendum_id: UUID,
    storage: LocalBlobStorage = None,
    commit: bool = True,
) -> DocumentPointer:
    storage = storage or get_blob_storage()
    addendum = (
        db.query(LeaseAddendum)
        .filter(LeaseAddendum.id == addendum_id)
        .first()
    )
    if not addendum:
        raise NotFound("Addendum not found")

    html = render_addendum_html(build_addendum_document_data(addendum))
    has_certificate = fully_executed(addendum.signatures, addendum.landlord_signed_at)
    if has_certificate:
        unit = addendum.lease.unit
        certificate = render_certificate_html(CertificateData(
            document_title=f"Lease Addendum: {addendum.title}",
            document_id=str(addendum.id),
            property_address=f"{unit.display_address}, Unit {unit.unit_number}",
            created_at=ensure_utc(addendum.created_at),
            completed_at=_completed_at(addendum.signatures, addendum.landlord_signed_at),
            document_hash=compute_document_hash(html),
            signers=certificate_signers(
                addendum.signatures, addendum.landlord_signed_at,
                addendum.landlord_signature_data or {}),
            generated_at=utcnow(),
        ))
        html = attach_certificate(html, certificate)

    try:
        pointer = _store(db, storage, EntityType.lease_addendum, addendum,
                         "addendums", html, has_certificate)
        if commit:
            db.commit()
    except Exception:
        if commit:
            db.rollback()
        raise

    logger.info("Regenerated addendum %s document %s", addendum.id, pointer.hash)
    return pointer
