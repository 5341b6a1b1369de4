from enum import Enum


class LeaseStatus(str, Enum):
    draft = "draft"
    pending_signature = "pending_signature"
    active = "active"
    terminated = "terminated"
    expired = "expired"


class AddendumStatus(str, Enum):
    draft = "draft"
    pending_signature = "pending_signature"
    signed = "signed"
    void = "void"


class UnitStatus(str, Enum):
    vacant = "vacant"
    occupied = "occupied"


class TenantStatus(str, Enum):
    pending = "pending"
    active = "active"
    former = "former"


class VerificationStatus(str, Enum):
    complete = "complete"
    expired = "expired"
    pending = "pending"


class EntityType(str, Enum):
    lease = "lease"
    lease_addendum = "lease_addendum"


class ActorType(str, Enum):
    tenant = "tenant"
    user = "user"
    system = "system"


class AuditAction(str, Enum):
    LEASE_CREATED = "LEASE_CREATED"
    LEASE_UPDATED = "LEASE_UPDATED"
    LEASE_DELETED = "LEASE_DELETED"
    SENT_FOR_SIGNATURE = "SENT_FOR_SIGNATURE"
    SIGNING_LINKS_RESENT = "SIGNING_LINKS_RESENT"
    SIGNING_LINK_OPENED = "SIGNING_LINK_OPENED"
    SIGNATURE_SUBMITTED = "SIGNATURE_SUBMITTED"
    SIGNATURE_REJECTED = "SIGNATURE_REJECTED"
    SIGN = "SIGN"
    ALL_PARTIES_SIGNED = "ALL_PARTIES_SIGNED"
    LANDLORD_COUNTERSIGNED = "LANDLORD_COUNTERSIGNED"
    LEASE_TERMINATED = "LEASE_TERMINATED"
    ADDENDUM_CREATED = "ADDENDUM_CREATED"
    ADDENDUM_UPDATED = "ADDENDUM_UPDATED"
    ADDENDUM_VOIDED = "ADDENDUM_VOIDED"
    DOCUMENT_REGENERATED = "DOCUMENT_REGENERATED"
    SIGNED_DOCUMENT_DOWNLOADED = "SIGNED_DOCUMENT_DOWNLOADED"


# Entries that count as a signing attempt for the repeated-attempt check
SIGNING_ATTEMPT_ACTIONS = (
    AuditAction.SIGNATURE_SUBMITTED.value,
    AuditAction.SIGNATURE_REJECTED.value,
    AuditAction.SIGN.value,
)
