from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel


class SignerVerification(BaseModel):
    role: str
    name: str
    email: str
    signed: bool
    signed_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    user_agent: Optional[str] = None
    view_time_seconds: Optional[int] = None
    signature_id: str = ""


class AuditTrailEntry(BaseModel):
    action: str
    actor_id: Optional[str] = None
    actor_type: str
    ip_address: Optional[str] = None
    changes: Optional[Any] = None
    created_at: datetime


class VerificationReport(BaseModel):
    document_id: UUID
    document_type: str
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
    hash_verified: bool
    status: str  # complete | expired | pending
    signers: List[SignerVerification]
    audit_trail: List[AuditTrailEntry]
    anomalies: List[str]
    verified_at: datetime
