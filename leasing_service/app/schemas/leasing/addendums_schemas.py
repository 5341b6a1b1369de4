from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


class AddendumCreate(EmptyStringModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    effective_date: Optional[date] = None
    source_document_url: Optional[str] = None
    source_document_hash: Optional[str] = Field(None, min_length=64, max_length=64)


class AddendumUpdate(EmptyStringModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    effective_date: Optional[date] = None


class VoidRequest(EmptyStringModel):
    reason: Optional[str] = Field(None, max_length=1000)


class AddendumSignatureOut(BaseModel):
    id: UUID
    tenant_id: UUID
    first_name: str
    last_name: str
    email: str
    is_primary: bool
    signed: bool
    signed_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None


class AddendumOut(BaseModel):
    id: UUID
    lease_id: UUID
    status: str
    title: str
    content: str
    effective_date: Optional[date] = None
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
    landlord_signed_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    signatures: List[AddendumSignatureOut]
