from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


class LeaseClause(BaseModel):
    title: str = Field(..., max_length=200)
    body: str


class LeaseCreate(EmptyStringModel):
    unit_id: UUID
    tenant_ids: List[UUID] = Field(..., min_length=1)
    primary_tenant_id: Optional[UUID] = None
    start_date: date
    end_date: date
    monthly_rent: Decimal = Field(..., gt=0)
    security_deposit: Optional[Decimal] = Field(None, ge=0)
    rent_due_day: int = Field(1, ge=1, le=28)
    late_fee_amount: Optional[Decimal] = Field(None, ge=0)
    late_fee_grace_days: Optional[int] = Field(None, ge=0)
    terms: Optional[List[LeaseClause]] = None
    source_document_url: Optional[str] = None
    source_document_hash: Optional[str] = Field(None, min_length=64, max_length=64)
    notes: Optional[str] = None

    @field_validator("tenant_ids")
    @classmethod
    def unique_tenants(cls, v: List[UUID]):
        if len(set(v)) != len(v):
            raise ValueError("tenant_ids must not repeat")
        return v

    @model_validator(mode="after")
    def check_dates_and_primary(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.primary_tenant_id and self.primary_tenant_id not in self.tenant_ids:
            raise ValueError("primary_tenant_id must be one of tenant_ids")
        return self


class LeaseUpdate(EmptyStringModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    monthly_rent: Optional[Decimal] = Field(None, gt=0)
    security_deposit: Optional[Decimal] = Field(None, ge=0)
    rent_due_day: Optional[int] = Field(None, ge=1, le=28)
    late_fee_amount: Optional[Decimal] = Field(None, ge=0)
    late_fee_grace_days: Optional[int] = Field(None, ge=0)
    terms: Optional[List[LeaseClause]] = None
    notes: Optional[str] = None


class TerminateRequest(EmptyStringModel):
    reason: Optional[str] = Field(None, max_length=1000)
    move_out_date: Optional[date] = None


class LeaseTenantOut(BaseModel):
    id: UUID
    tenant_id: UUID
    first_name: str
    last_name: str
    email: str
    is_primary: bool
    signed: bool
    signed_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None


class LeaseOut(BaseModel):
    id: UUID
    org_id: UUID
    unit_id: UUID
    status: str
    start_date: date
    end_date: date
    monthly_rent: float
    security_deposit: Optional[float] = None
    rent_due_day: Optional[int] = None
    late_fee_amount: Optional[float] = None
    late_fee_grace_days: Optional[int] = None
    terms: Optional[list] = None
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
    landlord_signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    tenants: List[LeaseTenantOut]


class SendResult(BaseModel):
    id: UUID
    status: str
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
    sent_to: List[str]


class ResendResult(BaseModel):
    id: UUID
    resent_to: List[str]


class DocumentPointerOut(BaseModel):
    id: UUID
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
