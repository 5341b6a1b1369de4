from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from shared.wrappers.empty_string_model_wrapper import EmptyStringModel


class SigningMetadata(BaseModel):
    """Client-reported session evidence.

    Every field here is asserted by the signer's browser and is stored verbatim
    as evidence only. None of it takes part in authorizing the signature; that
    rests on token validity and the document's lifecycle state.
    """

    model_config = ConfigDict(extra="ignore")

    screen_resolution: Optional[str] = Field(None, max_length=32)
    timezone: Optional[str] = Field(None, max_length=64)
    browser_language: Optional[str] = Field(None, max_length=32)
    platform: Optional[str] = Field(None, max_length=64)
    page_opened_at: Optional[datetime] = None
    document_viewed_at: Optional[datetime] = None
    scrolled_to_bottom_at: Optional[datetime] = None
    consent1_checked_at: Optional[datetime] = None
    consent2_checked_at: Optional[datetime] = None
    consent3_checked_at: Optional[datetime] = None
    name_typed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    total_view_time_seconds: Optional[int] = Field(None, ge=0)


class SignSubmission(EmptyStringModel):
    full_name: str = Field(..., min_length=2, max_length=200)
    email: EmailStr
    agreed_to_terms: bool
    agreed_to_esign: bool
    agreed_to_identity: bool
    signature_image: Optional[str] = Field(None, max_length=500_000)
    signing_metadata: Optional[SigningMetadata] = None

    @field_validator("agreed_to_terms", "agreed_to_esign", "agreed_to_identity")
    @classmethod
    def must_agree(cls, v: bool):
        if v is not True:
            raise ValueError("All agreements must be accepted to sign")
        return v

    @field_validator("signature_image")
    @classmethod
    def image_must_be_data_url(cls, v: Optional[str]):
        if v is not None and not v.startswith("data:image/"):
            raise ValueError("signature_image must be an image data URL")
        return v


class CountersignSubmission(EmptyStringModel):
    full_name: str = Field(..., min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    signature_image: Optional[str] = Field(None, max_length=500_000)
    signing_metadata: Optional[SigningMetadata] = None


class SignatureData(BaseModel):
    """Write-once evidence record stored with a signed slot."""

    model_config = ConfigDict(frozen=True)

    full_name: str
    email: str
    ip_address: Optional[str] = None
    ip_country: Optional[str] = None
    user_agent: Optional[str] = None
    screen_resolution: Optional[str] = None
    timezone: Optional[str] = None
    browser_language: Optional[str] = None
    platform: Optional[str] = None
    page_opened_at: Optional[datetime] = None
    document_viewed_at: Optional[datetime] = None
    scrolled_to_bottom_at: Optional[datetime] = None
    consent1_checked_at: Optional[datetime] = None
    consent2_checked_at: Optional[datetime] = None
    consent3_checked_at: Optional[datetime] = None
    name_typed_at: Optional[datetime] = None
    client_signed_at: Optional[datetime] = None
    total_view_time_seconds: Optional[int] = None
    signed_at: datetime
    document_hash: str = ""
    fingerprint: str
    signature_image: Optional[str] = None
    signing_token: Optional[str] = None
    token_issued_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None

    @property
    def signature_id(self) -> str:
        return self.fingerprint[:16]

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class SignatureReceipt(BaseModel):
    document_id: UUID
    signed_by: str
    email: str
    signed_at: datetime
    ip_address: Optional[str] = None
    location: Optional[str] = None
    signature_id: str


class SignResult(BaseModel):
    message: str
    status: str
    signed_at: datetime
    all_signed: bool
    remaining_signatures: int
    document_url: Optional[str] = None
    receipt: SignatureReceipt


class CountersignResult(BaseModel):
    message: str
    status: str
    landlord_signed_at: datetime
    document_url: Optional[str] = None
    document_hash: Optional[str] = None
    receipt: SignatureReceipt


class SessionSigner(BaseModel):
    first_name: str
    last_name: str
    is_primary: bool
    signed: bool


class SessionTenant(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str


class SessionUnit(BaseModel):
    id: UUID
    property_name: str
    unit_number: str
    address: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    sq_ft: Optional[int] = None


class SessionToken(BaseModel):
    token: str
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class SessionLease(BaseModel):
    id: UUID
    status: str
    start_date: str
    end_date: str
    monthly_rent: float
    security_deposit: Optional[float] = None
    rent_due_day: Optional[int] = None
    late_fee_amount: Optional[float] = None
    late_fee_grace_days: Optional[int] = None
    terms: Optional[list] = None
    document_url: Optional[str] = None
    document_hash: Optional[str] = None


class SessionAddendum(BaseModel):
    id: UUID
    status: str
    title: str
    content: str
    effective_date: Optional[str] = None
    document_url: Optional[str] = None
    document_hash: Optional[str] = None


class SigningSessionOut(BaseModel):
    tenant: SessionTenant
    organization_name: str
    unit: SessionUnit
    lease: SessionLease
    addendum: Optional[SessionAddendum] = None
    signers: List[SessionSigner]
    signing_token: SessionToken
