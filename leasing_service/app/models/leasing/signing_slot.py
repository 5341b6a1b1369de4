# app/models/leasing/signing_slot.py
from sqlalchemy import Column, String, DateTime

from shared.core.database import JSONVariant


class SigningSlotMixin:
    """One signer's place on a signable document.

    ``signing_token`` is live only while the slot is unsigned. When a token is
    consumed, or its document is voided or terminated, it moves to
    ``retired_signing_token`` so a reused link can still be answered precisely.
    """

    signed_at = Column(DateTime(timezone=True))
    signature_data = Column(JSONVariant)
    signing_token = Column(String(128), unique=True, index=True)
    token_issued_at = Column(DateTime(timezone=True))
    token_expires_at = Column(DateTime(timezone=True))
    retired_signing_token = Column(String(128), index=True)


class LandlordSignatureMixin:
    document_url = Column(String(500))
    document_hash = Column(String(64))
    source_document_url = Column(String(500))
    source_document_hash = Column(String(64))
    landlord_signed_at = Column(DateTime(timezone=True))
    landlord_signature_data = Column(JSONVariant)
