# app/models/leasing/lease_addendums.py
import uuid
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.core.database import Base

from .signing_slot import LandlordSignatureMixin, SigningSlotMixin


class LeaseAddendum(LandlordSignatureMixin, Base):
    __tablename__ = "lease_addendums"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lease_id = Column(Uuid, ForeignKey("leases.id"), nullable=False, index=True)
    org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=False, index=True)
    status = Column(String(24), default="draft", nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    effective_date = Column(Date)

    created_by = Column(String(64))
    voided_at = Column(DateTime(timezone=True))
    void_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    lease = relationship("Lease", back_populates="addendums")
    signatures = relationship(
        "LeaseAddendumSignature", back_populates="addendum",
        order_by="LeaseAddendumSignature.position", cascade="all, delete-orphan")


class LeaseAddendumSignature(SigningSlotMixin, Base):
    __tablename__ = "lease_addendum_signatures"
    __table_args__ = (UniqueConstraint("addendum_id", "tenant_id", name="uq_addendum_tenant"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    addendum_id = Column(Uuid, ForeignKey("lease_addendums.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    addendum = relationship("LeaseAddendum", back_populates="signatures")
    tenant = relationship("Tenant")
