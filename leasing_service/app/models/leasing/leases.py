# app/models/leasing/leases.py
import uuid
from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.core.database import Base, JSONVariant

from .signing_slot import LandlordSignatureMixin, SigningSlotMixin


class Lease(LandlordSignatureMixin, Base):
    __tablename__ = "leases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=False, index=True)
    unit_id = Column(Uuid, ForeignKey("units.id"), nullable=False, index=True)
    status = Column(String(24), default="draft", nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    monthly_rent = Column(Numeric(12, 2), nullable=False)
    security_deposit = Column(Numeric(12, 2))
    rent_due_day = Column(Integer, default=1)
    late_fee_amount = Column(Numeric(12, 2))
    late_fee_grace_days = Column(Integer)
    terms = Column(JSONVariant)  # [{"title": ..., "body": ...}]
    notes = Column(Text)

    created_by = Column(String(64))
    terminated_at = Column(DateTime(timezone=True))
    termination_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    unit = relationship("Unit", back_populates="leases")
    org = relationship("Org")
    tenants = relationship(
        "LeaseTenant", back_populates="lease", order_by="LeaseTenant.position",
        cascade="all, delete-orphan")
    addendums = relationship(
        "LeaseAddendum", back_populates="lease", order_by="LeaseAddendum.created_at",
        cascade="all, delete-orphan")


class LeaseTenant(SigningSlotMixin, Base):
    __tablename__ = "lease_tenants"
    __table_args__ = (UniqueConstraint("lease_id", "tenant_id", name="uq_lease_tenant"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lease_id = Column(Uuid, ForeignKey("leases.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    position = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    lease = relationship("Lease", back_populates="tenants")
    tenant = relationship("Tenant")
