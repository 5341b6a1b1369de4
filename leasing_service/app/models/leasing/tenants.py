# app/models/leasing/tenants.py
import uuid
from sqlalchemy import Column, String, Date, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=False, index=True)
    user_id = Column(String(64), index=True)  # portal identity, set once the tenant has an account
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(200), nullable=False)
    phone = Column(String(32))
    status = Column(String(16), default="pending", nullable=False)  # pending | active | former
    current_unit_id = Column(Uuid, ForeignKey("units.id"), nullable=True)
    move_in_date = Column(Date)
    move_out_date = Column(Date)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    org = relationship("Org")
    current_unit = relationship("Unit")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
