# app/models/leasing/units.py
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.core.database import Base


class Unit(Base):
    __tablename__ = "units"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id = Column(Uuid, ForeignKey("orgs.id"), nullable=False, index=True)
    property_name = Column(String(200), nullable=False)
    address = Column(String(300))
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    unit_number = Column(String(32), nullable=False)
    bedrooms = Column(Integer)
    bathrooms = Column(Numeric(4, 1))
    sq_ft = Column(Integer)
    status = Column(String(16), default="vacant", nullable=False)  # vacant | occupied
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    org = relationship("Org", back_populates="units")
    leases = relationship("Lease", back_populates="unit")

    @property
    def display_address(self) -> str:
        parts = [self.address, self.city, " ".join(p for p in (self.state, self.zip_code) if p)]
        return ", ".join(p for p in parts if p)
