# app/models/leasing/audit_logs.py
from sqlalchemy import Column, DateTime, Integer, String, Uuid, event

from shared.core.database import Base, JSONVariant
from ...core.time_utils import utcnow


class AuditLog(Base):
    """Append-only trail of signing events. Insertion order is the ``id``."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Uuid, index=True)
    actor_id = Column(String(64))
    actor_type = Column(String(16), nullable=False)  # tenant | user | system
    action = Column(String(48), nullable=False, index=True)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(Uuid, nullable=False, index=True)
    changes = Column(JSONVariant)
    ip_address = Column(String(64))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


@event.listens_for(AuditLog, "before_update")
@event.listens_for(AuditLog, "before_delete")
def reject_audit_mutation(mapper, connection, target):
    raise ValueError("Audit log entries are append-only")
