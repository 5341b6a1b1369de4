# app/models/leasing/document_artifacts.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Uuid, event

from shared.core.database import Base
from ...core.time_utils import utcnow


class DocumentArtifact(Base):
    """Every rendered version of a signable document. Rows are never changed."""

    __tablename__ = "document_artifacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(Uuid, nullable=False, index=True)
    url = Column(String(500), nullable=False)
    content_hash = Column(String(64), nullable=False)
    has_certificate = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


@event.listens_for(DocumentArtifact, "before_update")
@event.listens_for(DocumentArtifact, "before_delete")
def reject_artifact_mutation(mapper, connection, target):
    raise ValueError("Document artifacts are append-only")
