import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..enum.leasing_enum import ActorType, AuditAction, EntityType
from ..models.leasing.audit_logs import AuditLog

logger = logging.getLogger(__name__)


def record(
    db: Session,
    org_id,
    action: AuditAction,
    entity_type: EntityType,
    entity_id,
    actor_id: Optional[str] = None,
    actor_type: ActorType = ActorType.system,
    changes: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> Optional[AuditLog]:
    """Append an audit entry in its own commit.

    Called after the business transaction has committed. A failure here is
    logged and never undoes or blocks the operation being audited.
    """
    entry = AuditLog(
        org_id=org_id,
        actor_id=str(actor_id) if actor_id is not None else None,
        actor_type=actor_type.value,
        action=action.value,
        entity_type=entity_type.value,
        entity_id=entity_id,
        changes=changes or {},
        ip_address=ip_address,
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write audit entry %s for %s %s",
                         action.value, entity_type.value, entity_id)
        return None
    return entry


def trail(db: Session, entity_type: EntityType, entity_id, org_id=None) -> List[AuditLog]:
    q = db.query(AuditLog).filter(
        AuditLog.entity_type == entity_type.value,
        AuditLog.entity_id == entity_id,
    )
    if org_id is not None:
        q = q.filter(AuditLog.org_id == org_id)
    return q.order_by(AuditLog.id.asc()).all()
