"""Audit trail for billing actions."""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from revcycle.models.database import AuditLog
from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


class AuditSink:
    """
    Records billing actions to ``audit_logs``.

    The row is added to the caller's session, so it commits or rolls back
    together with the change it describes.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: Optional[str],
        action: str,
        resource: str,
        detail: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(user_id=user_id, action=action, resource=resource, detail=detail or {})
        self.db.add(entry)
        logger.info("Audit event", action=action, resource=resource, user_id=user_id)
        return entry
