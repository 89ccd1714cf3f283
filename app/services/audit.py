"""
Audit trail writer.

History is diagnostic, not authoritative: the entry is written after the
transition has committed, and a failed write is logged and dropped.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.audit import WorkflowAuditEntry

logger = logging.getLogger(__name__)


class AuditTrail:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def append(
        self,
        request_id: int,
        actor_id: str,
        action_code: str,
        comment: Optional[str] = None,
    ) -> Optional[WorkflowAuditEntry]:
        """Write one entry in its own transaction. Returns None if the write failed."""
        entry = WorkflowAuditEntry(
            request_id=request_id,
            actor_id=actor_id,
            action_code=action_code,
            comment=comment,
            created_at=self.clock(),
        )
        try:
            self._write(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                "Failed to record %s for request %s, continuing: %s",
                action_code, request_id, e,
            )
            return None
        return entry

    def history(self, request_id: int) -> List[WorkflowAuditEntry]:
        """All entries for a request, oldest first."""
        return self.db.query(WorkflowAuditEntry).filter(
            WorkflowAuditEntry.request_id == request_id
        ).order_by(
            WorkflowAuditEntry.created_at.asc(),
            WorkflowAuditEntry.id.asc(),
        ).all()

    def _write(self, entry: WorkflowAuditEntry) -> None:
        self.db.add(entry)
        self.db.commit()
