"""Process-wide audit log for workflow operations.

Entries are newest first and capped. Each entry carries a snapshot of the
workflow name, so the trail outlives the workflows it describes.
"""

import threading
import time
import uuid
from typing import Any

from claw_workflows.app.config import AUDIT_LOG_LIMIT, DEFAULT_AUDIT_PAGE_SIZE
from claw_workflows.app.models.workflow import AuditAction, AuditLogEntry
from claw_workflows.app.services.logging_service import get_logger

logger = get_logger(__name__)


class AuditService:
    """Bounded, append-only audit trail."""

    def __init__(self, max_entries: int = AUDIT_LOG_LIMIT) -> None:
        self._max_entries = max_entries
        self._entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def log(
        self,
        workflow_id: str,
        workflow_name: str,
        action: AuditAction,
        details: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> AuditLogEntry:
        """Record an audit entry and return it."""
        entry = AuditLogEntry(
            id=f"audit-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}",
            workflow_id=workflow_id,
            workflow_name=workflow_name,
            action=action,
            details=details,
            user_id=user_id,
        )
        with self._lock:
            self._entries.insert(0, entry)
            del self._entries[self._max_entries:]
        logger.debug(f"Audit {action.value} workflow={workflow_id} ({workflow_name})")
        return entry

    def get_logs(self, workflow_id: str | None = None, limit: int = DEFAULT_AUDIT_PAGE_SIZE) -> list[AuditLogEntry]:
        """Most recent entries first, optionally for one workflow."""
        with self._lock:
            entries = list(self._entries)
        if workflow_id:
            entries = [e for e in entries if e.workflow_id == workflow_id]
        return entries[:limit]


# Singleton instance
audit_service = AuditService()
