"""Audit log API routes."""

from typing import Optional

from fastapi import APIRouter, Query

from claw_workflows.app.config import AUDIT_LOG_LIMIT, DEFAULT_AUDIT_PAGE_SIZE
from claw_workflows.app.services.audit_service import audit_service

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("")
async def get_audit_log(
    workflow_id: Optional[str] = Query(default=None, description="Only entries for this workflow"),
    limit: int = Query(default=DEFAULT_AUDIT_PAGE_SIZE, ge=1, le=AUDIT_LOG_LIMIT),
) -> dict:
    """Audit entries, most recent first. Includes entries for deleted workflows."""
    return {"audit": audit_service.get_logs(workflow_id, limit=limit)}
