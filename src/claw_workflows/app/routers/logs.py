"""Logs API endpoints."""

from typing import Optional

from fastapi import APIRouter, Query

from claw_workflows.app.services.logging_service import read_server_logs, read_workflow_logs

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("/server")
async def get_server_logs(
    tail: int = Query(default=100, ge=1, le=10000, description="Number of lines to return")
) -> dict:
    """Get recent server logs."""
    lines = read_server_logs(tail=tail)
    return {
        "lines": lines,
        "count": len(lines),
    }


@router.get("/workflows/{workflow_id}")
async def get_workflow_logs(
    workflow_id: str,
    tail: Optional[int] = Query(default=None, ge=1, le=10000, description="Number of lines to return"),
    level: Optional[str] = Query(default=None, description="Filter by log level (INFO, WARNING, ERROR)")
) -> dict:
    """Get run logs for a specific workflow."""
    lines = read_workflow_logs(workflow_id, tail=tail, level=level)
    return {
        "workflow_id": workflow_id,
        "lines": lines,
        "count": len(lines),
    }
