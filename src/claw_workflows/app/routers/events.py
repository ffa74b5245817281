"""Event ingestion route for event-triggered workflows."""

from typing import Any, Optional

from fastapi import APIRouter, Body

from claw_workflows.app.models.workflow import EventType
from claw_workflows.app.services.trigger_service import trigger_service

router = APIRouter(prefix="/events", tags=["events"])


@router.post("/{event_type}")
async def dispatch_event(
    event_type: EventType,
    event_data: Optional[dict[str, Any]] = Body(default=None),
) -> dict:
    """Run every enabled workflow whose event trigger matches this event."""
    result = await trigger_service.dispatch_event(event_type, event_data)
    return {
        "matched": result.matched,
        "runs": result.runs,
        "skipped": result.skipped,
    }
