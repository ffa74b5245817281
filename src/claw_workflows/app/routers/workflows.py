"""Workflow API routes: CRUD, run-now and run history.

Endpoints:
  GET    /api/workflows                 List workflows (?audit=true adds recent audit entries)
  POST   /api/workflows                 Validate and create a workflow
  GET    /api/workflows/catalog         Cron presets and event/action labels for the editor
  GET    /api/workflows/{id}            Workflow detail (?runs=true, ?audit=true)
  PUT    /api/workflows/{id}            Validate the merged workflow and update it
  POST   /api/workflows/{id}/toggle     Flip the enabled flag
  DELETE /api/workflows/{id}            Delete a workflow and its run history
  POST   /api/workflows/{id}/run        Run now (rate limited)
  GET    /api/workflows/{id}/runs       Run history, most recent first
"""

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from claw_workflows.app.config import DEFAULT_RUNS_PAGE_SIZE, RUN_HISTORY_LIMIT
from claw_workflows.app.models.workflow import (
    TriggerSource,
    Workflow,
    WorkflowCreate,
    WorkflowUpdate,
    WorkflowWithNextRun,
)
from claw_workflows.app.services.audit_service import audit_service
from claw_workflows.app.services.errors import WorkflowNotFoundError
from claw_workflows.app.services.logging_service import get_logger
from claw_workflows.app.services.rate_limiter import rate_limiter
from claw_workflows.app.services.run_history_service import run_history_service
from claw_workflows.app.services.validation import (
    ACTION_DESCRIPTIONS,
    CRON_PRESETS,
    EVENT_DESCRIPTIONS,
    validate_workflow,
)
from claw_workflows.app.services.workflow_engine import workflow_engine
from claw_workflows.app.services.workflow_service import workflow_service

logger = get_logger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])

RECENT_AUDIT_LIMIT = 50


def _validation_failed(errors: list[str]) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": errors},
    )


def _sync_scheduler(request: Request) -> None:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.sync()


def _with_next_run(request: Request, workflow: Workflow) -> WorkflowWithNextRun:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return WorkflowWithNextRun(**workflow.model_dump())
    return WorkflowWithNextRun(
        **workflow.model_dump(),
        next_run=scheduler.next_run_time(workflow.id),
        schedule_error=scheduler.schedule_error(workflow.id),
    )


def _get_or_404(workflow_id: str) -> Workflow:
    workflow = workflow_service.get_workflow(workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


@router.get("")
async def list_workflows(request: Request, audit: bool = False) -> dict:
    """List all workflows, most recently updated first."""
    response: dict = {
        "workflows": [_with_next_run(request, w) for w in workflow_service.list_workflows()],
    }
    if audit:
        response["audit"] = audit_service.get_logs(limit=RECENT_AUDIT_LIMIT)
    return response


@router.post("", status_code=201)
async def create_workflow(request: Request, body: WorkflowCreate):
    """Validate and create a workflow."""
    validation = validate_workflow(body)
    if not validation.valid:
        return _validation_failed(validation.errors)

    workflow = workflow_service.create_workflow(body)
    _sync_scheduler(request)
    return {"workflow": _with_next_run(request, workflow)}


@router.get("/catalog")
async def get_catalog() -> dict:
    """Editor helpers: cron presets and descriptions of events and actions."""
    return {
        "cron_presets": CRON_PRESETS,
        "events": {event.value: text for event, text in EVENT_DESCRIPTIONS.items()},
        "actions": {action.value: text for action, text in ACTION_DESCRIPTIONS.items()},
    }


@router.get("/{workflow_id}")
async def get_workflow(request: Request, workflow_id: str, runs: bool = False, audit: bool = False) -> dict:
    """Get a workflow, optionally with its recent runs and audit entries."""
    workflow = _get_or_404(workflow_id)
    response: dict = {"workflow": _with_next_run(request, workflow)}
    if runs:
        response["runs"] = run_history_service.get_runs(workflow_id)
    if audit:
        response["audit"] = audit_service.get_logs(workflow_id, limit=RECENT_AUDIT_LIMIT)
    return response


@router.put("/{workflow_id}")
async def update_workflow(request: Request, workflow_id: str, body: WorkflowUpdate):
    """Update a workflow after validating the merged result."""
    existing = _get_or_404(workflow_id)

    merged = WorkflowCreate(
        name=body.name if body.name is not None else existing.name,
        description=body.description if body.description is not None else existing.description,
        trigger=body.trigger if body.trigger is not None else existing.trigger,
        actions=body.actions if body.actions is not None else existing.actions,
        enabled=body.enabled if body.enabled is not None else existing.enabled,
    )
    validation = validate_workflow(merged)
    if not validation.valid:
        return _validation_failed(validation.errors)

    workflow = workflow_service.update_workflow(workflow_id, body)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    _sync_scheduler(request)
    return {"workflow": _with_next_run(request, workflow)}


@router.post("/{workflow_id}/toggle")
async def toggle_workflow(request: Request, workflow_id: str) -> dict:
    """Enable a disabled workflow or disable an enabled one."""
    existing = _get_or_404(workflow_id)
    workflow = workflow_service.update_workflow(workflow_id, WorkflowUpdate(enabled=not existing.enabled))
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    _sync_scheduler(request)
    return {"workflow": _with_next_run(request, workflow)}


@router.delete("/{workflow_id}")
async def delete_workflow(request: Request, workflow_id: str) -> dict:
    """Delete a workflow. Its audit entries are kept."""
    if not workflow_service.delete_workflow(workflow_id):
        raise HTTPException(status_code=404, detail="Workflow not found")
    _sync_scheduler(request)
    return {"success": True}


@router.post("/{workflow_id}/run")
async def run_workflow(workflow_id: str):
    """Run a workflow now. Subject to the per-workflow rate limit."""
    _get_or_404(workflow_id)

    limit = rate_limiter.check_rate_limit(workflow_id)
    if not limit.allowed:
        return JSONResponse(
            status_code=429,
            content={"error": "Rate limit exceeded", "retry_after": limit.retry_after},
            headers={"Retry-After": str(limit.retry_after)},
        )

    try:
        run = await workflow_engine.execute(workflow_id, TriggerSource.MANUAL)
    except WorkflowNotFoundError:
        raise HTTPException(status_code=404, detail="Workflow not found")

    return {"run": run, "workflow": workflow_service.get_workflow(workflow_id)}


@router.get("/{workflow_id}/runs")
async def list_workflow_runs(
    workflow_id: str,
    limit: int = Query(default=DEFAULT_RUNS_PAGE_SIZE, ge=1, le=RUN_HISTORY_LIMIT),
) -> dict:
    """Run history for a workflow, most recent first."""
    _get_or_404(workflow_id)
    return {"runs": run_history_service.get_runs(workflow_id, limit=limit)}
