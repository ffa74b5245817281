"""Workflow service for CRUD operations on workflow definitions.

Persists through a ``WorkflowStorage`` backend and records an audit entry for
every mutation. Input is not validated here; the API layer runs the validation
module first.
"""

import threading
import time
import uuid

from claw_workflows.app import config
from claw_workflows.app.models.workflow import (
    AuditAction,
    EventTrigger,
    EventType,
    LastRunStatus,
    NotifyAction,
    NotifyPriority,
    Workflow,
    WorkflowCreate,
    WorkflowRun,
    WorkflowRunStatus,
    WorkflowUpdate,
    utc_now,
)
from claw_workflows.app.services.audit_service import AuditService, audit_service
from claw_workflows.app.services.logging_service import close_workflow_log, get_logger
from claw_workflows.app.services.run_history_service import RunHistoryService, run_history_service
from claw_workflows.app.services.storage import WorkflowStorage, create_storage

logger = get_logger(__name__)

SAMPLE_WORKFLOW_ID = "wf-sample-1"

# Fields a partial update can never change; run statistics belong to record_run
_IMMUTABLE_FIELDS = ("id", "created_at", "updated_at", "run_count", "last_run", "last_run_status")


def generate_workflow_id() -> str:
    return f"wf-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class WorkflowService:
    """Handles workflow persistence and the audit side effects of each change."""

    def __init__(
        self,
        storage: WorkflowStorage | None = None,
        audit: AuditService | None = None,
        run_history: RunHistoryService | None = None,
    ) -> None:
        self._storage = storage if storage is not None else create_storage()
        self._audit = audit if audit is not None else audit_service
        self._run_history = run_history if run_history is not None else run_history_service
        # Serializes read-modify-write sequences against the storage backend
        self._lock = threading.RLock()

    def list_workflows(self) -> list[Workflow]:
        """All workflows, most recently updated first."""
        workflows = self._storage.list()
        workflows.sort(key=lambda w: w.updated_at, reverse=True)
        return workflows

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        """Load a workflow by ID."""
        return self._storage.get(workflow_id)

    def create_workflow(self, request: WorkflowCreate) -> Workflow:
        """Create a new workflow. Disabled unless the request says otherwise."""
        now = utc_now()
        workflow = Workflow(
            id=generate_workflow_id(),
            name=request.name,
            description=request.description,
            trigger=request.trigger,
            actions=request.actions,
            enabled=request.enabled if request.enabled is not None else False,
            created_at=now,
            updated_at=now,
            run_count=0,
        )
        with self._lock:
            self._storage.put(workflow)
        self._audit.log(
            workflow.id,
            workflow.name,
            AuditAction.CREATE,
            details={"trigger": workflow.trigger.type, "action_count": len(workflow.actions)},
        )
        logger.info(f"Created workflow {workflow.id} ({workflow.name})")
        return workflow

    def update_workflow(self, workflow_id: str, request: WorkflowUpdate | dict) -> Workflow | None:
        """Merge the set fields onto the stored workflow. Returns None if not found.

        ``id`` and ``created_at`` are never changed; ``updated_at`` always is.
        """
        if isinstance(request, WorkflowUpdate):
            update_data = request.model_dump(exclude_unset=True)
        else:
            update_data = dict(request)
        for field in _IMMUTABLE_FIELDS:
            update_data.pop(field, None)
        # An explicit null only clears the description; other fields keep their value
        update_data = {
            key: value for key, value in update_data.items()
            if value is not None or key == "description"
        }

        with self._lock:
            existing = self._storage.get(workflow_id)
            if not existing:
                return None

            merged = existing.model_dump()
            merged.update(update_data)
            merged["id"] = existing.id
            merged["created_at"] = existing.created_at
            merged["updated_at"] = utc_now()
            workflow = Workflow.model_validate(merged)
            self._storage.put(workflow)

        enabled = update_data.get("enabled")
        if enabled is not None and enabled != existing.enabled:
            action = AuditAction.ENABLE if enabled else AuditAction.DISABLE
        else:
            action = AuditAction.UPDATE

        self._audit.log(
            workflow.id,
            workflow.name,
            action,
            details={"updates": list(update_data.keys())},
        )
        logger.info(f"Workflow {workflow.id} {action.value}: fields={list(update_data.keys())}")
        return workflow

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its run history. Audit entries are kept."""
        with self._lock:
            workflow = self._storage.get(workflow_id)
            if not workflow:
                return False
            self._storage.delete(workflow_id)
        self._run_history.clear(workflow_id)
        close_workflow_log(workflow_id)
        self._audit.log(workflow.id, workflow.name, AuditAction.DELETE)
        logger.info(f"Deleted workflow {workflow_id} ({workflow.name})")
        return True

    def record_run(self, workflow_id: str, run: WorkflowRun) -> Workflow | None:
        """Fold a finished run into the workflow's statistics.

        Leaves ``updated_at`` alone: running a workflow does not edit it.
        Returns None if the workflow was deleted while the run was in flight.
        """
        with self._lock:
            workflow = self._storage.get(workflow_id)
            if not workflow:
                return None
            workflow.last_run = run.completed_at
            workflow.last_run_status = (
                LastRunStatus.SUCCESS if run.status == WorkflowRunStatus.COMPLETED else LastRunStatus.FAILED
            )
            workflow.run_count += 1
            self._storage.put(workflow)
        return workflow

    def seed_defaults(self) -> None:
        """Insert the disabled sample workflow when the store is empty."""
        with self._lock:
            if self._storage.list():
                return
            now = utc_now()
            self._storage.put(Workflow(
                id=SAMPLE_WORKFLOW_ID,
                name="Error Alert Notification",
                description="Send notification when errors occur",
                trigger=EventTrigger(event_type=EventType.ERROR),
                actions=[
                    NotifyAction(
                        title="Agent Error",
                        message="An error occurred in the agent pipeline",
                        priority=NotifyPriority.HIGH,
                    ),
                ],
                enabled=False,
                created_at=now,
                updated_at=now,
            ))
        logger.info(f"Seeded sample workflow {SAMPLE_WORKFLOW_ID}")


def create_workflow_service() -> WorkflowService:
    """Build the service with the configured storage backend."""
    return WorkflowService(storage=create_storage(config.STORAGE_BACKEND))


# Singleton instance
workflow_service = create_workflow_service()
