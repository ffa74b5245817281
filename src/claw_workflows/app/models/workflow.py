"""Workflow models for the automation engine.

A workflow connects one trigger (manual, cron schedule or platform event) to an
ordered list of actions. Triggers and actions are tagged unions discriminated
on their ``type`` field.

Text fields that the validation module checks default to empty strings so that
a missing field is reported as a validation error instead of a schema error.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TriggerType(str, Enum):
    """Kinds of trigger a workflow can have."""
    MANUAL = "manual"
    SCHEDULE = "schedule"
    EVENT = "event"


class EventType(str, Enum):
    """Platform events an event trigger can listen for."""
    TOOL_CALL = "tool_call"
    ERROR = "error"
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    AGENT_SPAWN = "agent_spawn"
    AGENT_COMPLETE = "agent_complete"
    COST_THRESHOLD = "cost_threshold"
    MEMORY_WRITE = "memory_write"


class ActionType(str, Enum):
    """The fixed catalog of action kinds."""
    SEND_MESSAGE = "send_message"
    SPAWN_AGENT = "spawn_agent"
    PAUSE_AGENT = "pause_agent"
    NOTIFY = "notify"
    RUN_COMMAND = "run_command"


class MessageChannel(str, Enum):
    TELEGRAM = "telegram"
    DISCORD = "discord"
    SIGNAL = "signal"
    EMAIL = "email"
    SMS = "sms"


class NotifyPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class TriggerSource(str, Enum):
    """What started a run."""
    SCHEDULED = "scheduled"
    EVENT = "event"
    MANUAL = "manual"


class WorkflowRunStatus(str, Enum):
    """Status of a workflow run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ActionResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class LastRunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class AuditAction(str, Enum):
    """Audit log entry tags."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RUN = "run"
    ENABLE = "enable"
    DISABLE = "disable"


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------

class ManualTrigger(BaseModel):
    """Run only when invoked by hand."""
    type: Literal["manual"] = "manual"


class ScheduleTrigger(BaseModel):
    """Run on a recurring cron schedule."""
    type: Literal["schedule"] = "schedule"
    cron: str = Field(default="", description="Cron expression (5 or 6 fields)")
    timezone: str | None = Field(default=None, description="IANA timezone for the schedule")


class EventTrigger(BaseModel):
    """Run when a platform event of the given type is dispatched."""
    type: Literal["event"] = "event"
    event_type: EventType | None = Field(default=None, description="Event to listen for")
    filter: dict[str, Any] | None = Field(
        default=None, description="Key/value pairs the event data must contain"
    )


Trigger = Annotated[
    Union[ManualTrigger, ScheduleTrigger, EventTrigger],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class SendMessageAction(BaseModel):
    type: Literal["send_message"] = "send_message"
    channel: MessageChannel
    message: str = ""
    recipient: str | None = None


class SpawnAgentAction(BaseModel):
    type: Literal["spawn_agent"] = "spawn_agent"
    agent_type: str = ""
    prompt: str = ""
    model: str | None = None
    max_turns: int | None = None


class PauseAgentAction(BaseModel):
    type: Literal["pause_agent"] = "pause_agent"
    agent_id: str | None = None
    all: bool | None = None


class NotifyAction(BaseModel):
    type: Literal["notify"] = "notify"
    title: str = ""
    message: str = ""
    priority: NotifyPriority | None = None


class RunCommandAction(BaseModel):
    type: Literal["run_command"] = "run_command"
    command: str = ""
    timeout: int | None = Field(default=None, gt=0, description="Seconds before the command is killed")


Action = Annotated[
    Union[SendMessageAction, SpawnAgentAction, PauseAgentAction, NotifyAction, RunCommandAction],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------

class Workflow(BaseModel):
    """A stored automation definition plus its run statistics."""
    id: str = Field(..., description="Unique workflow ID")
    name: str
    description: str | None = None
    trigger: Trigger
    actions: list[Action]
    enabled: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_run: datetime | None = None
    last_run_status: LastRunStatus | None = None
    run_count: int = 0


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""
    name: str = ""
    description: str | None = None
    trigger: Trigger | None = None
    actions: list[Action] = Field(default_factory=list)
    enabled: bool | None = None


class WorkflowUpdate(BaseModel):
    """Request to update a workflow. All fields optional."""
    name: str | None = None
    description: str | None = None
    trigger: Trigger | None = None
    actions: list[Action] | None = None
    enabled: bool | None = None


class WorkflowWithNextRun(Workflow):
    """Workflow with the scheduler's next fire time for API responses."""
    next_run: datetime | None = Field(default=None, description="Next scheduled run time")
    schedule_error: str | None = Field(default=None, description="Why an enabled schedule has no next run")


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

class ActionResult(BaseModel):
    """Outcome of one action within a run."""
    action_index: int
    action_type: ActionType
    status: ActionResultStatus
    output: Any = None
    error: str | None = None
    duration_ms: int = 0


class WorkflowRun(BaseModel):
    """A single execution of a workflow's action list."""
    id: str = Field(..., description="Unique run ID")
    workflow_id: str
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    status: WorkflowRunStatus = WorkflowRunStatus.RUNNING
    trigger: TriggerSource
    results: list[ActionResult] = Field(default_factory=list)
    error: str | None = None


# ---------------------------------------------------------------------------
# Audit, rate limiting, validation
# ---------------------------------------------------------------------------

class AuditLogEntry(BaseModel):
    """One entry in the process-wide audit trail.

    The workflow name is a snapshot taken at logging time so the entry stays
    readable after the workflow is deleted.
    """
    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    workflow_id: str
    workflow_name: str
    action: AuditAction
    details: dict[str, Any] | None = None
    user_id: str | None = None


class RateLimitResult(BaseModel):
    allowed: bool
    retry_after: int | None = Field(default=None, description="Seconds until the window resets")
    remaining: int = 0
    reset_at: float = 0.0


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class ActionValidationResult(BaseModel):
    valid: bool
    error: str | None = None
