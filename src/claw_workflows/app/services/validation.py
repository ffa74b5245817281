"""Workflow and action validation.

Pure functions: nothing here touches storage or raises. Callers at the API
boundary validate before handing input to the workflow service.
"""

import re

from claw_workflows.app.config import MAX_ACTIONS_PER_WORKFLOW
from claw_workflows.app.models.workflow import (
    ActionType,
    ActionValidationResult,
    EventTrigger,
    EventType,
    NotifyAction,
    PauseAgentAction,
    RunCommandAction,
    ScheduleTrigger,
    SendMessageAction,
    SpawnAgentAction,
    ValidationResult,
    WorkflowCreate,
)
from claw_workflows.app.services.command_filter import validate_command

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MESSAGE_MAX_LENGTH = 4000
PROMPT_MAX_LENGTH = 10000
MAX_TURNS_RANGE = (1, 100)
NOTIFY_TITLE_MAX_LENGTH = 200
NOTIFY_MESSAGE_MAX_LENGTH = 1000

_CRON_FIELD = re.compile(r"[0-9,\-*/]+")
_CRON_SPECIAL_FIELDS = {"?", "L", "W"}


def is_valid_cron(expression: str) -> bool:
    """Shape-only cron check: 5 or 6 fields of digits, ``, - * /`` or ``? L W``.

    Out-of-range values such as ``99 * * * *`` pass.
    """
    parts = expression.split()
    if len(parts) < 5 or len(parts) > 6:
        return False
    return all(_CRON_FIELD.fullmatch(part) or part in _CRON_SPECIAL_FIELDS for part in parts)


def validate_action(action) -> ActionValidationResult:
    """Validate a single action. Reports the first rule the action breaks."""
    if isinstance(action, RunCommandAction):
        return validate_command(action.command)

    if isinstance(action, SendMessageAction):
        if not action.message or len(action.message) > MESSAGE_MAX_LENGTH:
            return ActionValidationResult(valid=False, error="Message must be 1-4000 characters")

    elif isinstance(action, SpawnAgentAction):
        if not action.prompt or len(action.prompt) > PROMPT_MAX_LENGTH:
            return ActionValidationResult(valid=False, error="Prompt must be 1-10000 characters")
        low, high = MAX_TURNS_RANGE
        if action.max_turns is not None and not low <= action.max_turns <= high:
            return ActionValidationResult(valid=False, error="Max turns must be 1-100")

    elif isinstance(action, NotifyAction):
        if not action.title or len(action.title) > NOTIFY_TITLE_MAX_LENGTH:
            return ActionValidationResult(valid=False, error="Title must be 1-200 characters")
        if not action.message or len(action.message) > NOTIFY_MESSAGE_MAX_LENGTH:
            return ActionValidationResult(valid=False, error="Message must be 1-1000 characters")

    elif isinstance(action, PauseAgentAction):
        pass

    return ActionValidationResult(valid=True)


def validate_workflow(workflow: WorkflowCreate) -> ValidationResult:
    """Validate a candidate workflow, collecting every violated rule."""
    errors: list[str] = []

    if not workflow.name or len(workflow.name) > NAME_MAX_LENGTH:
        errors.append("Name must be 1-100 characters")

    if workflow.description and len(workflow.description) > DESCRIPTION_MAX_LENGTH:
        errors.append("Description must be at most 500 characters")

    trigger = workflow.trigger
    if trigger is None:
        errors.append("Trigger is required")
    elif isinstance(trigger, ScheduleTrigger):
        if not trigger.cron:
            errors.append("Cron expression is required for schedule trigger")
        elif not is_valid_cron(trigger.cron):
            errors.append("Invalid cron expression")
    elif isinstance(trigger, EventTrigger):
        if not trigger.event_type:
            errors.append("Event type is required for event trigger")

    actions = workflow.actions or []
    if not actions:
        errors.append("At least one action is required")
    elif len(actions) > MAX_ACTIONS_PER_WORKFLOW:
        errors.append(f"Maximum {MAX_ACTIONS_PER_WORKFLOW} actions allowed")
    else:
        for index, action in enumerate(actions, start=1):
            result = validate_action(action)
            if not result.valid:
                errors.append(f"Action {index}: {result.error}")

    return ValidationResult(valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Editor catalog helpers
# ---------------------------------------------------------------------------

CRON_PRESETS = [
    {"label": "Every minute", "cron": "* * * * *"},
    {"label": "Every 5 minutes", "cron": "*/5 * * * *"},
    {"label": "Every 15 minutes", "cron": "*/15 * * * *"},
    {"label": "Every 30 minutes", "cron": "*/30 * * * *"},
    {"label": "Every hour", "cron": "0 * * * *"},
    {"label": "Every 6 hours", "cron": "0 */6 * * *"},
    {"label": "Daily at midnight", "cron": "0 0 * * *"},
    {"label": "Daily at 9 AM", "cron": "0 9 * * *"},
    {"label": "Weekly on Monday", "cron": "0 0 * * 1"},
    {"label": "Monthly on 1st", "cron": "0 0 1 * *"},
]

EVENT_DESCRIPTIONS = {
    EventType.TOOL_CALL: "When an agent calls a tool",
    EventType.ERROR: "When an error occurs",
    EventType.SESSION_START: "When a new session starts",
    EventType.SESSION_END: "When a session ends",
    EventType.AGENT_SPAWN: "When a subagent is spawned",
    EventType.AGENT_COMPLETE: "When an agent completes",
    EventType.COST_THRESHOLD: "When cost exceeds threshold",
    EventType.MEMORY_WRITE: "When memory is written",
}

ACTION_DESCRIPTIONS = {
    ActionType.SEND_MESSAGE: "Send a message via a channel",
    ActionType.SPAWN_AGENT: "Spawn a new AI agent",
    ActionType.PAUSE_AGENT: "Pause running agent(s)",
    ActionType.NOTIFY: "Send a notification",
    ActionType.RUN_COMMAND: "Run a safe command",
}


def describe_cron(expression: str) -> str:
    """Human-readable label for common cron shapes; falls back to the expression."""
    for preset in CRON_PRESETS:
        if preset["cron"] == expression:
            return preset["label"]

    parts = expression.split(" ")
    if len(parts) < 5:
        return expression

    minute, hour, day_of_month, _month, day_of_week = parts[:5]

    if minute == "*" and hour == "*":
        return "Every minute"
    if minute.startswith("*/") and hour == "*":
        return f"Every {minute[2:]} minutes"
    if minute == "0" and hour == "*":
        return "Every hour"
    if minute == "0" and hour.startswith("*/"):
        return f"Every {hour[2:]} hours"
    if minute == "0" and hour != "*" and day_of_month == "*" and day_of_week == "*":
        return f"Daily at {hour}:00"

    return expression
