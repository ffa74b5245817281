"""Trigger matching and automatic dispatch.

``match_event_trigger`` and ``get_scheduled_workflows`` are pure reads over
the workflow store. ``dispatch_event`` is the event-bus adapter: it executes
every matching workflow with trigger source ``event``. Automatic runs go
through the same rate limiter as manual "run now" unless
``RATE_LIMIT_AUTOMATIC_RUNS`` is turned off.
"""

from dataclasses import dataclass, field
from typing import Any

from claw_workflows.app import config
from claw_workflows.app.models.workflow import (
    EventTrigger,
    EventType,
    ScheduleTrigger,
    TriggerSource,
    Workflow,
    WorkflowRun,
)
from claw_workflows.app.services.errors import WorkflowNotFoundError
from claw_workflows.app.services.logging_service import get_logger
from claw_workflows.app.services.rate_limiter import RateLimiter, rate_limiter
from claw_workflows.app.services.workflow_engine import WorkflowEngine, workflow_engine
from claw_workflows.app.services.workflow_service import WorkflowService, workflow_service

logger = get_logger(__name__)


def _values_equal(expected: Any, actual: Any) -> bool:
    # JSON booleans never equal numbers, although True == 1 in Python
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    return expected == actual


def _filter_matches(filter_map: dict[str, Any] | None, event_data: dict[str, Any] | None) -> bool:
    if not filter_map or event_data is None:
        return True
    return all(
        key in event_data and _values_equal(value, event_data[key])
        for key, value in filter_map.items()
    )


@dataclass
class DispatchResult:
    matched: list[str] = field(default_factory=list)
    runs: list[WorkflowRun] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class TriggerService:
    """Selects workflows for events and schedules, and runs them."""

    def __init__(
        self,
        workflows: WorkflowService | None = None,
        engine: WorkflowEngine | None = None,
        limiter: RateLimiter | None = None,
        gate_automatic_runs: bool | None = None,
    ) -> None:
        self._workflows = workflows if workflows is not None else workflow_service
        self._engine = engine if engine is not None else workflow_engine
        self._limiter = limiter if limiter is not None else rate_limiter
        self._gate_automatic_runs = (
            config.RATE_LIMIT_AUTOMATIC_RUNS if gate_automatic_runs is None else gate_automatic_runs
        )

    def match_event_trigger(
        self, event_type: EventType | str, event_data: dict[str, Any] | None = None
    ) -> list[Workflow]:
        """Enabled event workflows for this event type whose filter matches the data.

        The filter is only applied when event data is supplied; a filter key
        missing from the data does not match.
        """
        event_type = EventType(event_type)
        return [
            workflow for workflow in self._workflows.list_workflows()
            if workflow.enabled
            and isinstance(workflow.trigger, EventTrigger)
            and workflow.trigger.event_type == event_type
            and _filter_matches(workflow.trigger.filter, event_data)
        ]

    def get_scheduled_workflows(self) -> list[Workflow]:
        """Enabled workflows with a schedule trigger. Due-time checks belong to the scheduler."""
        return [
            workflow for workflow in self._workflows.list_workflows()
            if workflow.enabled and isinstance(workflow.trigger, ScheduleTrigger)
        ]

    async def run_automatic(self, workflow_id: str, source: TriggerSource) -> WorkflowRun | None:
        """Execute a scheduled or event-triggered run behind the rate limiter.

        Returns None when the run was rate limited or the workflow vanished.
        """
        if self._gate_automatic_runs:
            limit = self._limiter.check_rate_limit(workflow_id)
            if not limit.allowed:
                logger.warning(
                    f"Skipping {source.value} run of workflow {workflow_id}: "
                    f"rate limited, retry after {limit.retry_after}s"
                )
                return None
        try:
            return await self._engine.execute(workflow_id, source)
        except WorkflowNotFoundError as e:
            logger.warning(f"Skipping {source.value} run: {e}")
            return None

    async def dispatch_event(
        self, event_type: EventType | str, event_data: dict[str, Any] | None = None
    ) -> DispatchResult:
        """Run every workflow that matches an event, one after another."""
        result = DispatchResult()
        matches = self.match_event_trigger(event_type, event_data)
        logger.info(f"Event {EventType(event_type).value} matched {len(matches)} workflow(s)")
        for workflow in matches:
            result.matched.append(workflow.id)
            run = await self.run_automatic(workflow.id, TriggerSource.EVENT)
            if run is None:
                result.skipped.append(workflow.id)
            else:
                result.runs.append(run)
        return result


# Singleton instance
trigger_service = TriggerService()
