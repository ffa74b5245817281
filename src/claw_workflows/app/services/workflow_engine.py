"""Workflow execution engine.

Runs a workflow's actions in order, records a per-action result for each, and
keeps going after a failed action. The run is pushed onto the run history
before the first action so pollers can watch it progress. When the run ends
the workflow statistics are updated and a ``run`` audit entry is written.

Runs of the same workflow are serialized with one asyncio lock per workflow
ID, so concurrent manual, scheduled and event triggers cannot interleave their
statistics updates.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable

from claw_workflows.app import config
from claw_workflows.app.models.workflow import (
    ActionResult,
    ActionResultStatus,
    ActionType,
    AuditAction,
    NotifyAction,
    NotifyPriority,
    PauseAgentAction,
    RunCommandAction,
    SendMessageAction,
    SpawnAgentAction,
    TriggerSource,
    WorkflowRun,
    WorkflowRunStatus,
    utc_now,
)
from claw_workflows.app.services.audit_service import AuditService, audit_service
from claw_workflows.app.services.collaborators import Collaborators, Notification, default_collaborators
from claw_workflows.app.services.command_filter import validate_command
from claw_workflows.app.services.errors import CommandRejectedError, WorkflowNotFoundError
from claw_workflows.app.services.logging_service import WorkflowLogContext, get_logger
from claw_workflows.app.services.run_history_service import RunHistoryService, run_history_service
from claw_workflows.app.services.workflow_service import WorkflowService, workflow_service

logger = get_logger(__name__)

COMMAND_TIMEOUT_GRACE_SECONDS = 5


def generate_run_id() -> str:
    return f"run-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class WorkflowEngine:
    """Executes workflows against a set of collaborators."""

    def __init__(
        self,
        workflows: WorkflowService | None = None,
        run_history: RunHistoryService | None = None,
        audit: AuditService | None = None,
        collaborators: Collaborators | None = None,
        action_timeout: float = config.ACTION_TIMEOUT_SECONDS,
    ) -> None:
        self._workflows = workflows if workflows is not None else workflow_service
        self._run_history = run_history if run_history is not None else run_history_service
        self._audit = audit if audit is not None else audit_service
        self.collaborators = collaborators if collaborators is not None else default_collaborators()
        self._action_timeout = action_timeout
        # Per-workflow locks, dropped once no run holds or waits on them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: defaultdict[str, int] = defaultdict(int)
        self._handlers: dict[ActionType, Callable[[Any], Awaitable[Any]]] = {
            ActionType.NOTIFY: self._notify,
            ActionType.SEND_MESSAGE: self._send_message,
            ActionType.SPAWN_AGENT: self._spawn_agent,
            ActionType.PAUSE_AGENT: self._pause_agent,
            ActionType.RUN_COMMAND: self._run_command,
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for action types: {sorted(m.value for m in missing)}")

    async def execute(self, workflow_id: str, trigger_source: TriggerSource | str) -> WorkflowRun:
        """Run every action of a workflow and return the finished run.

        Raises WorkflowNotFoundError if the workflow does not exist; any other
        failure is recorded on the run instead of raised.
        """
        trigger_source = TriggerSource(trigger_source)
        async with self._workflow_lock(workflow_id):
            workflow = self._workflows.get_workflow(workflow_id)
            if not workflow:
                raise WorkflowNotFoundError(workflow_id)

            with WorkflowLogContext(workflow_id):
                run = WorkflowRun(
                    id=generate_run_id(),
                    workflow_id=workflow_id,
                    status=WorkflowRunStatus.RUNNING,
                    trigger=trigger_source,
                )
                self._run_history.add_run(run)
                logger.info(
                    f"[run:{run.id}] Starting workflow {workflow_id} ({workflow.name}) "
                    f"trigger={trigger_source.value} actions={len(workflow.actions)}"
                )

                try:
                    for index, action in enumerate(workflow.actions):
                        run.results.append(await self._execute_action(run.id, index, action))
                    failed = any(r.status == ActionResultStatus.FAILED for r in run.results)
                    run.status = WorkflowRunStatus.FAILED if failed else WorkflowRunStatus.COMPLETED
                except Exception as e:
                    logger.exception(f"[run:{run.id}] Run aborted: {e}")
                    run.status = WorkflowRunStatus.FAILED
                    run.error = str(e)

                run.completed_at = utc_now()

                if self._workflows.record_run(workflow_id, run) is None:
                    logger.warning(f"[run:{run.id}] Workflow {workflow_id} was deleted during the run")

                self._audit.log(
                    workflow_id,
                    workflow.name,
                    AuditAction.RUN,
                    details={
                        "run_id": run.id,
                        "trigger": trigger_source.value,
                        "status": run.status.value,
                        "action_results": [
                            {"type": r.action_type.value, "status": r.status.value} for r in run.results
                        ],
                    },
                )
                logger.info(f"[run:{run.id}] Finished with status={run.status.value}")

        return run.model_copy(deep=True)

    @asynccontextmanager
    async def _workflow_lock(self, workflow_id: str):
        lock = self._locks.setdefault(workflow_id, asyncio.Lock())
        self._lock_users[workflow_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[workflow_id] -= 1
            if not self._lock_users[workflow_id]:
                del self._lock_users[workflow_id]
                self._locks.pop(workflow_id, None)

    async def _execute_action(self, run_id: str, index: int, action) -> ActionResult:
        """Dispatch one action, turning any exception into a failed result."""
        action_type = ActionType(action.type)
        handler = self._handlers[action_type]
        timeout = self._action_timeout
        command_timeout = self._command_timeout(action)
        if command_timeout is not None:
            # The runner enforces command_timeout itself and kills the process
            timeout = command_timeout + COMMAND_TIMEOUT_GRACE_SECONDS

        start = time.monotonic()
        try:
            output = await asyncio.wait_for(handler(action), timeout=timeout)
        except asyncio.TimeoutError:
            error = f"Action timed out after {timeout}s"
            logger.warning(f"[run:{run_id}] Action {index + 1} ({action_type.value}) {error}")
            return ActionResult(
                action_index=index,
                action_type=action_type,
                status=ActionResultStatus.FAILED,
                error=error,
                duration_ms=self._elapsed_ms(start),
            )
        except Exception as e:
            logger.warning(f"[run:{run_id}] Action {index + 1} ({action_type.value}) failed: {e}")
            return ActionResult(
                action_index=index,
                action_type=action_type,
                status=ActionResultStatus.FAILED,
                error=str(e) or e.__class__.__name__,
                duration_ms=self._elapsed_ms(start),
            )

        logger.debug(f"[run:{run_id}] Action {index + 1} ({action_type.value}) succeeded")
        return ActionResult(
            action_index=index,
            action_type=action_type,
            status=ActionResultStatus.SUCCESS,
            output=output,
            duration_ms=self._elapsed_ms(start),
        )

    def _command_timeout(self, action) -> float | None:
        """The run_command timeout handed to the runner, capped by the action timeout."""
        if not isinstance(action, RunCommandAction) or not action.timeout or action.timeout <= 0:
            return None
        return min(action.timeout, self._action_timeout)

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

    # -- action handlers ----------------------------------------------------

    async def _notify(self, action: NotifyAction) -> Any:
        return await self.collaborators.notifications.deliver(Notification(
            title=action.title,
            message=action.message,
            priority=action.priority or NotifyPriority.NORMAL,
        ))

    async def _send_message(self, action: SendMessageAction) -> Any:
        return await self.collaborators.messages.send(action.channel, action.message, action.recipient)

    async def _spawn_agent(self, action: SpawnAgentAction) -> Any:
        return await self.collaborators.agents.spawn_agent(
            action.agent_type, action.prompt, model=action.model, max_turns=action.max_turns
        )

    async def _pause_agent(self, action: PauseAgentAction) -> Any:
        return await self.collaborators.agents.pause_agent(action.agent_id, all_agents=bool(action.all))

    async def _run_command(self, action: RunCommandAction) -> Any:
        # Never hand an unfiltered command to the runner
        check = validate_command(action.command)
        if not check.valid:
            raise CommandRejectedError(check.error)
        return await self.collaborators.commands.run_command(action.command, timeout=self._command_timeout(action))


# Singleton instance
workflow_engine = WorkflowEngine()
