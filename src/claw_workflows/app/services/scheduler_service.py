"""Scheduler service for cron-triggered workflows.

Uses APScheduler to fire workflow runs on the cron expressions of enabled
schedule workflows. The schedule selector decides which workflows are
scheduled; this service only turns cron expressions into jobs and calls the
trigger service when one fires.

Cron expressions have 5 fields (minute first) or 6 fields (second first).
``?`` means any value and ``L`` in the day-of-month field means the last day
of the month. A workflow whose expression APScheduler still cannot use gets
no job; the reason is kept and reported next to ``next_run``.
"""

from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from claw_workflows.app.models.workflow import ScheduleTrigger, TriggerSource, Workflow
from claw_workflows.app.services.logging_service import get_logger
from claw_workflows.app.services.trigger_service import TriggerService

logger = get_logger(__name__)

JOB_PREFIX = "workflow-"


def build_cron_trigger(expression: str, timezone: str | None = None) -> CronTrigger:
    """Build an APScheduler trigger from a 5 or 6 field cron expression.

    Raises ValueError for expressions APScheduler rejects and KeyError for
    unknown timezones.
    """
    fields = expression.split()
    if len(fields) == 5:
        fields = ["0", *fields]
    if len(fields) != 6:
        raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5 or 6")
    second, minute, hour, day, month, day_of_week = ["*" if f == "?" else f for f in fields]
    if day == "L":
        day = "last"
    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=timezone,
    )


class SchedulerService:
    """Manages cron-based execution of schedule-triggered workflows."""

    def __init__(self, triggers: TriggerService) -> None:
        self._triggers = triggers
        self._scheduler = AsyncIOScheduler()
        self._started = False
        self._errors: dict[str, str] = {}

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Register all scheduled workflows and start the scheduler."""
        if self._started:
            return
        self._scheduler.start()
        self._started = True
        registered = self.sync()
        logger.info(f"Scheduler started with {registered} scheduled workflow(s)")

    def shutdown(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler shut down")

    @staticmethod
    def _job_id(workflow_id: str) -> str:
        return f"{JOB_PREFIX}{workflow_id}"

    def _register_job(self, workflow: Workflow) -> bool:
        """Register a cron job for a workflow. Returns False if the cron is unusable."""
        trigger = workflow.trigger
        if not isinstance(trigger, ScheduleTrigger):
            return False
        try:
            cron = build_cron_trigger(trigger.cron, timezone=trigger.timezone)
        except (ValueError, KeyError) as e:
            self._errors[workflow.id] = f"Cannot schedule cron {trigger.cron!r}: {e}"
            self._remove_job(workflow.id)
            logger.error(f"Cannot schedule workflow {workflow.id} cron={trigger.cron!r}: {e}")
            return False
        self._errors.pop(workflow.id, None)
        self._scheduler.add_job(
            self._trigger_run,
            trigger=cron,
            id=self._job_id(workflow.id),
            args=[workflow.id],
            replace_existing=True,
            misfire_grace_time=60,
            max_instances=1,
        )
        logger.info(f"Registered workflow {workflow.id} ({workflow.name}) cron={trigger.cron}")
        return True

    def _remove_job(self, workflow_id: str) -> None:
        job = self._scheduler.get_job(self._job_id(workflow_id))
        if job:
            job.remove()

    def sync(self) -> int:
        """Make the job set match the currently scheduled workflows.

        Call after any create, update, toggle or delete. Returns the number
        of registered jobs.
        """
        if not self._started:
            return 0
        scheduled = {w.id: w for w in self._triggers.get_scheduled_workflows()}
        for job in self._scheduler.get_jobs():
            workflow_id = job.id[len(JOB_PREFIX):]
            if job.id.startswith(JOB_PREFIX) and workflow_id not in scheduled:
                job.remove()
                logger.info(f"Unregistered workflow {workflow_id}")
        for workflow_id in [w for w in self._errors if w not in scheduled]:
            del self._errors[workflow_id]
        return sum(1 for workflow in scheduled.values() if self._register_job(workflow))

    async def _trigger_run(self, workflow_id: str) -> None:
        """Called by APScheduler when a workflow's cron fires."""
        if workflow_id not in {w.id for w in self._triggers.get_scheduled_workflows()}:
            logger.info(f"Workflow {workflow_id} is no longer scheduled, skipping")
            return
        logger.info(f"Schedule fired for workflow {workflow_id}")
        try:
            await self._triggers.run_automatic(workflow_id, TriggerSource.SCHEDULED)
        except Exception as e:
            logger.exception(f"Scheduled run of workflow {workflow_id} failed: {e}")

    def next_run_time(self, workflow_id: str) -> datetime | None:
        """Next fire time for a workflow, or None if it is not scheduled."""
        if not self._started:
            return None
        job = self._scheduler.get_job(self._job_id(workflow_id))
        return job.next_run_time if job else None

    def schedule_error(self, workflow_id: str) -> str | None:
        """Why an enabled schedule workflow has no job, if it has none."""
        return self._errors.get(workflow_id)
