"""Per-workflow run history.

Runs are kept newest first with a fixed cap per workflow; the oldest run is
dropped when a new one pushes the list past the cap. The engine mutates a run
in place while it executes, so readers get snapshots.
"""

import threading
from collections import deque

from claw_workflows.app.config import DEFAULT_RUNS_PAGE_SIZE, RUN_HISTORY_LIMIT
from claw_workflows.app.models.workflow import WorkflowRun


class RunHistoryService:
    """Bounded in-memory store of WorkflowRun records."""

    def __init__(self, max_runs_per_workflow: int = RUN_HISTORY_LIMIT) -> None:
        self._max_runs = max_runs_per_workflow
        self._runs: dict[str, deque[WorkflowRun]] = {}
        self._lock = threading.Lock()

    def add_run(self, run: WorkflowRun) -> None:
        """Push a run onto the front of its workflow's history."""
        with self._lock:
            runs = self._runs.get(run.workflow_id)
            if runs is None:
                runs = deque(maxlen=self._max_runs)
                self._runs[run.workflow_id] = runs
            runs.appendleft(run)

    def get_runs(self, workflow_id: str, limit: int = DEFAULT_RUNS_PAGE_SIZE) -> list[WorkflowRun]:
        """Most recent runs first."""
        with self._lock:
            runs = list(self._runs.get(workflow_id, ()))[:limit]
        return [run.model_copy(deep=True) for run in runs]

    def get_run(self, workflow_id: str, run_id: str) -> WorkflowRun | None:
        with self._lock:
            for run in self._runs.get(workflow_id, ()):
                if run.id == run_id:
                    return run.model_copy(deep=True)
        return None

    def clear(self, workflow_id: str) -> None:
        """Forget all runs for a workflow."""
        with self._lock:
            self._runs.pop(workflow_id, None)


# Singleton instance
run_history_service = RunHistoryService()
