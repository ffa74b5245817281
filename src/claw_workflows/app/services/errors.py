"""Domain exceptions raised by the workflow engine."""


class WorkflowError(Exception):
    """Base class for workflow engine errors."""


class WorkflowNotFoundError(WorkflowError):
    """Raised when execution targets a workflow that does not exist."""

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class CommandRejectedError(WorkflowError):
    """Raised when a run_command action fails the command safety filter."""
