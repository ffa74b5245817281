"""Workflow-aware logging service.

Provides file-based logging organized by workflow, with both console
and persistent file output.

Log structure:
    ~/.claw-workflows/logs/
    ├── server.log              # Global server events
    └── workflows/
        └── {workflow_id}.log   # Per-workflow run logs
"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional

from claw_workflows.app import config

# Context variable for workflow-aware logging
_current_workflow_id: ContextVar[Optional[str]] = ContextVar("workflow_id", default=None)

# Log format
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _logs_dir():
    return config.LOGS_DIR


def _workflow_logs_dir():
    return config.LOGS_DIR / "workflows"


def ensure_log_dirs() -> None:
    """Create log directories if they don't exist."""
    _logs_dir().mkdir(parents=True, exist_ok=True)
    _workflow_logs_dir().mkdir(exist_ok=True)


class WorkflowFileHandler(logging.Handler):
    """Handler that writes to workflow-specific log files.

    Uses a context variable to determine which workflow the record belongs to,
    then writes to the appropriate file.
    """

    def __init__(self):
        super().__init__()
        self._file_handlers: dict[str, logging.FileHandler] = {}
        self._server_handler: Optional[logging.FileHandler] = None
        ensure_log_dirs()

    def _get_server_handler(self) -> logging.FileHandler:
        """Get or create the global server log handler."""
        if self._server_handler is None:
            log_file = _logs_dir() / "server.log"
            self._server_handler = logging.FileHandler(log_file, encoding="utf-8")
            self._server_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)
            )
        return self._server_handler

    def _get_workflow_handler(self, workflow_id: str) -> logging.FileHandler:
        """Get or create a workflow-specific log handler."""
        if workflow_id not in self._file_handlers:
            log_file = _workflow_logs_dir() / f"{workflow_id}.log"
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(
                logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)
            )
            self._file_handlers[workflow_id] = handler
        return self._file_handlers[workflow_id]

    def emit(self, record: logging.LogRecord) -> None:
        """Write log record to the workflow file, or server.log outside a run."""
        try:
            workflow_id = _current_workflow_id.get()

            if workflow_id:
                self._get_workflow_handler(workflow_id).emit(record)
                return

            self._get_server_handler().emit(record)
        except Exception:
            self.handleError(record)

    def close_workflow(self, workflow_id: str) -> None:
        """Close and forget the log file handler of one workflow."""
        with self.lock:
            handler = self._file_handlers.pop(workflow_id, None)
        if handler:
            handler.close()

    def close(self) -> None:
        """Close all file handlers."""
        if self._server_handler:
            self._server_handler.close()
        for handler in self._file_handlers.values():
            handler.close()
        self._file_handlers.clear()
        super().close()


class WorkflowLogContext:
    """Context manager for workflow-scoped logging."""

    def __init__(self, workflow_id: Optional[str] = None):
        self.workflow_id = workflow_id
        self._token = None

    def __enter__(self) -> "WorkflowLogContext":
        if self.workflow_id:
            self._token = _current_workflow_id.set(self.workflow_id)
        return self

    def __exit__(self, *args) -> None:
        if self._token:
            _current_workflow_id.reset(self._token)
            self._token = None


# Global workflow file handler instance
_workflow_file_handler: Optional[WorkflowFileHandler] = None


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging with both console and workflow file output.

    Call this once at application startup.
    """
    global _workflow_file_handler

    ensure_log_dirs()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    if _workflow_file_handler is not None:
        _workflow_file_handler.close()
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter("%(levelname)-7s | %(name)s - %(message)s")
    )
    root_logger.addHandler(console_handler)

    _workflow_file_handler = WorkflowFileHandler()
    _workflow_file_handler.setLevel(level)
    root_logger.addHandler(_workflow_file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("tzlocal").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.info(f"Logging initialized. Logs dir: {_logs_dir()}")


def close_workflow_log(workflow_id: str) -> None:
    """Release the open log file of a deleted workflow. The file itself is kept."""
    if _workflow_file_handler is not None:
        _workflow_file_handler.close_workflow(workflow_id)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def read_workflow_logs(
    workflow_id: str,
    tail: Optional[int] = None,
    level: Optional[str] = None
) -> list[str]:
    """Read logs for a specific workflow."""
    log_file = _workflow_logs_dir() / f"{workflow_id}.log"
    if not log_file.exists():
        return []

    lines = log_file.read_text(encoding="utf-8").splitlines()

    if level:
        level_upper = level.upper()
        lines = [l for l in lines if f"| {level_upper}" in l]

    if tail and tail > 0:
        lines = lines[-tail:]

    return lines


def read_server_logs(tail: Optional[int] = 100) -> list[str]:
    """Read the global server log."""
    log_file = _logs_dir() / "server.log"
    if not log_file.exists():
        return []

    lines = log_file.read_text(encoding="utf-8").splitlines()

    if tail and tail > 0:
        lines = lines[-tail:]

    return lines
