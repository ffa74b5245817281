"""Workflow storage backends.

The workflow service talks to storage through the small ``WorkflowStorage``
port so the engine logic does not care where definitions live:

  InMemoryWorkflowStorage  - process-local dict (default)
  JsonFileWorkflowStorage  - one JSON file per workflow in ~/.claw-workflows/workflows/
"""

import json
import threading
from pathlib import Path
from typing import Protocol

from claw_workflows.app import config
from claw_workflows.app.models.workflow import Workflow
from claw_workflows.app.services.logging_service import get_logger

logger = get_logger(__name__)


class WorkflowStorage(Protocol):
    """Key-value persistence for workflow definitions, keyed by workflow ID."""

    def get(self, workflow_id: str) -> Workflow | None: ...

    def put(self, workflow: Workflow) -> None: ...

    def delete(self, workflow_id: str) -> bool: ...

    def list(self) -> list[Workflow]: ...


class InMemoryWorkflowStorage:
    """Dict-backed storage. Returns copies so callers cannot mutate stored records."""

    def __init__(self) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._lock = threading.RLock()

    def get(self, workflow_id: str) -> Workflow | None:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    def put(self, workflow: Workflow) -> None:
        with self._lock:
            self._workflows[workflow.id] = workflow.model_copy(deep=True)

    def delete(self, workflow_id: str) -> bool:
        with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    def list(self) -> list[Workflow]:
        with self._lock:
            return [w.model_copy(deep=True) for w in self._workflows.values()]


class JsonFileWorkflowStorage:
    """Stores each workflow as ``{id}.json`` under a directory."""

    def __init__(self, directory: Path | None = None) -> None:
        self._dir = directory or config.WORKFLOWS_DIR
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _workflow_file(self, workflow_id: str) -> Path:
        return self._dir / f"{workflow_id}.json"

    def _load_file(self, f: Path) -> Workflow | None:
        try:
            data = json.loads(f.read_text(encoding="utf-8"))
            return Workflow(**data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning(f"Skipping unreadable workflow file {f.name}: {e}")
            return None

    def get(self, workflow_id: str) -> Workflow | None:
        f = self._workflow_file(workflow_id)
        with self._lock:
            if not f.exists():
                return None
            return self._load_file(f)

    def put(self, workflow: Workflow) -> None:
        with self._lock:
            self._workflow_file(workflow.id).write_text(
                workflow.model_dump_json(indent=2), encoding="utf-8"
            )

    def delete(self, workflow_id: str) -> bool:
        f = self._workflow_file(workflow_id)
        with self._lock:
            if not f.exists():
                return False
            f.unlink()
            return True

    def list(self) -> list[Workflow]:
        workflows = []
        with self._lock:
            for f in sorted(self._dir.glob("*.json")):
                workflow = self._load_file(f)
                if workflow:
                    workflows.append(workflow)
        return workflows


def create_storage(backend: str | None = None) -> WorkflowStorage:
    """Build the storage backend named by ``CLAW_WORKFLOWS_STORAGE``."""
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend == "json":
        return JsonFileWorkflowStorage()
    if backend != "memory":
        logger.warning(f"Unknown storage backend '{backend}', using in-memory storage")
    return InMemoryWorkflowStorage()
