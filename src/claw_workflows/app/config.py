"""Configuration and constants."""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Base storage directory
APP_HOME = Path(os.environ.get("CLAW_WORKFLOWS_HOME", Path.home() / ".claw-workflows"))

# Sub-directories
WORKFLOWS_DIR = APP_HOME / "workflows"
LOGS_DIR = APP_HOME / "logs"

# Workflow storage backend: "memory" (default) or "json"
STORAGE_BACKEND = os.environ.get("CLAW_WORKFLOWS_STORAGE", "memory").lower()

# Insert the disabled sample workflow when the store starts empty
SEED_SAMPLE_WORKFLOW = _env_flag("CLAW_WORKFLOWS_SEED_SAMPLE", True)

# Workflow shape limits
MAX_ACTIONS_PER_WORKFLOW = 10
RUN_HISTORY_LIMIT = 50
DEFAULT_RUNS_PAGE_SIZE = 20
AUDIT_LOG_LIMIT = 1000
DEFAULT_AUDIT_PAGE_SIZE = 100

# Fixed-window rate limiting, per workflow
RATE_LIMIT_WINDOW_SECONDS = _env_int("CLAW_WORKFLOWS_RATE_LIMIT_WINDOW", 60)
RATE_LIMIT_MAX = _env_int("CLAW_WORKFLOWS_RATE_LIMIT_MAX", 10)
RATE_LIMIT_CLEANUP_INTERVAL_SECONDS = 5 * 60
# Gate scheduled and event-triggered runs with the same limiter as "run now"
RATE_LIMIT_AUTOMATIC_RUNS = _env_flag("CLAW_WORKFLOWS_RATE_LIMIT_AUTOMATIC", True)

# Upper bound (seconds) for a single action dispatch
ACTION_TIMEOUT_SECONDS = _env_int("CLAW_WORKFLOWS_ACTION_TIMEOUT", 300)

# Collaborators: "log" (default) or "subprocess" for run_command
COMMAND_RUNNER = os.environ.get("CLAW_WORKFLOWS_COMMAND_RUNNER", "log").lower()
# When set, spawn/pause requests go to the OpenClaw gateway over HTTP
GATEWAY_URL = os.environ.get("CLAW_WORKFLOWS_GATEWAY_URL", "")
GATEWAY_TIMEOUT_SECONDS = 30

# Bearer token for non-localhost API access (generated at startup if unset)
API_TOKEN = os.environ.get("CLAW_WORKFLOWS_API_TOKEN", "")

# API settings
API_PREFIX = "/api"


def ensure_directories() -> None:
    """Create required directories if they don't exist."""
    for directory in [APP_HOME, WORKFLOWS_DIR, LOGS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
