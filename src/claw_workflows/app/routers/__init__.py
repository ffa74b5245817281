"""API routers."""

from . import audit, events, logs, workflows

__all__ = ["audit", "events", "logs", "workflows"]
