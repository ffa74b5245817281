"""FastAPI application entry point."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claw_workflows import __version__
from claw_workflows.app.config import API_PREFIX, SEED_SAMPLE_WORKFLOW, ensure_directories
from claw_workflows.app.middleware.auth import TokenAuthMiddleware
from claw_workflows.app.routers import audit, events, logs, workflows
from claw_workflows.app.services.logging_service import get_logger, setup_logging
from claw_workflows.app.services.scheduler_service import SchedulerService
from claw_workflows.app.services.trigger_service import trigger_service
from claw_workflows.app.services.workflow_service import workflow_service

setup_logging(level=logging.DEBUG if os.environ.get("CLAW_WORKFLOWS_DEBUG") == "1" else logging.INFO)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Claw Workflows...")
    ensure_directories()
    if SEED_SAMPLE_WORKFLOW:
        workflow_service.seed_defaults()
    scheduler = SchedulerService(trigger_service)
    scheduler.start()
    # Store on app state for access from routers
    app.state.scheduler = scheduler
    logger.info("Claw Workflows started successfully")
    yield
    logger.info("Shutting down Claw Workflows...")
    scheduler.shutdown()


app = FastAPI(
    title="Claw Workflows API",
    description="Workflow automation engine for the OpenClaw desktop - triggers, actions, runs and audit trail",
    version=__version__,
    lifespan=lifespan,
)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if os.environ.get("CLAW_WORKFLOWS_EXPOSE") == "1":
    # Any origin; TokenAuthMiddleware guards /api/*
    _cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(TokenAuthMiddleware)

app.include_router(workflows.router, prefix=API_PREFIX)
app.include_router(audit.router, prefix=API_PREFIX)
app.include_router(events.router, prefix=API_PREFIX)
app.include_router(logs.router, prefix=API_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
