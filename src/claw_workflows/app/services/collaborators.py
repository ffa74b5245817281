"""Side-effect collaborators invoked by workflow actions.

The engine only dispatches; delivery belongs to these injected capabilities.
The logging implementations are the defaults and return the payloads the
dashboard expects. ``SubprocessCommandRunner`` and ``GatewayAgentOrchestrator``
are opt-in via configuration.
"""

import asyncio
import shlex
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from claw_workflows.app import config
from claw_workflows.app.models.workflow import MessageChannel, NotifyPriority
from claw_workflows.app.services.logging_service import get_logger

logger = get_logger(__name__)

# Cap on captured command output returned in an action result
MAX_COMMAND_OUTPUT_CHARS = 4000


@dataclass
class Notification:
    title: str
    message: str
    priority: NotifyPriority = NotifyPriority.NORMAL


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> Any: ...


class MessageSink(Protocol):
    async def send(self, channel: MessageChannel, message: str, recipient: str | None = None) -> Any: ...


class AgentOrchestrator(Protocol):
    async def spawn_agent(
        self, agent_type: str, prompt: str, model: str | None = None, max_turns: int | None = None
    ) -> Any: ...

    async def pause_agent(self, agent_id: str | None = None, all_agents: bool = False) -> Any: ...


class CommandRunner(Protocol):
    async def run_command(self, command: str, timeout: float | None = None) -> Any: ...


# ---------------------------------------------------------------------------
# Logging defaults
# ---------------------------------------------------------------------------

class LoggingNotificationSink:
    """Logs the notification; the dashboard notification center polls run output."""

    async def deliver(self, notification: Notification) -> dict:
        logger.info(f"[notify:{notification.priority.value}] {notification.title} - {notification.message}")
        return {"sent": True, "title": notification.title}


class LoggingMessageSink:
    async def send(self, channel: MessageChannel, message: str, recipient: str | None = None) -> dict:
        target = f"{channel.value}:{recipient}" if recipient else channel.value
        logger.info(f"Message to {target}: {message[:200]}")
        return {"sent": True, "channel": channel.value}


class LoggingAgentOrchestrator:
    async def spawn_agent(
        self, agent_type: str, prompt: str, model: str | None = None, max_turns: int | None = None
    ) -> dict:
        logger.info(f"Spawning agent: {agent_type} model={model} max_turns={max_turns}")
        return {"spawned": True, "agent_type": agent_type}

    async def pause_agent(self, agent_id: str | None = None, all_agents: bool = False) -> dict:
        logger.info(f"Pausing agent: {agent_id or 'all'}")
        return {"paused": True, "agent_id": agent_id}


class LoggingCommandRunner:
    """Records the command without executing it."""

    async def run_command(self, command: str, timeout: float | None = None) -> dict:
        logger.info(f"Would run command: {command}")
        return {"executed": True, "command": command}


# ---------------------------------------------------------------------------
# Real implementations
# ---------------------------------------------------------------------------

class SubprocessCommandRunner:
    """Runs an already-filtered command without a shell.

    The command is tokenized with ``shlex`` and exec'd directly, so shell
    metacharacters the safety filter might miss are never interpreted.
    """

    def __init__(self, cwd: str | None = None, default_timeout: float = 60) -> None:
        self._cwd = cwd
        self._default_timeout = default_timeout

    async def run_command(self, command: str, timeout: float | None = None) -> dict:
        argv = shlex.split(command)
        if not argv:
            raise ValueError("Empty command")

        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=timeout or self._default_timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RuntimeError(f"Command timed out after {timeout or self._default_timeout}s")

        out = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise RuntimeError(f"Command exited with code {proc.returncode}: {err[:500]}")

        logger.info(f"Command finished: {argv[0]} ({len(out)} bytes)")
        return {
            "executed": True,
            "command": command,
            "exit_code": proc.returncode,
            "stdout": out[:MAX_COMMAND_OUTPUT_CHARS],
        }


class GatewayAgentOrchestrator:
    """Spawns and pauses agents through the OpenClaw gateway HTTP API."""

    def __init__(self, base_url: str, timeout: float = config.GATEWAY_TIMEOUT_SECONDS,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict) -> dict:
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post(path, json=payload)
            resp.raise_for_status()
            return resp.json()

    async def spawn_agent(
        self, agent_type: str, prompt: str, model: str | None = None, max_turns: int | None = None
    ) -> dict:
        payload: dict[str, Any] = {"templateId": agent_type, "task": prompt}
        if model:
            payload["model"] = model
        if max_turns is not None:
            payload["maxTurns"] = max_turns
        data = await self._post("/api/agents/spawn", payload)
        return {"spawned": True, "agent_type": agent_type, "response": data}

    async def pause_agent(self, agent_id: str | None = None, all_agents: bool = False) -> dict:
        payload: dict[str, Any] = {"action": "pause"}
        if agent_id and not all_agents:
            payload["sessionKey"] = agent_id
        data = await self._post("/api/intervene", payload)
        return {"paused": True, "agent_id": agent_id, "response": data}


@dataclass
class Collaborators:
    """The set of sinks an engine dispatches to."""
    notifications: NotificationSink = field(default_factory=LoggingNotificationSink)
    messages: MessageSink = field(default_factory=LoggingMessageSink)
    agents: AgentOrchestrator = field(default_factory=LoggingAgentOrchestrator)
    commands: CommandRunner = field(default_factory=LoggingCommandRunner)


def default_collaborators() -> Collaborators:
    """Build collaborators from configuration."""
    collaborators = Collaborators()
    if config.COMMAND_RUNNER == "subprocess":
        collaborators.commands = SubprocessCommandRunner()
    if config.GATEWAY_URL:
        collaborators.agents = GatewayAgentOrchestrator(config.GATEWAY_URL)
    return collaborators
