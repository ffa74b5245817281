from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


# Ensure src/ is on sys.path so `import claw_workflows` works without installation.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


@contextmanager
def build_client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, bypass_auth: bool = True, **env: str):
    """Start the app against a throwaway home directory.

    Extra keyword arguments are set as environment variables before the app
    is imported, so module-level configuration picks them up.
    """
    app_home = tmp_path / "claw-workflows-home"
    user_home = tmp_path / "user-home"
    app_home.mkdir(parents=True, exist_ok=True)
    user_home.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("CLAW_WORKFLOWS_HOME", str(app_home))
    monkeypatch.setenv("HOME", str(user_home))
    monkeypatch.setenv("USERPROFILE", str(user_home))
    monkeypatch.setenv("CLAW_WORKFLOWS_SEED_SAMPLE", "0")
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    # Force a clean import so module-level constants and singletons pick up the env vars above.
    for mod in list(sys.modules):
        if mod.startswith("claw_workflows.app"):
            sys.modules.pop(mod, None)

    if bypass_auth:
        # TestClient's request.client.host is "testclient", not localhost
        import claw_workflows.app.middleware.auth as auth_module
        monkeypatch.setattr(auth_module, "_is_localhost", lambda request: True)

    from claw_workflows.app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    with build_client(monkeypatch, tmp_path) as test_client:
        yield test_client
