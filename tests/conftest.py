"""
Pytest configuration and shared fixtures.

Fixtures available to all tests:
  • settings        — Settings with an in-memory database and temp static roots
  • app             — application built from ``settings``
  • client          — TestClient with the lifespan running
  • register_user   — factory that signs up a user and returns auth headers
  • fresh_logging   — root logger emptied and the run-once guard cleared
"""

from __future__ import annotations

import os
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure the project root is on the path so all habit_tracker imports resolve.
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from habit_tracker.app import create_app  # noqa: E402
from habit_tracker.core import logging as logging_setup  # noqa: E402
from habit_tracker.config import Settings  # noqa: E402

FRONTEND = "http://localhost:5173"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        port=5055,
        frontend_url=FRONTEND,
        environment="test",
        database_url="sqlite://",
        upload_dir=str(tmp_path / "uploads"),
        music_dir=str(tmp_path / "music"),
        auth_secret="test-secret",
        max_upload_bytes=1024,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # raise_server_exceptions=False so the 500 handler's response is observable.
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def register_user(client):
    """Register a user and return ``(user, headers)`` for Bearer auth."""
    def _factory(username: str = "alice", password: str = "correct-horse"):
        resp = client.post(
            "/api/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"], {"Authorization": f"Bearer {body['token']}"}
    return _factory


@pytest.fixture
def fresh_logging(monkeypatch):
    """Let ``configure_logging`` run again against an empty root logger."""
    import logging

    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    return root
