"""
Habit Tracker — centralised router registration.

This module is the single place where every APIRouter is mounted onto the
FastAPI application.  Call ``register_routes(app)`` once from
``habit_tracker.app.create_app``.

  GET  /health        — liveness endpoint
  /api/auth/*         — habit_tracker.routers.auth
  /api/habits/*       — habit_tracker.routers.habits
  /api/friends/*      — habit_tracker.routers.friends
  /api/music/*        — habit_tracker.routers.music
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, FastAPI

from habit_tracker.api.schemas import HealthResponse
from habit_tracker.routers import auth, friends, habits, music

# Prefixes are disjoint, so registration order between groups is irrelevant.
ROUTE_MOUNTS: Dict[str, APIRouter] = {
    "/api/auth": auth.router,
    "/api/habits": habits.router,
    "/api/friends": friends.router,
    "/api/music": music.router,
}


system_router = APIRouter(tags=["system"])


@system_router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness endpoint; does not touch the database."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


def register_routes(app: FastAPI) -> None:
    """Mount the health endpoint and every route group onto ``app``."""
    app.include_router(system_router)
    for prefix, router in ROUTE_MOUNTS.items():
        app.include_router(router, prefix=prefix)
