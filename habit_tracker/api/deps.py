"""Shared FastAPI dependencies for the route groups."""

from fastapi import Request

from habit_tracker.config import Settings
from habit_tracker.realtime import RealtimeGateway


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> RealtimeGateway:
    """The gateway instance attached to the application at startup."""
    return request.app.state.gateway
