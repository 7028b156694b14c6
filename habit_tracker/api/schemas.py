"""
Habit Tracker — API request/response schemas (Pydantic).

Request bodies are validated through ``habit_tracker.api.body.validated``;
response models keep a stable contract with the frontend.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_]+$")
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, sep, domain = v.partition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("invalid email address")
        return v


class LoginRequest(BaseModel):
    login: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class UserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


# ---------------------------------------------------------------------------
# Habits
# ---------------------------------------------------------------------------

_FREQUENCY = r"^(daily|weekly)$"
_COLOR = r"^#[0-9A-Fa-f]{6}$"


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    frequency: str = Field(default="daily", pattern=_FREQUENCY)
    color: Optional[str] = Field(default=None, pattern=_COLOR)


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    frequency: Optional[str] = Field(default=None, pattern=_FREQUENCY)
    color: Optional[str] = Field(default=None, pattern=_COLOR)


class HabitResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    frequency: str
    color: Optional[str] = None
    created_at: datetime
    streak: int = 0
    completed_today: bool = False


class HabitLogsResponse(BaseModel):
    habit_id: int
    dates: List[date]
    total: int


# ---------------------------------------------------------------------------
# Friends
# ---------------------------------------------------------------------------

class FriendRequestCreate(BaseModel):
    username: str = Field(min_length=1, max_length=32)


class FriendResponse(BaseModel):
    id: int
    username: str
    avatar_url: Optional[str] = None
    online: bool = False


class FriendRequestResponse(BaseModel):
    id: int
    status: str
    created_at: datetime
    requester: FriendResponse
    addressee: FriendResponse


# ---------------------------------------------------------------------------
# Music
# ---------------------------------------------------------------------------

class TrackResponse(BaseModel):
    id: str
    title: str
    filename: str
    url: str
    size_bytes: int


class TrackListResponse(BaseModel):
    tracks: List[TrackResponse]
    total: int
