"""
Auth Endpoints for the Habit Tracker backend

POST /api/auth/register  - create an account and start a session
POST /api/auth/login     - start a session with username/email + password
POST /api/auth/logout    - clear the session cookie
GET  /api/auth/me        - the logged-in user
PUT  /api/auth/avatar    - upload an avatar image (raw request body)
"""

import asyncio
import logging
import os
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from habit_tracker.api.body import validated
from habit_tracker.api.deps import get_settings
from habit_tracker.api.schemas import (
    AuthResponse, LoginRequest, RegisterRequest, UserResponse,
)
from habit_tracker.auth import (
    COOKIE_NAME, create_token, get_current_user_id, hash_password, verify_password,
)
from habit_tracker.config import Settings
from habit_tracker.database import (
    User, get_db, get_user, get_user_by_login, get_user_by_username,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

AVATAR_URL_PREFIX = "/uploads/avatars/"

AVATAR_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def user_to_response(user: User, include_email: bool = True) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email if include_email else None,
        avatar_url=user.avatar_url,
        created_at=user.created_at,
    )


def _session_response(user: UserResponse, settings: Settings, status_code: int = 200) -> JSONResponse:
    token = create_token(user.id, user.username, settings.auth_secret, settings.session_ttl_seconds)
    body = AuthResponse(user=user, token=token)
    response = JSONResponse(body.model_dump(mode="json"), status_code=status_code)
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    return response


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest = Depends(validated(RegisterRequest)),
    settings: Settings = Depends(get_settings),
):
    """Create a new account and log it in."""
    def _sync():
        db = get_db()
        try:
            if get_user_by_username(db, body.username) is not None:
                raise HTTPException(status_code=409, detail="Username already taken")
            if db.query(User).filter(User.email == body.email).first() is not None:
                raise HTTPException(status_code=409, detail="Email already registered")
            user = User(
                username=body.username,
                email=body.email,
                password_hash=hash_password(body.password),
            )
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise HTTPException(status_code=409, detail="Account already exists")
            db.refresh(user)
            return user_to_response(user)
        finally:
            db.close()

    user = await asyncio.to_thread(_sync)
    logger.info("User registered: %s (%s)", user.username, user.id)
    return _session_response(user, settings, status_code=201)


@router.post("/login")
async def login(
    body: LoginRequest = Depends(validated(LoginRequest)),
    settings: Settings = Depends(get_settings),
):
    """Verify credentials and issue a session token."""
    def _sync():
        db = get_db()
        try:
            user = get_user_by_login(db, body.login.strip())
            if user is None or not verify_password(body.password, user.password_hash):
                return None
            return user_to_response(user)
        finally:
            db.close()

    user = await asyncio.to_thread(_sync)
    if user is None:
        logger.info("Failed login for %s", body.login)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    logger.info("User logged in: %s (%s)", user.username, user.id)
    return _session_response(user, settings)


@router.post("/logout")
async def logout():
    """Clear the session cookie."""
    response = JSONResponse({"status": "logged_out"})
    response.delete_cookie(COOKIE_NAME)
    return response


@router.get("/me", response_model=UserResponse)
async def me(user_id: int = Depends(get_current_user_id)):
    """Return the current logged-in user, or 401 if not authenticated."""
    def _sync():
        db = get_db()
        try:
            user = get_user(db, user_id)
            return user_to_response(user) if user else None
        finally:
            db.close()

    user = await asyncio.to_thread(_sync)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


@router.put("/avatar", response_model=UserResponse)
async def upload_avatar(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """Store the raw image body as the user's avatar under the uploads root."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    ext = AVATAR_TYPES.get(content_type)
    if ext is None:
        raise HTTPException(status_code=415, detail="Avatar must be a PNG, JPEG, GIF or WebP image")

    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Avatar too large")

    filename = f"{user_id}-{secrets.token_hex(8)}{ext}"
    avatar_dir = os.path.join(settings.upload_dir, "avatars")

    def _sync():
        db = get_db()
        try:
            user = get_user(db, user_id)
            if user is None:
                raise HTTPException(status_code=401, detail="Not authenticated")

            os.makedirs(avatar_dir, exist_ok=True)
            with open(os.path.join(avatar_dir, filename), "wb") as fh:
                fh.write(data)

            previous = user.avatar_url
            user.avatar_url = f"{AVATAR_URL_PREFIX}{filename}"
            db.commit()
            db.refresh(user)
            response = user_to_response(user)
        finally:
            db.close()

        if previous and previous.startswith(AVATAR_URL_PREFIX):
            old_path = os.path.join(avatar_dir, os.path.basename(previous))
            try:
                os.remove(old_path)
            except FileNotFoundError:
                logger.warning("Previous avatar already gone: %s", old_path)
        return response

    return await asyncio.to_thread(_sync)
