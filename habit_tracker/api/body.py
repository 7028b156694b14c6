"""
Request body parsing for the route groups.

JSON and URL-encoded bodies are decoded into a plain dict by
``body_parse_middleware`` before any route runs, then validated against a
pydantic model by the route that asks for it.  A body that cannot be
decoded at all is a pipeline failure (``BodyParseError``) and is left to
the application's generic error handler; a decoded body that fails
validation is a client error (400).
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Type, TypeVar
from urllib.parse import parse_qsl

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class BodyParseError(Exception):
    """The request body could not be decoded for its declared content type."""


def _content_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


def _is_json(content_type: str) -> bool:
    return content_type == "application/json" or content_type.endswith("+json")


async def read_payload(request: Request) -> Dict[str, Any]:
    """Decode the body by content type; an empty or non-form body yields ``{}``."""
    content_type = _content_type(request)
    if content_type != "application/x-www-form-urlencoded" and not _is_json(content_type):
        return {}

    raw = await request.body()
    if not raw:
        return {}

    if content_type == "application/x-www-form-urlencoded":
        try:
            return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True, strict_parsing=True))
        except (UnicodeDecodeError, ValueError) as exc:
            raise BodyParseError(f"malformed urlencoded body: {exc}") from exc

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise BodyParseError(f"malformed JSON body: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


async def body_parse_middleware(request: Request, call_next):
    """Decode the body before dispatch and keep it on ``request.state.payload``.

    ``BodyParseError`` propagates to the generic error handler, so a
    malformed body fails the request whether or not a route matches.
    """
    try:
        request.state.payload = await read_payload(request)
    except HTTPException as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return await call_next(request)


def validated(model: Type[ModelT]) -> Callable:
    """Build a dependency that validates the parsed body as ``model``."""

    async def _dependency(request: Request) -> ModelT:
        payload = getattr(request.state, "payload", None)
        if payload is None:
            payload = await read_payload(request)
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "Invalid request body",
                    "details": jsonable_encoder(
                        exc.errors(include_url=False, include_context=False, include_input=False)
                    ),
                },
            ) from exc

    return _dependency
