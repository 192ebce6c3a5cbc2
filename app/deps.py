"""Shared FastAPI dependencies."""

from fastapi import Request

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError
from app.core.security import is_valid_internal_token
from app.services.postbacks import PostbackDispatcher
from app.store.base import PostbackStore


def get_store(request: Request) -> PostbackStore:
    """Dependency: process-wide store built at startup."""
    return request.app.state.store


def get_dispatcher(request: Request) -> PostbackDispatcher:
    return request.app.state.dispatcher


async def require_internal_token(request: Request) -> None:
    """Dependency: X-Internal-Token must match INTERNAL_API_TOKEN (unset token locks the route)."""
    settings = getattr(request.app.state, "settings", None) or get_settings()
    if not is_valid_internal_token(settings.internal_api_token, request.headers.get("X-Internal-Token")):
        raise ForbiddenError("Internal token required")
