"""Shared route dependencies for authentication and role checks."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import Cookie, Depends

from ..payments.errors import Forbidden

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover - helper for lazy import
    try:
        from portal.main import get_current_user as resolved
    except ModuleNotFoundError as exc:
        if exc.name != "portal":
            raise
        from ...main import get_current_user as resolved  # type: ignore[no-redef]
    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    resolved = _get_current_user_callable()
    return resolved(session_token=session_token)


def ensure_role(user: Any, role: str) -> None:
    if getattr(user, "role", None) != role:
        raise Forbidden(f"Only {role}s can perform this action")


def require_role(role: str) -> Callable[..., Any]:
    """Dependency factory accepting only users with ``role``."""

    def _dependency(current_user=Depends(get_current_user)) -> Any:
        ensure_role(current_user, role)
        return current_user

    return _dependency


require_lawyer = require_role("lawyer")
require_client = require_role("client")


__all__ = ["ensure_role", "get_current_user", "require_client", "require_lawyer", "require_role"]
