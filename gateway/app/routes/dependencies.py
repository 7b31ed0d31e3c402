"""Session dependencies shared by the API routers."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import Cookie

from ... import app_context

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


def current_admin(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_admin(session_token=session_token)


__all__ = ["current_admin", "current_user"]
