from __future__ import annotations

"""Correlation token handling shared by the upload and WebSocket routes.

The token lives in an HttpOnly cookie so the browser replays it on the
WebSocket upgrade without any client-side code.
"""

import re
import uuid
from typing import Optional

from fastapi import Request, Response, WebSocket

from ..config import Settings

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def _valid(token: Optional[str]) -> Optional[str]:
    if token and _TOKEN_RE.match(token):
        return token
    return None


def read_token(request: Request, settings: Settings) -> Optional[str]:
    return _valid(request.cookies.get(settings.session_cookie))


def ensure_token(request: Request, response: Response, settings: Settings) -> str:
    """Return the caller's token, issuing a fresh cookie on first contact."""
    token = read_token(request, settings)
    if token:
        return token
    token = uuid.uuid4().hex
    response.set_cookie(
        settings.session_cookie,
        token,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return token


def websocket_token(websocket: WebSocket, settings: Settings) -> Optional[str]:
    return _valid(websocket.cookies.get(settings.session_cookie))
