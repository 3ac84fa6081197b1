"""
API Dependencies
Routes resolve the DispatchContainer from app.state and build a fresh
runner per request from it.
"""
from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, Request

from dispatch.container import DispatchContainer
from shared.api.error_handlers import UnauthorizedException


def get_container(request: Request) -> DispatchContainer:
    return request.app.state.container


async def verify_trigger_secret(
    request: Request,
    x_trigger_secret: Optional[str] = Header(default=None),
) -> None:
    """Reject trigger calls without the shared secret, when one is configured."""
    expected = get_container(request).settings.trigger_secret
    if not expected:
        return
    if not x_trigger_secret or not hmac.compare_digest(x_trigger_secret, expected):
        raise UnauthorizedException()
