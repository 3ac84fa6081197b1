"""
Base FastAPI Router
Common router setup and utilities
"""
from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter

from shared.observability.logger import get_logger

logger = get_logger(__name__)


def create_api_router(
    prefix: str,
    tags: Sequence[str],
    include_in_schema: bool = True,
) -> APIRouter:
    """
    Create a configured FastAPI router.

    Example:
        router = create_api_router(prefix="/triggers", tags=["Triggers"])
    """
    router = APIRouter(
        prefix=prefix,
        tags=list(tags),
        include_in_schema=include_in_schema,
    )
    logger.debug("api_router_created", prefix=prefix, tags=list(tags))
    return router
