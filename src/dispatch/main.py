"""
Application factory for the dispatch trigger service.

Run with:
    uvicorn dispatch.main:create_app --factory
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from dispatch import __version__
from dispatch.api import dispatch_exception_handler, health_router, router
from dispatch.container import DispatchContainer
from dispatch.domain.exceptions import DispatchError
from shared.api.error_handlers import register_exception_handlers
from shared.config import get_settings
from shared.observability.logger import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(container: Optional[DispatchContainer] = None) -> FastAPI:
    """
    Build the FastAPI app.

    When no container is injected, one is built from environment settings
    at startup and disposed at shutdown; an injected container is owned by
    the caller.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: Optional[DispatchContainer] = None
        if getattr(app.state, "container", None) is None:
            settings = get_settings()
            configure_logging(settings.log_level, settings.log_json)
            owned = DispatchContainer.from_settings(settings)
            app.state.container = owned
        logger.info("dispatch_service_started", version=__version__)
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()
                app.state.container = None
            logger.info("dispatch_service_stopped")

    app = FastAPI(
        title="Clinic Notification Dispatch",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container

    app.include_router(router)
    app.include_router(health_router)

    register_exception_handlers(app)
    app.add_exception_handler(DispatchError, dispatch_exception_handler)  # type: ignore[arg-type]

    return app
