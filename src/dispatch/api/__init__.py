"""Dispatch HTTP surface."""

from dispatch.api.routes import dispatch_exception_handler, health_router, router

__all__ = ["dispatch_exception_handler", "health_router", "router"]
