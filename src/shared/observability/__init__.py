"""Observability: structured logging."""

from shared.observability.logger import bind_context, clear_context, configure_logging, get_logger

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
]
