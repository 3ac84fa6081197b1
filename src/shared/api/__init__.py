"""API utilities: router factory and the error envelope."""

from shared.api.base_router import create_api_router
from shared.api.error_handlers import (
    APIException,
    ConflictException,
    ErrorCode,
    NotFoundException,
    UnauthorizedException,
    UpstreamException,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    "APIException",
    "ConflictException",
    "ErrorCode",
    "NotFoundException",
    "UnauthorizedException",
    "UpstreamException",
    "ValidationException",
    "create_api_router",
    "register_exception_handlers",
]
