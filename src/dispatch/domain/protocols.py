"""
Dispatch Protocols
Defines the collaborator interfaces the application layer depends on.
"""
from abc import abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, Protocol

from dispatch.domain.entities import ClinicCredentials, DeliveryReceipt, RenderedMessage

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]


class DeliveryGateway(Protocol):
    """Outbound messaging provider boundary (stateless, never retries)."""

    @abstractmethod
    async def send(
        self,
        credentials: ClinicCredentials,
        to: str,
        message: RenderedMessage,
    ) -> DeliveryReceipt:
        """Send one message; raise DeliveryError on any non-2xx or transport failure."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        ...
