"""
Dispatch Container
Process-wide collaborators (settings, database, gateway), constructed
explicitly and handed to the HTTP app and the workers. Runners are built
fresh from it per run.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dispatch.application.runners import ManualDispatcher, TriggerRunner, build_runner
from dispatch.domain.protocols import Clock, DeliveryGateway, Sleeper
from dispatch.domain.value_objects import TriggerKind
from dispatch.infrastructure.ycloud_gateway import YCloudGateway
from shared.config import Settings
from shared.database.session import DatabaseSessionFactory


@dataclass
class DispatchContainer:
    settings: Settings
    database: DatabaseSessionFactory
    gateway: DeliveryGateway
    clock: Optional[Clock] = None
    sleep: Optional[Sleeper] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DispatchContainer":
        database = DatabaseSessionFactory(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        gateway = YCloudGateway(
            base_url=settings.ycloud_api_base_url,
            timeout=settings.provider_timeout_seconds,
        )
        return cls(settings=settings, database=database, gateway=gateway)

    def runner(self, kind: TriggerKind) -> TriggerRunner:
        return build_runner(
            kind,
            self.database.session_factory,
            self.gateway,
            self.settings,
            clock=self.clock,
            sleep=self.sleep,
        )

    def manual(self) -> ManualDispatcher:
        return ManualDispatcher(
            self.database.session_factory,
            self.gateway,
            self.settings,
            clock=self.clock,
        )

    async def aclose(self) -> None:
        await self.gateway.aclose()
        await self.database.dispose()
