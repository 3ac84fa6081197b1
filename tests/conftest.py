from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import pytest
from sqlalchemy import func, select

import dispatch.infrastructure.models  # noqa: F401  (registers tables)
from dispatch.container import DispatchContainer
from dispatch.domain.entities import ClinicCredentials, DeliveryReceipt, RenderedMessage
from dispatch.domain.exceptions import DeliveryError
from dispatch.infrastructure.models import (
    AppointmentModel,
    CampaignModel,
    ClinicSettingsModel,
    PatientModel,
    PatientTagModel,
    ServiceModel,
    TagModel,
)
from shared.config import Settings
from shared.database.session import DatabaseSessionFactory

# Tuesday 09:00 in America/Mexico_City (UTC-6)
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


def frozen_clock() -> datetime:
    return NOW


class FakeGateway:
    """Records sends; misbehaves for chosen destinations."""

    def __init__(
        self,
        fail_for: Iterable[str] = (),
        crash_for: Iterable[str] = (),
        interrupt_for: Iterable[str] = (),
    ):
        self.sent: list[tuple[ClinicCredentials, str, RenderedMessage]] = []
        self.attempts: list[str] = []
        self.fail_for = set(fail_for)
        self.crash_for = set(crash_for)
        self.interrupt_for = set(interrupt_for)
        self.closed = False

    async def send(self, credentials: ClinicCredentials, to: str, message: RenderedMessage) -> DeliveryReceipt:
        self.attempts.append(to)
        if to in self.crash_for:
            raise RuntimeError("provider client crashed")
        if to in self.interrupt_for:
            raise asyncio.CancelledError()
        if to in self.fail_for:
            raise DeliveryError("131026", "Message undeliverable", status_code=400)
        self.sent.append((credentials, to, message))
        return DeliveryReceipt(message_id=f"wamid.{len(self.sent)}")

    async def aclose(self) -> None:
        self.closed = True

    @property
    def destinations(self) -> list[str]:
        return [to for _, to, _ in self.sent]


class Seeder:
    """Inserts fixture rows, one committed session per call."""

    _phones = itertools.count(1)

    def __init__(self, database: DatabaseSessionFactory):
        self.database = database

    async def add(self, *objs: Any) -> Any:
        async with self.database.session_factory() as session:
            session.add_all(objs)
            await session.commit()
        return objs[0] if len(objs) == 1 else objs

    @classmethod
    def phone(cls) -> str:
        return f"+52155{next(cls._phones):08d}"

    async def clinic(self, **kw: Any) -> ClinicSettingsModel:
        values = dict(
            clinic_name="Clínica Sonrisa",
            timezone="America/Mexico_City",
            ycloud_api_key="test-api-key",
            ycloud_phone_number="+5215500000000",
            reminders_enabled=True,
            reminders_hours_before=24,
        )
        values.update(kw)
        return await self.add(ClinicSettingsModel(**values))

    async def service(self, clinic: ClinicSettingsModel, **kw: Any) -> ServiceModel:
        values = dict(clinic_id=clinic.id, name="Limpieza dental")
        values.update(kw)
        return await self.add(ServiceModel(**values))

    async def patient(self, clinic: ClinicSettingsModel, **kw: Any) -> PatientModel:
        values = dict(clinic_id=clinic.id, full_name="Ana López", phone_number=self.phone())
        values.update(kw)
        return await self.add(PatientModel(**values))

    async def tag(self, clinic: ClinicSettingsModel, name: str, patients: Iterable[PatientModel] = ()) -> TagModel:
        tag = await self.add(TagModel(clinic_id=clinic.id, name=name, color="#00aa00"))
        links = [PatientTagModel(patient_id=p.id, tag_id=tag.id) for p in patients]
        if links:
            await self.add(*links)
        return tag

    async def appointment(self, clinic: ClinicSettingsModel, at: datetime, **kw: Any) -> AppointmentModel:
        values = dict(
            clinic_id=clinic.id,
            patient_name="Ana López",
            phone_number=self.phone(),
            appointment_date=at,
            status="pending",
        )
        values.update(kw)
        return await self.add(AppointmentModel(**values))

    async def campaign(self, clinic: ClinicSettingsModel, **kw: Any) -> CampaignModel:
        values = dict(clinic_id=clinic.id, name="Promo Marzo", template_name="promo_marzo", status="draft")
        values.update(kw)
        return await self.add(CampaignModel(**values))

    async def get(self, model: type, ident: Any) -> Any:
        async with self.database.session_factory() as session:
            return await session.get(model, ident)

    async def count(self, model: type, *where: Any) -> int:
        async with self.database.session_factory() as session:
            stmt = select(func.count()).select_from(model)
            if where:
                stmt = stmt.where(*where)
            return int((await session.execute(stmt)).scalar_one())

    async def all(self, model: type, *where: Any) -> list:
        async with self.database.session_factory() as session:
            stmt = select(model)
            if where:
                stmt = stmt.where(*where)
            return list((await session.execute(stmt)).scalars().all())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        send_delay_seconds=0.0,
        log_json=False,
    )


@pytest.fixture
async def database(settings: Settings):
    db = DatabaseSessionFactory(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def seed(database: DatabaseSessionFactory) -> Seeder:
    return Seeder(database)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def container(settings: Settings, database: DatabaseSessionFactory, gateway: FakeGateway) -> DispatchContainer:
    return DispatchContainer(settings=settings, database=database, gateway=gateway, clock=frozen_clock)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_container(settings: Settings, database: DatabaseSessionFactory):
    """Container over the test database with its own gateway (and optional settings/sleep)."""

    def _make(gateway: FakeGateway, settings_override: Optional[Settings] = None, sleep: Optional[Any] = None):
        return DispatchContainer(
            settings=settings_override or settings,
            database=database,
            gateway=gateway,
            clock=frozen_clock,
            sleep=sleep,
        )

    return _make
