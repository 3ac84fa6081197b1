from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from dispatch.domain.exceptions import AppointmentNotFoundError, DeliveryError, MissingCredentialsError
from dispatch.domain.value_objects import TriggerKind
from dispatch.infrastructure.models import AppointmentModel, MessageModel, SatisfactionSurveyModel

APPOINTMENT_AT = datetime(2026, 3, 11, 16, 0, tzinfo=timezone.utc)


async def test_manual_reminder_resends_after_scheduled_one(seed, container, gateway):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, APPOINTMENT_AT, service="Blanqueamiento")
    await container.runner(TriggerKind.REMINDER).run()

    summary = await container.manual().send_reminder(appointment.id)

    assert summary.sent == 1
    assert summary.details[0].message_id == "wamid.2"
    assert gateway.destinations == [appointment.phone_number, appointment.phone_number]
    _, _, message = gateway.sent[1]
    assert message.parameters[1] == "Blanqueamiento"
    contents = sorted(m.content for m in await seed.all(MessageModel))
    assert contents == [
        "Recordatorio automático enviado a Ana López",
        "Recordatorio enviado a Ana López",
    ]
    assert (await seed.get(AppointmentModel, appointment.id)).reminder_sent is True


async def test_manual_reminder_ignores_status_and_window(seed, container, gateway, now):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, now + timedelta(days=10), status="cancelled")

    summary = await container.manual().send_reminder(appointment.id)

    assert summary.sent == 1
    assert (await seed.get(AppointmentModel, appointment.id)).reminder_sent is True


async def test_manual_survey_creates_then_refreshes_row(seed, make_gateway, make_container, now):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, now - timedelta(hours=2), status="completed")
    gateway = make_gateway()
    manual = make_container(gateway).manual()

    await manual.send_survey(appointment.id)
    [created] = await seed.all(SatisfactionSurveyModel)
    assert created.whatsapp_message_id == "wamid.1"

    await manual.send_survey(appointment.id)
    [refreshed] = await seed.all(SatisfactionSurveyModel)
    assert refreshed.id == created.id
    assert refreshed.whatsapp_message_id == "wamid.2"

    contents = {m.content for m in await seed.all(MessageModel)}
    assert contents == {"Encuesta enviada a Ana López"}


async def test_manual_send_without_credentials_raises(seed, container, gateway):
    clinic = await seed.clinic(ycloud_api_key=None)
    appointment = await seed.appointment(clinic, APPOINTMENT_AT)

    with pytest.raises(MissingCredentialsError):
        await container.manual().send_reminder(appointment.id)

    assert gateway.attempts == []


async def test_manual_send_delivery_failure_raises(seed, make_gateway, make_container):
    clinic = await seed.clinic()
    appointment = await seed.appointment(clinic, APPOINTMENT_AT)
    gateway = make_gateway(fail_for=[appointment.phone_number])

    with pytest.raises(DeliveryError) as exc_info:
        await make_container(gateway).manual().send_reminder(appointment.id)

    assert exc_info.value.error_code == "131026"
    assert (await seed.get(AppointmentModel, appointment.id)).reminder_sent is False
    assert await seed.count(MessageModel) == 0


async def test_manual_send_unknown_appointment(container):
    with pytest.raises(AppointmentNotFoundError):
        await container.manual().send_survey(uuid4())
