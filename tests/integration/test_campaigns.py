import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from dispatch.domain.exceptions import (
    CampaignNotFoundError,
    CampaignStateError,
    MissingCredentialsError,
    MissingParameterError,
)
from dispatch.domain.value_objects import MessageKind, TriggerKind
from dispatch.infrastructure.models import CampaignModel, CampaignRecipientModel, ClinicSettingsModel, MessageModel
from shared.database.base_model import as_utc


async def _patients(seed, clinic, now, count):
    # Explicit creation times keep the audience order stable
    return [
        await seed.patient(clinic, full_name=f"Paciente {i}", created_at=now - timedelta(minutes=count - i))
        for i in range(count)
    ]


async def test_campaign_without_segment_targets_every_reachable_patient(seed, container, gateway, now):
    clinic = await seed.clinic()
    patients = await _patients(seed, clinic, now, 3)
    await seed.patient(clinic, phone_number="")
    campaign = await seed.campaign(clinic)

    summary = await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert summary.sent == 3
    assert gateway.destinations == [p.phone_number for p in patients]
    _, _, message = gateway.sent[0]
    assert message.template_name == "promo_marzo"
    assert message.parameters == ("Paciente 0",)

    stored = await seed.get(CampaignModel, campaign.id)
    assert stored.status == "completed"
    assert (stored.total_target, stored.sent_count) == (3, 3)
    assert as_utc(stored.started_at) == now
    assert as_utc(stored.completed_at) == now
    assert stored.last_error is None

    messages = await seed.all(MessageModel)
    assert {m.campaign_id for m in messages} == {campaign.id}
    assert {m.content for m in messages} == {"Campaña Promo Marzo: promo_marzo"}


async def test_campaign_segment_targets_tag_members(seed, container, gateway):
    clinic = await seed.clinic()
    vip, regular = await seed.patient(clinic), await seed.patient(clinic)
    tag = await seed.tag(clinic, "VIP", [vip])
    campaign = await seed.campaign(clinic, segment_tag=tag.id)

    summary = await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert summary.sent == 1
    assert gateway.destinations == [vip.phone_number]
    assert regular.phone_number not in gateway.attempts


async def test_campaign_with_empty_segment_completes(seed, container, gateway):
    clinic = await seed.clinic()
    await seed.patient(clinic)
    tag = await seed.tag(clinic, "Sin miembros")
    campaign = await seed.campaign(clinic, segment_tag=tag.id)

    summary = await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert summary.processed == 0
    stored = await seed.get(CampaignModel, campaign.id)
    assert (stored.status, stored.total_target, stored.sent_count) == ("completed", 0, 0)


async def test_campaign_sends_text_body(seed, container, gateway):
    clinic = await seed.clinic()
    await seed.patient(clinic)
    campaign = await seed.campaign(clinic, template_name=None, message_body="Descuento del 20% esta semana")

    await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    _, _, message = gateway.sent[0]
    assert message.kind is MessageKind.TEXT
    assert message.text == "Descuento del 20% esta semana"
    [logged] = await seed.all(MessageModel)
    assert logged.message_type == "text"
    assert logged.content == "Campaña Promo Marzo: Descuento del 20% esta semana"


async def test_campaign_delivery_failure_is_per_recipient(seed, make_gateway, make_container, now):
    clinic = await seed.clinic()
    patients = await _patients(seed, clinic, now, 3)
    gateway = make_gateway(fail_for=[patients[0].phone_number])
    campaign = await seed.campaign(clinic)

    summary = await make_container(gateway).runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert [d.status.value for d in summary.details] == ["error", "sent", "sent"]
    stored = await seed.get(CampaignModel, campaign.id)
    assert (stored.status, stored.total_target, stored.sent_count) == ("completed", 3, 2)


async def test_gateway_crash_is_per_recipient(seed, make_gateway, make_container, now):
    clinic = await seed.clinic()
    patients = await _patients(seed, clinic, now, 3)
    gateway = make_gateway(crash_for=[patients[1].phone_number])
    campaign = await seed.campaign(clinic)

    summary = await make_container(gateway).runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert [d.status.value for d in summary.details] == ["sent", "error", "sent"]
    assert summary.details[1].error_code == "unexpected_error"
    assert summary.details[1].error == "provider client crashed"
    stored = await seed.get(CampaignModel, campaign.id)
    assert (stored.status, stored.sent_count) == ("completed", 2)


async def test_interrupted_campaign_is_failed_and_resumes(seed, make_gateway, make_container, now):
    clinic = await seed.clinic()
    patients = await _patients(seed, clinic, now, 3)
    campaign = await seed.campaign(clinic)
    interrupted = make_gateway(interrupt_for=[patients[1].phone_number])

    with pytest.raises(asyncio.CancelledError):
        await make_container(interrupted).runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    failed = await seed.get(CampaignModel, campaign.id)
    assert failed.status == "failed"
    assert failed.sent_count == 1
    assert failed.last_error == "CancelledError"
    assert await seed.count(CampaignRecipientModel) == 1

    healthy = make_gateway()
    summary = await make_container(healthy).runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert [d.status.value for d in summary.details] == ["skipped", "sent", "sent"]
    assert summary.details[0].reason == "already_sent"
    assert healthy.destinations == [patients[1].phone_number, patients[2].phone_number]
    relaunched = await seed.get(CampaignModel, campaign.id)
    assert (relaunched.status, relaunched.sent_count, relaunched.last_error) == ("completed", 3, None)


@pytest.mark.parametrize("status", ["completed", "sending"])
async def test_campaign_not_relaunchable(seed, container, gateway, status):
    clinic = await seed.clinic()
    await seed.patient(clinic)
    campaign = await seed.campaign(clinic, status=status)

    with pytest.raises(CampaignStateError):
        await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert gateway.attempts == []
    assert (await seed.get(CampaignModel, campaign.id)).status == status


async def test_campaign_requires_id(container):
    with pytest.raises(MissingParameterError) as exc_info:
        await container.runner(TriggerKind.CAMPAIGN).run()
    assert str(exc_info.value) == "campaign_id is required"


async def test_unknown_campaign(container):
    with pytest.raises(CampaignNotFoundError):
        await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=uuid4())


async def test_campaign_without_content_is_rejected(seed, container):
    clinic = await seed.clinic()
    campaign = await seed.campaign(clinic, template_name=None, message_body=None)

    with pytest.raises(MissingParameterError):
        await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert (await seed.get(CampaignModel, campaign.id)).status == "draft"


async def test_campaign_without_api_key_stays_launchable(seed, container, gateway):
    clinic = await seed.clinic(ycloud_api_key=None)
    patient = await seed.patient(clinic)
    campaign = await seed.campaign(clinic)

    with pytest.raises(MissingCredentialsError):
        await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    stored = await seed.get(CampaignModel, campaign.id)
    assert (stored.status, stored.sent_count, stored.started_at) == ("draft", 0, None)
    assert gateway.attempts == []
    assert await seed.count(CampaignRecipientModel) == 0

    async with seed.database.session_factory() as session:
        (await session.get(ClinicSettingsModel, clinic.id)).ycloud_api_key = "test-api-key"
        await session.commit()

    summary = await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=campaign.id)

    assert summary.sent == 1
    assert gateway.destinations == [patient.phone_number]
    relaunched = await seed.get(CampaignModel, campaign.id)
    assert (relaunched.status, relaunched.sent_count) == ("completed", 1)
