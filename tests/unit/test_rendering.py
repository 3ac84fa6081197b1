from datetime import datetime, timezone
from uuid import uuid4

from dispatch.application.rendering import MessageRenderer, format_date_es, format_time
from dispatch.domain.entities import Candidate, CampaignSnapshot, ClinicCredentials
from dispatch.domain.value_objects import CampaignStatus, MessageKind, ReminderStage


def make_candidate(**kw):
    values = dict(
        id=uuid4(),
        clinic_id=uuid4(),
        clinic_name="Clínica Sonrisa",
        timezone="America/Mexico_City",
        phone_number="+5215512345678",
        display_name="Ana López",
        credentials=ClinicCredentials(api_key="k"),
        scheduled_at=datetime(2026, 3, 11, 16, 0, tzinfo=timezone.utc),
        service_name="Limpieza dental",
    )
    values.update(kw)
    return Candidate(**values)


def make_campaign(**kw):
    values = dict(
        id=uuid4(),
        clinic_id=uuid4(),
        name="Promo Marzo",
        status=CampaignStatus.DRAFT,
        segment_tag=None,
        template_name="promo_marzo",
        message_body=None,
    )
    values.update(kw)
    return CampaignSnapshot(**values)


def test_spanish_date_format():
    assert format_date_es(datetime(2025, 2, 14, 9, 30)) == "viernes, 14 de febrero"
    assert format_time(datetime(2025, 2, 14, 9, 30)) == "09:30"


def test_reminder_parameters_in_clinic_time():
    message = MessageRenderer("es").reminder(make_candidate())
    assert message.kind is MessageKind.TEMPLATE
    assert message.template_name == "appointment_reminder"
    assert message.language == "es"
    assert message.parameters == (
        "Ana López",
        "Limpieza dental",
        "miércoles, 11 de marzo",
        "10:00",
        "Clínica Sonrisa",
    )
    assert message.log_content == "Recordatorio automático enviado a Ana López"


def test_same_day_reminders_log_their_stage():
    renderer = MessageRenderer("es")
    two = renderer.reminder(make_candidate(reminder_stage=ReminderStage.TWO_HOURS))
    one = renderer.reminder(make_candidate(reminder_stage=ReminderStage.ONE_HOUR))
    assert two.log_content == "Recordatorio 2h antes enviado a Ana López"
    assert one.log_content == "Recordatorio 1h antes enviado a Ana López"
    assert two.template_name == one.template_name == "appointment_reminder"
    assert two.parameters == renderer.reminder(make_candidate()).parameters

def test_reminder_defaults_service_label():
    message = MessageRenderer().reminder(make_candidate(service_name=None))
    assert message.parameters[1] == "consulta"


def test_survey_and_upsell_templates():
    renderer = MessageRenderer()
    survey = renderer.survey(make_candidate())
    assert survey.template_name == "satisfaction_survey"
    assert survey.parameters == ("Ana López",)
    assert survey.log_content == "Encuesta automática enviada a Ana López"

    upsell = renderer.upsell(make_candidate(upsell_message="¿Agendamos tu siguiente limpieza?"))
    assert upsell.template_name == "appointment_followup"
    assert upsell.parameters == ("Ana López", "Limpieza dental")
    assert upsell.log_content == "Upsell automático: ¿Agendamos tu siguiente limpieza?"
    assert renderer.upsell(make_candidate()).log_content == "Upsell automático: Follow-up sent"


def test_manual_renders_log_operator_content():
    renderer = MessageRenderer()
    assert renderer.manual_reminder(make_candidate()).log_content == "Recordatorio enviado a Ana López"
    assert renderer.manual_survey(make_candidate()).log_content == "Encuesta enviada a Ana López"


def test_campaign_template_uses_patient_name():
    message = MessageRenderer().campaign(make_campaign(), make_candidate(scheduled_at=None))
    assert message.kind is MessageKind.TEMPLATE
    assert message.template_name == "promo_marzo"
    assert message.parameters == ("Ana López",)
    assert message.log_content == "Campaña Promo Marzo: promo_marzo"


def test_campaign_without_template_sends_text():
    campaign = make_campaign(template_name=None, message_body="20% de descuento este mes")
    message = MessageRenderer().campaign(campaign, make_candidate())
    assert message.kind is MessageKind.TEXT
    assert message.text == "20% de descuento este mes"
    assert message.template_name is None
