"""
Message Rendering
Turns candidates into provider-ready template or text messages.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from dispatch.domain.entities import Candidate, CampaignSnapshot, RenderedMessage
from dispatch.domain.rules import (
    REMINDER_TEMPLATE,
    SURVEY_TEMPLATE,
    UPSELL_TEMPLATE,
    resolve_zone,
)
from dispatch.domain.value_objects import MessageKind, ReminderStage

WEEKDAYS_ES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTHS_ES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

DEFAULT_SERVICE_LABEL = "consulta"

REMINDER_LOG_PREFIXES = {
    ReminderStage.DAY_BEFORE: "Recordatorio automático",
    ReminderStage.TWO_HOURS: "Recordatorio 2h antes",
    ReminderStage.ONE_HOUR: "Recordatorio 1h antes",
}


def format_date_es(local: datetime) -> str:
    """e.g. "viernes, 14 de febrero"."""
    return f"{WEEKDAYS_ES[local.weekday()]}, {local.day} de {MONTHS_ES[local.month - 1]}"


def format_time(local: datetime) -> str:
    return local.strftime("%H:%M")


class MessageRenderer:
    """
    Builds the message for each trigger kind.

    Template names and positional parameters must match the templates
    approved on the provider side:
    - appointment_reminder: name, service, date, time, clinic
    - satisfaction_survey:  name
    - appointment_followup: name, service
    """

    def __init__(self, language: str = "es", default_timezone: str = "UTC") -> None:
        self.language = language
        self.default_timezone = default_timezone

    def _template(self, name: str, parameters: tuple[str, ...], log_content: str) -> RenderedMessage:
        return RenderedMessage(
            kind=MessageKind.TEMPLATE,
            log_content=log_content,
            template_name=name,
            language=self.language,
            parameters=parameters,
        )

    def _reminder_parameters(self, candidate: Candidate) -> tuple[str, ...]:
        if candidate.scheduled_at is None:
            raise ValueError(f"Reminder candidate {candidate.id} has no appointment time")
        zone = resolve_zone(candidate.timezone, self.default_timezone)
        local = candidate.scheduled_at.astimezone(zone)
        return (
            candidate.display_name,
            candidate.service_name or DEFAULT_SERVICE_LABEL,
            format_date_es(local),
            format_time(local),
            candidate.clinic_name,
        )

    def reminder(self, candidate: Candidate) -> RenderedMessage:
        prefix = REMINDER_LOG_PREFIXES[candidate.reminder_stage or ReminderStage.DAY_BEFORE]
        return self._template(
            REMINDER_TEMPLATE,
            self._reminder_parameters(candidate),
            f"{prefix} enviado a {candidate.display_name}",
        )

    def survey(self, candidate: Candidate) -> RenderedMessage:
        return self._template(
            SURVEY_TEMPLATE,
            (candidate.display_name,),
            f"Encuesta automática enviada a {candidate.display_name}",
        )

    def upsell(self, candidate: Candidate) -> RenderedMessage:
        return self._template(
            UPSELL_TEMPLATE,
            (candidate.display_name, candidate.service_name or DEFAULT_SERVICE_LABEL),
            f"Upsell automático: {candidate.upsell_message or 'Follow-up sent'}",
        )

    # Operator-initiated sends log a different content line
    def manual_reminder(self, candidate: Candidate) -> RenderedMessage:
        return self._template(
            REMINDER_TEMPLATE,
            self._reminder_parameters(candidate),
            f"Recordatorio enviado a {candidate.display_name}",
        )

    def manual_survey(self, candidate: Candidate) -> RenderedMessage:
        return self._template(
            SURVEY_TEMPLATE,
            (candidate.display_name,),
            f"Encuesta enviada a {candidate.display_name}",
        )

    def campaign(self, campaign: CampaignSnapshot, candidate: Candidate) -> RenderedMessage:
        """Template with the patient name as its only parameter, or the literal body."""
        if campaign.template_name:
            return self._template(
                campaign.template_name,
                (candidate.display_name,),
                f"Campaña {campaign.name}: {campaign.template_name}",
            )
        body: Optional[str] = campaign.message_body
        return RenderedMessage(
            kind=MessageKind.TEXT,
            log_content=f"Campaña {campaign.name}: {body}",
            text=body,
            language=self.language,
        )
