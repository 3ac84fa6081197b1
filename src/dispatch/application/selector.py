"""
Eligibility Selector
Loads the candidates a trigger run may notify.

Each call opens one short read session and returns detached Candidate
snapshots; the session is closed before any message is sent. Any database
failure while selecting is run-fatal and surfaces as CandidateFetchError.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch.domain.entities import Candidate, CampaignSnapshot, ClinicCredentials
from dispatch.domain.exceptions import (
    AppointmentNotFoundError,
    CampaignNotFoundError,
    CandidateFetchError,
)
from dispatch.domain.rules import (
    SAME_DAY_LEAD_HOURS,
    NotificationRule,
    in_survey_window,
    is_send_hour,
    is_upsell_due,
    reminder_window,
    resolve_zone,
    same_day_window,
    survey_bounds,
)
from dispatch.domain.value_objects import CampaignStatus, ReminderStage, ReminderWindowStrategy
from dispatch.infrastructure.models import (
    AppointmentModel,
    ClinicSettingsModel,
    PatientModel,
    ServiceModel,
)
from dispatch.infrastructure.repositories import DispatchRepository
from shared.database.base_model import as_utc
from shared.observability.logger import get_logger

logger = get_logger(__name__)


def _credentials(clinic: ClinicSettingsModel) -> ClinicCredentials:
    return ClinicCredentials(api_key=clinic.ycloud_api_key, sender=clinic.ycloud_phone_number)


def appointment_candidate(
    appointment: AppointmentModel,
    clinic: ClinicSettingsModel,
    service: Optional[ServiceModel],
    reminder_stage: Optional[ReminderStage] = None,
) -> Candidate:
    return Candidate(
        id=appointment.id,
        clinic_id=clinic.id,
        clinic_name=clinic.clinic_name,
        timezone=clinic.timezone,
        phone_number=appointment.phone_number,
        display_name=appointment.patient_name,
        credentials=_credentials(clinic),
        scheduled_at=as_utc(appointment.appointment_date),
        service_name=appointment.service or (service.name if service else None),
        upsell_message=service.upselling_message if service else None,
        patient_id=appointment.patient_id,
        reminder_stage=reminder_stage,
    )


def patient_candidate(patient: PatientModel, clinic: ClinicSettingsModel) -> Candidate:
    return Candidate(
        id=patient.id,
        clinic_id=clinic.id,
        clinic_name=clinic.clinic_name,
        timezone=clinic.timezone,
        phone_number=patient.phone_number or "",
        display_name=patient.full_name,
        credentials=_credentials(clinic),
        patient_id=patient.id,
    )


class EligibilitySelector:
    """
    Candidate queries per trigger kind.

    Args:
        session_factory: Async session maker; one session per call
        default_timezone: Zone used for clinics with an empty or unknown timezone
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        default_timezone: str = "UTC",
    ) -> None:
        self._session_factory = session_factory
        self.default_timezone = default_timezone

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------
    def _window_strategy(self, clinic: ClinicSettingsModel, rule: NotificationRule) -> ReminderWindowStrategy:
        if clinic.reminder_window:
            try:
                return ReminderWindowStrategy(clinic.reminder_window)
            except ValueError:
                logger.warning(
                    "invalid_clinic_reminder_window",
                    clinic_id=str(clinic.id),
                    value=clinic.reminder_window,
                )
        return rule.window_strategy

    def _in_send_hour(self, clinic: ClinicSettingsModel, now: datetime) -> bool:
        zone = resolve_zone(clinic.timezone, self.default_timezone)
        try:
            return is_send_hour(now, zone, clinic.reminders_time)
        except ValueError:
            logger.warning("invalid_reminders_time", clinic_id=str(clinic.id), value=clinic.reminders_time)
            return True

    async def reminders(
        self,
        rule: NotificationRule,
        now: datetime,
        clinic_id: Optional[UUID] = None,
        ignore_send_hour: bool = False,
    ) -> list[Candidate]:
        """
        Appointments due for a reminder, by time.

        Day-before reminders cover each enabled clinic's reminder window at
        its send hour. Same-day stages cover one local clock hour ahead for
        clinics that opted in, at every run; an appointment already selected
        for its day-before reminder is not selected again for a stage.
        """
        candidates: list[Candidate] = []
        try:
            async with self._session_factory() as session:
                repo = DispatchRepository(session)
                for clinic in await repo.reminder_clinics(clinic_id):
                    if not ignore_send_hour and not self._in_send_hour(clinic, now):
                        logger.debug("clinic_outside_send_hour", clinic_id=str(clinic.id))
                        continue
                    zone = resolve_zone(clinic.timezone, self.default_timezone)
                    window = reminder_window(
                        now,
                        zone,
                        self._window_strategy(clinic, rule),
                        clinic.reminders_hours_before,
                    )
                    rows = await repo.reminder_appointments(clinic.id, window.start, window.end)
                    candidates.extend(
                        appointment_candidate(*row, reminder_stage=ReminderStage.DAY_BEFORE) for row in rows
                    )

                selected = {c.id for c in candidates}
                for stage, lead_hours in SAME_DAY_LEAD_HOURS.items():
                    for clinic in await repo.same_day_reminder_clinics(stage, clinic_id):
                        zone = resolve_zone(clinic.timezone, self.default_timezone)
                        window = same_day_window(now, zone, lead_hours)
                        rows = await repo.same_day_reminder_appointments(clinic.id, stage, window.start, window.end)
                        for row in rows:
                            if row[0].id in selected:
                                continue
                            selected.add(row[0].id)
                            candidates.append(appointment_candidate(*row, reminder_stage=stage))
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load reminder candidates: {e}") from e

        candidates.sort(key=lambda c: (c.scheduled_at, str(c.id)))
        return candidates

    # ------------------------------------------------------------------
    # Surveys
    # ------------------------------------------------------------------
    async def surveys(
        self,
        rule: NotificationRule,
        now: datetime,
        clinic_id: Optional[UUID] = None,
    ) -> list[Candidate]:
        """
        Completed appointments aged strictly between min_age and max_age.

        Existing surveys are not excluded here; the survey claim rejects them.
        """
        min_age = rule.min_age or timedelta(hours=24)
        max_age = rule.max_age or timedelta(hours=48)
        lower, upper = survey_bounds(now, min_age, max_age)
        try:
            async with self._session_factory() as session:
                rows = await DispatchRepository(session).completed_appointments_between(lower, upper, clinic_id)
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load survey candidates: {e}") from e

        candidates = [appointment_candidate(*row) for row in rows]
        return [
            c for c in candidates
            if c.scheduled_at is not None and in_survey_window(c.scheduled_at, now, min_age, max_age)
        ]

    # ------------------------------------------------------------------
    # Upsells
    # ------------------------------------------------------------------
    async def upsells(
        self,
        rule: NotificationRule,
        now: datetime,
        clinic_id: Optional[UUID] = None,
    ) -> list[Candidate]:
        """Completed appointments whose follow-up date passed within max_lateness."""
        max_lateness = rule.max_lateness or timedelta(hours=48)
        try:
            async with self._session_factory() as session:
                repo = DispatchRepository(session)
                max_days = await repo.max_upsell_offset_days(clinic_id)
                if max_days is None:
                    return []
                earliest = now - max_lateness - timedelta(days=max(max_days, 0))
                rows = await repo.upsell_appointments(earliest, now, clinic_id)
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load upsell candidates: {e}") from e

        due: list[Candidate] = []
        for appointment, clinic, service in rows:
            scheduled_at = as_utc(appointment.appointment_date)
            days_after = service.upselling_days_after if service else 0
            if scheduled_at is not None and is_upsell_due(scheduled_at, days_after, now, max_lateness):
                due.append(appointment_candidate(appointment, clinic, service))
        return due

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------
    async def campaign(self, campaign_id: UUID) -> CampaignSnapshot:
        try:
            async with self._session_factory() as session:
                repo = DispatchRepository(session)
                campaign = await repo.get_campaign(campaign_id)
                clinic = await repo.get_clinic(campaign.clinic_id) if campaign is not None else None
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load campaign: {e}") from e

        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        return CampaignSnapshot(
            id=campaign.id,
            clinic_id=campaign.clinic_id,
            name=campaign.name,
            status=CampaignStatus(campaign.status),
            segment_tag=campaign.segment_tag,
            template_name=campaign.template_name,
            message_body=campaign.message_body,
            sent_count=campaign.sent_count,
            credentials=_credentials(clinic) if clinic is not None else None,
        )

    async def campaign_audience(self, campaign: CampaignSnapshot) -> list[Candidate]:
        """Every reachable patient of the clinic, or only those holding the segment tag."""
        try:
            async with self._session_factory() as session:
                repo = DispatchRepository(session)
                clinic = await repo.get_clinic(campaign.clinic_id)
                if clinic is None:
                    return []
                patients = await repo.campaign_audience(campaign.clinic_id, campaign.segment_tag)
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load campaign audience: {e}") from e

        return [patient_candidate(p, clinic) for p in patients]

    # ------------------------------------------------------------------
    # Single appointment (operator actions)
    # ------------------------------------------------------------------
    async def appointment(self, appointment_id: UUID) -> Candidate:
        try:
            async with self._session_factory() as session:
                row = await DispatchRepository(session).get_appointment(appointment_id)
        except SQLAlchemyError as e:
            raise CandidateFetchError(f"Failed to load appointment: {e}") from e

        if row is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment_candidate(*row)
