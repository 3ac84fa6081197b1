"""
Dispatch Repository
Async SQLAlchemy queries and writes used by the dispatch pipeline.

The repository never commits; transaction boundaries belong to the caller
(the selector reads in one short session, the engine owns one transaction
per candidate).
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dispatch.domain.value_objects import (
    AppointmentStatus,
    CampaignStatus,
    MessageDirection,
    RecipientStatus,
    ReminderStage,
    SurveyStatus,
)
from dispatch.infrastructure.models import (
    AppointmentModel,
    CampaignModel,
    CampaignRecipientModel,
    ClinicSettingsModel,
    MessageModel,
    PatientModel,
    PatientTagModel,
    SatisfactionSurveyModel,
    ServiceModel,
)
from shared.observability.logger import get_logger

logger = get_logger(__name__)

AppointmentRow = tuple[AppointmentModel, ClinicSettingsModel, Optional[ServiceModel]]

_STAGE_FLAGS = {
    ReminderStage.TWO_HOURS: ClinicSettingsModel.reminder_2h_before,
    ReminderStage.ONE_HOUR: ClinicSettingsModel.reminder_1h_before,
}
_STAGE_MARKERS = {
    ReminderStage.TWO_HOURS: AppointmentModel.reminder_2h_sent_at,
    ReminderStage.ONE_HOUR: AppointmentModel.reminder_1h_sent_at,
}


class DispatchRepository:
    """
    Data access for selection, atomic claims and the outbound log.

    Attributes:
        session: Active async database session
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def reminder_clinics(self, clinic_id: Optional[UUID] = None) -> Sequence[ClinicSettingsModel]:
        stmt = select(ClinicSettingsModel).where(ClinicSettingsModel.reminders_enabled.is_(True))
        if clinic_id is not None:
            stmt = stmt.where(ClinicSettingsModel.id == clinic_id)
        result = await self.session.execute(stmt.order_by(ClinicSettingsModel.created_at))
        return result.scalars().all()

    async def reminder_appointments(
        self,
        clinic_id: UUID,
        start: datetime,
        end: datetime,
    ) -> list[AppointmentRow]:
        """Unreminded pending/confirmed appointments of one clinic in [start, end)."""
        stmt = (
            select(AppointmentModel, ClinicSettingsModel, ServiceModel)
            .join(ClinicSettingsModel, ClinicSettingsModel.id == AppointmentModel.clinic_id)
            .outerjoin(ServiceModel, ServiceModel.id == AppointmentModel.service_id)
            .where(
                AppointmentModel.clinic_id == clinic_id,
                AppointmentModel.status.in_(
                    [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
                ),
                AppointmentModel.reminder_sent.is_(False),
                AppointmentModel.appointment_date >= start,
                AppointmentModel.appointment_date < end,
            )
            .order_by(AppointmentModel.appointment_date, AppointmentModel.id)
        )
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]  # type: ignore[misc]

    async def same_day_reminder_clinics(
        self,
        stage: ReminderStage,
        clinic_id: Optional[UUID] = None,
    ) -> Sequence[ClinicSettingsModel]:
        stmt = select(ClinicSettingsModel).where(_STAGE_FLAGS[stage].is_(True))
        if clinic_id is not None:
            stmt = stmt.where(ClinicSettingsModel.id == clinic_id)
        result = await self.session.execute(stmt.order_by(ClinicSettingsModel.created_at))
        return result.scalars().all()

    async def same_day_reminder_appointments(
        self,
        clinic_id: UUID,
        stage: ReminderStage,
        start: datetime,
        end: datetime,
    ) -> list[AppointmentRow]:
        """Pending/confirmed appointments in [start, end) whose stage marker is unset."""
        stmt = (
            select(AppointmentModel, ClinicSettingsModel, ServiceModel)
            .join(ClinicSettingsModel, ClinicSettingsModel.id == AppointmentModel.clinic_id)
            .outerjoin(ServiceModel, ServiceModel.id == AppointmentModel.service_id)
            .where(
                AppointmentModel.clinic_id == clinic_id,
                AppointmentModel.status.in_(
                    [AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]
                ),
                _STAGE_MARKERS[stage].is_(None),
                AppointmentModel.appointment_date >= start,
                AppointmentModel.appointment_date < end,
            )
            .order_by(AppointmentModel.appointment_date, AppointmentModel.id)
        )
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]  # type: ignore[misc]

    async def completed_appointments_between(
        self,
        lower: datetime,
        upper: datetime,
        clinic_id: Optional[UUID] = None,
    ) -> list[AppointmentRow]:
        """Completed appointments with lower < appointment_date < upper."""
        stmt = (
            select(AppointmentModel, ClinicSettingsModel, ServiceModel)
            .join(ClinicSettingsModel, ClinicSettingsModel.id == AppointmentModel.clinic_id)
            .outerjoin(ServiceModel, ServiceModel.id == AppointmentModel.service_id)
            .where(
                AppointmentModel.status == AppointmentStatus.COMPLETED.value,
                AppointmentModel.appointment_date > lower,
                AppointmentModel.appointment_date < upper,
            )
            .order_by(AppointmentModel.appointment_date, AppointmentModel.id)
        )
        if clinic_id is not None:
            stmt = stmt.where(AppointmentModel.clinic_id == clinic_id)
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]  # type: ignore[misc]

    async def max_upsell_offset_days(self, clinic_id: Optional[UUID] = None) -> Optional[int]:
        """Largest upsell day offset over enabled services; None when no service upsells."""
        stmt = select(func.max(ServiceModel.upselling_days_after)).where(
            ServiceModel.upselling_enabled.is_(True)
        )
        if clinic_id is not None:
            stmt = stmt.where(ServiceModel.clinic_id == clinic_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsell_appointments(
        self,
        earliest: datetime,
        latest: datetime,
        clinic_id: Optional[UUID] = None,
    ) -> list[AppointmentRow]:
        """Completed, not-yet-upsold appointments of upsell-enabled services in [earliest, latest]."""
        stmt = (
            select(AppointmentModel, ClinicSettingsModel, ServiceModel)
            .join(ClinicSettingsModel, ClinicSettingsModel.id == AppointmentModel.clinic_id)
            .join(ServiceModel, ServiceModel.id == AppointmentModel.service_id)
            .where(
                AppointmentModel.status == AppointmentStatus.COMPLETED.value,
                AppointmentModel.upsell_sent_at.is_(None),
                ServiceModel.upselling_enabled.is_(True),
                AppointmentModel.appointment_date >= earliest,
                AppointmentModel.appointment_date <= latest,
            )
            .order_by(AppointmentModel.appointment_date, AppointmentModel.id)
        )
        if clinic_id is not None:
            stmt = stmt.where(AppointmentModel.clinic_id == clinic_id)
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]  # type: ignore[misc]

    async def get_appointment(self, appointment_id: UUID) -> Optional[AppointmentRow]:
        stmt = (
            select(AppointmentModel, ClinicSettingsModel, ServiceModel)
            .join(ClinicSettingsModel, ClinicSettingsModel.id == AppointmentModel.clinic_id)
            .outerjoin(ServiceModel, ServiceModel.id == AppointmentModel.service_id)
            .where(AppointmentModel.id == appointment_id)
        )
        row = (await self.session.execute(stmt)).first()
        return tuple(row) if row is not None else None  # type: ignore[return-value]

    async def get_campaign(self, campaign_id: UUID) -> Optional[CampaignModel]:
        return await self.session.get(CampaignModel, campaign_id)

    async def get_clinic(self, clinic_id: UUID) -> Optional[ClinicSettingsModel]:
        return await self.session.get(ClinicSettingsModel, clinic_id)

    async def campaign_audience(
        self,
        clinic_id: UUID,
        segment_tag: Optional[UUID] = None,
    ) -> Sequence[PatientModel]:
        """Patients of the clinic with a phone number, optionally restricted to one tag."""
        stmt = select(PatientModel).where(
            PatientModel.clinic_id == clinic_id,
            PatientModel.phone_number.is_not(None),
            PatientModel.phone_number != "",
        )
        if segment_tag is not None:
            tagged = select(PatientTagModel.patient_id).where(PatientTagModel.tag_id == segment_tag)
            stmt = stmt.where(PatientModel.id.in_(tagged))
        result = await self.session.execute(stmt.order_by(PatientModel.created_at, PatientModel.id))
        return result.scalars().all()

    async def count_campaign_recipients(self, campaign_id: UUID) -> int:
        stmt = select(func.count()).select_from(CampaignRecipientModel).where(
            CampaignRecipientModel.campaign_id == campaign_id,
            CampaignRecipientModel.status == RecipientStatus.SENT.value,
        )
        return int((await self.session.execute(stmt)).scalar_one())

    # ------------------------------------------------------------------
    # Atomic claims
    # ------------------------------------------------------------------
    async def claim_reminder(self, appointment_id: UUID, now: datetime) -> bool:
        """Set the reminder marker only if it is currently unset."""
        stmt = (
            update(AppointmentModel)
            .where(
                AppointmentModel.id == appointment_id,
                AppointmentModel.reminder_sent.is_(False),
            )
            .values(reminder_sent=True, reminder_sent_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim_reminder_stage(
        self,
        appointment_id: UUID,
        stage: ReminderStage,
        now: datetime,
        quiet_since: datetime,
    ) -> bool:
        """
        Set a same-day stage marker if it is unset and no reminder of any
        stage was sent after quiet_since.
        """
        marker = _STAGE_MARKERS[stage]
        recent = [
            or_(column.is_(None), column < quiet_since)
            for column in (
                AppointmentModel.reminder_sent_at,
                AppointmentModel.reminder_2h_sent_at,
                AppointmentModel.reminder_1h_sent_at,
            )
        ]
        stmt = (
            update(AppointmentModel)
            .where(AppointmentModel.id == appointment_id, marker.is_(None), *recent)
            .values({marker.key: now})
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim_upsell(self, appointment_id: UUID, now: datetime) -> bool:
        """Set the upsell marker only if it is currently null."""
        stmt = (
            update(AppointmentModel)
            .where(
                AppointmentModel.id == appointment_id,
                AppointmentModel.upsell_sent_at.is_(None),
            )
            .values(upsell_sent_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim_survey(
        self,
        appointment_id: UUID,
        clinic_id: UUID,
        patient_id: Optional[UUID],
        now: datetime,
    ) -> SatisfactionSurveyModel:
        """
        Insert the survey row for an appointment.

        Raises:
            IntegrityError: A survey already exists for the appointment
        """
        survey = SatisfactionSurveyModel(
            clinic_id=clinic_id,
            appointment_id=appointment_id,
            patient_id=patient_id,
            status=SurveyStatus.SENT.value,
            sent_at=now,
        )
        self.session.add(survey)
        await self.session.flush()
        return survey

    async def claim_campaign_recipient(
        self,
        campaign_id: UUID,
        patient_id: UUID,
        now: datetime,
    ) -> CampaignRecipientModel:
        """
        Record a campaign recipient.

        Raises:
            IntegrityError: The patient was already messaged for this campaign
        """
        recipient = CampaignRecipientModel(
            campaign_id=campaign_id,
            patient_id=patient_id,
            status=RecipientStatus.SENT.value,
            sent_at=now,
        )
        self.session.add(recipient)
        await self.session.flush()
        return recipient

    # ------------------------------------------------------------------
    # Unconditional writes (operator resend)
    # ------------------------------------------------------------------
    async def force_reminder_marker(self, appointment_id: UUID, now: datetime) -> None:
        await self.session.execute(
            update(AppointmentModel)
            .where(AppointmentModel.id == appointment_id)
            .values(reminder_sent=True, reminder_sent_at=now)
            .execution_options(synchronize_session=False)
        )

    async def upsert_survey(
        self,
        appointment_id: UUID,
        clinic_id: UUID,
        patient_id: Optional[UUID],
        message_id: Optional[str],
        now: datetime,
    ) -> None:
        """Refresh the appointment's survey row, creating it when missing."""
        result = await self.session.execute(
            update(SatisfactionSurveyModel)
            .where(SatisfactionSurveyModel.appointment_id == appointment_id)
            .values(status=SurveyStatus.SENT.value, whatsapp_message_id=message_id, sent_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return
        await self.session.execute(
            insert(SatisfactionSurveyModel).values(
                clinic_id=clinic_id,
                appointment_id=appointment_id,
                patient_id=patient_id,
                status=SurveyStatus.SENT.value,
                whatsapp_message_id=message_id,
                sent_at=now,
            )
        )

    # ------------------------------------------------------------------
    # Outbound log
    # ------------------------------------------------------------------
    async def log_outbound(
        self,
        *,
        clinic_id: UUID,
        phone_number: str,
        content: str,
        message_type: str,
        provider_message_id: Optional[str],
        provider_status: str = "sent",
        campaign_id: Optional[UUID] = None,
    ) -> MessageModel:
        message = MessageModel(
            clinic_id=clinic_id,
            phone_number=phone_number,
            direction=MessageDirection.OUTBOUND.value,
            content=content,
            message_type=message_type,
            ycloud_message_id=provider_message_id,
            ycloud_status=provider_status,
            ai_generated=False,
            campaign_id=campaign_id,
        )
        self.session.add(message)
        await self.session.flush()
        return message

    # ------------------------------------------------------------------
    # Campaign lifecycle
    # ------------------------------------------------------------------
    async def begin_campaign(self, campaign_id: UUID, now: datetime) -> bool:
        """Transition draft|failed → sending; False when the campaign is not launchable."""
        stmt = (
            update(CampaignModel)
            .where(
                CampaignModel.id == campaign_id,
                CampaignModel.status.in_([s.value for s in CampaignStatus.launchable()]),
            )
            .values(status=CampaignStatus.SENDING.value, started_at=now, last_error=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def finish_campaign(
        self,
        campaign_id: UUID,
        *,
        status: CampaignStatus,
        sent_count: int,
        now: datetime,
        total_target: Optional[int] = None,
        last_error: Optional[str] = None,
    ) -> None:
        values: dict = {"status": status.value, "sent_count": sent_count, "last_error": last_error}
        if total_target is not None:
            values["total_target"] = total_target
        if status is CampaignStatus.COMPLETED:
            values["completed_at"] = now
        await self.session.execute(
            update(CampaignModel)
            .where(CampaignModel.id == campaign_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        logger.info("campaign_status_updated", campaign_id=str(campaign_id), status=status.value, sent_count=sent_count)
