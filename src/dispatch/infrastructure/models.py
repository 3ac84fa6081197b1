"""
Dispatch ORM Models

Tables owned by the scheduling/CRM side of the product; the pipeline only
reads them and writes its own marker fields, survey rows, campaign
progress and the outbound message log.

Important:
- satisfaction_surveys.appointment_id is unique: it is the survey claim
- campaign_recipients (campaign_id, patient_id) is unique: it is the campaign claim
- appointment markers are claimed with conditional updates, see repositories
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    true,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dispatch.domain.value_objects import (
    AppointmentStatus,
    CampaignStatus,
    MessageDirection,
    SurveyStatus,
)
from shared.database.base_model import Base


class ClinicSettingsModel(Base):
    """Tenant (clinic) configuration consumed by the pipeline."""

    __tablename__ = "clinic_settings"

    clinic_name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="America/Mexico_City", server_default="America/Mexico_City"
    )
    ycloud_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ycloud_phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    reminders_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    # "HH:MM" local send hour; null sends on every scheduled run
    reminders_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    reminders_hours_before: Mapped[int] = mapped_column(
        Integer, nullable=False, default=24, server_default=text("24")
    )
    # next_day | rolling; null falls back to REMINDER_WINDOW_STRATEGY
    reminder_window: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    # Same-day reminders, independent of reminders_enabled
    reminder_2h_before: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    reminder_1h_before: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())


class ServiceModel(Base):
    """Clinic service catalogue entry with upsell configuration."""

    __tablename__ = "services"
    __table_args__ = (Index("idx_services_clinic", "clinic_id"),)

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    upselling_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    upselling_days_after: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    upselling_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class PatientModel(Base):
    __tablename__ = "patients"
    __table_args__ = (Index("idx_patients_clinic", "clinic_id"),)

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class TagModel(Base):
    __tablename__ = "tags"

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(20), nullable=False, default="#999999")


class PatientTagModel(Base):
    __tablename__ = "patient_tags"
    __table_args__ = (
        UniqueConstraint("patient_id", "tag_id", name="uq_patient_tags_patient_tag"),
        Index("idx_patient_tags_tag", "tag_id"),
    )

    patient_id: Mapped[UUID] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    tag_id: Mapped[UUID] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)


class AppointmentModel(Base):
    """Scheduled consultation. The pipeline writes only the marker fields."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_clinic_date", "clinic_id", "appointment_date"),
        Index("idx_appointments_status_date", "status", "appointment_date"),
    )

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("patients.id", ondelete="SET NULL"), nullable=True)
    service_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("services.id", ondelete="SET NULL"), nullable=True)

    patient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    service: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    appointment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60, server_default=text("60"))
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AppointmentStatus.PENDING.value, server_default=AppointmentStatus.PENDING.value
    )

    # Markers: set only together with a recorded send, never cleared
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_2h_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_1h_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    upsell_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class SatisfactionSurveyModel(Base):
    __tablename__ = "satisfaction_surveys"
    __table_args__ = (
        UniqueConstraint("appointment_id", name="uq_satisfaction_surveys_appointment"),
    )

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    appointment_id: Mapped[UUID] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("patients.id", ondelete="SET NULL"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SurveyStatus.SENT.value)
    whatsapp_message_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class CampaignModel(Base):
    __tablename__ = "campaigns"

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Tag id; null targets every patient of the clinic
    segment_tag: Mapped[Optional[UUID]] = mapped_column(ForeignKey("tags.id", ondelete="SET NULL"), nullable=True)
    template_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    message_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CampaignStatus.DRAFT.value, server_default=CampaignStatus.DRAFT.value
    )
    total_target: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    sent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CampaignRecipientModel(Base):
    """Per-recipient campaign progress; one row per patient actually messaged."""

    __tablename__ = "campaign_recipients"
    __table_args__ = (
        UniqueConstraint("campaign_id", "patient_id", name="uq_campaign_recipients_campaign_patient"),
    )

    campaign_id: Mapped[UUID] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    patient_id: Mapped[UUID] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    whatsapp_message_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class MessageModel(Base):
    """Conversation log shared with the inbound webhook side."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_clinic_phone", "clinic_id", "phone_number"),
        Index("idx_messages_provider_id", "ycloud_message_id"),
    )

    clinic_id: Mapped[UUID] = mapped_column(ForeignKey("clinic_settings.id", ondelete="CASCADE"), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False, default=MessageDirection.OUTBOUND.value)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    ycloud_message_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ycloud_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    campaign_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True)
