"""
Dispatch Entities
Plain snapshots handed between the selector, the engine and the gateway.

Candidates are detached from any database session: the selector loads them,
closes its session, and the engine opens one transaction per candidate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from dispatch.domain.value_objects import (
    CampaignStatus,
    MessageKind,
    OutcomeStatus,
    ReminderStage,
    TriggerKind,
)


@dataclass(frozen=True)
class ClinicCredentials:
    """Per-tenant provider credentials. A missing key is a skip condition."""

    api_key: Optional[str]
    sender: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def __repr__(self) -> str:
        return f"ClinicCredentials(configured={self.is_configured}, sender={self.sender!r})"


@dataclass(frozen=True)
class Candidate:
    """
    A domain record selected as potentially due for a notification.

    Attributes:
        id: Appointment id (reminder/survey/upsell) or patient id (campaign)
        clinic_id: Owning clinic
        clinic_name: Display name used in message parameters
        timezone: IANA timezone of the clinic
        phone_number: Destination address
        display_name: Patient name as shown in the message
        credentials: Clinic provider credentials
        scheduled_at: Appointment time (UTC); None for campaign candidates
        service_name: Service label for reminders/upsells
        upsell_message: Service-configured follow-up text
        patient_id: Patient reference, when known
        reminder_stage: Reminder candidates only: which reminder is due
    """

    id: UUID
    clinic_id: UUID
    clinic_name: str
    timezone: str
    phone_number: str
    display_name: str
    credentials: ClinicCredentials
    scheduled_at: Optional[datetime] = None
    service_name: Optional[str] = None
    upsell_message: Optional[str] = None
    patient_id: Optional[UUID] = None
    reminder_stage: Optional[ReminderStage] = None


@dataclass(frozen=True)
class CampaignSnapshot:
    id: UUID
    clinic_id: UUID
    name: str
    status: CampaignStatus
    segment_tag: Optional[UUID]
    template_name: Optional[str]
    message_body: Optional[str]
    sent_count: int = 0
    credentials: Optional[ClinicCredentials] = None


@dataclass(frozen=True)
class RenderedMessage:
    """A message ready for the gateway: a template with positional parameters, or a literal body."""

    kind: MessageKind
    log_content: str
    text: Optional[str] = None
    template_name: Optional[str] = None
    language: str = "es"
    parameters: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeliveryReceipt:
    message_id: str
    status: str = "sent"


@dataclass
class DispatchOutcome:
    id: UUID
    status: OutcomeStatus
    reason: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": str(self.id), "status": self.status.value}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.error is not None:
            data["error"] = self.error
        if self.error_code is not None:
            data["error_code"] = self.error_code
        if self.message_id is not None:
            data["message_id"] = self.message_id
        return data


@dataclass
class RunSummary:
    """Aggregated result of one trigger run."""

    trigger: TriggerKind
    run_id: str
    details: list[DispatchOutcome] = field(default_factory=list)

    def record(self, outcome: DispatchOutcome) -> None:
        self.details.append(outcome)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for d in self.details if d.status is status)

    @property
    def processed(self) -> int:
        return len(self.details)

    @property
    def sent(self) -> int:
        return self._count(OutcomeStatus.SENT)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(OutcomeStatus.ERROR)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "trigger": self.trigger.value,
            "run_id": self.run_id,
            "processed": self.processed,
            "sent": self.sent,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": [d.to_dict() for d in self.details],
        }
