"""
Idempotency Guards
Atomic claims taken inside the candidate's transaction, before the send.

A claim either succeeds (the caller may send) or reports that the
notification already went out. Because the claim is a conditional write
in the same transaction as the message log, a rollback after a failed
send releases it: the marker is never set without a recorded send.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from dispatch.domain.entities import Candidate, DeliveryReceipt
from dispatch.domain.rules import REMINDER_QUIET_PERIOD
from dispatch.domain.value_objects import ReminderStage
from dispatch.infrastructure.repositories import DispatchRepository


@dataclass
class Claim:
    acquired: bool
    record: Any = None


class IdempotencyGuard(ABC):
    """Base guard; subclasses implement claim() and, when needed, confirm()."""

    @abstractmethod
    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        """Take the marker for this candidate inside the open transaction."""

    async def confirm(
        self,
        repo: DispatchRepository,
        claim: Claim,
        candidate: Candidate,
        receipt: DeliveryReceipt,
        now: datetime,
    ) -> None:
        """Attach the provider message id to the claim row, if any."""
        return None


class ReminderGuard(IdempotencyGuard):
    """Day-before reminders claim reminder_sent; same-day stages their own marker."""

    def __init__(self, quiet_period: timedelta = REMINDER_QUIET_PERIOD) -> None:
        self.quiet_period = quiet_period

    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        stage = candidate.reminder_stage or ReminderStage.DAY_BEFORE
        if stage is ReminderStage.DAY_BEFORE:
            return Claim(acquired=await repo.claim_reminder(candidate.id, now))
        acquired = await repo.claim_reminder_stage(candidate.id, stage, now, now - self.quiet_period)
        return Claim(acquired=acquired)


class UpsellGuard(IdempotencyGuard):
    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        return Claim(acquired=await repo.claim_upsell(candidate.id, now))


class SurveyGuard(IdempotencyGuard):
    """The unique survey row per appointment is the claim."""

    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        try:
            survey = await repo.claim_survey(candidate.id, candidate.clinic_id, candidate.patient_id, now)
        except IntegrityError:
            return Claim(acquired=False)
        return Claim(acquired=True, record=survey)

    async def confirm(self, repo, claim, candidate, receipt, now) -> None:
        claim.record.whatsapp_message_id = receipt.message_id
        await repo.session.flush()


class CampaignRecipientGuard(IdempotencyGuard):
    """One recipient row per (campaign, patient)."""

    def __init__(self, campaign_id: UUID) -> None:
        self.campaign_id = campaign_id

    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        patient_id: Optional[UUID] = candidate.patient_id or candidate.id
        try:
            recipient = await repo.claim_campaign_recipient(self.campaign_id, patient_id, now)
        except IntegrityError:
            return Claim(acquired=False)
        return Claim(acquired=True, record=recipient)

    async def confirm(self, repo, claim, candidate, receipt, now) -> None:
        claim.record.whatsapp_message_id = receipt.message_id
        await repo.session.flush()


class ResendReminderGuard(IdempotencyGuard):
    """Operator resend: always sends, then sets the marker unconditionally."""

    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        return Claim(acquired=True)

    async def confirm(self, repo, claim, candidate, receipt, now) -> None:
        await repo.force_reminder_marker(candidate.id, now)


class ResendSurveyGuard(IdempotencyGuard):
    """Operator resend: always sends, then creates or refreshes the survey row."""

    async def claim(self, repo: DispatchRepository, candidate: Candidate, now: datetime) -> Claim:
        return Claim(acquired=True)

    async def confirm(self, repo, claim, candidate, receipt, now) -> None:
        await repo.upsert_survey(candidate.id, candidate.clinic_id, candidate.patient_id, receipt.message_id, now)
