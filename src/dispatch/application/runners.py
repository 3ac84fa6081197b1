"""
Trigger Runners
Entry points invoked by the scheduler worker or the HTTP trigger surface.

A runner picks the NotificationRule for its kind, asks the selector for
candidates at the current time and hands them to the engine with the
matching guard and renderer. Runners share no state; each run binds its
own trigger/run_id logging context.
"""
from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from functools import partial
from typing import Any, Optional, Type
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch.application.engine import DispatchEngine, utc_now
from dispatch.application.guard import (
    CampaignRecipientGuard,
    ReminderGuard,
    ResendReminderGuard,
    ResendSurveyGuard,
    SurveyGuard,
    UpsellGuard,
)
from dispatch.application.rendering import MessageRenderer
from dispatch.application.selector import EligibilitySelector
from dispatch.domain.entities import CampaignSnapshot, RunSummary
from dispatch.domain.exceptions import (
    CampaignStateError,
    DeliveryError,
    MissingCredentialsError,
    MissingParameterError,
)
from dispatch.domain.protocols import Clock, DeliveryGateway, Sleeper
from dispatch.domain.rules import (
    REMINDER_TEMPLATE,
    SURVEY_TEMPLATE,
    UPSELL_TEMPLATE,
    NotificationRule,
)
from dispatch.domain.value_objects import (
    CampaignStatus,
    OutcomeStatus,
    ReminderWindowStrategy,
    TriggerKind,
)
from dispatch.infrastructure.repositories import DispatchRepository
from shared.config import Settings
from shared.observability.logger import bind_context, clear_context, get_logger

logger = get_logger(__name__)


def build_rules(settings: Settings) -> dict[TriggerKind, NotificationRule]:
    """NotificationRule per trigger kind, parameterized from settings."""
    return {
        TriggerKind.REMINDER: NotificationRule(
            kind=TriggerKind.REMINDER,
            template_name=REMINDER_TEMPLATE,
            window_strategy=ReminderWindowStrategy(settings.reminder_window_strategy),
        ),
        TriggerKind.SURVEY: NotificationRule(
            kind=TriggerKind.SURVEY,
            template_name=SURVEY_TEMPLATE,
            min_age=timedelta(hours=settings.survey_min_age_hours),
            max_age=timedelta(hours=settings.survey_max_age_hours),
        ),
        TriggerKind.UPSELL: NotificationRule(
            kind=TriggerKind.UPSELL,
            template_name=UPSELL_TEMPLATE,
            max_lateness=timedelta(hours=settings.upsell_max_lateness_hours),
        ),
        TriggerKind.CAMPAIGN: NotificationRule(kind=TriggerKind.CAMPAIGN),
    }


class TriggerRunner(ABC):
    """Base runner; subclasses set `kind` and implement _execute()."""

    kind: TriggerKind

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: DeliveryGateway,
        settings: Settings,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self.settings = settings
        self.rule = build_rules(settings)[self.kind]
        self._session_factory = session_factory
        self._clock = clock or utc_now
        self.selector = EligibilitySelector(session_factory, settings.default_timezone)
        self.renderer = MessageRenderer(settings.template_language, settings.default_timezone)
        self.engine = DispatchEngine(
            session_factory,
            gateway,
            delay_seconds=settings.send_delay_seconds,
            sleep=sleep,
            clock=self._clock,
        )

    async def run(self, **params: Any) -> RunSummary:
        run_id = uuid4().hex
        bind_context(trigger=self.kind.value, run_id=run_id)
        started = time.monotonic()
        logger.info("trigger_run_started", **{k: str(v) for k, v in params.items() if v is not None})
        try:
            summary = await self._execute(run_id, **params)
        except Exception as e:
            logger.error("trigger_run_failed", error=str(e), error_type=e.__class__.__name__)
            raise
        else:
            logger.info(
                "trigger_run_completed",
                processed=summary.processed,
                sent=summary.sent,
                skipped=summary.skipped,
                errors=summary.errors,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            return summary
        finally:
            clear_context()

    @abstractmethod
    async def _execute(self, run_id: str, **params: Any) -> RunSummary:
        """Select and dispatch for one run."""


class ReminderRunner(TriggerRunner):
    kind = TriggerKind.REMINDER

    async def _execute(
        self,
        run_id: str,
        clinic_id: Optional[UUID] = None,
        ignore_send_hour: bool = False,
    ) -> RunSummary:
        candidates = await self.selector.reminders(self.rule, self._clock(), clinic_id, ignore_send_hour)
        return await self.engine.run(
            self.rule, candidates, ReminderGuard(), self.renderer.reminder, run_id=run_id
        )


class SurveyRunner(TriggerRunner):
    kind = TriggerKind.SURVEY

    async def _execute(self, run_id: str, clinic_id: Optional[UUID] = None) -> RunSummary:
        candidates = await self.selector.surveys(self.rule, self._clock(), clinic_id)
        return await self.engine.run(
            self.rule, candidates, SurveyGuard(), self.renderer.survey, run_id=run_id
        )


class UpsellRunner(TriggerRunner):
    kind = TriggerKind.UPSELL

    async def _execute(self, run_id: str, clinic_id: Optional[UUID] = None) -> RunSummary:
        candidates = await self.selector.upsells(self.rule, self._clock(), clinic_id)
        return await self.engine.run(
            self.rule, candidates, UpsellGuard(), self.renderer.upsell, run_id=run_id
        )


class CampaignRunner(TriggerRunner):
    """
    Launches one campaign: draft|failed → sending → completed.

    The transition to sending is committed before the loop. Any exception
    during the run forces the campaign to failed before it propagates, so a
    campaign is never left in sending. Relaunching a failed campaign
    resumes: recipients already recorded are skipped.
    A clinic without an API key is rejected before the transition, so the
    campaign stays launchable.
    """

    kind = TriggerKind.CAMPAIGN

    async def _execute(self, run_id: str, campaign_id: Optional[UUID] = None) -> RunSummary:
        if campaign_id is None:
            raise MissingParameterError("campaign_id")

        campaign = await self.selector.campaign(campaign_id)
        if campaign.status not in CampaignStatus.launchable():
            raise CampaignStateError(campaign.id, campaign.status.value)
        if not campaign.template_name and not campaign.message_body:
            raise MissingParameterError("template_name or message_body")
        if campaign.credentials is None or not campaign.credentials.is_configured:
            raise MissingCredentialsError(campaign.clinic_id)

        if not await self._begin(campaign):
            raise CampaignStateError(campaign.id, CampaignStatus.SENDING.value)

        total_target: Optional[int] = None
        try:
            audience = await self.selector.campaign_audience(campaign)
            total_target = len(audience)
            logger.info("campaign_audience_resolved", campaign_id=str(campaign.id), total_target=total_target)

            summary = await self.engine.run(
                self.rule,
                audience,
                CampaignRecipientGuard(campaign.id),
                partial(self.renderer.campaign, campaign),
                run_id=run_id,
                campaign_id=campaign.id,
            )
            await self._finish(campaign, CampaignStatus.COMPLETED, total_target)
            return summary
        except (Exception, asyncio.CancelledError) as e:
            await self._mark_failed(campaign, total_target, str(e) or e.__class__.__name__)
            raise

    async def _begin(self, campaign: CampaignSnapshot) -> bool:
        async with self._session_factory() as session:
            started = await DispatchRepository(session).begin_campaign(campaign.id, self._clock())
            await session.commit()
        return started

    async def _finish(
        self,
        campaign: CampaignSnapshot,
        status: CampaignStatus,
        total_target: Optional[int],
        last_error: Optional[str] = None,
    ) -> None:
        async with self._session_factory() as session:
            repo = DispatchRepository(session)
            sent_count = await repo.count_campaign_recipients(campaign.id)
            await repo.finish_campaign(
                campaign.id,
                status=status,
                sent_count=sent_count,
                now=self._clock(),
                total_target=total_target,
                last_error=last_error,
            )
            await session.commit()

    async def _mark_failed(self, campaign: CampaignSnapshot, total_target: Optional[int], error: str) -> None:
        try:
            await self._finish(campaign, CampaignStatus.FAILED, total_target, last_error=error)
        except SQLAlchemyError as e:
            logger.error("campaign_mark_failed_error", campaign_id=str(campaign.id), error=str(e))


RUNNERS: dict[TriggerKind, Type[TriggerRunner]] = {
    TriggerKind.REMINDER: ReminderRunner,
    TriggerKind.SURVEY: SurveyRunner,
    TriggerKind.UPSELL: UpsellRunner,
    TriggerKind.CAMPAIGN: CampaignRunner,
}


def build_runner(
    kind: TriggerKind,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: DeliveryGateway,
    settings: Settings,
    **kwargs: Any,
) -> TriggerRunner:
    return RUNNERS[kind](session_factory, gateway, settings, **kwargs)


class ManualDispatcher:
    """
    Operator "send now" actions for a single appointment.

    Unlike scheduled runs, missing credentials and provider failures are
    raised so the operator sees a blocking error.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: DeliveryGateway,
        settings: Settings,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.rules = build_rules(settings)
        self.selector = EligibilitySelector(session_factory, settings.default_timezone)
        self.renderer = MessageRenderer(settings.template_language, settings.default_timezone)
        self.engine = DispatchEngine(session_factory, gateway, clock=clock)

    async def send_reminder(self, appointment_id: UUID) -> RunSummary:
        return await self._send(
            TriggerKind.REMINDER, appointment_id, ResendReminderGuard(), self.renderer.manual_reminder
        )

    async def send_survey(self, appointment_id: UUID) -> RunSummary:
        return await self._send(
            TriggerKind.SURVEY, appointment_id, ResendSurveyGuard(), self.renderer.manual_survey
        )

    async def _send(self, kind: TriggerKind, appointment_id: UUID, guard, render) -> RunSummary:
        run_id = uuid4().hex
        bind_context(trigger=kind.value, run_id=run_id, manual=True)
        try:
            candidate = await self.selector.appointment(appointment_id)
            if not candidate.credentials.is_configured:
                raise MissingCredentialsError(candidate.clinic_id)

            summary = await self.engine.run(self.rules[kind], [candidate], guard, render, run_id=run_id)
            outcome = summary.details[0]
            if outcome.status is OutcomeStatus.ERROR:
                raise DeliveryError(
                    outcome.error_code or "delivery_failed",
                    outcome.error or "Failed to send WhatsApp message",
                )
            logger.info("manual_send_completed", appointment_id=str(appointment_id), message_id=outcome.message_id)
            return summary
        except Exception as e:
            logger.warning("manual_send_failed", appointment_id=str(appointment_id), error=str(e))
            raise
        finally:
            clear_context()
