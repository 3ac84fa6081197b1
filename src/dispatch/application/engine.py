"""
Dispatch Engine
Sequential per-run loop shared by every trigger kind.

Per candidate, in one transaction:
    claim → credential check → render → send → confirm + log → commit

Skips and delivery failures, including unexpected gateway exceptions, roll
the transaction back and are recorded as outcomes; they never abort the run.
Cancellation still propagates.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch.application.guard import IdempotencyGuard
from dispatch.domain.entities import (
    Candidate,
    DispatchOutcome,
    RenderedMessage,
    RunSummary,
)
from dispatch.domain.exceptions import DeliveryError
from dispatch.domain.protocols import Clock, DeliveryGateway, Sleeper
from dispatch.domain.rules import NotificationRule
from dispatch.domain.value_objects import OutcomeStatus, SkipReason
from dispatch.infrastructure.repositories import DispatchRepository
from shared.observability.logger import get_logger

logger = get_logger(__name__)

Renderer = Callable[[Candidate], RenderedMessage]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DispatchEngine:
    """
    Orchestrates one trigger run over a candidate list.

    Args:
        session_factory: Async session maker; one session per candidate
        gateway: Delivery gateway (shared by the whole run)
        delay_seconds: Pause between consecutive send attempts
        sleep: Awaitable sleep, injectable for tests
        clock: UTC clock used for marker timestamps
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: DeliveryGateway,
        delay_seconds: float = 0.0,
        sleep: Optional[Sleeper] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway
        self.delay_seconds = delay_seconds
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or utc_now
        self._attempts = 0

    async def run(
        self,
        rule: NotificationRule,
        candidates: Iterable[Candidate],
        guard: IdempotencyGuard,
        render: Renderer,
        *,
        run_id: Optional[str] = None,
        campaign_id: Optional[UUID] = None,
    ) -> RunSummary:
        summary = RunSummary(trigger=rule.kind, run_id=run_id or uuid4().hex)
        self._attempts = 0
        pending = list(candidates)
        logger.info("dispatch_run_started", trigger=rule.kind.value, candidates=len(pending))

        for candidate in pending:
            outcome = await self._dispatch_one(rule, candidate, guard, render, campaign_id)
            summary.record(outcome)

        logger.info(
            "dispatch_run_finished",
            processed=summary.processed,
            sent=summary.sent,
            skipped=summary.skipped,
            errors=summary.errors,
        )
        return summary

    async def _pace(self) -> None:
        if self._attempts and self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)
        self._attempts += 1

    async def _dispatch_one(
        self,
        rule: NotificationRule,
        candidate: Candidate,
        guard: IdempotencyGuard,
        render: Renderer,
        campaign_id: Optional[UUID],
    ) -> DispatchOutcome:
        log = logger.bind(candidate_id=str(candidate.id), clinic_id=str(candidate.clinic_id))
        now = self._clock()

        async with self._session_factory() as session:
            repo = DispatchRepository(session)

            try:
                claim = await guard.claim(repo, candidate, now)
            except SQLAlchemyError as e:
                await session.rollback()
                log.error("claim_failed", error=str(e))
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.ERROR,
                    error=str(e),
                    error_code="persistence_error",
                )

            if not claim.acquired:
                await session.rollback()
                log.info("candidate_skipped", reason=SkipReason.ALREADY_SENT.value)
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.SKIPPED,
                    reason=SkipReason.ALREADY_SENT.value,
                )

            if rule.requires_credentials and not candidate.credentials.is_configured:
                await session.rollback()
                log.info("candidate_skipped", reason=SkipReason.NO_API_KEY.value)
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.SKIPPED,
                    reason=SkipReason.NO_API_KEY.value,
                )

            try:
                message = render(candidate)
            except ValueError as e:
                await session.rollback()
                log.error("render_failed", error=str(e))
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.ERROR,
                    error=str(e),
                    error_code="render_error",
                )

            await self._pace()
            try:
                receipt = await self._gateway.send(candidate.credentials, candidate.phone_number, message)
            except DeliveryError as e:
                await session.rollback()
                log.warning("delivery_failed", error_code=e.error_code, error=e.error_message)
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.ERROR,
                    error=e.error_message,
                    error_code=e.error_code,
                )
            except Exception as e:
                await session.rollback()
                log.error("delivery_crashed", error=str(e), error_type=e.__class__.__name__, exc_info=True)
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.ERROR,
                    error=str(e) or e.__class__.__name__,
                    error_code="unexpected_error",
                )

            try:
                await guard.confirm(repo, claim, candidate, receipt, now)
                await repo.log_outbound(
                    clinic_id=candidate.clinic_id,
                    phone_number=candidate.phone_number,
                    content=message.log_content,
                    message_type=message.kind.value,
                    provider_message_id=receipt.message_id,
                    campaign_id=campaign_id,
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                # Delivered but not recorded: the next run may send it again
                log.error(
                    "delivery_not_recorded",
                    message_id=receipt.message_id,
                    error=str(e),
                )
                return DispatchOutcome(
                    id=candidate.id,
                    status=OutcomeStatus.ERROR,
                    error=str(e),
                    error_code="persistence_error",
                    message_id=receipt.message_id,
                )

        log.info("notification_sent", message_id=receipt.message_id, template=message.template_name)
        return DispatchOutcome(
            id=candidate.id,
            status=OutcomeStatus.SENT,
            message_id=receipt.message_id,
        )
