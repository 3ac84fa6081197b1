"""
Trigger Routes
HTTP surface for scheduled and operator-initiated dispatch runs.

Run-fatal dispatch errors are mapped onto the shared API envelope
{"error": <message>, "code": <code>}; per-candidate failures are part of
a successful response body.
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse

from dispatch import __version__
from dispatch.api.dependencies import get_container, verify_trigger_secret
from dispatch.api.schemas import (
    CampaignTriggerRequest,
    HealthResponse,
    ReminderTriggerRequest,
    ScheduledTriggerRequest,
    TriggerRunResponse,
)
from dispatch.container import DispatchContainer
from dispatch.domain.exceptions import (
    AppointmentNotFoundError,
    CampaignNotFoundError,
    CampaignStateError,
    CandidateFetchError,
    DeliveryError,
    DispatchError,
    MissingCredentialsError,
    MissingParameterError,
)
from dispatch.domain.value_objects import TriggerKind
from shared.api.base_router import create_api_router
from shared.api.error_handlers import (
    APIException,
    ConflictException,
    ErrorCode,
    NotFoundException,
    UpstreamException,
    ValidationException,
    api_exception_handler,
)
from shared.observability.logger import get_logger

logger = get_logger(__name__)

router = create_api_router(prefix="/triggers", tags=["Triggers"])
health_router = create_api_router(prefix="", tags=["Health"])


def to_api_exception(exc: DispatchError) -> APIException:
    """Map a run-fatal dispatch error onto the API exception hierarchy."""
    if isinstance(exc, MissingParameterError):
        return ValidationException(str(exc))
    if isinstance(exc, CampaignNotFoundError):
        return NotFoundException("Campaign", str(exc.campaign_id))
    if isinstance(exc, AppointmentNotFoundError):
        return NotFoundException("Appointment", str(exc.appointment_id))
    if isinstance(exc, CampaignStateError):
        return ConflictException(str(exc), details={"status": exc.status})
    if isinstance(exc, MissingCredentialsError):
        return APIException(
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    if isinstance(exc, DeliveryError):
        return UpstreamException(exc.error_message, details={"error_code": exc.error_code})
    if isinstance(exc, CandidateFetchError):
        return APIException(
            code=ErrorCode.SERVICE_UNAVAILABLE,
            message="Failed to load candidates",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return APIException(
        code=ErrorCode.INTERNAL_ERROR,
        message=str(exc),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def dispatch_exception_handler(request: Request, exc: DispatchError) -> JSONResponse:
    return await api_exception_handler(request, to_api_exception(exc))


@router.post(
    "/reminders",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def trigger_reminders(
    body: Optional[ReminderTriggerRequest] = None,
    container: DispatchContainer = Depends(get_container),
):
    body = body or ReminderTriggerRequest()
    summary = await container.runner(TriggerKind.REMINDER).run(
        clinic_id=body.clinic_id,
        ignore_send_hour=body.ignore_send_hour,
    )
    return summary.to_dict()


@router.post(
    "/surveys",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def trigger_surveys(
    body: Optional[ScheduledTriggerRequest] = None,
    container: DispatchContainer = Depends(get_container),
):
    body = body or ScheduledTriggerRequest()
    summary = await container.runner(TriggerKind.SURVEY).run(clinic_id=body.clinic_id)
    return summary.to_dict()


@router.post(
    "/upsells",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def trigger_upsells(
    body: Optional[ScheduledTriggerRequest] = None,
    container: DispatchContainer = Depends(get_container),
):
    body = body or ScheduledTriggerRequest()
    summary = await container.runner(TriggerKind.UPSELL).run(clinic_id=body.clinic_id)
    return summary.to_dict()


@router.post(
    "/campaigns",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def trigger_campaign(
    body: Optional[CampaignTriggerRequest] = None,
    container: DispatchContainer = Depends(get_container),
):
    body = body or CampaignTriggerRequest()
    summary = await container.runner(TriggerKind.CAMPAIGN).run(campaign_id=body.campaign_id)
    return summary.to_dict()


@router.post(
    "/reminders/{appointment_id}",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def send_reminder_now(
    appointment_id: UUID,
    container: DispatchContainer = Depends(get_container),
):
    """Operator resend of one appointment's reminder."""
    summary = await container.manual().send_reminder(appointment_id)
    return summary.to_dict()


@router.post(
    "/surveys/{appointment_id}",
    response_model=TriggerRunResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(verify_trigger_secret)],
)
async def send_survey_now(
    appointment_id: UUID,
    container: DispatchContainer = Depends(get_container),
):
    """Operator send of one appointment's satisfaction survey."""
    summary = await container.manual().send_survey(appointment_id)
    return summary.to_dict()


@health_router.get("/health", response_model=HealthResponse)
async def health(container: DispatchContainer = Depends(get_container)):
    try:
        await container.database.ping()
    except Exception as e:
        logger.warning("health_database_unavailable", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "database": "unavailable", "version": __version__},
        )
    return HealthResponse(status="ok", database="ok", version=__version__)
