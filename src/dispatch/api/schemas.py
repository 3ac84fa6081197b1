from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ScheduledTriggerRequest(BaseModel):
    """Optional body of the survey/upsell triggers; no body runs every clinic."""

    clinic_id: Optional[UUID] = None

    model_config = ConfigDict(extra="ignore")


class ReminderTriggerRequest(ScheduledTriggerRequest):
    ignore_send_hour: bool = False


class CampaignTriggerRequest(BaseModel):
    # Optional so a missing id yields the trigger's own 400 message
    campaign_id: Optional[UUID] = None

    model_config = ConfigDict(extra="ignore")


class OutcomeResponse(BaseModel):
    id: str
    status: str
    reason: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    message_id: Optional[str] = None


class TriggerRunResponse(BaseModel):
    success: bool = True
    trigger: str
    run_id: str
    processed: int
    sent: int
    skipped: int
    errors: int
    details: list[OutcomeResponse]


class HealthResponse(BaseModel):
    status: str
    database: str
    version: str
