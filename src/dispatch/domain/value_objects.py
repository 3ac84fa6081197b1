"""
Dispatch Status and Kind Enums
"""
from enum import Enum


class TriggerKind(str, Enum):
    """Named notification workflows, each with its own eligibility rule."""
    REMINDER = "reminder"
    SURVEY = "survey"
    UPSELL = "upsell"
    CAMPAIGN = "campaign"


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle.

    Flow: pending → confirmed → completed
    Can leave the flow at any stage → cancelled / no_show
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class CampaignStatus(str, Enum):
    """
    Campaign lifecycle.

    Flow: draft → sending → completed
    An aborted run ends in failed; a failed campaign may be relaunched.
    """
    DRAFT = "draft"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def launchable(cls) -> tuple["CampaignStatus", ...]:
        return (cls.DRAFT, cls.FAILED)


class SurveyStatus(str, Enum):
    SENT = "sent"
    RESPONDED = "responded"


class RecipientStatus(str, Enum):
    SENT = "sent"


class OutcomeStatus(str, Enum):
    """Per-candidate result of one dispatch run."""
    SENT = "sent"
    SKIPPED = "skipped"
    ERROR = "error"


class MessageKind(str, Enum):
    """Provider message shapes used by the pipeline."""
    TEXT = "text"
    TEMPLATE = "template"


class MessageDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class ReminderWindowStrategy(str, Enum):
    """How the reminder eligibility window is sized."""
    NEXT_DAY = "next_day"  # tomorrow [00:00, 24:00) in clinic time
    ROLLING = "rolling"    # [now, now + lead hours)


class ReminderStage(str, Enum):
    """Which reminder of an appointment a candidate is for; each has its own marker."""
    DAY_BEFORE = "day_before"
    TWO_HOURS = "2h"
    ONE_HOUR = "1h"


class SkipReason(str, Enum):
    NO_API_KEY = "no_api_key"
    ALREADY_SENT = "already_sent"


# Appointment states a reminder may be sent for
REMINDABLE_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
)
