"""
Notification Rules and Eligibility Windows

A NotificationRule is the parameter set that turns the generic dispatch
engine into one concrete workflow. Window helpers are pure functions of
"now" so the boundaries can be tested without a database.

Window bounds (all instants UTC):
- reminder, next_day: [tomorrow 00:00, day after 00:00) in clinic time
- reminder, rolling:  [now, now + lead hours)
- reminder, same-day: the local clock hour starting lead hours after the
                     current one, e.g. 11:00-12:00 for a 2h stage run at 09:xx
- survey:             (now - max_age, now - min_age), both exclusive
- upsell:             now - max_lateness <= appointment + days_after <= now
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dispatch.domain.value_objects import ReminderStage, ReminderWindowStrategy, TriggerKind

REMINDER_TEMPLATE = "appointment_reminder"
SURVEY_TEMPLATE = "satisfaction_survey"
UPSELL_TEMPLATE = "appointment_followup"

SAME_DAY_LEAD_HOURS = {ReminderStage.TWO_HOURS: 2, ReminderStage.ONE_HOUR: 1}
# A same-day stage is not sent if any reminder went out this recently
REMINDER_QUIET_PERIOD = timedelta(hours=6)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open [start, end) interval of UTC instants."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class NotificationRule:
    """
    Parameters of one trigger kind.

    Attributes:
        kind: Trigger kind the rule configures
        template_name: Provider template, None when the message is built per run (campaigns)
        min_age: Survey: minimum time since the appointment
        max_age: Survey: maximum time since the appointment
        max_lateness: Upsell: how far past its target date a follow-up may still go out
        window_strategy: Reminder: default window sizing when the clinic sets none
        requires_credentials: Candidates of clinics without an API key are skipped
    """

    kind: TriggerKind
    template_name: Optional[str] = None
    min_age: Optional[timedelta] = None
    max_age: Optional[timedelta] = None
    max_lateness: Optional[timedelta] = None
    window_strategy: ReminderWindowStrategy = ReminderWindowStrategy.NEXT_DAY
    requires_credentials: bool = True


def resolve_zone(tz_name: Optional[str], fallback: str = "UTC") -> ZoneInfo:
    """Return the clinic zone, falling back when the name is empty or unknown."""
    for name in (tz_name, fallback, "UTC"):
        if not name:
            continue
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo("UTC")


def reminder_window(
    now: datetime,
    zone: ZoneInfo,
    strategy: ReminderWindowStrategy,
    hours_before: int,
) -> TimeWindow:
    """Window of appointment times a reminder run covers."""
    if strategy is ReminderWindowStrategy.ROLLING:
        return TimeWindow(start=now, end=now + timedelta(hours=max(hours_before, 0)))

    tomorrow = now.astimezone(zone).date() + timedelta(days=1)
    start = datetime.combine(tomorrow, time.min, tzinfo=zone)
    end = datetime.combine(tomorrow + timedelta(days=1), time.min, tzinfo=zone)
    return TimeWindow(start=start.astimezone(timezone.utc), end=end.astimezone(timezone.utc))


def same_day_window(now: datetime, zone: ZoneInfo, lead_hours: int) -> TimeWindow:
    """The clinic-local clock hour that starts lead_hours after the current one."""
    hour_start = now.astimezone(zone).replace(minute=0, second=0, microsecond=0)
    start = hour_start.astimezone(timezone.utc) + timedelta(hours=lead_hours)
    return TimeWindow(start=start, end=start + timedelta(hours=1))


def parse_send_hour(value: Optional[str]) -> Optional[int]:
    """Parse an "HH:MM" preferred send time into its hour; None when unset."""
    if not value:
        return None
    hour_part = value.strip().split(":", 1)[0]
    hour = int(hour_part)
    if not 0 <= hour <= 23:
        raise ValueError(f"Invalid send hour: {value!r}")
    return hour


def is_send_hour(now: datetime, zone: ZoneInfo, preferred: Optional[str]) -> bool:
    """True when the clinic has no preferred hour or the local hour matches it."""
    hour = parse_send_hour(preferred)
    if hour is None:
        return True
    return now.astimezone(zone).hour == hour


def survey_bounds(now: datetime, min_age: timedelta, max_age: timedelta) -> tuple[datetime, datetime]:
    """(lower, upper) exclusive bounds on the appointment time."""
    return now - max_age, now - min_age


def in_survey_window(scheduled_at: datetime, now: datetime, min_age: timedelta, max_age: timedelta) -> bool:
    lower, upper = survey_bounds(now, min_age, max_age)
    return lower < scheduled_at < upper


def upsell_target(scheduled_at: datetime, days_after: Optional[int]) -> datetime:
    return scheduled_at + timedelta(days=days_after or 0)


def is_upsell_due(
    scheduled_at: datetime,
    days_after: Optional[int],
    now: datetime,
    max_lateness: timedelta,
) -> bool:
    """The target date has passed, but by no more than max_lateness."""
    target = upsell_target(scheduled_at, days_after)
    return now - max_lateness <= target <= now
