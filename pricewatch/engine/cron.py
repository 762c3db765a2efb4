"""Cron scheduling for recurring alerts."""

import logging
import re
from datetime import datetime

from croniter import croniter

from pricewatch.clock import ensure_utc
from pricewatch.db.store import AlertStore
from pricewatch.errors import InvalidSchedule, NotFound, SchedulingFault
from pricewatch.models import CronAlert

logger = logging.getLogger(__name__)

CRON_FIELDS = 5

DAY_NUMBERS = {
    "sun": 0, "sunday": 0,
    "mon": 1, "monday": 1,
    "tue": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3,
    "thu": 4, "thursday": 4,
    "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
}

TIME_PATTERN = re.compile(r"^(?:(\d{1,2}):)?(\d{1,2})$")


def validate_expression(expression: str) -> str:
    """Check a 5-field cron expression.

    Returns:
        The expression with whitespace normalized.

    Raises:
        InvalidSchedule: If the expression is malformed.
    """
    fields = expression.split()
    if len(fields) != CRON_FIELDS:
        raise InvalidSchedule(expression, f"expected {CRON_FIELDS} fields, got {len(fields)}")
    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise InvalidSchedule(expression)
    return normalized


def compute_next_trigger(expression: str, anchor: datetime) -> datetime:
    """First instant strictly after ``anchor`` that satisfies ``expression``.

    Args:
        expression: 5-field cron expression, evaluated in UTC.
        anchor: Reference time (creation or last firing).

    Returns:
        Aware UTC datetime later than ``anchor``.

    Raises:
        InvalidSchedule: If the expression is malformed or never fires.
    """
    normalized = validate_expression(expression)
    anchor = ensure_utc(anchor)
    try:
        next_trigger = croniter(normalized, anchor).get_next(datetime)
    except (ValueError, KeyError) as e:
        raise InvalidSchedule(expression, str(e)) from e

    next_trigger = ensure_utc(next_trigger)
    if next_trigger <= anchor:
        raise InvalidSchedule(expression, "no fire time after anchor")
    return next_trigger


def build_cron_expression(frequency: str, at: str) -> str:
    """Build a cron expression from a frequency shorthand and a time of day.

    Args:
        frequency: ``hourly``, ``daily``, ``weekdays``, ``weekends`` or a
            weekday name (``mon``, ``friday``, ...).
        at: ``HH:MM`` (UTC). For ``hourly`` only the minute is used, and a
            bare ``MM`` is accepted.

    Returns:
        A 5-field cron expression.

    Raises:
        InvalidSchedule: If the frequency or time is not understood.
    """
    frequency = frequency.strip().lower()
    match = TIME_PATTERN.match(at.strip())
    if not match:
        raise InvalidSchedule(f"{frequency} {at}", "time must be HH:MM")
    hour = int(match.group(1)) if match.group(1) is not None else None
    minute = int(match.group(2))
    if minute > 59 or (hour is not None and hour > 23):
        raise InvalidSchedule(f"{frequency} {at}", "time out of range")

    if frequency == "hourly":
        return f"{minute} * * * *"
    if hour is None:
        raise InvalidSchedule(f"{frequency} {at}", "time must be HH:MM")

    if frequency == "daily":
        day_of_week = "*"
    elif frequency == "weekdays":
        day_of_week = "1-5"
    elif frequency == "weekends":
        day_of_week = "0,6"
    elif frequency in DAY_NUMBERS:
        day_of_week = str(DAY_NUMBERS[frequency])
    else:
        raise InvalidSchedule(f"{frequency} {at}", f"unknown frequency {frequency!r}")
    return f"{minute} {hour} * * {day_of_week}"


class CronScheduler:
    """Finds due cron alerts and advances their schedules."""

    def __init__(self, store: AlertStore):
        self._store = store

    compute_next_trigger = staticmethod(compute_next_trigger)

    def poll_due(self, now: datetime) -> list[CronAlert]:
        """Active cron alerts due at ``now``, oldest first."""
        return self._store.due_cron_alerts(now)

    def reschedule(self, alert: CronAlert, now: datetime) -> datetime:
        """Record a firing and move the alert to its next fire time.

        The anchor is the later of ``now`` and the alert's current
        ``next_trigger_at``, so the new fire time is always strictly after the
        one that just fired.

        Returns:
            The new ``next_trigger_at``.

        Raises:
            SchedulingFault: If the expression can no longer be evaluated;
                the alert has been deactivated.
            NotFound: If the alert was deleted in the meantime.
        """
        anchor = max(ensure_utc(now), ensure_utc(alert.next_trigger_at))
        try:
            next_trigger = compute_next_trigger(alert.cron_expression, anchor)
        except InvalidSchedule as e:
            try:
                self._store.deactivate_cron_alert(alert.id, now)
            except NotFound:
                logger.info("Cron alert %s already removed", alert.id)
            raise SchedulingFault(alert.id, alert.cron_expression) from e

        self._store.mark_cron_fired(alert.id, next_trigger, now)
        logger.debug("Cron alert %s rescheduled to %s", alert.id, next_trigger.isoformat())
        return next_trigger


def format_cron_alert(alert: CronAlert, price: float | None) -> str:
    """Plain-text body of a scheduled price report."""
    if price is None:
        return f"⏰ {alert.symbol}: price currently unavailable"
    return f"⏰ {alert.symbol} is at {price:g}"
