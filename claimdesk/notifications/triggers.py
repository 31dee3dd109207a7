"""
Time-based trigger rules for itinerary stages, reminders and case escalation.

Pure functions of (record, parsed time, now); the scheduler owns I/O and
state mutation.
"""

from datetime import datetime, timedelta

from claimdesk.enums import ESCALATABLE_STATUSES, CaseStatus, ItineraryStage
from claimdesk.models import Case, ItineraryEvent, Reminder
from claimdesk.timeutil import same_local_day, to_local


# =============================================================================
# Stage configuration - SINGLE SOURCE OF TRUTH
# Checked in insertion order; the first matching stage wins.
# =============================================================================

STAGE_CONFIG = {
    ItineraryStage.three_day: {
        "window": (timedelta(days=2.9), timedelta(days=3)),
        "label": "三天前提醒",
    },
    ItineraryStage.one_day: {
        "window": (timedelta(days=0.9), timedelta(days=1)),
        "label": "一天前提醒",
    },
    ItineraryStage.morning: {
        "max_remaining": timedelta(days=0.5),
        "local_hour": 8,
        "label": "今日行程提醒",
    },
    ItineraryStage.four_hour: {
        "window": (timedelta(hours=3.9), timedelta(hours=4)),
        "label": "四小時後即將開始",
    },
}

STAGE_ORDER = tuple(STAGE_CONFIG)


def stage_label(stage: ItineraryStage) -> str:
    return STAGE_CONFIG[stage]["label"]


def stage_matches(
    stage: ItineraryStage,
    event_time: datetime,
    now: datetime,
    tz_name: str,
) -> bool:
    """
    Check whether `now` falls inside a stage's fire window.

    Windows are (lower, upper]: strictly more than the lower bound and at most
    the upper bound of time remaining. The morning stage instead requires at
    most half a day remaining, the local hour to be 8, and the event to be on
    the same local calendar day.
    """
    config = STAGE_CONFIG[stage]
    remaining = event_time - now

    if "window" in config:
        lower, upper = config["window"]
        return lower < remaining <= upper

    if remaining > config["max_remaining"]:
        return False
    if to_local(now, tz_name).hour != config["local_hour"]:
        return False
    return same_local_day(now, event_time, tz_name)


def due_stage(
    event: ItineraryEvent,
    event_time: datetime,
    now: datetime,
    tz_name: str,
) -> ItineraryStage | None:
    """Return the first unfired stage whose window contains `now`, if any."""
    for stage in STAGE_ORDER:
        if event.has_fired(stage):
            continue
        if stage_matches(stage, event_time, now, tz_name):
            return stage
    return None


def reminder_is_due(reminder: Reminder, reminder_time: datetime, now: datetime) -> bool:
    return not reminder.notified and reminder_time <= now


def whole_days_since(then: datetime, now: datetime) -> int:
    """Floor of elapsed days; negative for future dates."""
    return (now - then) // timedelta(days=1)


def case_needs_escalation(
    case: Case,
    accident_time: datetime,
    now: datetime,
    threshold_days: int = 30,
) -> bool:
    """
    Check whether a case should be moved to Processing by the age rule.

    Only New/Waiting cases qualify, so once moved the rule no longer matches.
    """
    try:
        status = CaseStatus(case.status)
    except ValueError:
        return False
    if status not in ESCALATABLE_STATUSES:
        return False
    return whole_days_since(accident_time, now) >= threshold_days
