"""
Read-only views over cases and reminders, and the chat messages built from them.

Used by the chat commands (/today, /summary, /reminders) and the weekly
digest job. Nothing here mutates records.
"""

from dataclasses import dataclass
from datetime import datetime

from claimdesk.enums import CaseStatus
from claimdesk.models import Case, ItineraryEvent, Reminder
from claimdesk.notifications.templates import get_message
from claimdesk.timeutil import (
    day_bounds,
    format_local,
    format_with_weekday,
    parse_client_datetime,
    week_bounds,
)


@dataclass
class ScheduledEvent:
    """An itinerary event paired with its parsed time and owning case."""

    time: datetime
    case: Case
    event: ItineraryEvent


def collect_events(cases: list[Case], tz_name: str) -> list[ScheduledEvent]:
    """Every itinerary event with a parseable time, in no particular order."""
    collected = []
    for case in cases:
        for event in case.itinerary:
            event_time = parse_client_datetime(event.time, tz_name)
            if event_time is None:
                continue
            collected.append(ScheduledEvent(time=event_time, case=case, event=event))
    return collected


def events_between(
    cases: list[Case], start: datetime, end: datetime, tz_name: str
) -> list[ScheduledEvent]:
    """Events with start <= time <= end, sorted by time."""
    selected = [
        item for item in collect_events(cases, tz_name) if start <= item.time <= end
    ]
    return sorted(selected, key=lambda item: item.time)


def today_itinerary(cases: list[Case], now: datetime, tz_name: str) -> list[ScheduledEvent]:
    start, end = day_bounds(now, tz_name)
    return events_between(cases, start, end, tz_name)


def week_itinerary(cases: list[Case], now: datetime, tz_name: str) -> list[ScheduledEvent]:
    start, end = week_bounds(now, tz_name)
    return events_between(cases, start, end, tz_name)


def processing_cases(cases: list[Case]) -> list[Case]:
    return [case for case in cases if case.status == CaseStatus.processing.value]


def pending_reminders(reminders: list[Reminder]) -> list[Reminder]:
    """Reminders that have not been notified yet, in stored order."""
    return [reminder for reminder in reminders if not reminder.notified]


# =============================================================================
# Message builders
# =============================================================================


def build_today_message(cases: list[Case], now: datetime, tz_name: str) -> str:
    events = today_itinerary(cases, now, tz_name)
    if not events:
        return get_message("today_itinerary", "empty")

    lines = [get_message("today_itinerary", "header"), ""]
    for item in events:
        lines.append(
            get_message(
                "today_itinerary",
                "line",
                {
                    "time": format_local(item.time, tz_name, "%H:%M"),
                    "client": item.case.display_name,
                    "event": item.event.event,
                },
            )
        )
    return "\n".join(lines)


def build_pending_reminders_message(reminders: list[Reminder], tz_name: str) -> str:
    pending = pending_reminders(reminders)
    if not pending:
        return get_message("pending_reminders", "empty")

    lines = [get_message("pending_reminders", "header"), ""]
    for index, reminder in enumerate(pending, start=1):
        reminder_time = parse_client_datetime(reminder.time, tz_name)
        lines.append(
            get_message(
                "pending_reminders",
                "line",
                {
                    "index": index,
                    "title": reminder.display_title,
                    "time": format_local(reminder_time, tz_name) if reminder_time else "未設定",
                },
            )
        )
    return "\n".join(lines)


def build_weekly_digest(cases: list[Case], now: datetime, tz_name: str) -> str | None:
    """
    Build the weekly digest text.

    Lists Processing cases and every itinerary event in the current
    Monday-Sunday week. Returns None when both lists are empty.
    """
    active = processing_cases(cases)
    events = week_itinerary(cases, now, tz_name)
    if not active and not events:
        return None

    lines = [get_message("weekly_summary", "header"), ""]

    if active:
        lines.append(get_message("weekly_summary", "processing_header"))
        for index, case in enumerate(active, start=1):
            lines.append(
                get_message(
                    "weekly_summary",
                    "processing_line",
                    {
                        "index": index,
                        "client": case.display_name,
                        "plate": case.display_plate,
                    },
                )
            )
        lines.append("")

    if events:
        lines.append(get_message("weekly_summary", "events_header"))
        for item in events:
            lines.append(
                get_message(
                    "weekly_summary",
                    "event_line",
                    {
                        "time": format_with_weekday(item.time, tz_name),
                        "client": item.case.display_name,
                        "event": item.event.event,
                    },
                )
            )
        lines.append("")

    lines.append(get_message("weekly_summary", "footer"))
    return "\n".join(lines)
