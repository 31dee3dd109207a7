"""
APScheduler-based notification scheduler.

Three jobs run in-process on the AsyncIOScheduler:
- notification tick (every few minutes): itinerary stages, due reminders,
  30-day case escalation
- weekly digest (Monday morning, business timezone)
- dedup ledger purge (hourly)

The tick reads the collections fresh from the store each run and persists
only what it mutated. It holds the same lock as request handling, so a tick
never interleaves with a client sync.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import sentry_sdk
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from claimdesk.config import ClaimDeskConfig
from claimdesk.enums import CaseStatus, HistoryKind, InboxKind, status_label
from claimdesk.models import Case, InboxNotification, ItineraryEvent, Reminder, Settings
from claimdesk.notifications.queries import build_weekly_digest
from claimdesk.notifications.templates import get_message
from claimdesk.notifications.triggers import (
    case_needs_escalation,
    due_stage,
    reminder_is_due,
    stage_label,
)
from claimdesk.timeutil import format_local, parse_client_datetime

logger = logging.getLogger(__name__)


_scheduler: AsyncIOScheduler | None = None


@dataclass
class TickReport:
    """What a single tick did. Used for logging and tests."""

    stages_fired: list[tuple[str, str]] = field(default_factory=list)
    reminders_fired: int = 0
    cases_escalated: list[str] = field(default_factory=list)
    failures: int = 0
    cases_saved: bool = False
    reminders_saved: bool = False
    settings_saved: bool = False

    @property
    def fired_anything(self) -> bool:
        return bool(self.stages_fired or self.reminders_fired or self.cases_escalated)


class NotificationScheduler:
    """Evaluates time-based triggers against the stored collections."""

    def __init__(self, config: ClaimDeskConfig, store, dispatcher, lock, ledger=None):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher
        self.lock = lock
        self.ledger = ledger

    @property
    def tz_name(self) -> str:
        return self.config.timezone

    def _inbox(self, settings: Settings, kind: InboxKind, title: str, message: str,
               case_id: str | None, now: datetime) -> None:
        settings.push_notification(
            InboxNotification(
                type=kind.value,
                title=title,
                message=message,
                case_id=case_id,
                timestamp=now.isoformat(),
            ),
            self.config.inbox_limit,
        )

    # =========================================================================
    # Notification tick
    # =========================================================================

    async def tick(self, now: datetime | None = None) -> TickReport:
        """
        Run one evaluation pass over reminders and cases.

        Each reminder, itinerary event and case age check has its own error
        boundary; a failure is logged and counted, and the pass continues.
        """
        now = now or datetime.now(timezone.utc)
        report = TickReport()

        async with self.lock.hold("notification tick"):
            reminders = await self.store.load_reminders()
            cases = await self.store.load_cases()
            settings = await self.store.load_settings()
            inbox_changed = False

            reminders_changed = False
            for reminder in reminders:
                try:
                    if await self._check_reminder(reminder, now, settings):
                        reminders_changed = True
                        inbox_changed = True
                        report.reminders_fired += 1
                except Exception as e:
                    report.failures += 1
                    logger.exception(f"Reminder evaluation failed ({reminder.display_title}): {e}")
                    sentry_sdk.capture_exception(e)

            cases_changed = False
            for case in cases:
                for event in case.itinerary:
                    try:
                        stage = await self._check_event(case, event, now, settings)
                    except Exception as e:
                        report.failures += 1
                        logger.exception(
                            f"Itinerary evaluation failed for case {case.id} ({event.event}): {e}"
                        )
                        sentry_sdk.capture_exception(e)
                        continue
                    if stage is not None:
                        cases_changed = True
                        inbox_changed = True
                        report.stages_fired.append((case.id, stage))

                try:
                    if await self._check_case_age(case, now, settings):
                        cases_changed = True
                        inbox_changed = True
                        report.cases_escalated.append(case.id)
                except Exception as e:
                    report.failures += 1
                    logger.exception(f"Case age check failed for case {case.id}: {e}")
                    sentry_sdk.capture_exception(e)

            if reminders_changed:
                await self.store.save_reminders(reminders)
                report.reminders_saved = True
            if cases_changed:
                await self.store.save_cases(cases)
                report.cases_saved = True
            if inbox_changed:
                await self.store.save_settings(settings)
                report.settings_saved = True

        if report.fired_anything or report.failures:
            logger.info(
                f"Tick: {len(report.stages_fired)} stages, {report.reminders_fired} reminders, "
                f"{len(report.cases_escalated)} escalations, {report.failures} failures"
            )
        return report

    async def _check_reminder(self, reminder: Reminder, now: datetime, settings: Settings) -> bool:
        reminder_time = parse_client_datetime(reminder.time, self.tz_name)
        if reminder_time is None or not reminder_is_due(reminder, reminder_time, now):
            return False

        context = {
            "title": reminder.display_title,
            "time": format_local(reminder_time, self.tz_name),
            "note": reminder.note or "無",
        }
        # Marked regardless of the send result: at most one delivery attempt
        reminder.notified = True
        await self.dispatcher.send_template("reminder_due", context, settings=settings)
        self._inbox(
            settings,
            InboxKind.reminder,
            get_message("reminder_due", "inbox_title", context, escape=False),
            get_message("reminder_due", "inbox_message", context, escape=False),
            reminder.case_id,
            now,
        )
        return True

    async def _check_event(
        self, case: Case, event: ItineraryEvent, now: datetime, settings: Settings
    ) -> str | None:
        event_time = parse_client_datetime(event.time, self.tz_name)
        if event_time is None:
            return None

        stage = due_stage(event, event_time, now, self.tz_name)
        if stage is None:
            return None

        context = {
            "stage_label": stage_label(stage),
            "client": case.display_name,
            "event": event.event,
            "time": format_local(event_time, self.tz_name),
            "location": event.location or "未註明",
            "note": event.note or "無",
        }
        event.mark_fired(stage)
        await self.dispatcher.send_template("itinerary_stage", context, settings=settings)
        self._inbox(
            settings,
            InboxKind.itinerary,
            get_message("itinerary_stage", "inbox_title", context, escape=False),
            get_message("itinerary_stage", "inbox_message", context, escape=False),
            case.id,
            now,
        )
        return stage.value

    async def _check_case_age(self, case: Case, now: datetime, settings: Settings) -> bool:
        accident_time = parse_client_datetime(case.date, self.tz_name)
        if accident_time is None:
            return False
        if not case_needs_escalation(case, accident_time, now, self.config.escalation_days):
            return False

        context = {
            "days": self.config.escalation_days,
            "client": case.display_name,
            "plate": case.display_plate,
            "old_status": status_label(case.status),
        }
        case.status = CaseStatus.processing.value
        case.prepend_history(
            get_message("case_30_day", "history", context, escape=False),
            format_local(now, self.tz_name, "%Y/%m/%d %H:%M:%S"),
            HistoryKind.system,
        )
        await self.dispatcher.send_template("case_30_day", context, settings=settings)
        self._inbox(
            settings,
            InboxKind.alert,
            get_message("case_30_day", "inbox_title", context, escape=False),
            get_message("case_30_day", "inbox_message", context, escape=False),
            case.id,
            now,
        )
        logger.info(f"Case {case.id} moved to Processing after {self.config.escalation_days} days")
        return True

    # =========================================================================
    # Weekly digest
    # =========================================================================

    async def send_weekly_digest(
        self, chat_id: str | None = None, now: datetime | None = None
    ) -> bool:
        """
        Send the weekly digest. Returns False when there was nothing to report
        or the send failed.
        """
        now = now or datetime.now(timezone.utc)
        cases = await self.store.load_cases()
        text = build_weekly_digest(cases, now, self.tz_name)
        if text is None:
            logger.info("Weekly digest skipped: no processing cases or events this week")
            return False
        return await self.dispatcher.send(text, chat_id=chat_id)

    async def purge_dedup(self) -> int:
        if self.ledger is None:
            return 0
        return await self.ledger.purge_expired()


# =============================================================================
# Scheduler initialization and shutdown
# =============================================================================


async def _run_tick(engine: NotificationScheduler) -> None:
    try:
        await engine.tick()
    except Exception as e:
        logger.exception(f"Notification tick failed: {e}")
        sentry_sdk.capture_exception(e)


async def _run_weekly_digest(engine: NotificationScheduler) -> None:
    try:
        await engine.send_weekly_digest()
    except Exception as e:
        logger.exception(f"Weekly digest failed: {e}")
        sentry_sdk.capture_exception(e)


async def _run_dedup_purge(engine: NotificationScheduler) -> None:
    try:
        await engine.purge_dedup()
    except Exception as e:
        logger.exception(f"Dedup purge failed: {e}")
        sentry_sdk.capture_exception(e)


def init_scheduler(engine: NotificationScheduler) -> AsyncIOScheduler:
    """
    Initialize and start the APScheduler with the three recurring jobs.

    Call this during app startup (in FastAPI lifespan).
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    config = engine.config
    _scheduler = AsyncIOScheduler(
        timezone=config.timezone,
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 300,
        },
    )
    _scheduler.add_job(
        _run_tick,
        trigger="interval",
        minutes=config.tick_interval_minutes,
        id="notification_tick",
        replace_existing=True,
        kwargs={"engine": engine},
    )
    _scheduler.add_job(
        _run_weekly_digest,
        trigger="cron",
        day_of_week=config.weekly_digest_day,
        hour=config.weekly_digest_hour,
        minute=0,
        timezone=config.timezone,
        id="weekly_digest",
        replace_existing=True,
        kwargs={"engine": engine},
    )
    _scheduler.add_job(
        _run_dedup_purge,
        trigger="interval",
        hours=1,
        id="dedup_purge",
        replace_existing=True,
        kwargs={"engine": engine},
    )
    _scheduler.start()
    print(
        f"Notification scheduler started (tick every {config.tick_interval_minutes} min, "
        f"digest {config.weekly_digest_day} {config.weekly_digest_hour:02d}:00 {config.timezone})"
    )
    return _scheduler


def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during app shutdown.
    """
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        print("Notification scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler
