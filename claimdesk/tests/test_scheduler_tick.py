"""Tests for the notification tick and weekly digest job."""

import logging
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import pytz

from claimdesk.models import Case, ItineraryEvent, Reminder, Settings
from claimdesk.notifications.scheduler import NotificationScheduler
from claimdesk.tests.fakes import InMemoryStore

TZ = "Asia/Taipei"


def local(year, month, day, hour=0, minute=0):
    return pytz.timezone(TZ).localize(datetime(year, month, day, hour, minute)).astimezone(pytz.UTC)


def make_scheduler(config, store, dispatcher, lock, ledger=None):
    return NotificationScheduler(config, store, dispatcher, lock, ledger)


class TestCaseEscalation:
    @pytest.mark.asyncio
    async def test_thirty_one_day_old_waiting_case_moves_to_processing(
        self, config, dispatcher, lock, journal
    ):
        now = local(2026, 3, 10, 9, 0)
        store = InMemoryStore(
            cases=[
                Case(
                    id="c1",
                    date=(now - timedelta(days=31)).strftime("%Y-%m-%d"),
                    status="Waiting",
                    clientName="王小明",
                    plate="ABC-1234",
                    history=[{"date": "2026/02/01", "content": "建檔", "type": "note"}],
                )
            ],
            journal=journal,
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        report = await scheduler.tick(now=now)

        case = store.cases[0]
        assert case.status == "Processing"
        assert len(case.history) == 2
        assert case.history[0].type == "system"
        assert "事故已滿 30 日" in case.history[0].content
        assert "等待中" in case.history[0].content
        assert dispatcher.templates_sent() == ["case_30_day"]
        assert report.cases_escalated == ["c1"]

    @pytest.mark.asyncio
    async def test_second_tick_does_not_escalate_again(self, config, dispatcher, lock):
        now = local(2026, 3, 10, 9, 0)
        store = InMemoryStore(cases=[Case(id="c1", date="2026-01-01", status="New")])
        scheduler = make_scheduler(config, store, dispatcher, lock)

        await scheduler.tick(now=now)
        report = await scheduler.tick(now=now + timedelta(minutes=5))

        assert report.cases_escalated == []
        assert len(store.cases[0].history) == 1
        assert dispatcher.templates_sent() == ["case_30_day"]

    @pytest.mark.asyncio
    async def test_escalation_lands_in_inbox(self, config, dispatcher, lock):
        now = local(2026, 3, 10, 9, 0)
        store = InMemoryStore(cases=[Case(id="c1", date="2026-01-01", status="Waiting")])
        scheduler = make_scheduler(config, store, dispatcher, lock)

        await scheduler.tick(now=now)

        inbox = store.settings.notifications
        assert len(inbox) == 1
        assert inbox[0].case_id == "c1"
        assert inbox[0].type == "alert"


class TestItineraryStages:
    @pytest.mark.asyncio
    async def test_four_hour_stage_fires_once(self, config, dispatcher, lock):
        now = local(2026, 2, 14, 11, 5)
        store = InMemoryStore(
            cases=[
                Case(
                    id="c1",
                    status="Processing",
                    itinerary=[{"time": "2026-02-14T15:00", "event": "調解會", "notified": []}],
                )
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        first = await scheduler.tick(now=now)
        second = await scheduler.tick(now=now)

        assert first.stages_fired == [("c1", "4h")]
        assert second.stages_fired == []
        assert store.cases[0].itinerary[0].notified == ["4h"]
        assert dispatcher.templates_sent() == ["itinerary_stage"]
        assert "四小時後即將開始" in dispatcher.sent[0]["text"]

    @pytest.mark.asyncio
    async def test_stages_accumulate_in_order_over_ticks(self, config, dispatcher, lock):
        event_time = local(2026, 2, 14, 12, 0)
        store = InMemoryStore(
            cases=[
                Case(
                    id="c1",
                    status="Processing",
                    itinerary=[{"time": "2026-02-14T12:00", "event": "開庭"}],
                )
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        for now in [
            event_time - timedelta(days=3),
            event_time - timedelta(days=1),
            local(2026, 2, 14, 8, 5),
            local(2026, 2, 14, 8, 5),
            local(2026, 2, 14, 8, 10),
        ]:
            await scheduler.tick(now=now)

        assert store.cases[0].itinerary[0].notified == ["3d", "1d", "morning", "4h"]
        assert len(dispatcher.sent) == 4

    @pytest.mark.asyncio
    async def test_unparseable_event_time_is_skipped(self, config, dispatcher, lock):
        store = InMemoryStore(
            cases=[
                Case(
                    id="c1",
                    status="Processing",
                    itinerary=[
                        {"time": "next tuesday", "event": "壞資料"},
                        {"time": "2026-02-14T15:00", "event": "調解會"},
                    ],
                )
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        report = await scheduler.tick(now=local(2026, 2, 14, 11, 5))

        assert report.failures == 0
        assert report.stages_fired == [("c1", "4h")]

    @pytest.mark.asyncio
    async def test_no_save_when_nothing_fired(self, config, dispatcher, lock):
        store = InMemoryStore(
            cases=[Case(id="c1", status="Processing", itinerary=[{"time": "2030-01-01T10:00", "event": "x"}])]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        report = await scheduler.tick(now=local(2026, 2, 14, 11, 5))

        assert not report.fired_anything
        assert store.saves == {"cases": 0, "reminders": 0, "settings": 0}


class TestReminders:
    @pytest.mark.asyncio
    async def test_due_reminder_fires_and_is_marked(self, config, dispatcher, lock):
        now = local(2026, 2, 14, 9, 0)
        store = InMemoryStore(
            reminders=[
                Reminder(time="2026-02-14T08:55", caseTitle="補件", note="帶診斷書"),
                Reminder(time="2026-02-15T08:55", caseTitle="明天"),
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        report = await scheduler.tick(now=now)

        assert report.reminders_fired == 1
        assert [r.notified for r in store.reminders] == [True, False]
        assert "補件" in dispatcher.sent[0]["text"]

    @pytest.mark.asyncio
    async def test_reminder_marked_even_when_send_fails(self, config, lock):
        from claimdesk.tests.fakes import RecordingDispatcher

        failing = RecordingDispatcher(fail_sends=True)
        store = InMemoryStore(reminders=[Reminder(time="2026-02-14T08:00", caseTitle="補件")])
        scheduler = make_scheduler(config, store, failing, lock)

        await scheduler.tick(now=local(2026, 2, 14, 9, 0))
        await scheduler.tick(now=local(2026, 2, 14, 9, 5))

        assert store.reminders[0].notified is True
        assert len(failing.sent) == 1


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failing_event_does_not_block_others(self, config, dispatcher, lock, caplog):
        store = InMemoryStore(
            cases=[
                Case(id="bad", status="Processing", itinerary=[{"time": "2026-02-14T15:00", "event": "A"}]),
                Case(id="good", status="Processing", itinerary=[{"time": "2026-02-14T15:00", "event": "B"}]),
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)
        original = scheduler._check_event

        async def flaky(case, event, now, settings):
            if case.id == "bad":
                raise RuntimeError("boom")
            return await original(case, event, now, settings)

        with patch.object(scheduler, "_check_event", side_effect=flaky):
            with patch("claimdesk.notifications.scheduler.sentry_sdk") as mock_sentry:
                with caplog.at_level(logging.ERROR):
                    report = await scheduler.tick(now=local(2026, 2, 14, 11, 5))

        assert report.failures == 1
        assert report.stages_fired == [("good", "4h")]
        mock_sentry.capture_exception.assert_called_once()
        assert any("bad" in record.message for record in caplog.records)


class TestLockSharing:
    @pytest.mark.asyncio
    async def test_tick_runs_under_lock(self, config, dispatcher, store):
        lock = MagicMock()
        entered = []

        class Hold:
            async def __aenter__(self):
                entered.append(True)
                return True

            async def __aexit__(self, *exc):
                return False

        lock.hold.return_value = Hold()
        scheduler = make_scheduler(config, store, dispatcher, lock)

        await scheduler.tick(now=local(2026, 2, 14, 9, 0))

        lock.hold.assert_called_once_with("notification tick")
        assert entered == [True]


class TestInboxBound:
    @pytest.mark.asyncio
    async def test_inbox_keeps_fifty_newest(self, config, dispatcher, lock):
        existing = [{"id": f"n{i}", "title": f"old {i}"} for i in range(50)]
        store = InMemoryStore(
            settings=Settings(notifications=existing),
            reminders=[Reminder(time="2026-02-14T08:00", caseTitle="新提醒")],
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        await scheduler.tick(now=local(2026, 2, 14, 9, 0))

        inbox = store.settings.notifications
        assert len(inbox) == 50
        assert inbox[0].title == "提醒：新提醒"
        assert inbox[-1].id == "n48"


class TestWeeklyDigest:
    @pytest.mark.asyncio
    async def test_skipped_when_nothing_to_report(self, config, dispatcher, lock):
        store = InMemoryStore(cases=[Case(id="c1", status="Completed")])
        scheduler = make_scheduler(config, store, dispatcher, lock)

        sent = await scheduler.send_weekly_digest(now=local(2026, 2, 9, 9, 0))

        assert sent is False
        assert dispatcher.sent == []

    @pytest.mark.asyncio
    async def test_lists_processing_cases_and_week_events(self, config, dispatcher, lock):
        store = InMemoryStore(
            cases=[
                Case(id="c1", status="Processing", clientName="王小明", plate="ABC-1234"),
                Case(
                    id="c2",
                    status="Mediation",
                    clientName="李大華",
                    itinerary=[
                        {"time": "2026-02-15T23:30", "event": "週日晚間"},
                        {"time": "2026-02-16T00:30", "event": "下週一"},
                        {"time": "2026-02-10T10:00", "event": "週二調解"},
                    ],
                ),
            ]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        sent = await scheduler.send_weekly_digest(now=local(2026, 2, 9, 9, 0))

        assert sent is True
        text = dispatcher.sent[0]["text"]
        assert "1. 王小明 (ABC-1234)" in text
        assert "週二調解" in text
        assert "週日晚間" in text
        assert "下週一" not in text
        assert text.index("週二調解") < text.index("週日晚間")

    @pytest.mark.asyncio
    async def test_digest_does_not_mutate_stages(self, config, dispatcher, lock):
        store = InMemoryStore(
            cases=[Case(id="c1", status="Processing", itinerary=[{"time": "2026-02-10T10:00", "event": "x"}])]
        )
        scheduler = make_scheduler(config, store, dispatcher, lock)

        await scheduler.send_weekly_digest(now=local(2026, 2, 9, 9, 0))

        assert store.saves["cases"] == 0
        assert store.cases[0].itinerary[0].notified == []


class TestSchedulerLifecycle:
    def test_registers_three_jobs(self, config, dispatcher, store, lock):
        from claimdesk.notifications import scheduler as scheduler_module

        engine = make_scheduler(config, store, dispatcher, lock)
        mock_scheduler = MagicMock()

        with patch.object(scheduler_module, "_scheduler", None):
            with patch.object(scheduler_module, "AsyncIOScheduler", return_value=mock_scheduler):
                scheduler_module.init_scheduler(engine)
                job_ids = [call.kwargs["id"] for call in mock_scheduler.add_job.call_args_list]
                scheduler_module.shutdown_scheduler()

        assert job_ids == ["notification_tick", "weekly_digest", "dedup_purge"]
        weekly = mock_scheduler.add_job.call_args_list[1].kwargs
        assert weekly["day_of_week"] == "mon"
        assert weekly["hour"] == 9
        mock_scheduler.start.assert_called_once()
        mock_scheduler.shutdown.assert_called_once()
