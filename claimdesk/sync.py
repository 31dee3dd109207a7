"""
Client snapshot synchronization.

A client write carries any of the Cases, Reminders and Settings collections
(plus queued uploads). Each present collection replaces the stored one as a
whole; how stored and incoming records combine is delegated to a
MergeStrategy. Status changes are announced before the stored cases are
overwritten.
"""

import logging
from datetime import datetime, timezone
from typing import Protocol

from pydantic import ValidationError

from .config import ClaimDeskConfig
from .enums import status_label
from .exceptions import BlobStoreNotConfiguredError, PayloadValidationError
from .models import Case, Reminder, Settings, SyncSnapshot
from .timeutil import format_local

logger = logging.getLogger(__name__)


# =============================================================================
# Merge strategies
# =============================================================================


class MergeStrategy(Protocol):
    def merge_cases(self, stored: list[Case], incoming: list[Case]) -> list[Case]: ...

    def merge_reminders(
        self, stored: list[Reminder], incoming: list[Reminder]
    ) -> list[Reminder]: ...

    def merge_settings(self, stored: Settings, incoming: Settings) -> Settings: ...


class ReplaceStrategy:
    """Last submission wins for every collection."""

    def merge_cases(self, stored, incoming):
        return incoming

    def merge_reminders(self, stored, incoming):
        return incoming

    def merge_settings(self, stored, incoming):
        return incoming


def _reminder_key(reminder: Reminder) -> tuple:
    return (str(reminder.time), reminder.case_title, reminder.note, reminder.case_id)


def _event_key(event) -> tuple:
    return (str(event.time), event.event)


class MonotonicStrategy(ReplaceStrategy):
    """
    Replace, but never lose server-side trigger state.

    A client holding a copy older than the last tick would otherwise clear
    fired-stage tags and reminder flags, causing repeat notifications. For
    records present on both sides, stored tags are unioned in and a stored
    notified=True wins.
    """

    def merge_cases(self, stored, incoming):
        stored_by_id = {case.id: case for case in stored}
        for case in incoming:
            previous = stored_by_id.get(case.id)
            if previous is None:
                continue
            previous_events = {_event_key(e): e for e in previous.itinerary}
            for event in case.itinerary:
                old = previous_events.get(_event_key(event))
                if old is None:
                    continue
                for tag in old.notified:
                    if tag not in event.notified:
                        event.notified.append(tag)
        return incoming

    def merge_reminders(self, stored, incoming):
        fired = {_reminder_key(r) for r in stored if r.notified}
        for reminder in incoming:
            if _reminder_key(reminder) in fired:
                reminder.notified = True
        return incoming


def get_merge_strategy(name: str) -> MergeStrategy:
    if name == "monotonic":
        return MonotonicStrategy()
    if name != "replace":
        logger.warning(f"Unknown merge strategy {name!r}, using replace")
    return ReplaceStrategy()


# =============================================================================
# Coordinator
# =============================================================================


def parse_snapshot(payload) -> SyncSnapshot:
    """
    Validate a whole write payload before anything is stored.

    Raises:
        PayloadValidationError: If the payload is not an object or any
            collection fails validation
    """
    if not isinstance(payload, dict):
        raise PayloadValidationError("Request body must be a JSON object")
    try:
        return SyncSnapshot.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise PayloadValidationError(
            f"Invalid payload at {location}: {first['msg']}"
        ) from e


class SyncCoordinator:
    def __init__(
        self,
        config: ClaimDeskConfig,
        store,
        dispatcher,
        broker,
        strategy: MergeStrategy | None = None,
    ):
        self.config = config
        self.store = store
        self.dispatcher = dispatcher
        self.broker = broker
        self.strategy = strategy or ReplaceStrategy()

    async def notify_status_changes(
        self, stored: list[Case], incoming: list[Case], now: datetime | None = None
    ) -> int:
        """
        Send one status-change message per case whose status differs from
        the stored copy. Cases new to the store are not announced.

        Returns:
            Number of changes announced
        """
        now = now or datetime.now(timezone.utc)
        stored_status = {case.id: case.status for case in stored}
        changed = 0
        for case in incoming:
            old_status = stored_status.get(case.id)
            if old_status is None or old_status == case.status:
                continue
            changed += 1
            logger.info(f"Case {case.id} status {old_status} -> {case.status}")
            await self.dispatcher.send_template(
                "status_changed",
                {
                    "client": case.display_name,
                    "plate": case.display_plate,
                    "old_label": status_label(old_status),
                    "new_label": status_label(case.status),
                    "time": format_local(now, self.config.timezone, "%Y/%m/%d %H:%M:%S"),
                },
            )
        return changed

    async def apply(self, payload: dict) -> dict:
        """
        Apply a client write.

        Order: cases (after status notifications), settings, uploads,
        reminders. Collections absent from the payload are left untouched.

        Returns:
            {"status": "success"} plus "uploadedLinks" when uploads were sent
        """
        snapshot = parse_snapshot(payload)
        if snapshot.uploads and not self.broker.is_configured:
            raise BlobStoreNotConfiguredError("File upload is not configured on this server")

        response = {"status": "success"}

        if snapshot.cases is not None:
            stored_cases = await self.store.load_cases()
            await self.notify_status_changes(stored_cases, snapshot.cases)
            merged_cases = self.strategy.merge_cases(stored_cases, snapshot.cases)
            await self.store.save_cases(merged_cases)

        if snapshot.settings is not None:
            stored_settings = await self.store.load_settings()
            merged_settings = self.strategy.merge_settings(stored_settings, snapshot.settings)
            merged_settings.trim_inbox(self.config.inbox_limit)
            await self.store.save_settings(merged_settings)

        if snapshot.uploads:
            result = await self.broker.upload(snapshot.uploads)
            response["uploadedLinks"] = result.links

        if snapshot.reminders is not None:
            stored_reminders = await self.store.load_reminders()
            merged_reminders = self.strategy.merge_reminders(
                stored_reminders, snapshot.reminders
            )
            await self.store.save_reminders(merged_reminders)

        return response
