"""
Document models for cases, reminders and settings.

The client owns these documents and sends them in camelCase; models keep
unknown fields (extra="allow") so a read-modify-write by the scheduler never
drops data the engine does not understand.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from .enums import HistoryKind, InboxKind, ItineraryStage

logger = logging.getLogger(__name__)


class ClientDocument(BaseModel):
    """Base for client-owned documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    @model_serializer(mode="wrap")
    def _omit_unset_nulls(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ):
        # Nulls the client sent are kept; None defaults it never sent are not
        data = handler(self)
        if not isinstance(data, dict):
            return data
        for name, field in type(self).model_fields.items():
            if name in self.model_fields_set:
                continue
            key = field.alias if info.by_alias and field.alias else name
            if key in data and data[key] is None:
                del data[key]
        return data

    def to_client(self) -> dict:
        """Serialize back to the client's wire shape."""
        return self.model_dump(mode="json", by_alias=True)


class HistoryEntry(ClientDocument):
    date: str
    content: str
    type: str = HistoryKind.note.value


class Attachment(ClientDocument):
    name: str | None = None
    url: str | None = None
    temp_id: str | None = None

    def mark_uploaded(self, url: str) -> None:
        """Record the stored URL; the temp id is dropped from the wire shape."""
        self.url = url
        self.temp_id = None
        self.model_fields_set.discard("temp_id")


class ItineraryEvent(ClientDocument):
    time: Any = None
    event: str = ""
    location: str | None = None
    note: str | None = None
    notified: list[str] = Field(default_factory=list)

    @field_validator("notified", mode="before")
    @classmethod
    def _normalize_notified(cls, value):
        # Older clients stored a boolean here
        if value is None or isinstance(value, bool):
            return []
        if isinstance(value, str):
            return [value]
        seen: list[str] = []
        for tag in value:
            if tag not in seen:
                seen.append(tag)
        return seen

    def has_fired(self, stage: ItineraryStage) -> bool:
        return stage.value in self.notified

    def mark_fired(self, stage: ItineraryStage) -> bool:
        """Record a stage tag. Returns False if it was already present."""
        if self.has_fired(stage):
            return False
        self.notified.append(stage.value)
        return True


class Case(ClientDocument):
    id: str
    date: Any = None
    status: str = "Waiting"
    client_name: str | None = None
    plate: str | None = None
    history: list[HistoryEntry] = Field(default_factory=list)
    itinerary: list[ItineraryEvent] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    calculation: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return value or "Waiting"

    @field_validator("history", "itinerary", "attachments", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    def prepend_history(self, content: str, when: str, kind: HistoryKind) -> None:
        """Add a history entry at the head of the log (newest first)."""
        self.history.insert(0, HistoryEntry(date=when, content=content, type=kind.value))

    @property
    def display_name(self) -> str:
        return self.client_name or "未命名"

    @property
    def display_plate(self) -> str:
        return self.plate or "無"


class Reminder(ClientDocument):
    time: Any = None
    case_title: str | None = None
    note: str | None = None
    notified: bool = False
    case_id: str | None = None
    type: str | None = None

    @field_validator("notified", mode="before")
    @classmethod
    def _coerce_notified(cls, value):
        return bool(value)

    @property
    def display_title(self) -> str:
        return self.case_title or "無標題"


class UserCredential(ClientDocument):
    u: str
    p: str


class InboxNotification(ClientDocument):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    type: str = InboxKind.alert.value
    title: str = ""
    message: str = ""
    case_id: str | None = None
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    read: bool = False


class Settings(ClientDocument):
    telegram_token: str | None = None
    telegram_chat_id: str | None = None
    users: list[UserCredential] = Field(default_factory=list)
    notifications: list[InboxNotification] = Field(default_factory=list)

    @field_validator("telegram_chat_id", mode="before")
    @classmethod
    def _coerce_chat_id(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("users", "notifications", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    def trim_inbox(self, limit: int) -> int:
        """Drop the oldest inbox entries beyond `limit`. Returns count dropped."""
        overflow = len(self.notifications) - limit
        if overflow <= 0:
            return 0
        del self.notifications[limit:]
        return overflow

    def push_notification(self, notification: InboxNotification, limit: int) -> None:
        """Add to the head of the inbox, evicting the oldest beyond `limit`."""
        self.notifications.insert(0, notification)
        self.trim_inbox(limit)


def _usable_temp_id(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(value)


class UploadItem(ClientDocument):
    """
    One queued file. Only the temp id is required here: a missing or
    malformed body is a failure of that item alone, reported by the broker.
    """

    temp_id: str
    base64: Any = None
    file_name: Any = None
    mime_type: Any = None

    @field_validator("temp_id", mode="before")
    @classmethod
    def _coerce_temp_id(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class SyncSnapshot(BaseModel):
    """
    A client write request.

    Each collection is optional; an absent key leaves the stored collection
    untouched. Extra keys (timestamp, password) are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    cases: list[Case] | None = None
    reminders: list[Reminder] | None = None
    settings: Settings | None = None
    uploads: list[UploadItem] | None = None

    @field_validator("uploads", mode="before")
    @classmethod
    def _drop_unaddressable_uploads(cls, value):
        # Without a temp id there is nowhere to report the item's result
        if not isinstance(value, list):
            return value
        kept = [
            item
            for item in value
            if isinstance(item, dict) and _usable_temp_id(item.get("tempId", item.get("temp_id")))
        ]
        if len(kept) < len(value):
            logger.warning(f"Dropped {len(value) - len(kept)} upload(s) without a tempId")
        return kept
