"""In-memory stand-ins for the store, dispatcher, ledger and blob store."""

from claimdesk.models import Case, Reminder, Settings
from claimdesk.notifications.templates import get_message


class InMemoryStore:
    """
    DocumentStore keeping deep copies, so callers mutating loaded records do
    not change stored state until they save.
    """

    def __init__(self, cases=None, reminders=None, settings=None, journal=None):
        self._cases = [c.model_copy(deep=True) for c in cases or []]
        self._reminders = [r.model_copy(deep=True) for r in reminders or []]
        self._settings = (settings or Settings()).model_copy(deep=True)
        self.journal = journal if journal is not None else []
        self.saves = {"cases": 0, "reminders": 0, "settings": 0}

    async def load_cases(self) -> list[Case]:
        return [c.model_copy(deep=True) for c in self._cases]

    async def save_cases(self, cases):
        self.journal.append(("save", "cases"))
        self.saves["cases"] += 1
        self._cases = [c.model_copy(deep=True) for c in cases]

    async def load_reminders(self) -> list[Reminder]:
        return [r.model_copy(deep=True) for r in self._reminders]

    async def save_reminders(self, reminders):
        self.journal.append(("save", "reminders"))
        self.saves["reminders"] += 1
        self._reminders = [r.model_copy(deep=True) for r in reminders]

    async def load_settings(self) -> Settings:
        return self._settings.model_copy(deep=True)

    async def save_settings(self, settings):
        self.journal.append(("save", "settings"))
        self.saves["settings"] += 1
        self._settings = settings.model_copy(deep=True)

    # Direct access for assertions
    @property
    def cases(self) -> list[Case]:
        return self._cases

    @property
    def reminders(self) -> list[Reminder]:
        return self._reminders

    @property
    def settings(self) -> Settings:
        return self._settings


class RecordingDispatcher:
    """Dispatcher that records every send instead of calling Telegram."""

    def __init__(self, journal=None, fail_sends: bool = False, token="123:abc", chat_id="-100"):
        self.journal = journal if journal is not None else []
        self.fail_sends = fail_sends
        self.token = token
        self.chat_id = chat_id
        self.sent: list[dict] = []
        self.acknowledged: list[str] = []
        self.webhook_calls: list[tuple] = []
        self.webhook_info = {"ok": True, "result": {"url": "https://example.com/hook", "pending_update_count": 0}}

    async def credentials(self, settings=None):
        return self.token, self.chat_id

    async def send(self, text, chat_id=None, with_actions=True, settings=None) -> bool:
        self.journal.append(("send", text))
        self.sent.append(
            {"text": text, "chat_id": chat_id, "with_actions": with_actions, "template": None}
        )
        return not self.fail_sends

    async def send_template(self, message_type, context, chat_id=None, settings=None) -> bool:
        text = get_message(message_type, "telegram", context)
        self.journal.append(("send", text))
        self.sent.append(
            {"text": text, "chat_id": chat_id, "with_actions": True, "template": message_type}
        )
        return not self.fail_sends

    async def acknowledge_interaction(self, callback_query_id) -> bool:
        self.acknowledged.append(callback_query_id)
        return True

    async def set_webhook(self, url):
        self.webhook_calls.append(("set", url))
        return {"ok": True}

    async def delete_webhook(self, drop_pending_updates=True):
        self.webhook_calls.append(("delete", drop_pending_updates))
        return {"ok": True}

    async def get_webhook_info(self):
        return self.webhook_info

    def templates_sent(self) -> list[str]:
        return [s["template"] for s in self.sent if s["template"]]


class FakeLedger:
    def __init__(self):
        self.keys: set[str] = set()
        self.purged = 0

    async def record_if_new(self, event_key: str) -> bool:
        if event_key in self.keys:
            return False
        self.keys.add(event_key)
        return True

    async def purge_expired(self) -> int:
        self.purged += 1
        return 0

    async def clear(self) -> int:
        count = len(self.keys)
        self.keys.clear()
        return count


class FakeBlobStore:
    """Stores bytes in memory; filenames in `fail_names` raise on put."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.files: dict[str, bytes] = {}

    async def put(self, data: bytes, filename: str, mime_type: str) -> str:
        if filename in self.fail_names:
            raise RuntimeError(f"storage rejected {filename}")
        self.files[filename] = data
        return f"https://files.example.com/{filename}"
