"""
Document store for the Cases, Reminders and Settings collections.

Each collection is read and written as a whole. Cases are stored one row per
case (index columns plus the serialized document); Reminders and Settings are
single serialized blobs. Unparseable stored data is treated as empty and
logged, never raised.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from .database import get_connection, get_transaction
from .models import Case, Reminder, Settings
from .tables import cases as cases_table
from .tables import documents

logger = logging.getLogger(__name__)

REMINDERS_DOCUMENT = "reminders"
SETTINGS_DOCUMENT = "settings"


class DocumentStore(Protocol):
    """Full-document persistence for the three shared collections."""

    async def load_cases(self) -> list[Case]: ...

    async def save_cases(self, cases: list[Case]) -> None: ...

    async def load_reminders(self) -> list[Reminder]: ...

    async def save_reminders(self, reminders: list[Reminder]) -> None: ...

    async def load_settings(self) -> Settings: ...

    async def save_settings(self, settings: Settings) -> None: ...


def _dumps(payload) -> str:
    return json.dumps(payload, ensure_ascii=False)


def parse_case_document(raw: str | None) -> Case | None:
    """Parse one stored case document, returning None if it is corrupt."""
    if not raw or not raw.lstrip().startswith("{"):
        return None
    try:
        return Case.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Skipping unparseable case document: {e}")
        return None


def parse_reminders_document(raw: str | None) -> list[Reminder]:
    """Parse the stored reminders blob; corrupt data yields an empty list."""
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Reminders document is corrupt, treating as empty: {e}")
        return []
    if not isinstance(items, list):
        logger.warning("Reminders document is not a list, treating as empty")
        return []

    reminders = []
    for item in items:
        try:
            reminders.append(Reminder.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping unparseable reminder: {e}")
    return reminders


def parse_settings_document(raw: str | None) -> Settings:
    """Parse the stored settings blob; corrupt data yields empty settings."""
    if not raw:
        return Settings()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("settings document is not an object")
        return Settings.model_validate(data)
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        logger.warning(f"Settings document is corrupt, treating as empty: {e}")
        return Settings()


class SqlDocumentStore:
    """DocumentStore backed by the SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine | None = None):
        self._engine = engine

    # --- Cases ---

    async def load_cases(self) -> list[Case]:
        async with get_connection(self._engine) as conn:
            result = await conn.execute(
                select(cases_table.c.document).order_by(cases_table.c.position)
            )
            rows = result.mappings().all()

        loaded = []
        for row in rows:
            case = parse_case_document(row["document"])
            if case is not None:
                loaded.append(case)
        return loaded

    async def save_cases(self, cases: list[Case]) -> None:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "position": position,
                "case_id": case.id,
                "accident_date": str(case.date) if case.date else None,
                "client_name": case.client_name or "",
                "plate": case.plate or "",
                "status": case.status or "Waiting",
                "document": _dumps(case.to_client()),
                "updated_at": now,
            }
            for position, case in enumerate(cases)
        ]

        async with get_transaction(self._engine) as conn:
            await conn.execute(delete(cases_table))
            if rows:
                await conn.execute(insert(cases_table), rows)

    # --- Named documents ---

    async def _load_document(self, name: str) -> str | None:
        async with get_connection(self._engine) as conn:
            result = await conn.execute(
                select(documents.c.body).where(documents.c.name == name)
            )
            row = result.first()
        return row[0] if row else None

    async def _save_document(self, name: str, body: str) -> None:
        async with get_transaction(self._engine) as conn:
            await conn.execute(delete(documents).where(documents.c.name == name))
            await conn.execute(
                insert(documents).values(
                    name=name,
                    body=body,
                    updated_at=datetime.now(timezone.utc),
                )
            )

    async def load_reminders(self) -> list[Reminder]:
        return parse_reminders_document(await self._load_document(REMINDERS_DOCUMENT))

    async def save_reminders(self, reminders: list[Reminder]) -> None:
        await self._save_document(
            REMINDERS_DOCUMENT, _dumps([r.to_client() for r in reminders])
        )

    async def load_settings(self) -> Settings:
        return parse_settings_document(await self._load_document(SETTINGS_DOCUMENT))

    async def save_settings(self, settings: Settings) -> None:
        await self._save_document(SETTINGS_DOCUMENT, _dumps(settings.to_client()))
