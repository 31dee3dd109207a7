"""
Inbound-event deduplication ledger.

Telegram retries webhook deliveries it considers failed, and overlapping
deliveries can arrive while a previous one is still being handled. Each event
key is recorded before processing; a second record attempt for the same key
reports a duplicate. Entries expire after a TTL so the ledger stays bounded.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from .database import get_transaction
from .tables import inbound_events

logger = logging.getLogger(__name__)


class DedupLedger(Protocol):
    async def record_if_new(self, event_key: str) -> bool:
        """Atomically record a key. Returns False if it was already present."""
        ...

    async def purge_expired(self) -> int: ...

    async def clear(self) -> int: ...


class SqlDedupLedger:
    """DedupLedger stored in the inbound_events table."""

    def __init__(self, engine: AsyncEngine | None = None, ttl_hours: int = 168):
        self._engine = engine
        self.ttl = timedelta(hours=ttl_hours)

    def _cutoff(self) -> datetime:
        return datetime.now(timezone.utc) - self.ttl

    async def record_if_new(self, event_key: str) -> bool:
        try:
            async with get_transaction(self._engine) as conn:
                # An expired entry no longer counts as seen
                await conn.execute(
                    delete(inbound_events)
                    .where(inbound_events.c.event_key == event_key)
                    .where(inbound_events.c.received_at < self._cutoff())
                )
                existing = await conn.execute(
                    select(inbound_events.c.event_key).where(
                        inbound_events.c.event_key == event_key
                    )
                )
                if existing.first() is not None:
                    return False
                await conn.execute(
                    insert(inbound_events).values(
                        event_key=event_key,
                        received_at=datetime.now(timezone.utc),
                    )
                )
        except IntegrityError:
            # A concurrent delivery inserted the same key first
            return False
        return True

    async def purge_expired(self) -> int:
        async with get_transaction(self._engine) as conn:
            result = await conn.execute(
                delete(inbound_events).where(
                    inbound_events.c.received_at < self._cutoff()
                )
            )
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired inbound event keys")
        return purged

    async def clear(self) -> int:
        async with get_transaction(self._engine) as conn:
            count_result = await conn.execute(
                select(func.count()).select_from(inbound_events)
            )
            count = count_result.scalar() or 0
            await conn.execute(delete(inbound_events))
        logger.info(f"Cleared {count} inbound event keys")
        return count
