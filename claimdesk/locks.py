"""
Bounded-wait mutual exclusion for request handling and scheduler ticks.

A timed-out acquire does not fail the caller: it proceeds without
exclusivity (logged), and the dedup ledger guards against double-processing
of inbound events on that path.
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol

logger = logging.getLogger(__name__)


class RequestLock(Protocol):
    """Lock that yields True if acquired, False if the wait timed out."""

    def hold(self, owner: str) -> AbstractAsyncContextManager[bool]: ...


class AsyncioRequestLock:
    """In-process lock shared by the gateway and the scheduler."""

    def __init__(self, timeout_seconds: float = 30.0):
        self.timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, owner: str) -> AsyncIterator[bool]:
        """
        Hold the lock for the duration of the block.

        Yields True when the lock was acquired. On timeout, logs a warning and
        yields False; the block still runs. The lock is released on every exit
        path when it was acquired.
        """
        acquired = False
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await self._lock.acquire()
            acquired = True
        except TimeoutError:
            logger.warning(
                f"Lock wait exceeded {self.timeout_seconds}s for {owner}, "
                "proceeding without exclusivity"
            )

        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()
