"""Gap-free, per-queue ticket numbering."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from .errors import DuplicateTicketNumberError, QueueContentionError, UnknownQueueError
from .locks import KeyedLock
from .repository import TicketRepository

logger = logging.getLogger(__name__)


class NumberingAuthority:
    """Hand out the next number of each queue exactly once.

    Allocation happens inside the queue's exclusive section and advances the
    persisted counter with a compare-and-set before the number is handed out.
    The in-process cache only saves a round trip; it is rebuilt from storage on
    first use and whenever another writer is detected.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        locks: KeyedLock | None = None,
        max_retries: int = 32,
    ) -> None:
        self._repository = repository
        self._locks = locks or KeyedLock()
        self._max_retries = max(1, max_retries)
        self._counters: dict[str, int] = {}

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    async def next(self, queue_id: str) -> int:
        async with self.allocate(queue_id) as number:
            return number

    @asynccontextmanager
    async def allocate(self, queue_id: str) -> AsyncIterator[int]:
        """Reserve the next number for the duration of the ``async with`` block.

        The queue stays locked until the block exits. If the block raises and the
        number never reached storage, it is handed back so the sequence keeps no
        gap. A duplicate means the cached counter is behind storage, so it is
        dropped and rebuilt on the next allocation.
        """

        async with self._locks.hold(queue_id):
            number = await self._advance(queue_id)
            try:
                yield number
            except DuplicateTicketNumberError:
                self._counters.pop(queue_id, None)
                raise
            except Exception:
                await self._release(queue_id, number)
                raise

    async def _advance(self, queue_id: str) -> int:
        current = self._counters.get(queue_id)
        for _ in range(self._max_retries):
            if current is None:
                current = await self._recover(queue_id)
                if current is None:
                    continue
            candidate = current + 1
            if await self._repository.advance_counter(queue_id, current, candidate):
                self._counters[queue_id] = candidate
                return candidate
            logger.debug("Counter of queue %s moved concurrently; reloading", queue_id)
            self._counters.pop(queue_id, None)
            current = None
        raise QueueContentionError(queue_id, self._max_retries)

    async def _recover(self, queue_id: str) -> int | None:
        stored = await self._repository.load_counter(queue_id)
        if stored is None:
            raise UnknownQueueError(queue_id)
        highest = await self._repository.highest_number(queue_id)
        if highest <= stored:
            return stored
        logger.warning(
            "Counter of queue %s is behind its tickets (%d < %d); reconciling",
            queue_id,
            stored,
            highest,
        )
        if await self._repository.advance_counter(queue_id, stored, highest):
            return highest
        return None

    async def _release(self, queue_id: str, number: int) -> None:
        if await self._repository.highest_number(queue_id) >= number:
            # The write landed even though the caller saw an error.
            logger.warning("Number %d of queue %s reached storage; keeping it", number, queue_id)
            return
        if await self._repository.advance_counter(queue_id, number, number - 1):
            self._counters[queue_id] = number - 1
            logger.info("Released unused number %d of queue %s", number, queue_id)
            return
        self._counters.pop(queue_id, None)
        logger.warning("Could not release number %d of queue %s; it stays unused", number, queue_id)
