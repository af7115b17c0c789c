"""Bookkeeping for background cache writes.

A miss reserves a ticket for its key before the loader runs. Invalidation
fences every ticket whose key it targets: tickets not yet written are marked
stale and skip their write, and writes already in flight are awaited before
the keys are deleted. A value loaded before a mutation can therefore never
land in the cache after that mutation's invalidation.
"""

import asyncio
from collections.abc import Callable
from fnmatch import fnmatchcase

import structlog

logger = structlog.get_logger(__name__)

KeyMatcher = Callable[[str], bool]


def matcher_for(target: str) -> KeyMatcher:
    """Build a key predicate for an exact key or a glob pattern.

    Key parts never contain glob characters, so ``fnmatchcase`` agrees with
    Redis ``MATCH`` on every pattern this package renders.
    """
    if any(char in target for char in "*?["):
        return lambda key: fnmatchcase(key, target)
    return lambda key: key == target


class WriteTicket:
    """Reservation for one pending cache write."""

    __slots__ = ("key", "stale", "task")

    def __init__(self, key: str) -> None:
        self.key = key
        self.stale = False
        self.task: asyncio.Task[bool] | None = None


class PendingWrites:
    """Tracks reserved and in-flight cache writes.

    Shared by the accessor, which reserves and schedules writes, and the
    dispatcher, which fences them before deleting keys.
    """

    def __init__(self) -> None:
        self._tickets: set[WriteTicket] = set()

    def __len__(self) -> int:
        return sum(1 for ticket in self._tickets if ticket.task is not None)

    def reserve(self, key: str) -> WriteTicket:
        """Reserve a write for ``key`` before its value is loaded."""
        ticket = WriteTicket(key)
        self._tickets.add(ticket)
        return ticket

    def release(self, ticket: WriteTicket) -> None:
        """Forget a ticket once its write finished or was abandoned."""
        self._tickets.discard(ticket)

    def attach(self, ticket: WriteTicket, task: "asyncio.Task[bool]") -> None:
        """Bind the background task performing a ticket's write."""
        ticket.task = task
        task.add_done_callback(lambda _: self.release(ticket))

    async def fence(self, matches: KeyMatcher) -> int:
        """Invalidate pending writes for every key ``matches`` accepts.

        Returns:
            Number of tickets fenced.
        """
        fenced = [ticket for ticket in self._tickets if matches(ticket.key)]
        in_flight = []
        for ticket in fenced:
            ticket.stale = True
            if ticket.task is not None and not ticket.task.done():
                in_flight.append(ticket.task)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        if fenced:
            logger.debug("cache_writes_fenced", fenced=len(fenced), awaited=len(in_flight))
        return len(fenced)

    async def drain(self) -> None:
        """Wait for every in-flight write to finish."""
        tasks = [t.task for t in self._tickets if t.task is not None and not t.task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
