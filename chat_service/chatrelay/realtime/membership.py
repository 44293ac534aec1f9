# chatrelay/realtime/membership.py
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from chatrelay.domain.exceptions import NotFound, Unavailable

MemberLoader = Callable[[int], Awaitable[Iterable[int] | None]]


@dataclass(frozen=True)
class _CacheEntry:
    members: frozenset[int]
    fetched_at: float
    stale: bool = False


class MembershipIndex:
    """Read-through cache of room id -> member ids.

    Entries are replaced whole, never mutated, so a reader always sees one
    complete snapshot. ``invalidate`` bumps a per-room generation; a fetch
    that started under an older generation is thrown away and repeated, so
    nothing loaded before an invalidation is returned after it. Locks and
    generations exist only while a fetch for the room is pending.
    """

    def __init__(
        self,
        loader: MemberLoader,
        logger: logging.Logger,
        ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.logger = logger
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[int, _CacheEntry] = {}
        self._generations: dict[int, int] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._pending: dict[int, int] = {}

    def _is_fresh(self, entry: _CacheEntry | None) -> bool:
        if entry is None or entry.stale:
            return False
        if self.ttl_seconds > 0:
            return self.clock() - entry.fetched_at < self.ttl_seconds
        return True

    def cached(self, room_id: int) -> frozenset[int] | None:
        entry = self._entries.get(room_id)
        return entry.members if self._is_fresh(entry) else None

    async def members_of(self, room_id: int) -> frozenset[int]:
        entry = self._entries.get(room_id)
        if self._is_fresh(entry):
            return entry.members

        lock = self._locks.setdefault(room_id, asyncio.Lock())
        self._pending[room_id] = self._pending.get(room_id, 0) + 1
        try:
            async with lock:
                # another waiter may have refreshed it already
                entry = self._entries.get(room_id)
                if self._is_fresh(entry):
                    return entry.members

                while True:
                    generation = self._generations.get(room_id, 0)
                    members = await self._load(room_id)
                    if self._generations.get(room_id, 0) == generation:
                        self._entries[room_id] = _CacheEntry(members, self.clock())
                        return members
                    self.logger.debug(
                        f"Discarded membership of room {room_id} fetched before invalidation"
                    )
        finally:
            self._release(room_id)

    def _release(self, room_id: int) -> None:
        remaining = self._pending.get(room_id, 1) - 1
        if remaining:
            self._pending[room_id] = remaining
            return
        # no fetch pending, so no generation can be compared against any more
        self._pending.pop(room_id, None)
        self._locks.pop(room_id, None)
        self._generations.pop(room_id, None)

    async def _load(self, room_id: int) -> frozenset[int]:
        try:
            member_ids = await self.loader(room_id)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to load members of room {room_id}: {e!s}")
            raise Unavailable(f"Membership of room {room_id} is unavailable") from e
        if member_ids is None:
            self._entries.pop(room_id, None)
            raise NotFound(f"Room {room_id} not found")
        return frozenset(member_ids)

    def invalidate(self, room_id: int) -> None:
        """Mark the room's entry stale; call only after the change is committed."""
        if room_id in self._pending:
            self._generations[room_id] = self._generations.get(room_id, 0) + 1
        entry = self._entries.get(room_id)
        if entry is not None:
            self._entries[room_id] = _CacheEntry(entry.members, entry.fetched_at, stale=True)
        self.logger.debug(f"Invalidated membership of room {room_id}")

    def clear(self) -> None:
        self._entries.clear()
        self._generations.clear()
        self._locks.clear()
        self._pending.clear()
