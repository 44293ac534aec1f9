# chatrelay/realtime/connection.py
from collections import OrderedDict
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

from chatrelay.domain.events import ERROR, Envelope


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class Connection:
    """One live client channel (a socket) owned by an authenticated user.

    Remembers the last ``seen_limit`` event ids it has sent so that pushing the
    same envelope twice reaches the client once. Hashes by identity, so a set
    of connections never holds the same channel twice.
    """

    def __init__(self, user_id: int, transport: Transport, seen_limit: int = 1024):
        self.connection_id = uuid4().hex
        self.user_id = user_id
        self.transport = transport
        self.created_at = datetime.now(UTC)
        self.seen_limit = seen_limit
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __repr__(self) -> str:
        return f"Connection(id={self.connection_id}, user_id={self.user_id})"

    def _mark_seen(self, event_id: str) -> bool:
        if event_id in self._seen:
            self._seen.move_to_end(event_id)
            return False
        self._seen[event_id] = None
        if len(self._seen) > self.seen_limit:
            self._seen.popitem(last=False)
        return True

    async def send(self, envelope: Envelope) -> bool:
        """Push ``envelope``; returns False when this event id was already sent."""
        if not self._mark_seen(envelope.event_id):
            return False
        try:
            await self.transport.send_json(envelope.to_wire())
        except BaseException:
            # not sent, so a later dispatch of the same event must still go out
            self._seen.pop(envelope.event_id, None)
            raise
        return True

    async def send_error(self, code: str, detail: str, ref: str | None = None) -> None:
        envelope = Envelope(event=ERROR, data={"error": code, "detail": detail, "ref": ref})
        await self.send(envelope)

    async def close(self, code: int = 1000) -> None:
        await self.transport.close(code=code)
