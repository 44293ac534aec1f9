# chatrelay/realtime/relay.py
import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from chatrelay.domain.entities import EchoPolicy
from chatrelay.domain.events import EnvelopeDispatched
from chatrelay.gateways.interfaces import IMessageGateway, IRoomGateway, IUserGateway
from chatrelay.infrastructure.event_dispatcher import EventDispatcher
from chatrelay.realtime.connection import Connection, Transport
from chatrelay.realtime.delivery import DeliveryEngine, DeliveryOutcome
from chatrelay.realtime.membership import MemberLoader, MembershipIndex
from chatrelay.realtime.registry import ConnectionRegistry
from chatrelay.realtime.router import Decision, EventRouter


@dataclass
class _RoomTurn:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class Relay:
    """Process-wide realtime state: live connections, cached membership and delivery.

    Created once per application. Request handlers build an ``EventRouter``
    bound to their own gateways through ``router`` and hand the resulting
    decision back to ``deliver`` after their write has been committed.

    Writes to a room run inside ``room_order``, from just before the write
    until ``deliver`` returns, so a room's events reach clients in the order
    they were committed.
    """

    def __init__(
        self,
        member_loader: MemberLoader,
        event_dispatcher: EventDispatcher,
        logger: logging.Logger,
        echo_policy: EchoPolicy = EchoPolicy.ALL,
        delivery_timeout: float = 5.0,
        membership_ttl: float = 0,
        seen_event_limit: int = 1024,
    ):
        self.logger = logger
        self.event_dispatcher = event_dispatcher
        self.echo_policy = echo_policy
        self.seen_event_limit = seen_event_limit
        self.registry = ConnectionRegistry(logger)
        self.membership = MembershipIndex(member_loader, logger, ttl_seconds=membership_ttl)
        self.delivery = DeliveryEngine(self.registry, logger, timeout_seconds=delivery_timeout)
        self._room_turns: dict[int, _RoomTurn] = {}

    def router(
        self,
        user_gateway: IUserGateway,
        room_gateway: IRoomGateway,
        message_gateway: IMessageGateway,
    ) -> EventRouter:
        return EventRouter(
            user_gateway,
            room_gateway,
            message_gateway,
            self.registry,
            self.membership,
            self.logger,
            echo_policy=self.echo_policy,
        )

    def register_connection(self, user_id: int, transport: Transport) -> Connection:
        connection = Connection(user_id, transport, seen_limit=self.seen_event_limit)
        self.registry.register(user_id, connection)
        return connection

    def unregister_connection(self, connection_id: str) -> None:
        self.registry.unregister(connection_id)

    @asynccontextmanager
    async def room_order(self, room_id: int | None) -> AsyncIterator[None]:
        """Serialize write, route and delivery per room; a None room is not ordered."""
        if room_id is None:
            yield
            return
        turn = self._room_turns.setdefault(room_id, _RoomTurn())
        turn.holders += 1
        try:
            async with turn.lock:
                yield
        finally:
            turn.holders -= 1
            if turn.holders == 0:
                self._room_turns.pop(room_id, None)

    def on_membership_changed(self, room_id: int) -> None:
        """Call after a committed change to a room's membership or existence."""
        self.membership.invalidate(room_id)

    async def deliver(self, decision: Decision) -> tuple[Decision, list[DeliveryOutcome]]:
        if decision.rejected:
            # the write is already committed; only the live fan-out is lost
            self.logger.warning(
                f"Skipped fan-out of committed {decision.kind.value}: "
                f"{decision.error.code} ({decision.error.detail})"
            )
            return decision, []
        if decision.envelope is None:
            return decision, []

        outcomes = await self.delivery.dispatch(decision.targets, decision.envelope)
        delivered = sum(1 for outcome in outcomes if outcome.delivered)
        if decision.channel is not None:
            await self.event_dispatcher.dispatch(
                EnvelopeDispatched(
                    channel=decision.channel,
                    envelope=decision.envelope,
                    delivered=delivered,
                )
            )
        return decision.dispatched(), outcomes

    async def disconnect_user(self, user_id: int) -> int:
        """Unregister and close every live connection of ``user_id``."""
        connections = self.registry.connections_for(user_id)
        for connection in connections:
            self.registry.unregister(connection.connection_id)
            await self._close(connection, 1000)
        if connections:
            self.logger.info(f"Closed {len(connections)} connections of user {user_id}")
        return len(connections)

    async def _close(self, connection: Connection, code: int) -> None:
        try:
            await connection.close(code=code)
        except Exception as e:
            self.logger.debug(f"Error closing connection {connection.connection_id}: {e!s}")

    async def shutdown(self) -> None:
        connections = self.registry.clear()
        for connection in connections:
            await self._close(connection, 1001)
        self.membership.clear()
        self.logger.info(f"Relay shut down, closed {len(connections)} connections")
