# chatrelay/realtime/router.py
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from chatrelay.domain import events
from chatrelay.domain.entities import (
    EchoPolicy,
    EventKind,
    EventState,
    Identity,
    MessageKind,
)
from chatrelay.domain.exceptions import Invalid, NotFound, RelayError, Unauthorized, Unavailable
from chatrelay.gateways.interfaces import IMessageGateway, IRoomGateway, IUserGateway
from chatrelay.realtime.connection import Connection
from chatrelay.realtime.membership import MembershipIndex
from chatrelay.realtime.registry import ConnectionRegistry

PAYLOAD_TYPES: dict[EventKind, type[events.RoutedPayload]] = {
    EventKind.DIRECT_MESSAGE: events.DirectMessagePayload,
    EventKind.ROOM_MESSAGE: events.RoomMessagePayload,
    EventKind.REPLY: events.ReplyPayload,
    EventKind.LIKE: events.LikePayload,
    EventKind.MESSAGE_UPDATED: events.MessageUpdatedPayload,
    EventKind.ADD_MEMBERS: events.AddMembersPayload,
    EventKind.REMOVE_MEMBER: events.RemoveMemberPayload,
}


def room_channel(room_id: int) -> str:
    return f"room:{room_id}"


def user_channel(user_id: int) -> str:
    return f"user:{user_id}"


def reply_counterpart(sender_id: int, recipient_id: int, user_id: int) -> int:
    """Other party of a direct conversation, seen from ``user_id``."""
    return sender_id if user_id == recipient_id else recipient_id


@dataclass(frozen=True)
class Decision:
    """Outcome of routing one inbound event."""

    kind: EventKind
    state: EventState
    targets: frozenset[Connection] = field(default_factory=frozenset)
    envelope: events.Envelope | None = None
    error: RelayError | None = None
    channel: str | None = None

    @property
    def rejected(self) -> bool:
        return self.state == EventState.REJECTED

    def dispatched(self) -> "Decision":
        return replace(self, state=EventState.DISPATCHED)


@dataclass(frozen=True)
class _Audience:
    """Who an authorized event is addressed to, before connections are looked up."""

    message_kind: MessageKind
    receiver: int
    members: frozenset[int] = frozenset()


class EventRouter:
    """Authorizes inbound events and computes the connections they go to.

    ``authorize`` is called before the write and ``route`` after it has been
    committed; both take the acting identity explicitly and neither mutates
    anything but the membership index. Rejections are returned as a
    ``Decision`` in the ``REJECTED`` state, never raised.
    """

    def __init__(
        self,
        user_gateway: IUserGateway,
        room_gateway: IRoomGateway,
        message_gateway: IMessageGateway,
        registry: ConnectionRegistry,
        membership: MembershipIndex,
        logger: logging.Logger,
        echo_policy: EchoPolicy = EchoPolicy.ALL,
    ):
        self.user_gateway = user_gateway
        self.room_gateway = room_gateway
        self.message_gateway = message_gateway
        self.registry = registry
        self.membership = membership
        self.logger = logger
        self.echo_policy = echo_policy

    async def authorize(
        self, kind: EventKind, payload: BaseModel | dict[str, Any], identity: Identity
    ) -> Decision:
        try:
            payload = self._coerce(kind, payload)
            await self._authorize(kind, payload, identity, committed=False)
        except RelayError as e:
            return self._reject(kind, identity, e)
        except SQLAlchemyError as e:
            return self._reject(kind, identity, self._unavailable(e))
        return Decision(kind, EventState.AUTHORIZED)

    async def route(
        self, kind: EventKind, payload: BaseModel | dict[str, Any], identity: Identity
    ) -> Decision:
        try:
            payload = self._coerce(kind, payload)
            audience = await self._authorize(kind, payload, identity, committed=True)
            return await self._resolve(kind, payload, identity, audience)
        except RelayError as e:
            return self._reject(kind, identity, e)
        except SQLAlchemyError as e:
            return self._reject(kind, identity, self._unavailable(e))

    async def check_visible(self, message_id: int, identity: Identity) -> None:
        """Raise unless ``identity`` may read the message: room members or the two parties."""
        try:
            await self._check_visible(identity, message_id)
        except SQLAlchemyError as e:
            raise self._unavailable(e) from e

    async def check_member(self, room_id: int, identity: Identity) -> frozenset[int]:
        return (await self._room_audience(identity, room_id)).members

    def _coerce(self, kind: EventKind, payload: BaseModel | dict[str, Any]):
        expected = PAYLOAD_TYPES.get(kind)
        if expected is None:
            raise Invalid(f"Unknown event kind {kind!r}")
        if isinstance(payload, expected):
            return payload
        if isinstance(payload, BaseModel):
            raise Invalid(f"{type(payload).__name__} is not a {kind.value} payload")
        try:
            return expected.model_validate(payload)
        except ValidationError as e:
            raise Invalid(f"Malformed {kind.value} payload: {e.error_count()} error(s)") from e

    def _reject(self, kind: EventKind, identity: Identity, error: RelayError) -> Decision:
        self.logger.info(
            f"Rejected {kind.value} from user {identity.user_id}: {error.code} ({error.detail})"
        )
        return Decision(kind, EventState.REJECTED, error=error)

    def _unavailable(self, error: SQLAlchemyError) -> Unavailable:
        self.logger.error(f"Persistence failure while routing: {error!s}")
        return Unavailable("Storage is temporarily unavailable")

    # authorization

    async def _authorize(
        self, kind: EventKind, payload, identity: Identity, committed: bool
    ) -> _Audience | None:
        if kind == EventKind.DIRECT_MESSAGE:
            return await self._direct_audience(identity, payload.receiver_id)
        if kind == EventKind.ROOM_MESSAGE:
            return await self._room_audience(identity, payload.room_id)
        if kind == EventKind.REPLY:
            return await self._reply_audience(identity, payload.parent_id)
        if kind == EventKind.LIKE:
            await self._check_visible(identity, payload.message_id)
            return None
        if kind == EventKind.MESSAGE_UPDATED:
            return await self._update_audience(identity, payload.message_id)
        if kind == EventKind.ADD_MEMBERS:
            await self._check_add_members(identity, payload)
            return None
        if kind == EventKind.REMOVE_MEMBER:
            await self._check_remove_member(identity, payload, committed)
            return None
        raise Invalid(f"Unknown event kind {kind!r}")

    async def _direct_audience(self, identity: Identity, receiver_id: int) -> _Audience:
        sender = await self.user_gateway.get_user(identity.user_id)
        if sender is None or not sender.is_active:
            raise Unauthorized(f"User {identity.user_id} cannot send messages")
        if await self.user_gateway.get_user(receiver_id) is None:
            raise NotFound(f"User {receiver_id} not found")
        return _Audience(MessageKind.DIRECT, receiver_id)

    async def _room_audience(self, identity: Identity, room_id: int) -> _Audience:
        members = await self.membership.members_of(room_id)
        if identity.user_id not in members:
            raise Unauthorized(f"User {identity.user_id} is not a member of room {room_id}")
        return _Audience(MessageKind.ROOM, room_id, members)

    async def _reply_audience(self, identity: Identity, parent_id: int) -> _Audience:
        parent = await self.message_gateway.get_message(parent_id)
        if parent is None:
            raise NotFound(f"Message {parent_id} not found")
        if parent.room_id is not None:
            return await self._room_audience(identity, parent.room_id)
        if identity.user_id not in (parent.sender_id, parent.recipient_id):
            raise Unauthorized(f"User {identity.user_id} is not part of this conversation")
        counterpart = reply_counterpart(
            parent.sender_id, parent.recipient_id, identity.user_id
        )
        return await self._direct_audience(identity, counterpart)

    async def _check_visible(self, identity: Identity, message_id: int) -> None:
        message = await self.message_gateway.get_message(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        if message.room_id is not None:
            await self._room_audience(identity, message.room_id)
        elif identity.user_id not in (message.sender_id, message.recipient_id):
            raise Unauthorized(f"User {identity.user_id} is not part of this conversation")

    async def _update_audience(self, identity: Identity, message_id: int) -> _Audience:
        message = await self.message_gateway.get_message(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        if message.sender_id != identity.user_id:
            raise Unauthorized("Only the sender may edit a message")
        if message.room_id is not None:
            return await self._room_audience(identity, message.room_id)
        return await self._direct_audience(identity, message.recipient_id)

    async def _owned_room(self, identity: Identity, room_id: int):
        room = await self.room_gateway.get_room(room_id)
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        if room.owner_id != identity.user_id:
            raise Unauthorized(f"Only the owner may change members of room {room_id}")
        return room

    async def _check_add_members(
        self, identity: Identity, payload: events.AddMembersPayload
    ) -> None:
        await self._owned_room(identity, payload.room_id)
        existing = await self.user_gateway.get_existing_ids(payload.member_ids)
        missing = sorted(set(payload.member_ids) - existing)
        if missing:
            raise NotFound(f"Users not found: {', '.join(map(str, missing))}")

    async def _check_remove_member(
        self, identity: Identity, payload: events.RemoveMemberPayload, committed: bool
    ) -> None:
        room = await self._owned_room(identity, payload.room_id)
        if payload.member_id == room.owner_id:
            raise Invalid("The room owner cannot be removed")
        # after the write the member is gone, which is the expected state
        if not committed and payload.member_id not in await self.membership.members_of(
            payload.room_id
        ):
            raise NotFound(f"User {payload.member_id} is not a member of room {payload.room_id}")

    # resolution

    async def _resolve(
        self, kind: EventKind, payload, identity: Identity, audience: _Audience | None
    ) -> Decision:
        if kind == EventKind.LIKE:
            return Decision(kind, EventState.RESOLVED)
        if kind in (EventKind.ADD_MEMBERS, EventKind.REMOVE_MEMBER):
            return await self._resolve_membership(kind, payload)

        if audience.message_kind == MessageKind.ROOM:
            targets = self._apply_echo(self._connections_of(audience.members), identity)
            channel = room_channel(audience.receiver)
        else:
            targets = self.registry.connections_for(audience.receiver)
            channel = user_channel(audience.receiver)
        envelope = events.Envelope(
            event=events.MESSAGE_RECEIVED,
            data=self._message_data(audience, payload, identity),
        )
        return Decision(
            kind, EventState.RESOLVED, targets=targets, envelope=envelope, channel=channel
        )

    async def _resolve_membership(self, kind: EventKind, payload) -> Decision:
        self.membership.invalidate(payload.room_id)
        snapshot = await self.membership.members_of(payload.room_id)
        targets = self._connections_of(snapshot)
        if kind == EventKind.ADD_MEMBERS:
            envelope = events.Envelope(
                event=events.MEMBERS_ADDED,
                data={
                    "roomId": payload.room_id,
                    "members": sorted(set(payload.member_ids)),
                    "snapshot": sorted(snapshot),
                },
            )
        else:
            targets = targets | self.registry.connections_for(payload.member_id)
            envelope = events.Envelope(
                event=events.MEMBER_REMOVED,
                data={
                    "roomId": payload.room_id,
                    "members": sorted(snapshot),
                    "removed": payload.member_id,
                },
            )
        return Decision(
            kind,
            EventState.RESOLVED,
            targets=targets,
            envelope=envelope,
            channel=room_channel(payload.room_id),
        )

    def _connections_of(self, user_ids: Iterable[int]) -> frozenset[Connection]:
        connections: set[Connection] = set()
        for user_id in user_ids:
            connections |= self.registry.connections_for(user_id)
        return frozenset(connections)

    def _apply_echo(
        self, targets: frozenset[Connection], identity: Identity
    ) -> frozenset[Connection]:
        if self.echo_policy == EchoPolicy.OTHER_CONNECTIONS:
            return frozenset(c for c in targets if c.connection_id != identity.connection_id)
        if self.echo_policy == EchoPolicy.NONE:
            return frozenset(c for c in targets if c.user_id != identity.user_id)
        return targets

    def _message_data(self, audience: _Audience, payload, identity: Identity) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": audience.message_kind.value,
            "sender": identity.user_id,
            "senderName": identity.username,
            "receiver": audience.receiver,
            "content": payload.content,
        }
        if audience.message_kind == MessageKind.ROOM:
            data["roomId"] = audience.receiver
        if payload.message is not None:
            data["content"] = payload.message.content
            data["message"] = payload.message.model_dump(mode="json")
        return data
