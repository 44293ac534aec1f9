# chatrelay/domain/events.py
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from chatrelay.domain.entities import MessageKind

# wire names, kept compatible with existing socket clients
NEW_MESSAGE = "newMessage"
MESSAGE_RECEIVED = "messageReceived"
ADD_MEMBERS = "addMembers"
MEMBERS_ADDED = "membersAdded"
MEMBER_REMOVED = "memberRemoved"
ERROR = "error"
CONNECTED = "connected"


class Event(BaseModel):
    pass


class MessageSnapshot(BaseModel):
    """Committed state of a message as it travels with a routed event."""

    id: int
    kind: MessageKind
    sender_id: int
    recipient_id: int | None = None
    room_id: int | None = None
    parent_id: int | None = None
    content: str
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def receiver(self) -> int:
        return self.room_id if self.kind == MessageKind.ROOM else self.recipient_id


class RoutedPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DirectMessagePayload(RoutedPayload):
    receiver_id: int
    content: str = Field(..., min_length=1)
    message: MessageSnapshot | None = None


class RoomMessagePayload(RoutedPayload):
    room_id: int
    content: str = Field(..., min_length=1)
    message: MessageSnapshot | None = None


class ReplyPayload(RoutedPayload):
    parent_id: int
    content: str = Field(..., min_length=1)
    message: MessageSnapshot | None = None


class LikePayload(RoutedPayload):
    message_id: int


class MessageUpdatedPayload(RoutedPayload):
    message_id: int
    content: str = Field(..., min_length=1)
    message: MessageSnapshot | None = None


class AddMembersPayload(RoutedPayload):
    room_id: int
    member_ids: list[int] = Field(..., min_length=1)


class RemoveMemberPayload(RoutedPayload):
    room_id: int
    member_id: int


class Envelope(BaseModel):
    """Outbound frame pushed to a connection.

    The payload always carries full state, and ``event_id`` is fixed when the
    envelope is built, so receiving the same frame twice is harmless.
    """

    event: str
    event_id: str = Field(default_factory=lambda: uuid4().hex, alias="eventId")
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class EnvelopeDispatched(Event):
    channel: str
    envelope: Envelope
    delivered: int
