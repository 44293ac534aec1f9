# chatrelay/domain/entities.py
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, threaded explicitly through routing calls.

    ``connection_id`` is set when the action arrived over a live socket, so
    echo policies can tell the originating connection apart from the
    sender's other devices.
    """

    user_id: int
    username: str
    connection_id: str | None = None


class MessageKind(str, Enum):
    DIRECT = "direct"
    ROOM = "room"


class EventKind(str, Enum):
    DIRECT_MESSAGE = "direct_message"
    ROOM_MESSAGE = "room_message"
    REPLY = "reply"
    LIKE = "like"
    ADD_MEMBERS = "add_members"
    REMOVE_MEMBER = "remove_member"
    MESSAGE_UPDATED = "message_updated"


class EventState(str, Enum):
    RECEIVED = "received"
    AUTHORIZED = "authorized"
    RESOLVED = "resolved"
    DISPATCHED = "dispatched"
    REJECTED = "rejected"


class EchoPolicy(str, Enum):
    """Whether the sender of a room message receives its own event."""

    ALL = "all"
    OTHER_CONNECTIONS = "other_connections"
    NONE = "none"
