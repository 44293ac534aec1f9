# chatrelay/infrastructure/schemas.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from chatrelay.domain.entities import MessageKind


class UserBase(BaseModel):
    username: str
    email: EmailStr


class UserBasic(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class User(UserBase):
    id: int
    created_at: datetime
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    email: EmailStr


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class RoomBase(BaseModel):
    name: str = Field(..., min_length=1)


class RoomCreate(RoomBase):
    member_ids: list[int] = Field(default_factory=list)


class RoomUpdate(RoomBase):
    pass


class RoomMembersAdd(BaseModel):
    member_ids: list[int] = Field(..., min_length=1)


class Room(RoomBase):
    id: int
    owner_id: int
    created_at: datetime
    members: list[UserBasic] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class MessageBase(BaseModel):
    content: str = Field(..., min_length=1)


class MessageCreate(MessageBase):
    pass


class MessageUpdate(MessageBase):
    pass


class Message(MessageBase):
    id: int
    kind: MessageKind
    sender_id: int
    recipient_id: int | None = None
    room_id: int | None = None
    parent_id: int | None = None
    created_at: datetime
    updated_at: datetime | None = None
    sender: UserBasic
    liked_by: list[int] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class MessageThread(BaseModel):
    message: Message
    replies: list["MessageThread"] = Field(default_factory=list)


class LikeState(BaseModel):
    message_id: int
    liked_by: list[int]


class Delivery(BaseModel):
    """Summary of the live fan-out that followed a committed write."""

    event_id: str | None = None
    state: str
    targets: int
    delivered: int


class MessageSent(BaseModel):
    message: Message
    delivery: Delivery


class MembersChanged(BaseModel):
    room: Room
    delivery: Delivery


class TokenBase(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str


class TokenCreate(TokenBase):
    expires_at: datetime
    user_id: int


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    expires_at: datetime
    user_id: int


class RefreshTokenRequest(BaseModel):
    refresh_token: str
