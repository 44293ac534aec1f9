# chatrelay/gateways/interfaces.py
from abc import ABC, abstractmethod
from typing import List, Optional

from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UoWModel


class IUserGateway(ABC):
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_all(
        self, skip: int = 0, limit: int = 100, username: Optional[str] = None
    ) -> List[UoWModel]:
        pass

    @abstractmethod
    async def get_existing_ids(self, user_ids: List[int]) -> set[int]:
        pass

    @abstractmethod
    async def create_user(
        self, user: schemas.UserCreate, security_service: SecurityService
    ) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def search_users(self, query: str, current_user_id: int) -> List[UoWModel]:
        pass

    @abstractmethod
    async def update_user(self, user_id: int, **changes) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def verify_password(
        self, user: UoWModel, password: str, security_service: SecurityService
    ) -> bool:
        pass


class IRoomGateway(ABC):
    @abstractmethod
    async def get_room(self, room_id: int) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_rooms_by_owner(self, owner_id: int) -> List[UoWModel]:
        pass

    @abstractmethod
    async def get_rooms_by_member(self, user_id: int) -> List[UoWModel]:
        pass

    @abstractmethod
    async def get_member_ids(self, room_id: int) -> Optional[List[int]]:
        pass

    @abstractmethod
    async def create_room(
        self, name: str, owner_id: int, member_ids: List[int]
    ) -> UoWModel:
        pass

    @abstractmethod
    async def save_room(self, room_id: int, name: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def add_members(
        self, room_id: int, member_ids: List[int]
    ) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def remove_member(self, room_id: int, member_id: int) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def delete_room(self, room_id: int) -> bool:
        pass


class IMessageGateway(ABC):
    @abstractmethod
    async def get_message(
        self, message_id: int, refresh: bool = False
    ) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def create_message(
        self,
        sender_id: int,
        content: str,
        recipient_id: Optional[int] = None,
        room_id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> UoWModel:
        pass

    @abstractmethod
    async def update_message(
        self, message_id: int, sender_id: int, content: str
    ) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def delete_message(self, message_id: int, sender_id: int) -> bool:
        pass

    @abstractmethod
    async def toggle_like(self, message_id: int, user_id: int) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def list_by_sender(
        self, sender_id: int, skip: int = 0, limit: int = 10
    ) -> List[UoWModel]:
        pass

    @abstractmethod
    async def list_room_messages(
        self, room_id: int, skip: int = 0, limit: int = 50
    ) -> List[UoWModel]:
        pass

    @abstractmethod
    async def list_conversation(
        self, user_id: int, other_user_id: int, skip: int = 0, limit: int = 50
    ) -> List[UoWModel]:
        pass

    @abstractmethod
    async def get_reply_levels(
        self, message_id: int, max_depth: int
    ) -> List[List[UoWModel]]:
        pass


class ITokenGateway(ABC):
    @abstractmethod
    async def create_token(self, token: schemas.TokenCreate) -> UoWModel:
        pass

    @abstractmethod
    async def get_by_access_token(self, access_token: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def get_by_refresh_token(self, refresh_token: str) -> Optional[UoWModel]:
        pass

    @abstractmethod
    async def delete_token_by_access_token(self, access_token: str) -> bool:
        pass

    @abstractmethod
    async def delete_tokens_for_user(self, user_id: int) -> int:
        pass
