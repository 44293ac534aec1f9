# chatrelay/interactors/user_interactor.py
from chatrelay.domain.exceptions import Conflict, NotFound
from chatrelay.gateways.interfaces import ITokenGateway, IUserGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UoWModel
from chatrelay.interactors.common import storage_call
from chatrelay.realtime.relay import Relay


def _user(user: UoWModel | None) -> schemas.User | None:
    return schemas.User.model_validate(user._model) if user else None


class UserInteractor:
    def __init__(
        self,
        security_service: SecurityService,
        user_gateway: IUserGateway,
        token_gateway: ITokenGateway | None = None,
        relay: Relay | None = None,
    ):
        self.security_service = security_service
        self.user_gateway = user_gateway
        self.token_gateway = token_gateway
        self.relay = relay

    async def get_user(self, user_id: int) -> schemas.User | None:
        return _user(await storage_call(self.user_gateway.get_user(user_id)))

    async def get_user_by_username(self, username: str) -> schemas.User | None:
        return _user(await storage_call(self.user_gateway.get_by_username(username)))

    async def get_users(
        self, skip: int = 0, limit: int = 100, username: str | None = None
    ) -> list[schemas.User]:
        users = await storage_call(self.user_gateway.get_all(skip, limit, username))
        return [_user(user) for user in users]

    async def register(self, user: schemas.UserCreate) -> schemas.User:
        """Create an account; usernames and emails are unique case-insensitively."""
        if await storage_call(self.user_gateway.get_by_username(user.username)):
            raise Conflict("Username already registered")
        if await storage_call(self.user_gateway.get_by_email(user.email)):
            raise Conflict("Email already registered")
        new_user = await storage_call(
            self.user_gateway.create_user(user, self.security_service)
        )
        if new_user is None:
            # lost a race with a concurrent registration
            raise Conflict("User creation failed")
        return _user(new_user)

    async def search_users(
        self, query: str, current_user_id: int
    ) -> list[schemas.UserBasic]:
        users = await storage_call(self.user_gateway.search_users(query, current_user_id))
        return [schemas.UserBasic.model_validate(user._model) for user in users]

    async def authenticate(self, username: str, password: str) -> schemas.User | None:
        """The account matching the credentials, or None; inactive accounts are returned too."""
        user = await storage_call(self.user_gateway.get_by_username(username))
        if not user:
            return None
        if await self.user_gateway.verify_password(user, password, self.security_service):
            return _user(user)
        return None

    async def read_user(self, user_id: int) -> schemas.User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def update_profile(self, user_id: int, update: schemas.UserUpdate) -> schemas.User:
        owner = await storage_call(self.user_gateway.get_by_email(update.email))
        if owner is not None and owner.id != user_id:
            raise Conflict("Email already registered")
        user = await storage_call(self.user_gateway.update_user(user_id, email=update.email))
        if user is None:
            raise NotFound("User not found")
        return _user(user)

    async def change_password(self, user_id: int, change: schemas.PasswordChange) -> bool:
        """Store a new password hash; False when ``current_password`` does not match."""
        user = await storage_call(self.user_gateway.get_user(user_id))
        if user is None:
            raise NotFound("User not found")
        if not await self.user_gateway.verify_password(
            user, change.current_password, self.security_service
        ):
            return False
        hashed_password = self.security_service.get_password_hash(change.new_password)
        await storage_call(
            self.user_gateway.update_user(user_id, hashed_password=hashed_password)
        )
        return True

    async def deactivate(self, user_id: int) -> None:
        """Deactivate the account and revoke its tokens and sockets.

        The row is kept so messages still name their sender.
        """
        user = await storage_call(self.user_gateway.update_user(user_id, is_active=False))
        if user is None:
            raise NotFound("User not found")
        if self.token_gateway is not None:
            await storage_call(self.token_gateway.delete_tokens_for_user(user_id))
        if self.relay is not None:
            await self.relay.disconnect_user(user_id)
