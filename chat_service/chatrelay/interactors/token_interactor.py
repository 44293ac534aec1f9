# chatrelay/interactors/token_interactor.py
from typing import Optional

from chatrelay.gateways.interfaces import ITokenGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.security import SecurityService
from chatrelay.interactors.common import storage_call


class TokenInteractor:
    """Issues, rotates and revokes the stored access/refresh pair of a user.

    A user holds at most one stored pair; issuing a new one replaces it, so a
    fresh login or refresh retires every earlier token, sockets included on
    their next handshake.
    """

    def __init__(self, token_gateway: ITokenGateway, security_service: SecurityService):
        self.token_gateway = token_gateway
        self.security_service = security_service

    async def issue_tokens(self, user: schemas.User) -> schemas.TokenResponse:
        access_token, access_expire = self.security_service.create_access_token(
            user.username
        )
        refresh_token, _ = self.security_service.create_refresh_token(user.username)
        token = await storage_call(
            self.token_gateway.create_token(
                schemas.TokenCreate(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    token_type="bearer",
                    expires_at=access_expire,
                    user_id=user.id,
                )
            )
        )
        return schemas.TokenResponse.model_validate(token._model, from_attributes=True)

    async def refresh_subject(self, refresh_token: str) -> Optional[str]:
        """Username behind a stored, unexpired refresh token, or None."""
        token = await storage_call(self.token_gateway.get_by_refresh_token(refresh_token))
        if token is None:
            return None
        return self.security_service.decode_refresh_token(token.refresh_token)

    async def revoke(self, access_token: str) -> bool:
        return await storage_call(
            self.token_gateway.delete_token_by_access_token(access_token)
        )
