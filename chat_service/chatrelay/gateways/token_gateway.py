# chatrelay/gateways/token_gateway.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.gateways.interfaces import ITokenGateway
from chatrelay.infrastructure import models, schemas
from chatrelay.infrastructure.data_mappers import TokenMapper
from chatrelay.infrastructure.uow import UnitOfWork, UoWModel


class TokenGateway(ITokenGateway):
    """One token pair per user; a new login replaces the previous pair."""

    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.Token] = TokenMapper(session)

    async def _get_one(self, *criteria) -> Optional[UoWModel]:
        result = await self.session.execute(select(models.Token).filter(*criteria))
        token = result.scalar_one_or_none()
        return UoWModel(token, self.uow) if token else None

    async def create_token(self, token: schemas.TokenCreate) -> UoWModel:
        existing_token = await self._get_one(models.Token.user_id == token.user_id)
        if existing_token:
            existing_token.access_token = token.access_token
            existing_token.refresh_token = token.refresh_token
            existing_token.expires_at = token.expires_at
        else:
            existing_token = self.uow.register_new(models.Token(**token.model_dump()))
        await self.uow.commit()
        return existing_token

    async def get_by_access_token(self, access_token: str) -> Optional[UoWModel]:
        return await self._get_one(models.Token.access_token == access_token)

    async def get_by_refresh_token(self, refresh_token: str) -> Optional[UoWModel]:
        return await self._get_one(models.Token.refresh_token == refresh_token)

    async def delete_token_by_access_token(self, access_token: str) -> bool:
        token = await self.get_by_access_token(access_token)
        if token:
            self.uow.register_deleted(token)
            await self.uow.commit()
            return True
        return False

    async def delete_tokens_for_user(self, user_id: int) -> int:
        result = await self.session.execute(
            select(models.Token).filter(models.Token.user_id == user_id)
        )
        tokens = result.scalars().all()
        for token in tokens:
            self.uow.register_deleted(token)
        await self.uow.commit()
        return len(tokens)
