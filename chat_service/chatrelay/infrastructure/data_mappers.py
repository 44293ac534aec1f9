# chatrelay/infrastructure/data_mappers.py
from typing import Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.infrastructure import models

ModelT = TypeVar("ModelT")


class SessionMapper(Generic[ModelT]):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, model: ModelT):
        self.session.add(model)
        await self.session.flush()

    async def delete(self, model: ModelT):
        await self.session.delete(model)

    async def update(self, model: ModelT):
        await self.session.merge(model)


class UserMapper(SessionMapper[models.User]):
    pass


class RoomMapper(SessionMapper[models.Room]):
    pass


class MessageMapper(SessionMapper[models.Message]):
    pass


class TokenMapper(SessionMapper[models.Token]):
    pass
