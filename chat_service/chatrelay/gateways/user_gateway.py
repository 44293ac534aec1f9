# chatrelay/gateways/user_gateway.py
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.gateways.interfaces import IUserGateway
from chatrelay.infrastructure import models, schemas
from chatrelay.infrastructure.data_mappers import UserMapper
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UnitOfWork, UoWModel


class UserGateway(IUserGateway):
    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.User] = UserMapper(session)

    async def get_user(self, user_id: int) -> UoWModel | None:
        stmt = select(models.User).filter(models.User.id == user_id)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return UoWModel(user, self.uow) if user else None

    async def get_by_email(self, email: str) -> UoWModel | None:
        stmt = select(models.User).filter(
            func.lower(models.User.email) == func.lower(email)
        )
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return UoWModel(user, self.uow) if user else None

    async def get_by_username(self, username: str) -> UoWModel | None:
        stmt = select(models.User).filter(
            func.lower(models.User.username) == func.lower(username)
        )
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return UoWModel(user, self.uow) if user else None

    async def get_all(
        self, skip: int = 0, limit: int = 100, username: str | None = None
    ) -> list[UoWModel]:
        stmt = select(models.User)
        if username:
            stmt = stmt.filter(models.User.username.ilike(f"%{username}%"))
        stmt = stmt.order_by(models.User.id).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        users = result.scalars().all()
        return [UoWModel(user, self.uow) for user in users]

    async def get_existing_ids(self, user_ids: list[int]) -> set[int]:
        if not user_ids:
            return set()
        stmt = select(models.User.id).filter(models.User.id.in_(user_ids))
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def create_user(
        self, user: schemas.UserCreate, security_service: SecurityService
    ) -> UoWModel | None:
        if await self.get_by_email(user.email):
            return None
        if await self.get_by_username(user.username):
            return None

        hashed_password = security_service.get_password_hash(user.password)
        db_user = models.User(
            **user.model_dump(exclude={"password"}), hashed_password=hashed_password
        )
        uow_user = self.uow.register_new(db_user)
        await self.uow.commit()
        return uow_user

    async def update_user(self, user_id: int, **changes) -> UoWModel | None:
        user = await self.get_user(user_id)
        if user is None:
            return None
        for field, value in changes.items():
            setattr(user, field, value)
        await self.uow.commit()
        return user

    async def search_users(self, query: str, current_user_id: int) -> list[UoWModel]:
        stmt = select(models.User).filter(
            models.User.id != current_user_id, models.User.username.ilike(f"%{query}%")
        )
        result = await self.session.execute(stmt)
        users = result.scalars().all()
        return [UoWModel(user, self.uow) for user in users]

    async def verify_password(
        self, user: UoWModel, password: str, security_service: SecurityService
    ) -> bool:
        return security_service.verify_password(password, user._model.hashed_password)
