# chatrelay/infrastructure/database.py
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from chatrelay.infrastructure.uow import UnitOfWork


class Base(DeclarativeBase):
    pass


class Database:
    """Engine and session factory shared by requests, sockets and the membership loader.

    Sessions never outlive a single request or socket frame. ``expire_on_commit``
    is off so committed rows can still be turned into wire snapshots after the
    unit of work has committed.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def connect(self) -> None:
        async with self.engine.begin() as conn:
            import chatrelay.infrastructure.models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)

    async def disconnect(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncGenerator[UnitOfWork, None]:
        """A fresh session wrapped in a unit of work; uncommitted changes are dropped on error."""
        async with self.session() as session:
            uow = UnitOfWork(session)
            try:
                yield uow
            except Exception:
                await uow.rollback()
                raise


def create_database(url: str, echo: bool = False) -> Database:
    return Database(create_async_engine(url, echo=echo))
