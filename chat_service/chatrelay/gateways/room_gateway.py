# chatrelay/gateways/room_gateway.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.gateways.interfaces import IRoomGateway
from chatrelay.infrastructure import models
from chatrelay.infrastructure.data_mappers import RoomMapper
from chatrelay.infrastructure.uow import UnitOfWork, UoWModel


class RoomGateway(IRoomGateway):
    """Rooms and their membership.

    Every mutating call commits before returning; callers invalidate cached
    membership only afterwards.
    """

    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.Room] = RoomMapper(session)

    async def get_room(self, room_id: int) -> UoWModel | None:
        stmt = select(models.Room).filter(models.Room.id == room_id)
        result = await self.session.execute(stmt)
        room = result.unique().scalar_one_or_none()
        return UoWModel(room, self.uow) if room else None

    async def get_rooms_by_owner(self, owner_id: int) -> list[UoWModel]:
        stmt = (
            select(models.Room)
            .filter(models.Room.owner_id == owner_id)
            .order_by(models.Room.id)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(room, self.uow) for room in result.unique().scalars().all()]

    async def get_rooms_by_member(self, user_id: int) -> list[UoWModel]:
        stmt = (
            select(models.Room)
            .filter(models.Room.members.any(id=user_id))
            .order_by(models.Room.id)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(room, self.uow) for room in result.unique().scalars().all()]

    async def get_member_ids(self, room_id: int) -> list[int] | None:
        exists = await self.session.execute(
            select(models.Room.id).filter(models.Room.id == room_id)
        )
        if exists.scalar_one_or_none() is None:
            return None
        stmt = select(models.room_members.c.user_id).filter(
            models.room_members.c.room_id == room_id
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _users(self, user_ids: list[int]) -> list[models.User]:
        if not user_ids:
            return []
        stmt = select(models.User).filter(models.User.id.in_(user_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_room(
        self, name: str, owner_id: int, member_ids: list[int]
    ) -> UoWModel:
        # the owner is always a member
        members = await self._users(sorted(set(member_ids) | {owner_id}))
        db_room = models.Room(name=name, owner_id=owner_id, members=members)
        uow_room = self.uow.register_new(db_room)
        await self.uow.commit()
        return uow_room

    async def save_room(self, room_id: int, name: str) -> UoWModel | None:
        room = await self.get_room(room_id)
        if not room:
            return None
        room.name = name
        await self.uow.commit()
        return room

    async def add_members(
        self, room_id: int, member_ids: list[int]
    ) -> UoWModel | None:
        room = await self.get_room(room_id)
        if not room:
            return None
        current = set(room._model.member_ids)
        new_members = await self._users([i for i in member_ids if i not in current])
        if new_members:
            room._model.members.extend(new_members)
            self.uow.register_dirty(room)
            await self.uow.commit()
        return room

    async def remove_member(self, room_id: int, member_id: int) -> UoWModel | None:
        room = await self.get_room(room_id)
        if not room:
            return None
        if member_id == room._model.owner_id:
            raise ValueError("The room owner cannot be removed from the room")
        room._model.members = [m for m in room._model.members if m.id != member_id]
        self.uow.register_dirty(room)
        await self.uow.commit()
        return room

    async def delete_room(self, room_id: int) -> bool:
        room = await self.get_room(room_id)
        if not room:
            return False
        self.uow.register_deleted(room)
        await self.uow.commit()
        return True
