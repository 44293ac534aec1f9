# chatrelay/gateways/message_gateway.py
from datetime import UTC, datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.gateways.interfaces import IMessageGateway
from chatrelay.infrastructure import models
from chatrelay.infrastructure.data_mappers import MessageMapper
from chatrelay.infrastructure.uow import UnitOfWork, UoWModel


class MessageGateway(IMessageGateway):
    def __init__(self, session: AsyncSession, uow: UnitOfWork):
        self.session = session
        self.uow = uow
        uow.mappers[models.Message] = MessageMapper(session)

    async def get_message(
        self, message_id: int, refresh: bool = False
    ) -> UoWModel | None:
        stmt = select(models.Message).filter(models.Message.id == message_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        message = result.unique().scalar_one_or_none()
        return UoWModel(message, self.uow) if message else None

    async def create_message(
        self,
        sender_id: int,
        content: str,
        recipient_id: int | None = None,
        room_id: int | None = None,
        parent_id: int | None = None,
    ) -> UoWModel:
        if (recipient_id is None) == (room_id is None):
            raise ValueError("A message needs exactly one of recipient_id or room_id")

        db_message = models.Message(
            content=content,
            sender_id=sender_id,
            recipient_id=recipient_id,
            room_id=room_id,
            parent_id=parent_id,
            likes=[],
        )
        self.uow.register_new(db_message)
        await self.uow.commit()

        # Reload with proper eager loading for return
        reloaded = await self.get_message(db_message.id, refresh=True)
        return reloaded

    async def update_message(
        self, message_id: int, sender_id: int, content: str
    ) -> UoWModel | None:
        message = await self.get_message(message_id)
        if not message or message.sender_id != sender_id:
            return None
        message.content = content
        message.updated_at = datetime.now(UTC)
        await self.uow.commit()
        return message

    async def delete_message(self, message_id: int, sender_id: int) -> bool:
        message = await self.get_message(message_id)
        if not message or message.sender_id != sender_id:
            return False
        # replies outlive their parent as top-level messages
        await self.session.execute(
            update(models.Message)
            .where(models.Message.parent_id == message_id)
            .values(parent_id=None)
        )
        self.uow.register_deleted(message)
        await self.uow.commit()
        return True

    async def toggle_like(self, message_id: int, user_id: int) -> UoWModel | None:
        message = await self.get_message(message_id)
        if not message:
            return None
        likes = message._model.likes
        if any(user.id == user_id for user in likes):
            message._model.likes = [user for user in likes if user.id != user_id]
        else:
            user = await self.session.get(models.User, user_id)
            if user is None:
                return None
            likes.append(user)
        self.uow.register_dirty(message)
        await self.uow.commit()
        return message

    async def list_by_sender(
        self, sender_id: int, skip: int = 0, limit: int = 10
    ) -> list[UoWModel]:
        stmt = (
            select(models.Message)
            .filter(models.Message.sender_id == sender_id)
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(m, self.uow) for m in result.unique().scalars().all()]

    async def list_room_messages(
        self, room_id: int, skip: int = 0, limit: int = 50
    ) -> list[UoWModel]:
        stmt = (
            select(models.Message)
            .filter(models.Message.room_id == room_id)
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(m, self.uow) for m in result.unique().scalars().all()]

    async def list_conversation(
        self, user_id: int, other_user_id: int, skip: int = 0, limit: int = 50
    ) -> list[UoWModel]:
        stmt = (
            select(models.Message)
            .filter(
                or_(
                    and_(
                        models.Message.sender_id == user_id,
                        models.Message.recipient_id == other_user_id,
                    ),
                    and_(
                        models.Message.sender_id == other_user_id,
                        models.Message.recipient_id == user_id,
                    ),
                )
            )
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [UoWModel(m, self.uow) for m in result.unique().scalars().all()]

    async def get_reply_levels(
        self, message_id: int, max_depth: int
    ) -> list[list[UoWModel]]:
        """Replies below ``message_id``, one list per tree level.

        Walks the tree breadth-first with one query per level and stops after
        ``max_depth`` levels, so deep threads cost a bounded number of queries.
        """
        levels: list[list[UoWModel]] = []
        frontier = [message_id]
        seen = {message_id}
        while frontier and len(levels) < max_depth:
            stmt = (
                select(models.Message)
                .filter(models.Message.parent_id.in_(frontier))
                .order_by(models.Message.created_at, models.Message.id)
            )
            result = await self.session.execute(stmt)
            replies = [m for m in result.unique().scalars().all() if m.id not in seen]
            if not replies:
                break
            seen.update(m.id for m in replies)
            levels.append([UoWModel(m, self.uow) for m in replies])
            frontier = [m.id for m in replies]
        return levels
