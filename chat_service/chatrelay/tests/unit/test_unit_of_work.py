# chatrelay/tests/unit/test_unit_of_work.py

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from chatrelay.infrastructure import models
from chatrelay.infrastructure.data_mappers import MessageMapper, RoomMapper
from chatrelay.infrastructure.uow import UnitOfWork, UoWModel

pytestmark = pytest.mark.asyncio


@pytest.fixture
def mock_session():
    return AsyncMock()


def _mock_mapper(mapper):
    mapper.insert = AsyncMock()
    mapper.update = AsyncMock()
    mapper.delete = AsyncMock()
    return mapper


@pytest.fixture
def uow(mock_session):
    """UnitOfWork bound to a mocked session, with mocked room and message mappers."""
    uow = UnitOfWork(mock_session)
    uow.mappers[models.Room] = _mock_mapper(RoomMapper(mock_session))
    uow.mappers[models.Message] = _mock_mapper(MessageMapper(mock_session))
    return uow


async def test_new_room_is_tracked_and_wrapped(uow):
    room = models.Room(name="general", owner_id=1)

    wrapped = uow.register_new(room)

    assert id(room) in uow.new
    assert isinstance(wrapped, UoWModel)
    assert wrapped.name == "general"


async def test_editing_new_model_keeps_it_out_of_dirty(uow):
    message = models.Message(content="draft", sender_id=1, recipient_id=2)
    wrapped = uow.register_new(message)

    wrapped.content = "final"

    assert uow.dirty == {}
    assert message.content == "final"


async def test_editing_loaded_model_marks_it_dirty(uow):
    room = models.Room(name="old", owner_id=1)

    UoWModel(room, uow).name = "new"

    assert id(room) in uow.dirty


async def test_deleting_new_model_forgets_it(uow):
    room = models.Room(name="temp", owner_id=1)
    wrapped = uow.register_new(room)

    uow.register_deleted(wrapped)

    assert id(room) not in uow.new
    assert id(room) not in uow.deleted


async def test_deleting_dirty_model_moves_it(uow):
    message = models.Message(content="x", sender_id=1, room_id=3)
    uow.register_dirty(message)

    uow.register_deleted(message)

    assert id(message) not in uow.dirty
    assert id(message) in uow.deleted


async def test_commit_writes_through_mappers_then_commits_session(uow, mock_session):
    new_room = models.Room(name="new", owner_id=1)
    edited = models.Message(content="edited", sender_id=1, room_id=3)
    removed = models.Message(content="gone", sender_id=1, room_id=3)
    uow.register_new(new_room)
    uow.register_dirty(edited)
    uow.register_deleted(removed)

    await uow.commit()

    uow.mappers[models.Room].insert.assert_awaited_once_with(new_room)
    uow.mappers[models.Message].update.assert_awaited_once_with(edited)
    uow.mappers[models.Message].delete.assert_awaited_once_with(removed)
    mock_session.commit.assert_awaited_once()
    assert uow.new == uow.dirty == uow.deleted == {}


async def test_failed_commit_rolls_back(uow, mock_session):
    room = models.Room(name="dup", owner_id=1)
    uow.register_new(room)
    uow.mappers[models.Room].insert.side_effect = IntegrityError("INSERT", {}, Exception("dup"))

    with pytest.raises(IntegrityError):
        await uow.commit()

    mock_session.rollback.assert_awaited_once()
    mock_session.commit.assert_not_awaited()
    assert uow.new == {}


async def test_unbound_unit_of_work_only_uses_mappers():
    uow = UnitOfWork()
    mapper = _mock_mapper(RoomMapper(AsyncMock()))
    uow.mappers[models.Room] = mapper
    room = models.Room(name="r", owner_id=1)
    uow.register_new(room)

    await uow.commit()

    mapper.insert.assert_awaited_once_with(room)


async def test_rollback_discards_registrations(uow, mock_session):
    uow.register_new(models.Room(name="draft", owner_id=1))
    uow.register_dirty(models.Message(content="x", sender_id=1, room_id=3))

    await uow.rollback()

    assert uow.new == uow.dirty == uow.deleted == {}
    mock_session.rollback.assert_awaited_once()
    uow.mappers[models.Room].insert.assert_not_awaited()
