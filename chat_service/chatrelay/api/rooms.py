# chatrelay/api/rooms.py
from typing import List

from fastapi import APIRouter, Depends

from chatrelay.api.dependencies import get_identity, get_message_interactor, get_room_interactor
from chatrelay.domain.entities import Identity
from chatrelay.infrastructure import schemas
from chatrelay.interactors.message_interactor import MessageInteractor
from chatrelay.interactors.room_interactor import RoomInteractor

router = APIRouter()


@router.post("/", response_model=schemas.Room)
async def create_room(
    room: schemas.RoomCreate,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.create_room(identity, room)


@router.get("/owned", response_model=List[schemas.Room])
async def read_owned_rooms(
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.rooms_owned(identity)


@router.get("/joined", response_model=List[schemas.Room])
async def read_joined_rooms(
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.rooms_joined(identity)


@router.get("/{room_id}", response_model=schemas.Room)
async def read_room(
    room_id: int,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.get_room(identity, room_id)


@router.put("/{room_id}", response_model=schemas.Room)
async def rename_room(
    room_id: int,
    room_update: schemas.RoomUpdate,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.rename_room(identity, room_id, room_update)


@router.delete("/{room_id}", status_code=204)
async def delete_room(
    room_id: int,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    await room_interactor.delete_room(identity, room_id)


@router.get("/{room_id}/members", response_model=List[schemas.UserBasic])
async def read_members(
    room_id: int,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.members(identity, room_id)


@router.post("/{room_id}/members", response_model=schemas.MembersChanged)
async def add_members(
    room_id: int,
    members: schemas.RoomMembersAdd,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.add_members(identity, room_id, members.member_ids)


@router.delete("/{room_id}/members/{member_id}", response_model=schemas.MembersChanged)
async def remove_member(
    room_id: int,
    member_id: int,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.remove_member(identity, room_id, member_id)


@router.get("/{room_id}/messages", response_model=List[schemas.Message])
async def read_room_messages(
    room_id: int,
    skip: int = 0,
    limit: int = 50,
    room_interactor: RoomInteractor = Depends(get_room_interactor),
    identity: Identity = Depends(get_identity),
):
    return await room_interactor.room_messages(identity, room_id, skip, limit)


@router.post("/{room_id}/messages", response_model=schemas.MessageSent)
async def send_room_message(
    room_id: int,
    message: schemas.MessageCreate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.send_to_room(identity, room_id, message.content)
