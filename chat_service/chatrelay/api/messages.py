# chatrelay/api/messages.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from chatrelay.api.dependencies import get_identity, get_message_interactor
from chatrelay.domain.entities import Identity
from chatrelay.infrastructure import schemas
from chatrelay.interactors.message_interactor import MessageInteractor

router = APIRouter()


@router.post("/direct/{receiver_id}", response_model=schemas.MessageSent)
async def send_direct_message(
    receiver_id: int,
    message: schemas.MessageCreate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.send_direct(identity, receiver_id, message.content)


@router.get("/sent", response_model=List[schemas.Message])
async def read_sent_messages(
    skip: int = 0,
    limit: int = Query(10, le=100),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.list_sent(identity, skip, limit)


@router.get("/conversation/{user_id}", response_model=List[schemas.Message])
async def read_conversation(
    user_id: int,
    skip: int = 0,
    limit: int = Query(50, le=100),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.conversation(identity, user_id, skip, limit)


@router.get("/{message_id}", response_model=schemas.Message)
async def read_message(
    message_id: int,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.get_message(identity, message_id)


@router.put("/{message_id}", response_model=schemas.MessageSent)
async def update_message(
    message_id: int,
    message_update: schemas.MessageUpdate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.update_message(
        identity, message_id, message_update.content
    )


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    await message_interactor.delete_message(identity, message_id)


@router.post("/{message_id}/like", response_model=schemas.LikeState)
async def toggle_like(
    message_id: int,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.toggle_like(identity, message_id)


@router.post("/{message_id}/reply", response_model=schemas.MessageSent)
async def reply_to_message(
    message_id: int,
    message: schemas.MessageCreate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.reply(identity, message_id, message.content)


@router.get("/{message_id}/thread", response_model=schemas.MessageThread)
async def read_thread(
    message_id: int,
    depth: Optional[int] = Query(None, ge=1, description="Reply levels to include"),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    identity: Identity = Depends(get_identity),
):
    return await message_interactor.get_thread(identity, message_id, depth)
