# chatrelay/interactors/message_interactor.py
from typing import Any

from chatrelay.domain.entities import EventKind, Identity
from chatrelay.domain.exceptions import NotFound, Unauthorized
from chatrelay.gateways.interfaces import IMessageGateway, IUserGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.uow import UoWModel
from chatrelay.interactors.common import storage_call
from chatrelay.realtime.relay import Relay
from chatrelay.realtime.router import EventRouter, reply_counterpart
from chatrelay.realtime.snapshots import delivery_summary, message_snapshot, raise_if_rejected


class MessageInteractor:
    """Message use cases.

    Every write follows the same order: authorize, write and commit, then
    route and fan out. A rejected authorization raises before anything is
    written; a failed fan-out never undoes the write. Writes that land in a
    room hold the room's turn from the write until fan-out is done.
    """

    def __init__(
        self,
        message_gateway: IMessageGateway,
        user_gateway: IUserGateway,
        router: EventRouter,
        relay: Relay,
        max_thread_depth: int = 16,
    ):
        self.message_gateway = message_gateway
        self.user_gateway = user_gateway
        self.router = router
        self.relay = relay
        self.max_thread_depth = max_thread_depth

    async def _fan_out(
        self, kind: EventKind, payload: dict[str, Any], identity: Identity
    ) -> schemas.Delivery:
        decision = await self.router.route(kind, payload, identity)
        decision, outcomes = await self.relay.deliver(decision)
        return delivery_summary(decision, outcomes)

    async def _sent(
        self,
        kind: EventKind,
        payload: dict[str, Any],
        message: UoWModel,
        identity: Identity,
    ) -> schemas.MessageSent:
        payload["message"] = message_snapshot(message)
        delivery = await self._fan_out(kind, payload, identity)
        return schemas.MessageSent(
            message=schemas.Message.model_validate(message._model), delivery=delivery
        )

    async def send_direct(
        self, identity: Identity, receiver_id: int, content: str
    ) -> schemas.MessageSent:
        payload = {"receiver_id": receiver_id, "content": content}
        raise_if_rejected(
            await self.router.authorize(EventKind.DIRECT_MESSAGE, payload, identity)
        )
        message = await storage_call(
            self.message_gateway.create_message(
                identity.user_id, content, recipient_id=receiver_id
            )
        )
        return await self._sent(EventKind.DIRECT_MESSAGE, payload, message, identity)

    async def send_to_room(
        self, identity: Identity, room_id: int, content: str
    ) -> schemas.MessageSent:
        payload = {"room_id": room_id, "content": content}
        raise_if_rejected(
            await self.router.authorize(EventKind.ROOM_MESSAGE, payload, identity)
        )
        async with self.relay.room_order(room_id):
            message = await storage_call(
                self.message_gateway.create_message(identity.user_id, content, room_id=room_id)
            )
            return await self._sent(EventKind.ROOM_MESSAGE, payload, message, identity)

    async def reply(
        self, identity: Identity, parent_id: int, content: str
    ) -> schemas.MessageSent:
        payload = {"parent_id": parent_id, "content": content}
        raise_if_rejected(await self.router.authorize(EventKind.REPLY, payload, identity))
        parent = await storage_call(self.message_gateway.get_message(parent_id))
        if parent is None:
            raise NotFound(f"Message {parent_id} not found")
        if parent.room_id is not None:
            target = {"room_id": parent.room_id}
        else:
            target = {
                "recipient_id": reply_counterpart(
                    parent.sender_id, parent.recipient_id, identity.user_id
                )
            }
        async with self.relay.room_order(parent.room_id):
            message = await storage_call(
                self.message_gateway.create_message(
                    identity.user_id, content, parent_id=parent_id, **target
                )
            )
            return await self._sent(EventKind.REPLY, payload, message, identity)

    async def update_message(
        self, identity: Identity, message_id: int, content: str
    ) -> schemas.MessageSent:
        payload = {"message_id": message_id, "content": content}
        raise_if_rejected(
            await self.router.authorize(EventKind.MESSAGE_UPDATED, payload, identity)
        )
        current = await storage_call(self.message_gateway.get_message(message_id))
        if current is None:
            raise NotFound(f"Message {message_id} not found")
        async with self.relay.room_order(current.room_id):
            message = await storage_call(
                self.message_gateway.update_message(message_id, identity.user_id, content)
            )
            if message is None:
                raise NotFound(f"Message {message_id} not found")
            return await self._sent(EventKind.MESSAGE_UPDATED, payload, message, identity)

    async def delete_message(self, identity: Identity, message_id: int) -> None:
        message = await storage_call(self.message_gateway.get_message(message_id))
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        if message.sender_id != identity.user_id:
            raise Unauthorized("Only the sender may delete a message")
        await storage_call(self.message_gateway.delete_message(message_id, identity.user_id))

    async def toggle_like(self, identity: Identity, message_id: int) -> schemas.LikeState:
        raise_if_rejected(
            await self.router.authorize(
                EventKind.LIKE, {"message_id": message_id}, identity
            )
        )
        message = await storage_call(
            self.message_gateway.toggle_like(message_id, identity.user_id)
        )
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        return schemas.LikeState(message_id=message.id, liked_by=message._model.liked_by)

    async def get_message(self, identity: Identity, message_id: int) -> schemas.Message:
        await self.router.check_visible(message_id, identity)
        message = await storage_call(self.message_gateway.get_message(message_id))
        if message is None:
            raise NotFound(f"Message {message_id} not found")
        return schemas.Message.model_validate(message._model)

    async def get_thread(
        self, identity: Identity, message_id: int, max_depth: int | None = None
    ) -> schemas.MessageThread:
        root = await self.get_message(identity, message_id)
        depth = min(max_depth or self.max_thread_depth, self.max_thread_depth)
        levels = await storage_call(self.message_gateway.get_reply_levels(message_id, depth))

        thread = schemas.MessageThread(message=root)
        nodes = {root.id: thread}
        for level in levels:
            for reply in level:
                node = schemas.MessageThread(
                    message=schemas.Message.model_validate(reply._model)
                )
                nodes[reply.parent_id].replies.append(node)
                nodes[reply.id] = node
        return thread

    async def list_sent(
        self, identity: Identity, skip: int = 0, limit: int = 10
    ) -> list[schemas.Message]:
        messages = await storage_call(
            self.message_gateway.list_by_sender(identity.user_id, skip, limit)
        )
        return [schemas.Message.model_validate(message._model) for message in messages]

    async def conversation(
        self, identity: Identity, other_user_id: int, skip: int = 0, limit: int = 50
    ) -> list[schemas.Message]:
        if await storage_call(self.user_gateway.get_user(other_user_id)) is None:
            raise NotFound(f"User {other_user_id} not found")
        messages = await storage_call(
            self.message_gateway.list_conversation(
                identity.user_id, other_user_id, skip, limit
            )
        )
        return [schemas.Message.model_validate(message._model) for message in messages]
