# chatrelay/interactors/room_interactor.py
from chatrelay.domain.entities import EventKind, Identity
from chatrelay.domain.exceptions import Invalid, NotFound, Unauthorized
from chatrelay.gateways.interfaces import IMessageGateway, IRoomGateway, IUserGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.uow import UoWModel
from chatrelay.interactors.common import storage_call
from chatrelay.realtime.relay import Relay
from chatrelay.realtime.router import EventRouter
from chatrelay.realtime.snapshots import delivery_summary, raise_if_rejected


class RoomInteractor:
    def __init__(
        self,
        room_gateway: IRoomGateway,
        user_gateway: IUserGateway,
        message_gateway: IMessageGateway,
        router: EventRouter,
        relay: Relay,
    ):
        self.room_gateway = room_gateway
        self.user_gateway = user_gateway
        self.message_gateway = message_gateway
        self.router = router
        self.relay = relay

    async def _owned_room(self, room_id: int, identity: Identity) -> UoWModel:
        room = await storage_call(self.room_gateway.get_room(room_id))
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        if room.owner_id != identity.user_id:
            raise Unauthorized(f"Only the owner may change room {room_id}")
        return room

    async def create_room(
        self, identity: Identity, room: schemas.RoomCreate
    ) -> schemas.Room:
        member_ids = sorted(set(room.member_ids))
        existing = await storage_call(self.user_gateway.get_existing_ids(member_ids))
        missing = [user_id for user_id in member_ids if user_id not in existing]
        if missing:
            raise NotFound(f"Users not found: {', '.join(map(str, missing))}")
        new_room = await storage_call(
            self.room_gateway.create_room(room.name, identity.user_id, member_ids)
        )
        self.relay.on_membership_changed(new_room.id)
        return schemas.Room.model_validate(new_room._model)

    async def get_room(self, identity: Identity, room_id: int) -> schemas.Room:
        await self.router.check_member(room_id, identity)
        room = await storage_call(self.room_gateway.get_room(room_id))
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        return schemas.Room.model_validate(room._model)

    async def rooms_owned(self, identity: Identity) -> list[schemas.Room]:
        rooms = await storage_call(self.room_gateway.get_rooms_by_owner(identity.user_id))
        return [schemas.Room.model_validate(room._model) for room in rooms]

    async def rooms_joined(self, identity: Identity) -> list[schemas.Room]:
        rooms = await storage_call(self.room_gateway.get_rooms_by_member(identity.user_id))
        return [schemas.Room.model_validate(room._model) for room in rooms]

    async def rename_room(
        self, identity: Identity, room_id: int, room_update: schemas.RoomUpdate
    ) -> schemas.Room:
        await self._owned_room(room_id, identity)
        room = await storage_call(self.room_gateway.save_room(room_id, room_update.name))
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        return schemas.Room.model_validate(room._model)

    async def delete_room(self, identity: Identity, room_id: int) -> None:
        await self._owned_room(room_id, identity)
        async with self.relay.room_order(room_id):
            await storage_call(self.room_gateway.delete_room(room_id))
            self.relay.on_membership_changed(room_id)

    async def add_members(
        self, identity: Identity, room_id: int, member_ids: list[int]
    ) -> schemas.MembersChanged:
        payload = {"room_id": room_id, "member_ids": member_ids}
        raise_if_rejected(
            await self.router.authorize(EventKind.ADD_MEMBERS, payload, identity)
        )
        async with self.relay.room_order(room_id):
            room = await storage_call(self.room_gateway.add_members(room_id, member_ids))
            if room is None:
                raise NotFound(f"Room {room_id} not found")
            self.relay.on_membership_changed(room_id)

            decision = await self.router.route(EventKind.ADD_MEMBERS, payload, identity)
            decision, outcomes = await self.relay.deliver(decision)
        return schemas.MembersChanged(
            room=schemas.Room.model_validate(room._model),
            delivery=delivery_summary(decision, outcomes),
        )

    async def remove_member(
        self, identity: Identity, room_id: int, member_id: int
    ) -> schemas.MembersChanged:
        payload = {"room_id": room_id, "member_id": member_id}
        raise_if_rejected(
            await self.router.authorize(EventKind.REMOVE_MEMBER, payload, identity)
        )
        async with self.relay.room_order(room_id):
            try:
                room = await storage_call(
                    self.room_gateway.remove_member(room_id, member_id)
                )
            except ValueError as e:
                raise Invalid(str(e)) from e
            if room is None:
                raise NotFound(f"Room {room_id} not found")
            self.relay.on_membership_changed(room_id)

            decision = await self.router.route(EventKind.REMOVE_MEMBER, payload, identity)
            decision, outcomes = await self.relay.deliver(decision)
        return schemas.MembersChanged(
            room=schemas.Room.model_validate(room._model),
            delivery=delivery_summary(decision, outcomes),
        )

    async def members(self, identity: Identity, room_id: int) -> list[schemas.UserBasic]:
        await self.router.check_member(room_id, identity)
        room = await storage_call(self.room_gateway.get_room(room_id))
        if room is None:
            raise NotFound(f"Room {room_id} not found")
        return [schemas.UserBasic.model_validate(member) for member in room._model.members]

    async def room_messages(
        self, identity: Identity, room_id: int, skip: int = 0, limit: int = 50
    ) -> list[schemas.Message]:
        await self.router.check_member(room_id, identity)
        messages = await storage_call(
            self.message_gateway.list_room_messages(room_id, skip, limit)
        )
        return [schemas.Message.model_validate(message._model) for message in messages]
