# chatrelay/api/websocket.py
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chatrelay.config import AppConfig
from chatrelay.domain import events
from chatrelay.domain.entities import Identity
from chatrelay.domain.exceptions import Invalid, RelayError
from chatrelay.gateways.message_gateway import MessageGateway
from chatrelay.gateways.room_gateway import RoomGateway
from chatrelay.gateways.token_gateway import TokenGateway
from chatrelay.gateways.user_gateway import UserGateway
from chatrelay.infrastructure.database import Database
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UnitOfWork
from chatrelay.interactors.message_interactor import MessageInteractor
from chatrelay.interactors.room_interactor import RoomInteractor
from chatrelay.realtime.connection import Connection
from chatrelay.realtime.relay import Relay

router = APIRouter()


async def authenticate_socket(
    database: Database, security_service: SecurityService, token: Optional[str]
) -> Optional[tuple[int, str]]:
    """Resolve a socket's ``?token=`` to ``(user_id, username)``, or None."""
    if not token:
        return None
    username = security_service.decode_access_token(token)
    if username is None:
        return None
    async with database.unit_of_work() as uow:
        user = await UserGateway(uow.session, uow).get_by_username(username)
        stored_token = await TokenGateway(uow.session, uow).get_by_access_token(token)
        if user is None or stored_token is None or not user.is_active:
            return None
        return user.id, user.username


def _as_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise Invalid(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise Invalid(f"{field} must be an integer") from None


class SocketSession:
    """Reads frames from one authenticated socket and runs them as actions.

    Every frame gets its own unit of work, so a slow frame never holds a
    transaction open across the next one. Rejections go back to this socket
    only, as an ``error`` event.
    """

    def __init__(
        self,
        websocket: Any,
        connection: Connection,
        identity: Identity,
        database: Database,
        relay: Relay,
        config: AppConfig,
        logger: logging.Logger,
    ):
        self.websocket = websocket
        self.connection = connection
        self.identity = identity
        self.database = database
        self.relay = relay
        self.config = config
        self.logger = logger
        self.handlers = {
            events.NEW_MESSAGE: self._new_message,
            events.ADD_MEMBERS: self._add_members,
        }

    async def run(self) -> None:
        await self.connection.send(
            events.Envelope(
                event=events.CONNECTED,
                data={
                    "connectionId": self.connection.connection_id,
                    "userId": self.identity.user_id,
                },
            )
        )
        while True:
            try:
                frame = await self.websocket.receive_json()
            except WebSocketDisconnect:
                self.logger.info(
                    f"Connection {self.connection.connection_id} closed by client"
                )
                return
            except ValueError:
                await self.connection.send_error(Invalid.code, "Frames must be JSON objects")
                continue
            await self.handle_frame(frame)

    async def handle_frame(self, frame: Any) -> None:
        ref = frame.get("ref") if isinstance(frame, dict) else None
        try:
            if not isinstance(frame, dict):
                raise Invalid("Frames must be JSON objects")
            handler = self.handlers.get(frame.get("event"))
            if handler is None:
                raise Invalid(f"Unknown event {frame.get('event')!r}")
            data = frame.get("data")
            if not isinstance(data, dict):
                raise Invalid("Frame data must be an object")
            async with self.database.unit_of_work() as uow:
                await handler(uow, data)
        except RelayError as e:
            await self.connection.send_error(e.code, e.detail, ref)

    def _gateways(self, uow: UnitOfWork):
        user_gateway = UserGateway(uow.session, uow)
        room_gateway = RoomGateway(uow.session, uow)
        message_gateway = MessageGateway(uow.session, uow)
        router = self.relay.router(user_gateway, room_gateway, message_gateway)
        return user_gateway, room_gateway, message_gateway, router

    async def _new_message(self, uow: UnitOfWork, data: dict[str, Any]) -> None:
        user_gateway, _, message_gateway, router = self._gateways(uow)
        interactor = MessageInteractor(
            message_gateway,
            user_gateway,
            router,
            self.relay,
            max_thread_depth=self.config.REPLY_THREAD_MAX_DEPTH,
        )
        content = data.get("content")
        if data.get("parentId") is not None:
            await interactor.reply(self.identity, _as_int(data["parentId"], "parentId"), content)
        elif data.get("roomId") is not None:
            await interactor.send_to_room(self.identity, _as_int(data["roomId"], "roomId"), content)
        elif data.get("receiver") is not None:
            await interactor.send_direct(
                self.identity, _as_int(data["receiver"], "receiver"), content
            )
        else:
            raise Invalid("newMessage needs one of receiver, roomId or parentId")

    async def _add_members(self, uow: UnitOfWork, data: dict[str, Any]) -> None:
        user_gateway, room_gateway, message_gateway, router = self._gateways(uow)
        interactor = RoomInteractor(
            room_gateway, user_gateway, message_gateway, router, self.relay
        )
        members = data.get("members")
        if not isinstance(members, list) or not members:
            raise Invalid("addMembers needs a non-empty members list")
        await interactor.add_members(
            self.identity,
            _as_int(data.get("roomId"), "roomId"),
            [_as_int(member, "members") for member in members],
        )


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    state = websocket.app.state
    logger: logging.Logger = state.logger
    user = await authenticate_socket(state.database, state.security_service, token)
    if user is None:
        logger.info("WebSocket connection rejected: invalid or missing token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    user_id, username = user
    relay: Relay = state.relay
    connection = relay.register_connection(user_id, websocket)
    identity = Identity(user_id, username, connection.connection_id)
    session = SocketSession(
        websocket, connection, identity, state.database, relay, state.config, logger
    )
    try:
        await session.run()
    except Exception as e:
        logger.error(f"Connection {connection.connection_id} failed: {e!s}")
    finally:
        relay.unregister_connection(connection.connection_id)
