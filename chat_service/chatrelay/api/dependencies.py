# chatrelay/api/dependencies.py
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from chatrelay.config import AppConfig
from chatrelay.domain.entities import Identity
from chatrelay.gateways.message_gateway import MessageGateway
from chatrelay.gateways.room_gateway import RoomGateway
from chatrelay.gateways.token_gateway import TokenGateway
from chatrelay.gateways.user_gateway import UserGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UnitOfWork
from chatrelay.interactors.message_interactor import MessageInteractor
from chatrelay.interactors.room_interactor import RoomInteractor
from chatrelay.interactors.token_interactor import TokenInteractor
from chatrelay.interactors.user_interactor import UserInteractor
from chatrelay.realtime.relay import Relay
from chatrelay.realtime.router import EventRouter

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/login")


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_security_service(request: Request) -> SecurityService:
    return request.app.state.security_service


def get_relay(request: Request) -> Relay:
    return request.app.state.relay


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.database.session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_uow(session: AsyncSession = Depends(get_session)) -> UnitOfWork:
    # writes are durable once the unit of work commits, before any fan-out
    return UnitOfWork(session)


async def get_user_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return UserGateway(session, uow)


async def get_room_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return RoomGateway(session, uow)


async def get_message_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return MessageGateway(session, uow)


async def get_token_gateway(
    session: AsyncSession = Depends(get_session), uow: UnitOfWork = Depends(get_uow)
):
    return TokenGateway(session, uow)


async def get_event_router(
    relay: Relay = Depends(get_relay),
    user_gateway: UserGateway = Depends(get_user_gateway),
    room_gateway: RoomGateway = Depends(get_room_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
) -> EventRouter:
    return relay.router(user_gateway, room_gateway, message_gateway)


async def get_user_interactor(
    security_service: SecurityService = Depends(get_security_service),
    user_gateway: UserGateway = Depends(get_user_gateway),
    token_gateway: TokenGateway = Depends(get_token_gateway),
    relay: Relay = Depends(get_relay),
):
    return UserInteractor(security_service, user_gateway, token_gateway, relay)


async def get_token_interactor(
    token_gateway: TokenGateway = Depends(get_token_gateway),
    security_service: SecurityService = Depends(get_security_service),
):
    return TokenInteractor(token_gateway, security_service)


async def get_room_interactor(
    room_gateway: RoomGateway = Depends(get_room_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
    message_gateway: MessageGateway = Depends(get_message_gateway),
    router: EventRouter = Depends(get_event_router),
    relay: Relay = Depends(get_relay),
):
    return RoomInteractor(room_gateway, user_gateway, message_gateway, router, relay)


async def get_message_interactor(
    message_gateway: MessageGateway = Depends(get_message_gateway),
    user_gateway: UserGateway = Depends(get_user_gateway),
    router: EventRouter = Depends(get_event_router),
    relay: Relay = Depends(get_relay),
    config: AppConfig = Depends(get_config),
):
    return MessageInteractor(
        message_gateway,
        user_gateway,
        router,
        relay,
        max_thread_depth=config.REPLY_THREAD_MAX_DEPTH,
    )


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    security_service: SecurityService = Depends(get_security_service),
    user_gateway: UserGateway = Depends(get_user_gateway),
    token_gateway: TokenGateway = Depends(get_token_gateway),
) -> schemas.User:
    username = security_service.decode_access_token(token)
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_model = await user_gateway.get_by_username(username)
    valid_token = await token_gateway.get_by_access_token(token)
    if user_model is None or valid_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return schemas.User.model_validate(user_model._model)


async def get_current_active_user(
    current_user: schemas.User = Depends(get_current_user),
) -> schemas.User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_identity(
    current_user: schemas.User = Depends(get_current_active_user),
    x_connection_id: Optional[str] = Header(None),
) -> Identity:
    # clients that also hold a socket pass its id so echo rules can spare it
    return Identity(current_user.id, current_user.username, x_connection_id)
