# chatrelay/main.py
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from chatrelay.api import auth, messages, rooms, users, websocket
from chatrelay.config import AppConfig
from chatrelay.domain.entities import EchoPolicy
from chatrelay.domain.events import EnvelopeDispatched
from chatrelay.domain.exceptions import (
    Conflict,
    Invalid,
    NotFound,
    RelayError,
    Unauthorized,
    Unavailable,
)
from chatrelay.gateways.room_gateway import RoomGateway
from chatrelay.infrastructure.database import create_database
from chatrelay.infrastructure.event_dispatcher import EventDispatcher
from chatrelay.infrastructure.event_handlers import EventHandlers
from chatrelay.infrastructure.redis_client import RedisClient
from chatrelay.infrastructure.security import SecurityService
from chatrelay.realtime.relay import Relay

ERROR_STATUS = {
    Conflict: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    Unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    Invalid: 422,
}


class Application:
    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = self.setup_logger()
        self.database = create_database(config.DATABASE_URL)
        self.redis_client = RedisClient(
            config.REDIS_HOST, config.REDIS_PORT, self.logger
        )
        self.event_dispatcher = EventDispatcher()
        self.security_service = SecurityService(config)
        self.event_handlers = EventHandlers(self.redis_client)

        # Register event handlers
        self.event_dispatcher.register(
            EnvelopeDispatched, self.event_handlers.publish_envelope
        )

        self.relay = Relay(
            self.load_room_members,
            self.event_dispatcher,
            self.logger,
            echo_policy=EchoPolicy(config.ROOM_ECHO_POLICY),
            delivery_timeout=config.DELIVERY_TIMEOUT_SECONDS,
            membership_ttl=config.MEMBERSHIP_CACHE_TTL_SECONDS,
            seen_event_limit=config.SEEN_EVENT_CACHE_SIZE,
        )

    async def load_room_members(self, room_id: int) -> Optional[list[int]]:
        # own session, so a cache miss never reads another request's open transaction
        async with self.database.unit_of_work() as uow:
            return await RoomGateway(uow.session, uow).get_member_ids(room_id)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        await self.database.connect()
        await self.redis_client.connect()
        yield
        await self.relay.shutdown()
        await self.database.disconnect()
        await self.redis_client.disconnect()

    def setup_logger(self):
        logger = logging.getLogger("ChatRelay")
        logger.setLevel(logging.INFO)

        c_handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        c_handler.setFormatter(formatter)

        if not logger.handlers:
            logger.addHandler(c_handler)

        return logger

    def create_app(self) -> FastAPI:
        app = FastAPI(
            title=self.config.PROJECT_NAME,
            version=self.config.PROJECT_VERSION,
            description=self.config.PROJECT_DESCRIPTION,
            openapi_url=f"{self.config.API_V1_STR}/openapi.json",
            lifespan=self.lifespan,
        )

        app.state.config = self.config
        app.state.security_service = self.security_service
        app.state.event_dispatcher = self.event_dispatcher
        app.state.database = self.database
        app.state.redis_client = self.redis_client
        app.state.relay = self.relay
        app.state.logger = self.logger

        # Create routers
        app.include_router(
            auth.router, prefix=f"{self.config.API_V1_STR}/auth", tags=["auth"]
        )
        app.include_router(
            users.router, prefix=f"{self.config.API_V1_STR}/users", tags=["users"]
        )
        app.include_router(
            rooms.router, prefix=f"{self.config.API_V1_STR}/rooms", tags=["rooms"]
        )
        app.include_router(
            messages.router,
            prefix=f"{self.config.API_V1_STR}/messages",
            tags=["messages"],
        )
        app.include_router(websocket.router, tags=["realtime"])

        @app.exception_handler(RelayError)
        async def relay_error_handler(request: Request, exc: RelayError):
            return JSONResponse(
                status_code=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
                content={"message": exc.detail, "error": exc.code},
            )

        @app.exception_handler(Exception)
        async def global_exception_handler(request: Request, exc: Exception):
            self.logger.error(f"Unhandled error on {request.url.path}: {exc!s}")
            return JSONResponse(
                status_code=500,
                content={"message": f"An unexpected error occurred: {str(exc)}"},
            )

        @app.get("/")
        async def root():
            return {"message": "Welcome to the Chat Relay API"}

        return app


def create(config: Optional[AppConfig] = None) -> FastAPI:
    config = config or AppConfig()
    application = Application(config)
    app = application.create_app()
    application.logger.info("Application created and configured")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create(), host="127.0.0.1", port=8000)
