# chatrelay/tests/conftest.py

import logging
import random
import string

import pytest
from fakeredis import aioredis
from httpx import ASGITransport, AsyncClient

from chatrelay.config import AppConfig
from chatrelay.gateways.room_gateway import RoomGateway
from chatrelay.gateways.user_gateway import UserGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.database import create_database
from chatrelay.infrastructure.security import SecurityService
from chatrelay.infrastructure.uow import UnitOfWork
from chatrelay.main import Application
from chatrelay.tests.support import TEST_PASSWORD, FakeTransport, login


@pytest.fixture(scope="function")
def app_config(tmp_path):
    """
    Provide a test configuration backed by a throwaway SQLite file.

    A file rather than ``:memory:`` lets the membership loader open its own
    connection next to the request session.
    """
    return AppConfig(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}",
        REDIS_HOST="localhost",
        REDIS_PORT=6379,
        SECRET_KEY="test_secret_key",
        REFRESH_SECRET_KEY="test_refresh_secret_key",
        PROJECT_NAME="Test Chat Relay API",
        PROJECT_VERSION="1.0.0",
        PROJECT_DESCRIPTION="Test Chat Relay API",
        API_V1_STR="/api/v1",
        ALGORITHM="HS256",
        ACCESS_TOKEN_EXPIRE_MINUTES=30,
        REFRESH_TOKEN_EXPIRE_DAYS=7,
        DELIVERY_TIMEOUT_SECONDS=0.5,
    )


@pytest.fixture
def test_logger():
    logger = logging.getLogger("test_chatrelay")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture(scope="function")
async def mock_redis():
    """Provide a fake Redis client for testing."""
    redis = aioredis.FakeRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture(scope="function")
async def database(app_config):
    """Create the schema in the test database."""
    database = create_database(app_config.DATABASE_URL)
    await database.connect()
    yield database
    await database.disconnect()


@pytest.fixture(scope="function")
async def db_session(database):
    """Provide a SQLAlchemy session for testing."""
    async with database.session() as session:
        yield session


@pytest.fixture(scope="function")
async def uow(db_session):
    """Provide a UnitOfWork bound to the test session."""
    return UnitOfWork(db_session)


@pytest.fixture(scope="function")
async def application(app_config, mock_redis, database):
    application = Application(config=app_config)
    application.database = database
    application.redis_client.client = mock_redis
    return application


@pytest.fixture(scope="function")
async def app(application):
    """Create the FastAPI app with the test database."""
    return application.create_app()


@pytest.fixture(scope="function")
async def relay(app):
    return app.state.relay


@pytest.fixture(scope="function")
async def client(app):
    """Provide an HTTP client with the test app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _create_user(db_session, uow, app_config, prefix: str):
    random_string = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
    user_create = schemas.UserCreate(
        username=f"{prefix}_{random_string}",
        email=f"{prefix}_{random_string}@example.com",
        password=TEST_PASSWORD,
    )
    user_gateway = UserGateway(db_session, uow)
    return await user_gateway.create_user(user_create, SecurityService(app_config))


@pytest.fixture(scope="function")
async def test_user(db_session, app_config, uow):
    """Create a test user in the database."""
    return await _create_user(db_session, uow, app_config, "testuser")


@pytest.fixture(scope="function")
async def test_user2(db_session, app_config, uow):
    """Create a second test user in the database."""
    return await _create_user(db_session, uow, app_config, "testuser2")


@pytest.fixture(scope="function")
async def test_user3(db_session, app_config, uow):
    """Create a third test user, not a member of the test room."""
    return await _create_user(db_session, uow, app_config, "testuser3")


@pytest.fixture(scope="function")
async def test_room(db_session, test_user, test_user2, uow):
    """Room owned by test_user with test_user2 as the other member."""
    room_gateway = RoomGateway(db_session, uow)
    return await room_gateway.create_room(
        f"TestRoom_{random.randint(1, 1000)}", test_user.id, [test_user2.id]
    )


@pytest.fixture(scope="function")
async def auth_header(client, test_user):
    """Provide an authorization header for test_user."""
    return await login(client, test_user.username)


@pytest.fixture(scope="function")
async def auth_header2(client, test_user2):
    """Provide an authorization header for test_user2."""
    return await login(client, test_user2.username)


@pytest.fixture(scope="function")
async def auth_header3(client, test_user3):
    """Provide an authorization header for test_user3."""
    return await login(client, test_user3.username)


@pytest.fixture(scope="function")
def connect(relay):
    """Register a fake live connection for a user and return it with its transport."""

    def _connect(user_id: int, **kwargs):
        transport = FakeTransport(**kwargs)
        connection = relay.register_connection(user_id, transport)
        return connection, transport

    return _connect
