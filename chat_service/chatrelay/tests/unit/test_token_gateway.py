# chatrelay/tests/unit/test_token_gateway.py
from datetime import UTC, datetime, timedelta

import pytest

from chatrelay.gateways.token_gateway import TokenGateway
from chatrelay.infrastructure import schemas

pytestmark = pytest.mark.asyncio


@pytest.fixture
def token_gateway(db_session, uow):
    return TokenGateway(db_session, uow)


def _token(user_id, suffix):
    return schemas.TokenCreate(
        access_token=f"access_{suffix}",
        refresh_token=f"refresh_{suffix}",
        token_type="bearer",
        expires_at=datetime.now(UTC) + timedelta(minutes=30),
        user_id=user_id,
    )


class TestTokenGateway:
    async def test_create_and_lookup(self, token_gateway, test_user):
        await token_gateway.create_token(_token(test_user.id, "1"))

        by_access = await token_gateway.get_by_access_token("access_1")
        by_refresh = await token_gateway.get_by_refresh_token("refresh_1")

        assert by_access.user_id == test_user.id
        assert by_refresh.id == by_access.id

    async def test_new_login_replaces_pair(self, token_gateway, test_user):
        first = await token_gateway.create_token(_token(test_user.id, "1"))
        second = await token_gateway.create_token(_token(test_user.id, "2"))

        assert second.id == first.id
        assert await token_gateway.get_by_access_token("access_1") is None
        assert (await token_gateway.get_by_access_token("access_2")).user_id == test_user.id

    async def test_delete_by_access_token(self, token_gateway, test_user):
        await token_gateway.create_token(_token(test_user.id, "1"))

        assert await token_gateway.delete_token_by_access_token("access_1") is True
        assert await token_gateway.get_by_refresh_token("refresh_1") is None
        assert await token_gateway.delete_token_by_access_token("access_1") is False

    async def test_delete_tokens_for_user(self, token_gateway, test_user, test_user2):
        await token_gateway.create_token(_token(test_user.id, "1"))
        await token_gateway.create_token(_token(test_user2.id, "2"))

        assert await token_gateway.delete_tokens_for_user(test_user.id) == 1
        assert await token_gateway.get_by_access_token("access_1") is None
        assert (await token_gateway.get_by_access_token("access_2")).user_id == test_user2.id
        assert await token_gateway.delete_tokens_for_user(test_user.id) == 0
