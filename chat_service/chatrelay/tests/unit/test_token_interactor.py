# chatrelay/tests/unit/test_token_interactor.py
import datetime
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from chatrelay.domain.exceptions import Unavailable
from chatrelay.gateways.interfaces import ITokenGateway
from chatrelay.infrastructure import schemas
from chatrelay.infrastructure.security import SecurityService
from chatrelay.interactors.token_interactor import TokenInteractor

pytestmark = pytest.mark.asyncio

EXPIRES = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)


@pytest.fixture
def mock_token_gateway():
    return Mock(spec=ITokenGateway)


@pytest.fixture
def mock_security_service():
    service = Mock(spec=SecurityService)
    service.create_access_token.return_value = ("access-1", EXPIRES)
    service.create_refresh_token.return_value = ("refresh-1", EXPIRES)
    return service


@pytest.fixture
def token_interactor(mock_token_gateway, mock_security_service):
    return TokenInteractor(mock_token_gateway, mock_security_service)


def _stored(access_token="access-1", refresh_token="refresh-1"):
    model = Mock()
    model.access_token = access_token
    model.refresh_token = refresh_token
    model.token_type = "bearer"
    model.expires_at = EXPIRES
    model.user_id = 1
    stored = Mock()
    stored._model = model
    stored.refresh_token = refresh_token
    return stored


async def test_issue_tokens(token_interactor, mock_token_gateway):
    mock_token_gateway.create_token.return_value = _stored()
    user = Mock(spec=schemas.User)
    user.id = 1
    user.username = "alice"

    response = await token_interactor.issue_tokens(user)

    created: schemas.TokenCreate = mock_token_gateway.create_token.call_args.args[0]
    assert created.user_id == 1
    assert created.access_token == "access-1"
    assert response == schemas.TokenResponse(
        access_token="access-1",
        refresh_token="refresh-1",
        token_type="bearer",
        expires_at=EXPIRES,
        user_id=1,
    )


async def test_refresh_subject(token_interactor, mock_token_gateway, mock_security_service):
    mock_token_gateway.get_by_refresh_token.return_value = _stored()
    mock_security_service.decode_refresh_token.return_value = "alice"

    assert await token_interactor.refresh_subject("refresh-1") == "alice"
    mock_security_service.decode_refresh_token.assert_called_once_with("refresh-1")


async def test_refresh_subject_unknown_token(
    token_interactor, mock_token_gateway, mock_security_service
):
    mock_token_gateway.get_by_refresh_token.return_value = None

    assert await token_interactor.refresh_subject("nope") is None
    mock_security_service.decode_refresh_token.assert_not_called()


async def test_revoke(token_interactor, mock_token_gateway):
    mock_token_gateway.delete_token_by_access_token.return_value = False

    assert await token_interactor.revoke("access-1") is False


async def test_storage_failure_is_unavailable(token_interactor, mock_token_gateway):
    mock_token_gateway.get_by_refresh_token.side_effect = OperationalError(
        "SELECT", {}, Exception("locked")
    )

    with pytest.raises(Unavailable):
        await token_interactor.refresh_subject("refresh-1")
