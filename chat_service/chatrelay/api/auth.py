# chatrelay/api/auth.py
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from chatrelay.api.dependencies import (
    get_token_interactor,
    get_user_interactor,
    oauth2_scheme,
)
from chatrelay.infrastructure import schemas
from chatrelay.interactors.token_interactor import TokenInteractor
from chatrelay.interactors.user_interactor import UserInteractor

router = APIRouter()


def _credentials_error(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/register", response_model=schemas.User)
async def register_user(
    user: schemas.UserCreate,
    user_interactor: UserInteractor = Depends(get_user_interactor),
):
    return await user_interactor.register(user)


@router.post("/login", response_model=schemas.TokenResponse)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    user_interactor: UserInteractor = Depends(get_user_interactor),
    token_interactor: TokenInteractor = Depends(get_token_interactor),
):
    user = await user_interactor.authenticate(form_data.username, form_data.password)
    if user is None:
        raise _credentials_error("Incorrect username or password")
    if not user.is_active:
        raise _credentials_error("Inactive user")
    return await token_interactor.issue_tokens(user)


@router.post("/refresh", response_model=schemas.TokenResponse)
async def refresh(
    body: schemas.RefreshTokenRequest,
    token_interactor: TokenInteractor = Depends(get_token_interactor),
    user_interactor: UserInteractor = Depends(get_user_interactor),
):
    username = await token_interactor.refresh_subject(body.refresh_token)
    if username is None:
        raise _credentials_error("Invalid refresh token")
    user = await user_interactor.get_user_by_username(username)
    if user is None or not user.is_active:
        raise _credentials_error("User not found or inactive")
    # issuing replaces the stored pair, so the old refresh token stops working
    return await token_interactor.issue_tokens(user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: str = Depends(oauth2_scheme),
    token_interactor: TokenInteractor = Depends(get_token_interactor),
):
    if not await token_interactor.revoke(token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
