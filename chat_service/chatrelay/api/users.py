# chatrelay/api/users.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chatrelay.api.dependencies import get_current_active_user, get_user_interactor
from chatrelay.infrastructure import schemas
from chatrelay.interactors.user_interactor import UserInteractor

router = APIRouter()


@router.get("/", response_model=List[schemas.User])
async def read_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    username: Optional[str] = Query(None, description="Substring of the username"),
    user_interactor: UserInteractor = Depends(get_user_interactor),
    _: schemas.User = Depends(get_current_active_user),
):
    return await user_interactor.get_users(skip=skip, limit=limit, username=username)


@router.get("/me", response_model=schemas.User)
async def read_me(current_user: schemas.User = Depends(get_current_active_user)):
    return current_user


@router.get("/search", response_model=List[schemas.UserBasic])
async def search_users(
    query: str = Query(..., min_length=1),
    user_interactor: UserInteractor = Depends(get_user_interactor),
    current_user: schemas.User = Depends(get_current_active_user),
):
    """Users whose name contains ``query``, excluding the caller; for picking room members."""
    return await user_interactor.search_users(query, current_user.id)


@router.put("/me", response_model=schemas.User)
async def update_me(
    update: schemas.UserUpdate,
    user_interactor: UserInteractor = Depends(get_user_interactor),
    current_user: schemas.User = Depends(get_current_active_user),
):
    return await user_interactor.update_profile(current_user.id, update)


@router.put("/me/password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    change: schemas.PasswordChange,
    user_interactor: UserInteractor = Depends(get_user_interactor),
    current_user: schemas.User = Depends(get_current_active_user),
):
    # issued tokens stay valid; only later logins need the new password
    if not await user_interactor.change_password(current_user.id, change):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect current password"
        )


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(
    user_interactor: UserInteractor = Depends(get_user_interactor),
    current_user: schemas.User = Depends(get_current_active_user),
):
    await user_interactor.deactivate(current_user.id)


@router.get("/{user_id}", response_model=schemas.User)
async def read_user(
    user_id: int,
    user_interactor: UserInteractor = Depends(get_user_interactor),
    _: schemas.User = Depends(get_current_active_user),
):
    return await user_interactor.read_user(user_id)
