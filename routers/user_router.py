"""
User Router - profile read and update for the authenticated account owner
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from crud.user import UserRepository
from database import get_db
from models.user import UpdateUserRequest, UserProfile, UserResponse, UserUpdateResponse

logger = logging.getLogger(__name__)

user_router = APIRouter(prefix="/api/user", tags=["users"])


def _require_owner(current_user: dict, user_id: int, action: str) -> None:
    if current_user["user_id"] != user_id:
        raise HTTPException(status_code=403, detail=f"You can only {action} your own profile")


@user_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's own profile"""
    _require_owner(current_user, user_id, "view")

    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(user=UserProfile.model_validate(user))


@user_router.put("/{user_id}/update", response_model=UserUpdateResponse)
async def update_user(
    user_id: int,
    body: UpdateUserRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Update the caller's own profile.

    Name, phone and address feed the Stripe customer created at first
    checkout; a customer that already exists is not updated.
    """
    _require_owner(current_user, user_id, "update")

    user_repo = UserRepository(db)
    user = await user_repo.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user = await user_repo.update_user(user, body.model_dump(exclude_none=True))
    logger.info(f"User {user_id} updated profile fields: {sorted(body.model_dump(exclude_none=True))}")
    return UserUpdateResponse(message="User updated successfully", user=UserProfile.model_validate(user))
