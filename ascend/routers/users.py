"""Users API endpoints.

Provides user search (for member invites) and account settings: display
name, email, password and account deletion.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.user import (
    AccountDeletion,
    EmailChange,
    PasswordChange,
    ProfileUpdate,
    UserResponse,
)
from ..services.auth_service import get_current_user, get_user_by_email
from ..utils.sanitize import LIKE_ESCAPE, escape_like
from ..utils.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


class UserSearchResponse(BaseModel):
    """User search result for the invite dialog"""
    id: UUID
    email: str
    display_name: Optional[str] = None


@router.get(
    "/search",
    response_model=list[UserSearchResponse],
    summary="Search users by email or name",
    description="Search for users to invite to projects. Returns matching users.",
)
async def search_users(
    email: Optional[str] = Query(None, min_length=1, description="Email to search for (partial match)"),
    name: Optional[str] = Query(None, min_length=1, description="Name to search for (partial match)"),
    limit: int = Query(10, ge=1, le=50, description="Maximum results to return"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[UserSearchResponse]:
    """
    Search for users by email or display name.

    - Searches are case-insensitive partial matches
    - Excludes the current user from results
    """
    conditions = []
    if email:
        conditions.append(User.email.ilike(f"%{escape_like(email)}%", escape=LIKE_ESCAPE))
    if name:
        conditions.append(User.display_name.ilike(f"%{escape_like(name)}%", escape=LIKE_ESCAPE))

    if not conditions:
        return []

    stmt = (
        select(User)
        .where(or_(*conditions))
        .where(User.id != current_user.id)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return [
        UserSearchResponse(id=user.id, email=user.email, display_name=user.display_name)
        for user in result.scalars().all()
    ]


@router.patch(
    "/me",
    response_model=UserResponse,
    summary="Update display name",
    responses={
        200: {"description": "Profile updated"},
        422: {"description": "Display name empty or too long"},
    },
)
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    current_user.display_name = payload.display_name
    await db.commit()
    await db.refresh(current_user)
    return current_user


@router.put(
    "/me/email",
    response_model=UserResponse,
    summary="Change email address",
    responses={
        200: {"description": "Email changed"},
        400: {"description": "Email already in use"},
    },
)
async def change_email(
    payload: EmailChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    new_email = payload.new_email.lower()
    if new_email == current_user.email:
        return current_user

    if await get_user_by_email(db, new_email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already in use",
        )

    current_user.email = new_email
    await db.commit()
    await db.refresh(current_user)
    logger.info(f"Email changed for user {current_user.id}")
    return current_user


@router.put(
    "/me/password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change password",
    responses={
        204: {"description": "Password changed"},
        400: {"description": "Current password is incorrect"},
        422: {"description": "New password fails the password policy"},
    },
)
async def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Change the password after re-checking the current one.

    Policy checks (length, character classes, confirmation) run in the
    request schema and answer 422.
    """
    if not verify_password(payload.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )

    current_user.password_hash = get_password_hash(payload.new_password)
    await db.commit()
    logger.info(f"Password changed for user {current_user.id}")


@router.delete(
    "/me",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete account",
    description='Permanently delete the account. The body must confirm with "delete my account".',
    responses={
        204: {"description": "Account deleted"},
        422: {"description": "Confirmation phrase missing or wrong"},
    },
)
async def delete_account(
    payload: AccountDeletion,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    user_id = current_user.id
    await db.delete(current_user)
    await db.commit()
    logger.info(f"Account deleted: {user_id}")
