"""Project member management API endpoints.

Members are invited by email and join immediately. Permission rules:
- Anyone with access to the project can list its members
- The creator and "owner" members invite, remove and change roles
- Any member may remove themselves (leave the project)
- The project creator can never be removed and always stays an owner
"""

import logging
from datetime import datetime
from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.project_member import ProjectMember
from ..models.user import User
from ..schemas.project_member import (
    ProjectMemberInvite,
    ProjectMemberResponse,
    ProjectMemberUpdate,
)
from ..schemas.user import UserSummary
from ..services.activity_service import record_member_added, record_member_removed
from ..services.auth_service import get_current_user, get_user_by_email
from ..services.notification_service import NotificationService
from ..services.permission_service import PermissionService, get_project_or_404
from ..websocket.handlers import ChangeEvent, publish_change
from ..websocket.room_auth import invalidate_user_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}/members", tags=["Project Members"])


def _member_response(member: ProjectMember, user: User) -> ProjectMemberResponse:
    response = ProjectMemberResponse.model_validate(member)
    response.user = UserSummary.model_validate(user)
    return response


async def _require_manager(db: AsyncSession, project, user: User) -> None:
    if not await PermissionService(db).can_manage_members(user.id, project):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only project owners can manage members",
        )


async def _get_member_or_404(db: AsyncSession, project_id: UUID, user_id: UUID) -> ProjectMember:
    result = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found",
        )
    return member


@router.get(
    "",
    response_model=List[ProjectMemberResponse],
    summary="List project members",
    responses={
        200: {"description": "Members retrieved successfully"},
        404: {"description": "Project not found"},
    },
)
async def list_members(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[ProjectMemberResponse]:
    await get_project_or_404(db, project_id, current_user)

    result = await db.execute(
        select(ProjectMember, User)
        .join(User, User.id == ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.invited_at.asc())
    )
    return [_member_response(member, user) for member, user in result.all()]


@router.post(
    "",
    response_model=ProjectMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a member by email",
    responses={
        201: {"description": "Member added"},
        400: {"description": "User is already a member"},
        403: {"description": "Not a project owner"},
        404: {"description": "Project or user not found"},
    },
)
async def invite_member(
    project_id: UUID,
    invite: ProjectMemberInvite,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectMemberResponse:
    """
    Add an existing user to the project.

    The invitee is notified and the membership counts as accepted at once.
    """
    project = await get_project_or_404(db, project_id, current_user)
    await _require_manager(db, project, current_user)

    invitee = await get_user_by_email(db, invite.email)
    if invitee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No user with that email",
        )

    if await PermissionService(db).is_project_member(invitee.id, project_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member of this project",
        )

    now = datetime.utcnow()
    member = ProjectMember(
        project_id=project_id,
        user_id=invitee.id,
        role=invite.role.value,
        invited_by=current_user.id,
        invited_at=now,
        accepted_at=now,
    )
    db.add(member)
    await db.flush()

    notification = await NotificationService.notify_project_invited(
        db, invitee.id, current_user.id, project_id,
    )
    await record_member_added(db, project_id, invitee, current_user.id)
    await db.commit()

    invalidate_user_cache(invitee.id)
    logger.info(f"Member added: project={project_id}, user={invitee.id}, role={member.role}")

    await publish_change(
        "project_members", ChangeEvent.INSERT,
        new=member, project_id=project_id, user_ids=[invitee.id],
    )
    await NotificationService.deliver([notification])
    return _member_response(member, invitee)


@router.patch(
    "/{user_id}",
    response_model=ProjectMemberResponse,
    summary="Change a member's role",
    responses={
        200: {"description": "Role updated"},
        400: {"description": "The creator's role cannot change"},
        403: {"description": "Not a project owner"},
        404: {"description": "Project or member not found"},
    },
)
async def update_member_role(
    project_id: UUID,
    user_id: UUID,
    payload: ProjectMemberUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectMemberResponse:
    project = await get_project_or_404(db, project_id, current_user)
    await _require_manager(db, project, current_user)

    if user_id == project.created_by:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The project creator's role cannot be changed",
        )

    member = await _get_member_or_404(db, project_id, user_id)
    old = {"role": member.role}
    member.role = payload.role.value
    await db.commit()

    invalidate_user_cache(user_id)
    await publish_change(
        "project_members", ChangeEvent.UPDATE,
        new=member, old=old, project_id=project_id,
    )
    user = await db.get(User, user_id)
    return _member_response(member, user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
    description="Owners remove anyone except the creator; members may remove themselves.",
    responses={
        204: {"description": "Member removed"},
        400: {"description": "The creator cannot be removed"},
        403: {"description": "Not allowed to remove this member"},
        404: {"description": "Project or member not found"},
    },
)
async def remove_member(
    project_id: UUID,
    user_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    project = await get_project_or_404(db, project_id, current_user)

    if user_id == project.created_by:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The project creator cannot be removed",
        )
    if user_id != current_user.id:
        await _require_manager(db, project, current_user)

    member = await _get_member_or_404(db, project_id, user_id)
    removed_user = await db.get(User, user_id)

    await db.delete(member)
    await record_member_removed(db, project_id, removed_user, user_id, current_user.id)
    await db.commit()

    invalidate_user_cache(user_id)
    logger.info(f"Member removed: project={project_id}, user={user_id}, by={current_user.id}")

    await publish_change(
        "project_members", ChangeEvent.DELETE,
        old=member, project_id=project_id, user_ids=[user_id],
    )
