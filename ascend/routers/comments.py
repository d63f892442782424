"""Comments API endpoints.

Comments attach to a task or to a project and follow its visibility.
Only the author may edit or delete a comment. Mentioned users receive a
``mention`` notification.
"""

import logging
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.comment import Comment
from ..models.task import Task
from ..models.user import User
from ..schemas.comment import CommentAuthor, CommentCreate, CommentResponse, CommentUpdate
from ..services.activity_service import record_comment_added
from ..services.auth_service import get_current_user
from ..services.notification_service import NotificationService
from ..services.permission_service import get_comment_or_404, get_project_or_404, get_task_or_404
from ..websocket.handlers import ChangeEvent, publish_change

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Comments"])


def _comment_response(comment: Comment, author: Optional[User]) -> CommentResponse:
    response = CommentResponse.model_validate(comment)
    if author is not None:
        response.author = CommentAuthor.model_validate(author)
    return response


async def _list(db: AsyncSession, *conditions) -> List[CommentResponse]:
    result = await db.execute(
        select(Comment, User)
        .outerjoin(User, User.id == Comment.author_id)
        .where(*conditions)
        .order_by(Comment.created_at.asc())
    )
    return [_comment_response(comment, author) for comment, author in result.all()]


async def _audience(db: AsyncSession, comment: Comment) -> tuple[Optional[UUID], list[UUID]]:
    """Project room for project-scoped comments, else the task creator's room."""
    if comment.project_id is not None:
        return comment.project_id, []
    task = await db.get(Task, comment.task_id)
    if task is None:
        return None, []
    if task.project_id is not None:
        return task.project_id, []
    return None, [task.created_by]


async def _create(
    db: AsyncSession,
    payload: CommentCreate,
    author: User,
    task: Optional[Task] = None,
    project_id: Optional[UUID] = None,
) -> CommentResponse:
    comment = Comment(
        task_id=task.id if task else None,
        project_id=None if task else project_id,
        author_id=author.id,
        content=payload.content,
    )
    db.add(comment)
    await db.flush()

    feed_project_id = task.project_id if task else project_id
    await record_comment_added(db, comment, feed_project_id, author.id)

    notifications = []
    mentioned_ids = list(dict.fromkeys(payload.mentioned_user_ids))
    if mentioned_ids:
        result = await db.execute(select(User.id).where(User.id.in_(mentioned_ids)))
        for user_id in result.scalars().all():
            notifications.append(await NotificationService.notify_mention(
                db, user_id, author.id, comment.id,
                task_id=comment.task_id, project_id=feed_project_id,
            ))

    await db.commit()

    room_project_id, user_ids = await _audience(db, comment)
    await publish_change(
        "comments", ChangeEvent.INSERT, new=comment, project_id=room_project_id, user_ids=user_ids,
    )
    await NotificationService.deliver(notifications)
    return _comment_response(comment, author)


# ============================================================================
# Task comments
# ============================================================================


@router.get(
    "/api/tasks/{task_id}/comments",
    response_model=List[CommentResponse],
    summary="List comments on a task",
    responses={404: {"description": "Task not found"}},
)
async def list_task_comments(
    task_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[CommentResponse]:
    await get_task_or_404(db, task_id, current_user)
    return await _list(db, Comment.task_id == task_id)


@router.post(
    "/api/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task",
    responses={
        201: {"description": "Comment created"},
        404: {"description": "Task not found"},
    },
)
async def create_task_comment(
    task_id: UUID,
    payload: CommentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    task = await get_task_or_404(db, task_id, current_user)
    return await _create(db, payload, current_user, task=task)


# ============================================================================
# Project comments
# ============================================================================


@router.get(
    "/api/projects/{project_id}/comments",
    response_model=List[CommentResponse],
    summary="List comments on a project",
    responses={404: {"description": "Project not found"}},
)
async def list_project_comments(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[CommentResponse]:
    await get_project_or_404(db, project_id, current_user)
    return await _list(db, Comment.project_id == project_id)


@router.post(
    "/api/projects/{project_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a project",
    responses={
        201: {"description": "Comment created"},
        404: {"description": "Project not found"},
    },
)
async def create_project_comment(
    project_id: UUID,
    payload: CommentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    await get_project_or_404(db, project_id, current_user)
    return await _create(db, payload, current_user, project_id=project_id)


# ============================================================================
# Edit and delete
# ============================================================================


@router.patch(
    "/api/comments/{comment_id}",
    response_model=CommentResponse,
    summary="Edit a comment",
    responses={
        200: {"description": "Comment updated"},
        403: {"description": "Only the author can edit"},
        404: {"description": "Comment not found"},
    },
)
async def update_comment(
    comment_id: UUID,
    payload: CommentUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> CommentResponse:
    comment = await get_comment_or_404(db, comment_id, current_user, action="edit")
    old = {"id": comment.id, "content": comment.content}
    comment.content = payload.content
    await db.commit()

    room_project_id, user_ids = await _audience(db, comment)
    await publish_change(
        "comments", ChangeEvent.UPDATE,
        new=comment, old=old, project_id=room_project_id, user_ids=user_ids,
    )
    return _comment_response(comment, current_user)


@router.delete(
    "/api/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment",
    responses={
        204: {"description": "Comment deleted"},
        403: {"description": "Only the author can delete"},
        404: {"description": "Comment not found"},
    },
)
async def delete_comment(
    comment_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    comment = await get_comment_or_404(db, comment_id, current_user, action="delete")
    room_project_id, user_ids = await _audience(db, comment)

    await db.delete(comment)
    await db.commit()

    await publish_change(
        "comments", ChangeEvent.DELETE, old=comment, project_id=room_project_id, user_ids=user_ids,
    )
