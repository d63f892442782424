"""Project documents API endpoints.

Documents are links, inline notes or general documents attached to a
project. Anyone with project access may add and edit them; only the
project creator may delete them.
"""

import logging
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.document import ProjectDocument
from ..models.user import User
from ..schemas.document import DocumentCreate, DocumentResponse, DocumentType, DocumentUpdate
from ..services.auth_service import get_current_user
from ..services.permission_service import get_document_or_404, get_project_or_404
from ..websocket.handlers import ChangeEvent, publish_change

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


@router.get(
    "/api/projects/{project_id}/documents",
    response_model=List[DocumentResponse],
    summary="List project documents",
    responses={
        200: {"description": "Documents retrieved successfully"},
        404: {"description": "Project not found"},
    },
)
async def list_documents(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    document_type: Optional[DocumentType] = Query(None, alias="type", description="Filter by type"),
) -> List[DocumentResponse]:
    await get_project_or_404(db, project_id, current_user)

    query = select(ProjectDocument).where(ProjectDocument.project_id == project_id)
    if document_type:
        query = query.where(ProjectDocument.type == document_type.value)
    result = await db.execute(query.order_by(ProjectDocument.created_at.desc()))
    return list(result.scalars().all())


@router.post(
    "/api/projects/{project_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a document",
    description="Links require a URL, notes require content.",
    responses={
        201: {"description": "Document created successfully"},
        404: {"description": "Project not found"},
        422: {"description": "Validation error"},
    },
)
async def create_document(
    project_id: UUID,
    document_data: DocumentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    await get_project_or_404(db, project_id, current_user)

    document = ProjectDocument(
        project_id=project_id,
        title=document_data.title,
        url=document_data.url,
        content=document_data.content,
        type=document_data.type.value,
    )
    db.add(document)
    await db.commit()

    await publish_change("project_documents", ChangeEvent.INSERT, new=document, project_id=project_id)
    return document


@router.get(
    "/api/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Get a document",
    responses={
        200: {"description": "Document retrieved successfully"},
        404: {"description": "Document not found"},
    },
)
async def get_document(
    document_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    return await get_document_or_404(db, document_id, current_user)


@router.patch(
    "/api/documents/{document_id}",
    response_model=DocumentResponse,
    summary="Update a document",
    responses={
        200: {"description": "Document updated successfully"},
        404: {"description": "Document not found"},
        422: {"description": "A link would be left without a URL"},
    },
)
async def update_document(
    document_id: UUID,
    document_data: DocumentUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    document = await get_document_or_404(db, document_id, current_user, action="edit")
    old = {"title": document.title, "url": document.url, "content": document.content, "type": document.type}

    update_data = document_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field in ("title", "type") and value is None:
            continue
        setattr(document, field, getattr(value, "value", value))

    if document.type == DocumentType.LINK.value and not document.url:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Links require a URL, notes require content",
        )
    if document.type == DocumentType.NOTE.value and not document.content:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Links require a URL, notes require content",
        )

    await db.commit()
    await publish_change(
        "project_documents", ChangeEvent.UPDATE,
        new=document, old=old, project_id=document.project_id,
    )
    return document


@router.delete(
    "/api/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
    responses={
        204: {"description": "Document deleted successfully"},
        403: {"description": "Only the project creator can delete documents"},
        404: {"description": "Document not found"},
    },
)
async def delete_document(
    document_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    document = await get_document_or_404(db, document_id, current_user, action="delete")

    await db.delete(document)
    await db.commit()
    logger.info(f"Document deleted: {document_id} by {current_user.id}")

    await publish_change(
        "project_documents", ChangeEvent.DELETE, old=document, project_id=document.project_id,
    )
