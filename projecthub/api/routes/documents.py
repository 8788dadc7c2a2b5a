"""
api/routes/documents.py
-----------------------
Document endpoints. Uploads are multipart; the bytes go to blob storage
and only metadata is stored in the database.

GET    /projects/{id}/documents   : Documents with uploader
POST   /projects/{id}/documents   : Upload a document (status: draft)
PATCH  /documents/{id}/status     : Owner moves a document through review
GET    /documents/{id}/url        : Short-lived signed download URL
DELETE /documents/{id}            : Delete blob and record
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile, status

from projecthub.core.config import settings
from projecthub.dependencies import Caller, get_document_service
from projecthub.schemas.document import (
    DocumentRead,
    DocumentStatusUpdate,
    DocumentWithUploader,
    SignedUrlRead,
)
from projecthub.services.document_service import DocumentService

router = APIRouter(tags=["Documents"])

Service = Annotated[DocumentService, Depends(get_document_service)]


@router.get(
    "/projects/{project_id}/documents",
    response_model=list[DocumentWithUploader],
    summary="List project documents",
)
async def list_documents(
    project_id: str, caller: Caller, service: Service
) -> list[DocumentWithUploader]:
    documents = await service.list_documents(caller, project_id)
    return [DocumentWithUploader.model_validate(d) for d in documents]


@router.post(
    "/projects/{project_id}/documents",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document",
)
async def create_document(
    project_id: str,
    caller: Caller,
    service: Service,
    file: UploadFile = File(...),
) -> DocumentRead:
    data = await file.read()
    document = await service.create_document(
        caller,
        project_id,
        filename=file.filename or "",
        data=data,
        content_type=file.content_type,
    )
    return DocumentRead.model_validate(document)


@router.patch(
    "/documents/{document_id}/status",
    response_model=DocumentRead,
    summary="Change document review status (project owner only)",
)
async def update_document_status(
    document_id: str, body: DocumentStatusUpdate, caller: Caller, service: Service
) -> DocumentRead:
    document = await service.update_document_status(caller, document_id, body.status)
    return DocumentRead.model_validate(document)


@router.get(
    "/documents/{document_id}/url",
    response_model=SignedUrlRead,
    summary="Get a signed download URL",
)
async def get_document_url(
    document_id: str, caller: Caller, service: Service
) -> SignedUrlRead:
    url = await service.get_document_url(caller, document_id)
    return SignedUrlRead(url=url, expires_in=settings.SIGNED_URL_TTL_SECONDS)


@router.delete(
    "/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a document",
)
async def delete_document(document_id: str, caller: Caller, service: Service) -> None:
    await service.delete_document(caller, document_id)
