"""
services/document_service.py
----------------------------
Document lifecycle. Each Document row is paired 1:1 with a blob in
external storage, and the pair is created and deleted together:

  create:  upload blob  →  insert row   (row fails → delete blob, re-raise)
  delete:  delete blob  →  delete row   (blob delete is best effort)

There is no transaction spanning the store and the blob service, so the
compensating delete is the only thing preventing orphan blobs.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.config import settings
from projecthub.core.errors import NotFoundError, StorageError, ValidationError
from projecthub.core.logging import get_logger
from projecthub.core.security import CallerIdentity
from projecthub.models.document import Document, DocumentStatus
from projecthub.services import authorization as guard
from projecthub.services.invalidation import ViewInvalidator, project_path
from projecthub.services.project_service import get_project_or_404
from projecthub.services.storage_service import BlobStorage, build_object_path

logger = get_logger(__name__)


class DocumentService:

    def __init__(
        self,
        db: AsyncSession,
        storage: BlobStorage,
        invalidator: ViewInvalidator,
    ) -> None:
        self.db = db
        self.storage = storage
        self.invalidator = invalidator

    async def _get_document(self, document_id: str) -> Document:
        document = await self.db.get(Document, document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return document

    async def create_document(
        self,
        caller: CallerIdentity,
        project_id: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> Document:
        caller_id = guard.require_authenticated(caller)
        if not project_id or not filename:
            raise ValidationError("Project ID and file are required")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ValidationError("File exceeds the maximum upload size")
        await get_project_or_404(self.db, project_id)

        # Upload first: if this fails nothing has been written.
        path = await self.storage.upload(
            data, build_object_path(project_id, filename), content_type
        )

        document = Document(
            project_id=project_id,
            name=filename,
            file_path=path,
            file_size=len(data),
            file_type=content_type or None,
            status=DocumentStatus.draft.value,
            uploaded_by=caller_id,
        )
        self.db.add(document)
        try:
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            logger.error(
                "Create document record failed, removing uploaded blob",
                project_id=project_id,
                path=path,
                error=str(exc),
            )
            await self._discard_blob(path)
            raise

        logger.info(
            "Document created",
            document_id=document.id,
            project_id=project_id,
            size=len(data),
        )
        self.invalidator.invalidate(project_path(project_id))
        return document

    async def update_document_status(
        self, caller: CallerIdentity, document_id: str, status: str
    ) -> Document:
        """Only the owner of the document's project moves it between review states."""
        caller_id = guard.require_authenticated(caller)
        document = await self._get_document(document_id)
        project = await get_project_or_404(self.db, document.project_id)
        guard.require(guard.can_set_document_status(caller_id, project), caller_id)

        try:
            new_status = DocumentStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid document status '{status}'")

        document.status = new_status.value
        await self.db.commit()
        await self.db.refresh(document)

        logger.info("Document status updated", document_id=document_id, status=new_status.value)
        self.invalidator.invalidate(project_path(document.project_id))
        return document

    async def delete_document(self, caller: CallerIdentity, document_id: str) -> None:
        guard.require_authenticated(caller)
        document = await self._get_document(document_id)
        project_id = document.project_id

        # The blob may already be gone; the record is removed regardless.
        await self._discard_blob(document.file_path)

        await self.db.delete(document)
        await self.db.commit()

        logger.info("Document deleted", document_id=document_id, project_id=project_id)
        self.invalidator.invalidate(project_path(project_id))

    async def list_documents(
        self, caller: CallerIdentity, project_id: str
    ) -> list[Document]:
        guard.require_authenticated(caller)
        result = await self.db.execute(
            select(Document)
            .where(Document.project_id == project_id)
            .options(selectinload(Document.uploader))
            .order_by(Document.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_document_url(
        self, caller: CallerIdentity, document_id: str, ttl_seconds: Optional[int] = None
    ) -> str:
        guard.require_authenticated(caller)
        document = await self._get_document(document_id)
        return await self.storage.signed_url(
            document.file_path, ttl_seconds or settings.SIGNED_URL_TTL_SECONDS
        )

    async def _discard_blob(self, path: str) -> None:
        try:
            await self.storage.delete(path)
        except StorageError as exc:
            logger.warning("Blob delete failed", path=path, error=exc.reason)
