"""
services/note_service.py
------------------------
Project notes. Notes cannot be edited; only their author can delete them.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from projecthub.core.errors import NotFoundError, ValidationError
from projecthub.core.logging import get_logger
from projecthub.core.security import CallerIdentity
from projecthub.models.note import Note
from projecthub.services import authorization as guard
from projecthub.services.invalidation import ViewInvalidator, project_path
from projecthub.services.project_service import get_project_or_404

logger = get_logger(__name__)


class NoteService:

    def __init__(self, db: AsyncSession, invalidator: ViewInvalidator) -> None:
        self.db = db
        self.invalidator = invalidator

    async def create_note(
        self, caller: CallerIdentity, project_id: str, content: str
    ) -> Note:
        caller_id = guard.require_authenticated(caller)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Note content is required")
        await get_project_or_404(self.db, project_id)

        note = Note(project_id=project_id, user_id=caller_id, content=content)
        self.db.add(note)
        await self.db.commit()

        logger.info("Note created", note_id=note.id, project_id=project_id)
        self.invalidator.invalidate(project_path(project_id))
        return await self._load(note.id)

    async def list_notes(self, caller: CallerIdentity, project_id: str) -> list[Note]:
        guard.require_authenticated(caller)
        result = await self.db.execute(
            select(Note)
            .where(Note.project_id == project_id)
            .options(selectinload(Note.author))
            .order_by(Note.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def delete_note(
        self, caller: CallerIdentity, note_id: str, project_id: str
    ) -> None:
        caller_id = guard.require_authenticated(caller)
        note = await self.db.get(Note, note_id)
        if note is None or note.project_id != project_id:
            raise NotFoundError("Note not found")
        guard.require(guard.can_delete_note(caller_id, note), caller_id)

        await self.db.delete(note)
        await self.db.commit()

        logger.info("Note deleted", note_id=note_id, project_id=project_id)
        self.invalidator.invalidate(project_path(project_id))

    async def _load(self, note_id: str) -> Note:
        result = await self.db.execute(
            select(Note).where(Note.id == note_id).options(selectinload(Note.author))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
