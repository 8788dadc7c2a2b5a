"""
api/routes/notes.py
-------------------
Project notes.

GET    /projects/{id}/notes            : Notes with author, newest first
POST   /projects/{id}/notes            : Add a note
DELETE /projects/{id}/notes/{note_id}  : Author only
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from projecthub.dependencies import Caller, get_note_service
from projecthub.schemas.note import NoteCreate, NoteWithAuthor
from projecthub.services.note_service import NoteService

router = APIRouter(prefix="/projects/{project_id}/notes", tags=["Notes"])

Service = Annotated[NoteService, Depends(get_note_service)]


@router.get("", response_model=list[NoteWithAuthor], summary="List project notes")
async def list_notes(project_id: str, caller: Caller, service: Service) -> list[NoteWithAuthor]:
    notes = await service.list_notes(caller, project_id)
    return [NoteWithAuthor.model_validate(n) for n in notes]


@router.post(
    "",
    response_model=NoteWithAuthor,
    status_code=status.HTTP_201_CREATED,
    summary="Add a note",
)
async def create_note(
    project_id: str, body: NoteCreate, caller: Caller, service: Service
) -> NoteWithAuthor:
    note = await service.create_note(caller, project_id, body.content)
    return NoteWithAuthor.model_validate(note)


@router.delete(
    "/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a note (author only)",
)
async def delete_note(project_id: str, note_id: str, caller: Caller, service: Service) -> None:
    await service.delete_note(caller, note_id, project_id)
