"""
services/authorization.py
-------------------------
Ownership rules for every mutating operation, in one place.

Each predicate is a pure function of the caller id and the resource's
ownership columns and returns a Decision. Services call `require()` to
turn a denial into an AuthorizationError naming the denied action; no
service compares owner ids on its own.
"""

from dataclasses import dataclass
from typing import Optional

from projecthub.core.errors import AuthenticationError, AuthorizationError, ValidationError
from projecthub.core.logging import get_logger
from projecthub.core.security import CallerIdentity
from projecthub.models.note import Note
from projecthub.models.project import Project

logger = get_logger(__name__)

DELETE_PROJECT = "delete_project"
ADD_MEMBER = "add_project_member"
REMOVE_MEMBER = "remove_project_member"
SET_DOCUMENT_STATUS = "update_document_status"
DELETE_NOTE = "delete_note"
READ = "read"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    action: str
    reason: str = ""
    # Denied because the target is the project owner's own membership.
    protected_owner: bool = False


def _allow(action: str) -> Decision:
    return Decision(allowed=True, action=action)


def can_delete_project(caller_id: str, project: Project) -> Decision:
    if caller_id == project.owner_id:
        return _allow(DELETE_PROJECT)
    return Decision(False, DELETE_PROJECT, "Only project owner can delete the project")


def can_add_or_remove_member(caller_id: str, project: Project) -> Decision:
    if caller_id == project.owner_id:
        return _allow(ADD_MEMBER)
    return Decision(False, ADD_MEMBER, "Only project owner can add members")


def can_remove_member(caller_id: str, project: Project, target_user_id: str) -> Decision:
    if caller_id != project.owner_id:
        return Decision(False, REMOVE_MEMBER, "Only project owner can remove members")
    if target_user_id == project.owner_id:
        return Decision(
            False, REMOVE_MEMBER, "Cannot remove project owner", protected_owner=True
        )
    return _allow(REMOVE_MEMBER)


def can_set_document_status(caller_id: str, project: Project) -> Decision:
    if caller_id == project.owner_id:
        return _allow(SET_DOCUMENT_STATUS)
    return Decision(
        False, SET_DOCUMENT_STATUS, "Only project owner can change document status"
    )


def can_delete_note(caller_id: str, note: Note) -> Decision:
    # Authorship only: owning the project grants nothing here.
    if caller_id == note.user_id:
        return _allow(DELETE_NOTE)
    return Decision(False, DELETE_NOTE, "Unauthorized to delete this note")


def can_read(caller_id: Optional[str]) -> Decision:
    """Reads need an authenticated caller; membership is not checked."""
    if caller_id:
        return _allow(READ)
    return Decision(False, READ, "Unauthorized")


def require(decision: Decision, caller_id: Optional[str] = None) -> None:
    """Raise the typed error for a denial; return silently when allowed."""
    if decision.allowed:
        return
    logger.warning(
        "Authorization denied",
        action=decision.action,
        caller_id=caller_id,
        reason=decision.reason,
    )
    if decision.protected_owner:
        raise ValidationError(decision.reason)
    if decision.action == READ:
        raise AuthenticationError(decision.reason)
    raise AuthorizationError(decision.action, decision.reason)


def require_authenticated(caller: Optional[CallerIdentity]) -> str:
    """Return the caller's user id, or raise AuthenticationError."""
    user_id = caller.user_id if caller is not None else None
    require(can_read(user_id))
    return user_id
