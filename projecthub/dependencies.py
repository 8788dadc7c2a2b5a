"""
dependencies.py
---------------
FastAPI dependency injection functions for caller identity and services.

Flow:
  1. HTTPBearer extracts the session token from the Authorization header.
  2. decode_identity_token verifies the identity provider's signature.
  3. get_caller maps the claims to a CallerIdentity (user id + active
     organization id) and binds both to the request's log context.
  4. Service factories receive the request-scoped AsyncSession plus the
     process-wide collaborators (blob storage, view invalidator).

No credential checking happens beyond the token signature: the provider
has already authenticated the user.
"""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.logging import bind_request_context, get_logger
from projecthub.core.security import CallerIdentity, decode_identity_token, identity_from_claims
from projecthub.db.session import get_db
from projecthub.services.document_service import DocumentService
from projecthub.services.invalidation import ViewInvalidator, view_invalidator
from projecthub.services.membership_service import MembershipService
from projecthub.services.note_service import NoteService
from projecthub.services.organization_directory import OrganizationDirectory
from projecthub.services.project_service import ProjectService
from projecthub.services.storage_service import BlobStorage, S3BlobStorage

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Unauthorized",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_caller(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> CallerIdentity:
    """
    Verify the provider-issued token and return the caller.
    Raises 401 if the token is missing, invalid, or has no subject.
    """
    if credentials is None:
        raise _CREDENTIALS_EXCEPTION
    try:
        payload = decode_identity_token(credentials.credentials)
    except JWTError as exc:
        logger.warning("Identity token rejected", error=str(exc))
        raise _CREDENTIALS_EXCEPTION

    caller = identity_from_claims(payload)
    if not caller.user_id:
        raise _CREDENTIALS_EXCEPTION

    bind_request_context(caller_id=caller.user_id, org_id=caller.org_id)
    return caller


@lru_cache()
def get_storage() -> BlobStorage:
    """Process-wide blob client; overridden in tests."""
    return S3BlobStorage.from_settings()


def get_invalidator() -> ViewInvalidator:
    return view_invalidator


DbSession = Annotated[AsyncSession, Depends(get_db)]
Storage = Annotated[BlobStorage, Depends(get_storage)]
Invalidator = Annotated[ViewInvalidator, Depends(get_invalidator)]
Caller = Annotated[CallerIdentity, Depends(get_caller)]


def get_project_service(db: DbSession, storage: Storage, invalidator: Invalidator) -> ProjectService:
    return ProjectService(db, storage, invalidator)


def get_membership_service(db: DbSession, invalidator: Invalidator) -> MembershipService:
    return MembershipService(db, invalidator)


def get_document_service(db: DbSession, storage: Storage, invalidator: Invalidator) -> DocumentService:
    return DocumentService(db, storage, invalidator)


def get_note_service(db: DbSession, invalidator: Invalidator) -> NoteService:
    return NoteService(db, invalidator)


def get_organization_directory(db: DbSession) -> OrganizationDirectory:
    return OrganizationDirectory(db)
