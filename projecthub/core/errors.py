"""
core/errors.py
--------------
Typed error kinds raised by the service layer.

Services never return HTTP responses; they raise one of these and the
route layer (or the global handler in main.py) renders it. Each error
carries a human-readable `reason` that is safe to show to the caller.
"""

from typing import Any, Dict, Optional

from fastapi import status


class AppError(Exception):
    """Base class for every error that may be surfaced to a caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.reason}


class AuthenticationError(AppError):
    """No verified caller identity."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, reason: str = "Unauthorized") -> None:
        super().__init__(reason)


class AuthorizationError(AppError):
    """Verified caller lacks permission for the named action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, action: str, reason: str) -> None:
        super().__init__(reason)
        self.action = action

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.reason, "action": self.action}


class NotFoundError(AppError):
    """
    Referenced organization, project, document or note does not exist.

    retryable=True marks the window between an organization being created
    at the identity provider and its webhook event being mirrored locally.
    """

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, reason: str, retryable: bool = False) -> None:
        super().__init__(reason)
        self.retryable = retryable


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class SignatureVerificationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class StorageError(AppError):
    """Blob upload / delete / sign failure."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, reason: str, path: Optional[str] = None) -> None:
        super().__init__(reason)
        self.path = path


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
