"""Error taxonomy for circulation operations.

Every rejection a caller can observe carries a stable machine-readable
``code`` and an HTTP-style ``status_code``:

- 404 NotFoundError: a referenced book, member, loan or reservation is missing
- 403 AccessDeniedError: the record lives in a branch the caller cannot touch
- 409 PolicyRejectedError: business rules refuse the operation
- 422 InvalidInputError: the request is malformed or ambiguous

Tool handlers turn these into structured MCP error payloads. Anything that is
not a ``CirculationError`` is treated as an internal failure.
"""

from typing import Any


class RepositoryException(Exception):  # noqa: N818
    """Base exception for repository operations."""


class DuplicateError(RepositoryException):
    """Raised when attempting to create a duplicate entity."""


class CirculationError(RepositoryException):
    """A rejection with a stable code, an HTTP-style status and details."""

    status_code: int = 400
    default_code: str = "circulation_error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "status": self.status_code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(CirculationError):
    status_code = 404
    default_code = "not_found"


class AccessDeniedError(CirculationError):
    status_code = 403
    default_code = "access_denied"


class PolicyRejectedError(CirculationError):
    status_code = 409
    default_code = "policy_rejected"


class InvalidInputError(CirculationError):
    status_code = 422
    default_code = "invalid_input"
