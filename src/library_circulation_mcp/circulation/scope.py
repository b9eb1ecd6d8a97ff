"""Branch scoping for circulation records.

Books, members, loans and reservations carry a nullable ``branch_id``.
``NULL`` marks a shared record that every caller can see. A non-null value
pins the record to one branch.

Visibility rules:
- Admins pass ``"all"`` to see every branch, a branch id to see that branch,
  or nothing to fall back to their own home branch. ``"null"`` (or an admin
  without a home branch asking for nothing) narrows to shared records only.
- Staff see shared records plus their home branch. A staff member without a
  home branch sees shared records only. A requested branch never widens
  what staff can see.

The same rules back ``can_access`` for single-record checks and
``scope_filter`` for list queries, so a record a caller cannot open never
shows up in their listings either.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr
from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from ..errors import AccessDeniedError, InvalidInputError

ALL_BRANCHES = "all"
_SHARED_TOKENS = {"", "null", "none"}


class CallerRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Caller(BaseModel):
    """Identity of whoever is driving a circulation operation."""

    email: EmailStr
    role: CallerRole = CallerRole.STAFF
    branch_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN


def normalize_branch_value(value: Any) -> int | None:
    """Turn a loose branch reference into an id, or ``None`` for shared.

    Accepts ints, numeric strings, and the shared spellings ``"null"``,
    ``"none"`` and the empty string.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid branch value: {value!r}", code="invalid_branch")
    if isinstance(value, int):
        return value

    text = str(value).strip().lower()
    if text in _SHARED_TOKENS:
        return None
    try:
        return int(text)
    except ValueError:
        raise InvalidInputError(
            f"Invalid branch value: {value!r}", code="invalid_branch"
        ) from None


def _is_all(requested: Any) -> bool:
    return isinstance(requested, str) and requested.strip().lower() == ALL_BRANCHES


def scope_filter(
    caller: Caller, requested: Any, column: ColumnElement[Any]
) -> ColumnElement[bool] | None:
    """Predicate restricting ``column`` to the branches visible to ``caller``.

    Returns ``None`` when no restriction applies (admin viewing all branches).
    """
    if caller.is_admin:
        if _is_all(requested):
            return None
        target = caller.branch_id if requested is None else normalize_branch_value(requested)
    else:
        target = caller.branch_id

    if target is None:
        return column.is_(None)
    return or_(column.is_(None), column == target)


def resolve_write_branch(caller: Caller, requested: Any) -> int | None:
    """Branch to stamp on a new record the caller creates.

    Admins may target any branch (or shared). Staff always write into their
    home branch.
    """
    if caller.is_admin:
        if requested is None or _is_all(requested):
            return caller.branch_id
        return normalize_branch_value(requested)
    return caller.branch_id


def can_access(caller: Caller, record_branch_id: int | None) -> bool:
    if record_branch_id is None:
        return True
    if caller.is_admin:
        return True
    return caller.branch_id is not None and caller.branch_id == record_branch_id


def require_access(caller: Caller, record_branch_id: int | None, what: str) -> None:
    """Raise ``AccessDeniedError`` when ``caller`` cannot touch the record."""
    if not can_access(caller, record_branch_id):
        raise AccessDeniedError(
            f"No access to {what} in branch {record_branch_id}",
            details={"branch_id": record_branch_id},
        )
