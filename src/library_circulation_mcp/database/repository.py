"""
Repository pattern implementation for the Library Circulation MCP Server.

Repositories keep SQL out of MCP handlers and return Pydantic models that
serialize cleanly into tool responses. None of them commit: the caller's
``session_scope()`` owns the transaction, so a checkout that touches three
tables still commits once.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import Select, asc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import DuplicateError
from .schema import Base
from .session import mcp_safe_query

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class PaginationParams(BaseModel):
    """Standard pagination parameters for MCP list operations."""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for MCP list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(
        cls, items: Sequence[Any], total: int, pagination: PaginationParams
    ) -> "PaginatedResponse[ResponseSchemaType]":
        total_pages = (total + pagination.page_size - 1) // pagination.page_size
        return cls(
            items=list(items),
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=total_pages,
            has_next=pagination.page < total_pages,
            has_previous=pagination.page > 1,
        )


def count_rows(session: Session, query: Select) -> int:
    """Count the rows a select would return, ignoring its ordering."""
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    return (
        mcp_safe_query(session, lambda s: s.execute(count_query).scalar(), "Failed to count rows")
        or 0
    )


class BaseRepository(ABC, Generic[ModelType, CreateSchemaType, ResponseSchemaType]):
    """
    Abstract base repository providing the shared read/create operations.

    Subclasses name their SQLAlchemy model and Pydantic response schema.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def get_model(self, entity_id: int, for_update: bool = False) -> ModelType | None:
        """
        Load the ORM row for ``entity_id``.

        With ``for_update`` the row is locked on databases that support
        ``SELECT ... FOR UPDATE``. SQLite ignores the hint and relies on the
        write lock taken by ``BEGIN IMMEDIATE`` instead.
        """
        return mcp_safe_query(
            self.session,
            lambda s: s.get(self.model_class, entity_id, with_for_update=for_update),
            f"Failed to get {self.model_class.__name__} by ID",
        )

    def get_all(self) -> list[ResponseSchemaType]:
        query = select(self.model_class).order_by(asc(self.model_class.id))
        results = mcp_safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            f"Failed to list {self.model_class.__name__}",
        )
        return [self._to_response_model(item) for item in results]

    def create(self, data: CreateSchemaType) -> ResponseSchemaType:
        """
        Create a new entity inside the current transaction.

        Raises:
            DuplicateError: If a unique constraint rejects the row
        """
        db_obj = self.model_class(**data.model_dump())
        self.session.add(db_obj)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise DuplicateError(
                f"{self.model_class.__name__} violates a uniqueness constraint"
            ) from e
        return self._to_response_model(db_obj)
