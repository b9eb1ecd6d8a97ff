"""
Circulation models for loans and reservations.

Request models describe what a caller asks for, using either database ids
or natural keys (ISBN, student number). Result models describe what was
committed. Detail models join in book and member names for listings.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class KeyMatch(str, Enum):
    """How a natural key resolved to a record."""

    ID = "id"
    EXACT = "exact"
    NORMALIZED = "normalized"
    FUZZY = "fuzzy"


class ReservationStatus(str, Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class LoanStatusFilter(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    ALL = "all"


class CheckoutRequest(BaseModel):
    book_id: int | None = Field(default=None, ge=1)
    isbn: str | None = None
    member_id: int | None = Field(default=None, ge=1)
    student_no: str | None = None
    due_date: str | date | None = Field(
        default=None,
        description="Due date override: YYYY-MM-DD, ISO datetime, DD.MM.YYYY or DD/MM/YYYY",
    )


class ReturnRequest(BaseModel):
    loan_id: int | None = Field(default=None, ge=1)
    isbn: str | None = None
    student_no: str | None = None


class Loan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    member_id: int
    branch_id: int | None = None
    loan_date: datetime
    due_date: date
    return_date: datetime | None = None

    @computed_field
    @property
    def is_open(self) -> bool:
        return self.return_date is None


class LoanDetail(Loan):
    """Loan joined with its book and member for listings."""

    book_title: str
    isbn: str | None = None
    member_name: str
    student_no: str | None = None
    is_overdue: bool = False
    is_due_today: bool = False
    days_overdue: int = 0


class CheckoutResult(BaseModel):
    loan_id: int
    book_id: int
    member_id: int
    branch_id: int | None = None
    due_date: date
    available: int
    book_match: KeyMatch
    fulfilled_reservation_id: int | None = None


class ReturnResult(BaseModel):
    loan_id: int
    book_id: int
    return_date: datetime
    days_late: int = 0
    fine_cents: int = 0
    available: int


class ExtendResult(BaseModel):
    loan_id: int
    previous_due_date: date
    due_date: date
    days_added: int


class Reservation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    member_id: int
    branch_id: int | None = None
    status: ReservationStatus
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def unwrap_status(cls, v):
        return getattr(v, "value", v)


class ReservationDetail(Reservation):
    book_title: str
    member_name: str
    student_no: str | None = None
    queue_position: int | None = Field(
        default=None, description="1-based position among active reservations for the book"
    )
