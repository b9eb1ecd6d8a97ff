"""
SQLAlchemy database schema for the Library Circulation MCP Server.

Six tables back the circulation engine:
1. branches - library branches that scope every other record
2. books - catalog titles with a per-title copy count and availability
3. members - borrowers, identified by id or student number
4. loans - one row per checkout, closed by setting ``return_date``
5. reservations - per-book FIFO hold queue
6. settings - key/value policy overrides edited by librarians

``branch_id`` is nullable everywhere: ``NULL`` marks a record shared across
branches. A loan or reservation takes its branch at creation and keeps it.

``books.available`` may be ``NULL`` on rows imported without one. The
availability ledger derives the value from open loans and writes it back
the first time such a book is circulated.
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ReservationStatusEnum(str, enum.Enum):
    """Database enum for reservation status."""

    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class Branch(Base):
    """Library branches."""

    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    code = Column(String(20), nullable=True, unique=True)
    created_at = Column(DateTime, nullable=False, default=func.now())


class Book(Base):
    """
    Books table - one row per title, ``copies`` physical copies.

    ``available`` is the ledger value: copies minus open loans. Checkout
    decrements it with a conditional UPDATE, return increments it, both in
    the same transaction as the loan row change.
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(32), nullable=True)
    title = Column(String(500), nullable=False)
    author = Column(String(200), nullable=True)
    copies = Column(Integer, nullable=False, default=1)
    available = Column(Integer, nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="book")
    reservations = relationship("Reservation", back_populates="book")

    __table_args__ = (
        Index("idx_book_isbn", "isbn"),
        Index("idx_book_title", "title"),
        Index("idx_book_branch", "branch_id"),
        CheckConstraint("copies >= 1", name="check_copies_positive"),
        CheckConstraint(
            "available IS NULL OR (available >= 0 AND available <= copies)",
            name="check_available_within_copies",
        ),
    )


class Member(Base):
    """Members table - borrowers."""

    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_no = Column(String(50), nullable=True)
    name = Column(String(200), nullable=False)
    grade = Column(String(50), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_blocked = Column(Boolean, nullable=False, default=False)
    note = Column(Text, nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())

    loans = relationship("Loan", back_populates="member")
    reservations = relationship("Reservation", back_populates="member")

    __table_args__ = (
        Index("idx_member_student_no", "student_no"),
        Index("idx_member_branch", "branch_id"),
    )


class Loan(Base):
    """
    Loans table - OPEN while ``return_date`` is NULL, CLOSED once it is set.

    Overdue is a derived view (``due_date`` before today on an open loan),
    never a stored state.
    """

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    loan_date = Column(DateTime, nullable=False, default=func.now())
    due_date = Column(Date, nullable=False)
    return_date = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="loans")
    member = relationship("Member", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_book_open", "book_id", "return_date"),
        Index("idx_loan_member_open", "member_id", "return_date"),
        Index("idx_loan_branch", "branch_id"),
        Index("idx_loan_due_date", "due_date"),
    )


class Reservation(Base):
    """
    Reservations table - per-book hold queue.

    Queue order is ``created_at`` then ``id`` among ``active`` rows. A member
    holds at most one active reservation per book, backed by a partial
    unique index.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("members.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    status = Column(
        Enum(
            ReservationStatusEnum,
            name="reservation_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ReservationStatusEnum.ACTIVE,
    )
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="reservations")
    member = relationship("Member", back_populates="reservations")

    __table_args__ = (
        Index("idx_reservation_queue", "book_id", "status", "created_at", "id"),
        Index("idx_reservation_member", "member_id"),
        Index(
            "uq_reservation_active_member",
            "book_id",
            "member_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )


class Setting(Base):
    """Key/value policy overrides."""

    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())
