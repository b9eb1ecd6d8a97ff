"""Tests for the database schema, constraints and session management."""

from datetime import date

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from library_circulation_mcp.database.availability_ledger import AvailabilityLedger
from library_circulation_mcp.database.schema import (
    Book,
    Loan,
    Reservation,
    ReservationStatusEnum,
)
from library_circulation_mcp.database.seed import seed_sample_data
from library_circulation_mcp.database.session import DatabaseManager


def test_tables_created(db_manager):
    tables = set(inspect(db_manager.engine).get_table_names())
    assert {"branches", "books", "members", "loans", "reservations", "settings"} <= tables


def test_foreign_keys_enforced(session):
    assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1
    session.add(Loan(book_id=999, member_id=999, due_date=date(2024, 1, 1)))
    with pytest.raises(IntegrityError):
        session.flush()


@pytest.mark.parametrize(("copies", "available"), [(0, 0), (2, 3), (2, -1)])
def test_availability_bounds(session, copies, available):
    session.add(Book(title="Broken", copies=copies, available=available))
    with pytest.raises(IntegrityError):
        session.flush()


def test_unset_availability_is_null(session, make_book):
    book = make_book(available=None)
    session.expire(book)
    assert book.available is None


def test_one_active_reservation_per_member_and_book(session, make_book, make_member):
    book, member = make_book(), make_member()
    session.add(Reservation(book_id=book.id, member_id=member.id))
    session.flush()
    session.add(
        Reservation(book_id=book.id, member_id=member.id, status=ReservationStatusEnum.CANCELLED)
    )
    session.flush()

    session.add(Reservation(book_id=book.id, member_id=member.id))
    with pytest.raises(IntegrityError):
        session.flush()


def test_session_scope_rolls_back_on_error(db_manager):
    with pytest.raises(RuntimeError), db_manager.session_scope() as session:
        session.add(Book(title="Phantom", copies=1, available=1))
        session.flush()
        raise RuntimeError("abort")

    with db_manager.session_scope() as session:
        assert session.query(Book).count() == 0


def test_memory_database():
    manager = DatabaseManager("sqlite:///:memory:", busy_timeout=1)
    manager.init_database()
    assert manager.verify_connection()
    with manager.session_scope() as session:
        session.add(Book(title="In Memory", copies=1, available=1))
    with manager.session_scope() as session:
        assert session.query(Book).count() == 1
    manager.close()


def test_sample_data_is_consistent(db_manager):
    with db_manager.session_scope() as session:
        counts = seed_sample_data(session, books_per_branch=5, members_per_branch=8)

    assert counts["branches"] == 2
    assert counts["books"] == 15
    assert counts["members"] == 16
    assert counts["reservations"] == 2

    with db_manager.session_scope() as session:
        assert AvailabilityLedger(session).find_drift() == []
