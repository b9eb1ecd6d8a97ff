"""Fixtures for tool handler tests.

Handlers open their own transactions, so setup data is committed before a
test runs and state is read back through fresh sessions.
"""

from types import SimpleNamespace

import pytest

from library_circulation_mcp.database.schema import Book, Loan


@pytest.fixture
def library(session, branches, make_book, make_member) -> SimpleNamespace:
    main, north = branches
    shelf = SimpleNamespace(
        main_id=main.id,
        north_id=north.id,
        atlas=make_book(isbn="978-0-306-40615-7", title="World Atlas", copies=1).id,
        chemistry=make_book(
            isbn="9781111111111", title="Chemistry", copies=2, branch_id=main.id
        ).id,
        poetry=make_book(isbn="9782222222222", title="Poetry", copies=1, branch_id=north.id).id,
        ada=make_member(student_no="S-100", name="Ada", branch_id=main.id).id,
        ben=make_member(student_no="S-200", name="Ben", branch_id=main.id).id,
        cy=make_member(student_no="S-300", name="Cy", branch_id=north.id).id,
    )
    session.commit()
    return shelf


@pytest.fixture
def read_back(db_manager):
    """Load a row in its own committed transaction."""

    def _read(model, entity_id):
        with db_manager.session_scope() as s:
            row = s.get(model, entity_id)
            if row is not None:
                s.expunge(row)
            return row

    return _read


@pytest.fixture
def available(read_back):
    def _available(book_id: int) -> int | None:
        return read_back(Book, book_id).available

    return _available


@pytest.fixture
def loan_row(read_back):
    def _loan(loan_id: int) -> Loan | None:
        return read_back(Loan, loan_id)

    return _loan
