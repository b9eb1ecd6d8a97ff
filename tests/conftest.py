"""Test configuration and fixtures for the Library Circulation MCP Server.

Every test gets:
1. A clean LIBRARY_CIRCULATION_* environment pointing at a temporary SQLite file
2. Fresh configuration and database manager singletons
3. Logfire configured to stay local (no console output, nothing sent)

Tool handlers open their own sessions through ``session_scope()``, so they
see the same temporary database as the ``session`` fixture once the test
commits its setup data. Each transaction takes the SQLite write lock up
front: commit or roll back the fixture session before calling a handler.
"""

import os
from collections.abc import Generator
from pathlib import Path

import logfire
import pytest
from sqlalchemy.orm import Session

from library_circulation_mcp.circulation.audit import AuditEvent, get_audit_sink, set_audit_sink
from library_circulation_mcp.circulation.scope import Caller, CallerRole
from library_circulation_mcp.config import reset_config
from library_circulation_mcp.database.schema import Book, Branch, Member
from library_circulation_mcp.database.session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
)


def pytest_configure(config):
    config.addinivalue_line("markers", "concurrency: tests that run several threads")


@pytest.fixture(scope="session", autouse=True)
def quiet_logfire():
    logfire.configure(send_to_logfire=False, console=False)


# === Environment and Database Fixtures ===


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch) -> Generator[Path, None, None]:
    """Point configuration at a per-test database and reset singletons."""
    for key in list(os.environ):
        if key.startswith("LIBRARY_CIRCULATION_"):
            monkeypatch.delenv(key)

    db_path = tmp_path / "circulation.db"
    monkeypatch.setenv("LIBRARY_CIRCULATION_DATABASE_PATH", str(db_path))
    monkeypatch.setenv("LIBRARY_CIRCULATION_SQLITE_BUSY_TIMEOUT", "5")
    reset_config()
    reset_db_manager()

    yield db_path

    reset_db_manager()
    reset_config()


@pytest.fixture
def db_manager() -> DatabaseManager:
    manager = get_db_manager()
    manager.init_database()
    return manager


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """A session on the test database. Uncommitted work is rolled back."""
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# === Record Factories ===


@pytest.fixture
def make_branch(session: Session):
    def _make(name: str = "Main Library", code: str | None = None) -> Branch:
        branch = Branch(name=name, code=code)
        session.add(branch)
        session.flush()
        return branch

    return _make


@pytest.fixture
def make_book(session: Session):
    """Add a book. ``available`` defaults to ``copies``; pass None to leave it unset."""

    def _make(**overrides) -> Book:
        values = {
            "isbn": "978-0-306-40615-7",
            "title": "Test Book",
            "author": "Test Author",
            "copies": 1,
            "branch_id": None,
        }
        values.update(overrides)
        values.setdefault("available", values["copies"])
        book = Book(**values)
        session.add(book)
        session.flush()
        return book

    return _make


@pytest.fixture
def make_member(session: Session):
    counter = iter(range(1000, 10000))

    def _make(**overrides) -> Member:
        values = {
            "student_no": f"S-{next(counter)}",
            "name": "Test Member",
            "branch_id": None,
        }
        values.update(overrides)
        member = Member(**values)
        session.add(member)
        session.flush()
        return member

    return _make


@pytest.fixture
def branches(make_branch) -> tuple[Branch, Branch]:
    return make_branch("Main Library", "MAIN"), make_branch("North Annex", "NORTH")


# === Callers ===


@pytest.fixture
def admin(branches) -> Caller:
    return Caller(email="admin@school.org", role=CallerRole.ADMIN, branch_id=branches[0].id)


@pytest.fixture
def main_staff(branches) -> Caller:
    return Caller(email="main.staff@school.org", role=CallerRole.STAFF, branch_id=branches[0].id)


@pytest.fixture
def north_staff(branches) -> Caller:
    return Caller(email="north.staff@school.org", role=CallerRole.STAFF, branch_id=branches[1].id)


def caller_payload(caller: Caller) -> dict:
    """Caller as a tool argument."""
    return {"email": caller.email, "role": caller.role.value, "branch_id": caller.branch_id}


@pytest.fixture
def as_payload():
    return caller_payload


# === Audit ===


class RecordingAuditSink:
    def __init__(self):
        self.events: list[AuditEvent] = []

    def emit(self, audit_event: AuditEvent) -> None:
        self.events.append(audit_event)

    @property
    def actions(self) -> list[str]:
        return [e.action for e in self.events]


@pytest.fixture
def audit_sink() -> Generator[RecordingAuditSink, None, None]:
    """Install a recording sink as the process-wide default."""
    previous = get_audit_sink()
    sink = RecordingAuditSink()
    set_audit_sink(sink)
    yield sink
    set_audit_sink(previous)
