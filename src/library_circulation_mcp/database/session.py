"""
Database session management for the Library Circulation MCP Server.

Every circulation tool runs as one unit of work inside ``session_scope()``:
the loan row, the availability counter and any reservation status change
commit together or not at all.

Concurrency on SQLite:
1. Each transaction opens with ``BEGIN IMMEDIATE``, taking the write lock
   up front. Two checkouts of the last copy serialize instead of both
   reading ``available = 1``.
2. A waiting writer blocks for ``sqlite_busy_timeout`` seconds before
   failing with "database is locked".
3. File databases use a regular connection pool so each thread gets its
   own connection. ``:memory:`` databases share one connection through
   ``StaticPool``.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .schema import Base

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _is_memory_url(database_url: str) -> bool:
    return database_url in {"sqlite://", "sqlite:///:memory:"} or "mode=memory" in database_url


class DatabaseManager:
    """
    Manages database connections and sessions for the MCP server.

    Engines are created lazily so tests can point a manager at a temporary
    file before anything connects.
    """

    def __init__(self, database_url: str | None = None, busy_timeout: float | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, uses the configured SQLite file.
            busy_timeout: Seconds to wait for the SQLite write lock. If None, uses configuration.
        """
        if database_url is None or busy_timeout is None:
            config = get_config()
            if busy_timeout is None:
                busy_timeout = config.sqlite_busy_timeout

            if database_url is None:
                db_path = config.database_path
                if not db_path.is_absolute():
                    db_path = Path.cwd() / db_path
                db_path.parent.mkdir(exist_ok=True, parents=True)

                database_url = f"sqlite:///{db_path}"
                logger.info("Using SQLite database at: %s", db_path)

        self.database_url = database_url
        self.busy_timeout = busy_timeout
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            if self.database_url.startswith("sqlite"):
                self._engine = self._create_sqlite_engine()
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    def _create_sqlite_engine(self) -> Engine:
        connect_args = {"check_same_thread": False, "timeout": self.busy_timeout}

        if _is_memory_url(self.database_url):
            engine = create_engine(
                self.database_url,
                poolclass=StaticPool,
                connect_args=connect_args,
                echo=False,
            )

            @event.listens_for(engine, "connect")
            def set_memory_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            return engine

        engine = create_engine(self.database_url, connect_args=connect_args, echo=False)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
            # Hand transaction control to the "begin" hook below
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations.

        ```python
        with db_manager.session_scope() as session:
            CirculationRepository(session, policy).checkout(caller, request)
        # Session is automatically committed or rolled back
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.debug("Rolling back database transaction", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Verify the database connection is working."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Close the database connection and cleanup resources."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


_db_manager: DatabaseManager | None = None


def get_db_manager(database_url: str | None = None) -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        database_url: Database URL (only used on first call)
    """
    global _db_manager  # noqa: PLW0603 - Singleton pattern for database manager

    if _db_manager is None:
        _db_manager = DatabaseManager(database_url)

    return _db_manager


def reset_db_manager() -> None:
    """Dispose the global manager so the next call builds a fresh one."""
    global _db_manager  # noqa: PLW0603

    if _db_manager is not None:
        _db_manager.close()
    _db_manager = None


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Convenience context manager for database sessions.

    Example:
        ```python
        with session_scope() as session:
            loans = CirculationRepository(session, policy).list_loans(caller, params)
        ```
    """
    with get_db_manager().session_scope() as session:
        yield session


def mcp_safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a read query with MCP-appropriate error handling.

    Raises:
        ValueError: If query fails (with MCP-friendly message)
    """
    try:
        return query_func(session)
    except Exception as e:
        logger.exception("Query failed")
        raise ValueError(f"{error_msg}: Database query failed") from e
