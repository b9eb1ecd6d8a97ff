"""
Database package for the Library Circulation MCP Server.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management with per-transaction write locks (session.py)
- Repositories for catalog reads, settings, the availability ledger,
  reservation queues and the loan lifecycle
"""

from .availability_ledger import AvailabilityLedger, InvariantViolation
from .book_repository import BookRepository
from .branch_repository import BranchRepository
from .circulation_repository import CirculationRepository
from .member_repository import MemberRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .reservation_repository import ReservationRepository
from .schema import Base, Book, Branch, Loan, Member, Reservation, ReservationStatusEnum, Setting
from .session import (
    DatabaseManager,
    get_db_manager,
    mcp_safe_query,
    reset_db_manager,
    session_scope,
)
from .settings_repository import SettingsRepository

__all__ = [
    "AvailabilityLedger",
    "Base",
    "BaseRepository",
    "Book",
    "BookRepository",
    "Branch",
    "BranchRepository",
    "CirculationRepository",
    "DatabaseManager",
    "InvariantViolation",
    "Loan",
    "Member",
    "MemberRepository",
    "PaginatedResponse",
    "PaginationParams",
    "Reservation",
    "ReservationRepository",
    "ReservationStatusEnum",
    "SettingsRepository",
    "Setting",
    "get_db_manager",
    "mcp_safe_query",
    "reset_db_manager",
    "session_scope",
]
