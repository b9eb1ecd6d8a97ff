"""
Circulation repository: the loan lifecycle.

A loan is OPEN while ``return_date`` is NULL and CLOSED once it is set.
Each mutation runs inside the caller's transaction and leaves the
availability ledger, the loan row and the reservation queue consistent
with each other when it commits.

Checkout, in order:
1. Resolve book and member, by id or natural key
2. Check branch access to both
3. Check member eligibility (blocked, overdue, loan limit)
4. Check a copy is available
5. Check the reservation queue: only its head may borrow
6. Compute the due date
7. Insert the loan, take the copy, fulfil the head reservation

Return closes the loan exactly once and puts the copy back. Extend pushes
the due date of an open loan.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from ..circulation.audit import AuditEvent, AuditSink, get_audit_sink, queue_audit
from ..circulation.dates import parse_due_date
from ..circulation.keys import normalize_key, normalized_column
from ..circulation.policy import MemberLoanStats, PolicyConfig, require_eligible
from ..circulation.scope import Caller, require_access, resolve_write_branch, scope_filter
from ..errors import InvalidInputError, NotFoundError, PolicyRejectedError
from ..models import (
    CheckoutRequest,
    CheckoutResult,
    ExtendResult,
    KeyMatch,
    LoanDetail,
    LoanStatusFilter,
    ReturnRequest,
    ReturnResult,
)
from .availability_ledger import AvailabilityLedger
from .book_repository import BookRepository
from .member_repository import MemberRepository
from .repository import PaginatedResponse, PaginationParams, count_rows
from .reservation_repository import ReservationRepository
from .schema import Book, Loan, Member
from .session import mcp_safe_query

logger = logging.getLogger(__name__)


class CirculationRepository:
    """Checkout, return, extend and loan queries for one unit of work."""

    def __init__(
        self,
        session: Session,
        policy: PolicyConfig | None = None,
        audit_sink: AuditSink | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.policy = policy or PolicyConfig()
        self.audit_sink = audit_sink or get_audit_sink()
        self.clock = clock
        self.books = BookRepository(session)
        self.members = MemberRepository(session)
        self.ledger = AvailabilityLedger(session)
        self.reservations = ReservationRepository(session, self.audit_sink)

    # === Resolution ===

    def _resolve_book(self, book_id: int | None, isbn: str | None) -> tuple[Book, KeyMatch]:
        if book_id is not None:
            book = self.books.get_model(book_id, for_update=True)
            if book is None:
                raise NotFoundError(f"Book {book_id} not found", code="book_not_found")
            return book, KeyMatch.ID

        match = self.books.find_by_isbn(isbn or "")
        if match is None:
            raise NotFoundError(
                f"No book matches ISBN {isbn!r}", code="book_not_found", details={"isbn": isbn}
            )
        book, how = match
        self.session.refresh(book, with_for_update=True)
        return book, how

    def _resolve_member(self, member_id: int | None, student_no: str | None) -> Member:
        if member_id is not None:
            member = self.members.get_model(member_id)
        else:
            member = self.members.find_by_student_no(student_no or "")
        if member is None:
            raise NotFoundError(
                f"Member {member_id or student_no!r} not found",
                code="member_not_found",
            )
        return member

    def member_loan_stats(self, member_id: int) -> MemberLoanStats:
        today = self.clock().date()
        query = select(
            func.count(Loan.id),
            func.coalesce(func.sum(case((Loan.due_date < today, 1), else_=0)), 0),
        ).where(Loan.member_id == member_id, Loan.return_date.is_(None))
        active, overdue = mcp_safe_query(
            self.session, lambda s: s.execute(query).one(), "Failed to count member loans"
        )
        return MemberLoanStats(active=active or 0, overdue=overdue or 0)

    def _audit(self, caller: Caller, action: str, branch_id: int | None, **meta: Any) -> None:
        queue_audit(
            self.session,
            self.audit_sink,
            AuditEvent(action=action, actor_email=caller.email, branch_id=branch_id, meta=meta),
        )

    # === Lifecycle ===

    def checkout(self, caller: Caller, request: CheckoutRequest) -> CheckoutResult:
        """
        Lend one copy of a book to a member.

        Raises:
            InvalidInputError: Missing references, ambiguous ISBN or bad due date
            NotFoundError: Book or member does not exist
            AccessDeniedError: Book or member is outside the caller's branches
            PolicyRejectedError: Eligibility, ``out_of_stock`` or ``queue_conflict``
        """
        if request.book_id is None and not (request.isbn or "").strip():
            raise InvalidInputError("A book id or ISBN is required", code="missing_book")
        if request.member_id is None and not (request.student_no or "").strip():
            raise InvalidInputError(
                "A member id or student number is required", code="missing_member"
            )

        book, book_match = self._resolve_book(request.book_id, request.isbn)
        member = self._resolve_member(request.member_id, request.student_no)
        require_access(caller, book.branch_id, f"book {book.id}")
        require_access(caller, member.branch_id, f"member {member.id}")

        require_eligible(member, self.member_loan_stats(member.id), self.policy)

        if self.ledger.current_available(book) <= 0:
            raise PolicyRejectedError(
                f"No copies of {book.title!r} are available",
                code="out_of_stock",
                details={"book_id": book.id, "copies": book.copies},
            )

        head = self.reservations.head_of(book.id)
        if head is not None and head.member_id != member.id:
            raise PolicyRejectedError(
                f"Book {book.id} is reserved for another member",
                code="queue_conflict",
                details={"book_id": book.id, "head_reservation_id": head.id},
            )

        now = self.clock()
        if request.due_date is not None:
            due_date = parse_due_date(request.due_date)
        else:
            due_date = now.date() + timedelta(days=self.policy.loan_days_default)

        if book.branch_id is not None:
            branch_id = book.branch_id
        elif member.branch_id is not None:
            branch_id = member.branch_id
        else:
            branch_id = resolve_write_branch(caller, None)

        loan = Loan(
            book_id=book.id,
            member_id=member.id,
            branch_id=branch_id,
            loan_date=now,
            due_date=due_date,
        )
        self.session.add(loan)
        available = self.ledger.take_copy(book)
        fulfilled_id = None
        if head is not None:
            self.reservations._fulfill(head)  # noqa: SLF001
            fulfilled_id = head.id
        self.session.flush()

        logger.info(
            "Loan %s: book %s to member %s until %s", loan.id, book.id, member.id, due_date
        )
        self._audit(
            caller,
            "loans.checkout",
            branch_id,
            loan_id=loan.id,
            book_id=book.id,
            member_id=member.id,
            due_date=due_date.isoformat(),
            reservation_id=fulfilled_id,
        )
        return CheckoutResult(
            loan_id=loan.id,
            book_id=book.id,
            member_id=member.id,
            branch_id=branch_id,
            due_date=due_date,
            available=available,
            book_match=book_match,
            fulfilled_reservation_id=fulfilled_id,
        )

    def _find_open_loan(self, isbn: str, student_no: str) -> Loan | None:
        query = (
            select(Loan)
            .join(Book, Book.id == Loan.book_id)
            .join(Member, Member.id == Loan.member_id)
            .where(
                Loan.return_date.is_(None),
                normalized_column(Book.isbn) == normalize_key(isbn),
                normalized_column(Member.student_no) == normalize_key(student_no),
            )
            .order_by(Loan.id)
            .limit(1)
        )
        return mcp_safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to find open loan",
        )

    def return_loan(self, caller: Caller, request: ReturnRequest) -> ReturnResult:
        """
        Close an open loan and put its copy back on the shelf.

        Raises:
            InvalidInputError: Neither a loan id nor an ISBN/student number pair
            NotFoundError: No matching loan
            AccessDeniedError: Loan is outside the caller's branches
            PolicyRejectedError: ``already_returned``
        """
        if request.loan_id is not None:
            loan = self.session.get(Loan, request.loan_id, with_for_update=True)
        elif (request.isbn or "").strip() and (request.student_no or "").strip():
            loan = self._find_open_loan(request.isbn, request.student_no)
        else:
            raise InvalidInputError(
                "A loan id or an ISBN with a student number is required",
                code="missing_loan",
            )

        if loan is None:
            raise NotFoundError("No matching open loan found", code="loan_not_found")
        require_access(caller, loan.branch_id, f"loan {loan.id}")
        if loan.return_date is not None:
            raise PolicyRejectedError(
                f"Loan {loan.id} was already returned",
                code="already_returned",
                details={"loan_id": loan.id, "return_date": loan.return_date.isoformat()},
            )

        now = self.clock()
        days_late = max(0, (now.date() - loan.due_date).days)
        fine_cents = self.policy.fine_for(days_late)

        book = self.books.get_model(loan.book_id, for_update=True)
        # Release before closing so a derived availability still counts this loan
        available = self.ledger.release_copy(book)
        closed = self.session.execute(
            update(Loan)
            .where(Loan.id == loan.id, Loan.return_date.is_(None))
            .values(return_date=now)
            .execution_options(synchronize_session=False)
        )
        if closed.rowcount == 0:
            raise PolicyRejectedError(
                f"Loan {loan.id} was already returned", code="already_returned"
            )
        self.session.refresh(loan, attribute_names=["return_date"])

        logger.info("Loan %s returned, %s day(s) late, fine %s", loan.id, days_late, fine_cents)
        self._audit(
            caller,
            "loans.return",
            loan.branch_id,
            loan_id=loan.id,
            book_id=loan.book_id,
            days_late=days_late,
            fine_cents=fine_cents,
        )
        return ReturnResult(
            loan_id=loan.id,
            book_id=loan.book_id,
            return_date=now,
            days_late=days_late,
            fine_cents=fine_cents,
            available=available,
        )

    def extend(self, caller: Caller, loan_id: int, days: int | None = None) -> ExtendResult:
        """
        Push the due date of an open loan by ``days``.

        Non-positive or missing ``days`` fall back to the policy default.
        The loan's branch decides access, or its book's branch for legacy
        loans stored without one.

        Raises:
            NotFoundError: Loan does not exist
            PolicyRejectedError: ``already_returned``
            AccessDeniedError: Loan is outside the caller's branches
            InvalidInputError: ``invalid_date`` if the new due date is out of range
        """
        days_added = days if days is not None and days > 0 else self.policy.extend_days_default

        loan = self.session.get(Loan, loan_id, with_for_update=True)
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found", code="loan_not_found")
        if loan.return_date is not None:
            raise PolicyRejectedError(
                f"Loan {loan_id} was already returned", code="already_returned"
            )

        branch_id = loan.branch_id
        if branch_id is None:
            branch_id = self.session.execute(
                select(Book.branch_id).where(Book.id == loan.book_id)
            ).scalar_one_or_none()
        require_access(caller, branch_id, f"loan {loan_id}")

        previous: date = loan.due_date
        try:
            new_due = previous + timedelta(days=days_added)
        except OverflowError:
            raise InvalidInputError(
                f"Extending loan {loan_id} by {days_added} days leaves the calendar",
                code="invalid_date",
                details={"days": days_added},
            ) from None

        loan.due_date = new_due
        self.session.flush()

        logger.info("Loan %s extended by %s day(s) to %s", loan_id, days_added, new_due)
        self._audit(
            caller,
            "loans.extend",
            branch_id,
            loan_id=loan_id,
            days_added=days_added,
            due_date=new_due.isoformat(),
        )
        return ExtendResult(
            loan_id=loan_id,
            previous_due_date=previous,
            due_date=new_due,
            days_added=days_added,
        )

    # === Queries ===

    def _detail_query(self):
        return (
            select(Loan, Book.title, Book.isbn, Member.name, Member.student_no)
            .join(Book, Book.id == Loan.book_id)
            .join(Member, Member.id == Loan.member_id)
        )

    def _to_detail(self, row, today: date) -> LoanDetail:
        loan, title, isbn, member_name, student_no = row
        days_overdue = (
            max(0, (today - loan.due_date).days) if loan.return_date is None else 0
        )
        return LoanDetail.model_validate(
            {
                "id": loan.id,
                "book_id": loan.book_id,
                "member_id": loan.member_id,
                "branch_id": loan.branch_id,
                "loan_date": loan.loan_date,
                "due_date": loan.due_date,
                "return_date": loan.return_date,
                "book_title": title,
                "isbn": isbn,
                "member_name": member_name,
                "student_no": student_no,
                "is_overdue": days_overdue > 0,
                "is_due_today": loan.return_date is None and loan.due_date == today,
                "days_overdue": days_overdue,
            }
        )

    def check_loan(self, caller: Caller, isbn: str, student_no: str) -> LoanDetail:
        """
        Snapshot of the open loan for a book and member pair.

        Raises:
            NotFoundError: No open loan for the pair
            AccessDeniedError: Loan is outside the caller's branches
        """
        loan = self._find_open_loan(isbn, student_no)
        if loan is None:
            raise NotFoundError(
                "No open loan for this book and member",
                code="loan_not_found",
                details={"isbn": isbn, "student_no": student_no},
            )
        require_access(caller, loan.branch_id, f"loan {loan.id}")
        row = self.session.execute(self._detail_query().where(Loan.id == loan.id)).one()
        return self._to_detail(row, self.clock().date())

    def list_loans(
        self,
        caller: Caller,
        branch: Any = None,
        status: LoanStatusFilter = LoanStatusFilter.ALL,
        query_text: str | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanDetail]:
        """Loans visible to ``caller``, newest first."""
        pagination = pagination or PaginationParams()
        today = self.clock().date()
        query = self._detail_query()

        predicate = scope_filter(caller, branch, Loan.branch_id)
        if predicate is not None:
            query = query.where(predicate)

        if status == LoanStatusFilter.ACTIVE:
            query = query.where(Loan.return_date.is_(None))
        elif status == LoanStatusFilter.RETURNED:
            query = query.where(Loan.return_date.is_not(None))
        elif status == LoanStatusFilter.OVERDUE:
            query = query.where(Loan.return_date.is_(None), Loan.due_date < today)

        if query_text and query_text.strip():
            like = f"%{query_text.strip()}%"
            query = query.where(
                or_(
                    Book.title.ilike(like),
                    Book.isbn.ilike(like),
                    Member.name.ilike(like),
                    Member.student_no.ilike(like),
                )
            )

        total = count_rows(self.session, query)
        page = query.order_by(Loan.id.desc()).offset(pagination.offset).limit(pagination.page_size)
        rows = mcp_safe_query(
            self.session, lambda s: s.execute(page).all(), "Failed to list loans"
        )
        return PaginatedResponse[LoanDetail].build(
            [self._to_detail(row, today) for row in rows], total, pagination
        )
