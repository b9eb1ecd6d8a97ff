"""
Reservation repository: the per-book hold queue.

Active reservations for a book form a FIFO queue ordered by ``created_at``
then ``id``. Only the member at the head may check the book out while the
queue is non-empty; that checkout marks the head reservation fulfilled in
the same transaction.

Fulfillment is not a public operation. ``CirculationRepository.checkout``
is its only caller.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..circulation.audit import AuditEvent, AuditSink, get_audit_sink, queue_audit
from ..circulation.scope import Caller, require_access, resolve_write_branch, scope_filter
from ..errors import NotFoundError, PolicyRejectedError
from ..models import Reservation, ReservationDetail, ReservationStatus
from .schema import Book, Member, ReservationStatusEnum
from .schema import Reservation as ReservationDB
from .session import mcp_safe_query

logger = logging.getLogger(__name__)


def _queue_order():
    return (ReservationDB.created_at.asc(), ReservationDB.id.asc())


class ReservationRepository:
    def __init__(self, session: Session, audit_sink: AuditSink | None = None):
        self.session = session
        self.audit_sink = audit_sink or get_audit_sink()

    def head_of(self, book_id: int) -> ReservationDB | None:
        """Oldest active reservation for ``book_id``, if any."""
        query = (
            select(ReservationDB)
            .where(
                ReservationDB.book_id == book_id,
                ReservationDB.status == ReservationStatusEnum.ACTIVE,
            )
            .order_by(*_queue_order())
            .limit(1)
            .with_for_update()
        )
        return mcp_safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to read reservation queue",
        )

    def queue(self, book_id: int) -> list[Reservation]:
        query = (
            select(ReservationDB)
            .where(
                ReservationDB.book_id == book_id,
                ReservationDB.status == ReservationStatusEnum.ACTIVE,
            )
            .order_by(*_queue_order())
        )
        rows = mcp_safe_query(
            self.session,
            lambda s: s.execute(query).scalars().all(),
            "Failed to read reservation queue",
        )
        return [Reservation.model_validate(row) for row in rows]

    def create(self, caller: Caller, book_id: int, member_id: int) -> Reservation:
        """
        Append ``member_id`` to the queue for ``book_id``.

        The reservation takes the book's branch, then the member's, then
        the caller's write branch.

        Raises:
            NotFoundError: Book or member does not exist
            AccessDeniedError: Book or member is outside the caller's branches
            PolicyRejectedError: ``duplicate_reservation`` if the member already waits
        """
        book = self.session.get(Book, book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found", code="book_not_found")
        require_access(caller, book.branch_id, f"book {book_id}")

        member = self.session.get(Member, member_id)
        if member is None:
            raise NotFoundError(f"Member {member_id} not found", code="member_not_found")
        require_access(caller, member.branch_id, f"member {member_id}")

        existing = self.session.execute(
            select(ReservationDB.id).where(
                ReservationDB.book_id == book_id,
                ReservationDB.member_id == member_id,
                ReservationDB.status == ReservationStatusEnum.ACTIVE,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise PolicyRejectedError(
                f"Member {member_id} already holds an active reservation for book {book_id}",
                code="duplicate_reservation",
                details={"reservation_id": existing},
            )

        if book.branch_id is not None:
            branch_id = book.branch_id
        elif member.branch_id is not None:
            branch_id = member.branch_id
        else:
            branch_id = resolve_write_branch(caller, None)
        reservation = ReservationDB(
            book_id=book_id,
            member_id=member_id,
            branch_id=branch_id,
            status=ReservationStatusEnum.ACTIVE,
            created_at=datetime.now(),
        )
        self.session.add(reservation)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise PolicyRejectedError(
                f"Member {member_id} already holds an active reservation for book {book_id}",
                code="duplicate_reservation",
            ) from e

        logger.info(
            "Reservation %s created for book %s by member %s", reservation.id, book_id, member_id
        )
        queue_audit(
            self.session,
            self.audit_sink,
            AuditEvent(
                action="reservations.create",
                actor_email=caller.email,
                branch_id=branch_id,
                meta={"reservation_id": reservation.id, "book_id": book_id, "member_id": member_id},
            ),
        )
        return Reservation.model_validate(reservation)

    def cancel(self, caller: Caller, reservation_id: int) -> Reservation:
        """
        Cancel an active reservation. Fulfilled or cancelled ones are returned unchanged.

        Raises:
            NotFoundError: Reservation does not exist
            AccessDeniedError: Reservation is outside the caller's branches
        """
        reservation = self.session.get(ReservationDB, reservation_id, with_for_update=True)
        if reservation is None:
            raise NotFoundError(
                f"Reservation {reservation_id} not found", code="reservation_not_found"
            )
        require_access(caller, reservation.branch_id, f"reservation {reservation_id}")

        if reservation.status != ReservationStatusEnum.ACTIVE:
            return Reservation.model_validate(reservation)

        reservation.status = ReservationStatusEnum.CANCELLED
        reservation.updated_at = datetime.now()
        self.session.flush()

        queue_audit(
            self.session,
            self.audit_sink,
            AuditEvent(
                action="reservations.cancel",
                actor_email=caller.email,
                branch_id=reservation.branch_id,
                meta={"reservation_id": reservation_id, "book_id": reservation.book_id},
            ),
        )
        return Reservation.model_validate(reservation)

    def list_reservations(
        self,
        caller: Caller,
        branch: Any = None,
        status: ReservationStatus | None = None,
        book_id: int | None = None,
    ) -> list[ReservationDetail]:
        """List reservations visible to ``caller``, oldest first within each book."""
        # Positions are ranked over the whole queue, before branch filtering
        ranked = select(
            ReservationDB.id.label("reservation_id"),
            func.row_number()
            .over(
                partition_by=(ReservationDB.book_id, ReservationDB.status),
                order_by=_queue_order(),
            )
            .label("queue_position"),
        ).subquery()
        query = (
            select(
                ReservationDB,
                Book.title,
                Member.name,
                Member.student_no,
                ranked.c.queue_position,
            )
            .join(ranked, ranked.c.reservation_id == ReservationDB.id)
            .join(Book, Book.id == ReservationDB.book_id)
            .join(Member, Member.id == ReservationDB.member_id)
        )

        predicate = scope_filter(caller, branch, ReservationDB.branch_id)
        if predicate is not None:
            query = query.where(predicate)
        if book_id is not None:
            query = query.where(ReservationDB.book_id == book_id)
        if status is not None:
            query = query.where(ReservationDB.status == ReservationStatusEnum(status.value))

        rows = mcp_safe_query(
            self.session,
            lambda s: s.execute(query.order_by(ReservationDB.book_id, *_queue_order())).all(),
            "Failed to list reservations",
        )

        return [
            ReservationDetail.model_validate(
                {
                    **Reservation.model_validate(reservation).model_dump(),
                    "book_title": title,
                    "member_name": member_name,
                    "student_no": student_no,
                    "queue_position": queue_position
                    if reservation.status == ReservationStatusEnum.ACTIVE
                    else None,
                }
            )
            for reservation, title, member_name, student_no, queue_position in rows
        ]

    def _fulfill(self, reservation: ReservationDB) -> None:
        """Mark the queue head fulfilled as part of a checkout."""
        reservation.status = ReservationStatusEnum.FULFILLED
        reservation.updated_at = datetime.now()
        self.session.flush()
        logger.info("Reservation %s fulfilled by checkout", reservation.id)
