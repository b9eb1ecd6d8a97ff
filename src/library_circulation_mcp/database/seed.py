"""
Sample data for development and demos.

Generates two branches, a shared shelf, members in each branch, a few open
loans (one overdue) and a reservation queue, using Faker with a fixed seed
so repeated runs produce the same library.
"""

import logging
import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from ..models import BookCreate, BranchCreate, MemberCreate
from .availability_ledger import AvailabilityLedger
from .book_repository import BookRepository
from .branch_repository import BranchRepository
from .member_repository import MemberRepository
from .schema import Loan, Reservation, ReservationStatusEnum
from .settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "loan_days_default": 15,
    "extend_days_default": 15,
    "max_active_loans": 5,
    "block_on_overdue": True,
    "fine_enabled": False,
    "fine_cents_per_day": 200,
}


def seed_settings(session: Session) -> None:
    SettingsRepository(session).set_many(DEFAULT_SETTINGS)


def seed_sample_data(
    session: Session,
    books_per_branch: int = 20,
    members_per_branch: int = 15,
    seed: int = 42,
) -> dict[str, int]:
    """Populate an empty database. Returns counts of created rows."""
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)
    now = datetime.now()
    book_repo = BookRepository(session)
    member_repo = MemberRepository(session)
    ledger = AvailabilityLedger(session)

    branch_repo = BranchRepository(session)
    branches = [
        branch_repo.create(BranchCreate(name="Main Campus Library", code="MAIN")),
        branch_repo.create(BranchCreate(name="North Annex", code="NORTH")),
    ]

    # None is the shared shelf visible from every branch
    branch_ids: list[int | None] = [branch.id for branch in branches] + [None]

    books = [
        book_repo.create(
            BookCreate(
                isbn=fake.isbn13(),
                title=fake.catch_phrase(),
                author=fake.name(),
                copies=rng.randint(1, 4),
                branch_id=branch_id,
            )
        )
        for branch_id in branch_ids
        for _ in range(books_per_branch)
    ]

    members = []
    for branch_id in branch_ids[:-1]:
        for index in range(members_per_branch):
            blocked = branch_id == branch_ids[-2] and index == members_per_branch - 1
            members.append(
                member_repo.create(
                    MemberCreate(
                        student_no=str(fake.unique.random_int(min=1000, max=99999)),
                        name=fake.name(),
                        grade=f"{rng.randint(5, 12)}-{rng.choice('ABCD')}",
                        phone=fake.phone_number()[:50],
                        email=fake.email(),
                        is_blocked=blocked,
                        note="Lost two books last term" if blocked else None,
                        branch_id=branch_id,
                    )
                )
            )

    shelf = {book.id: book.available for book in books}
    loans: list[Loan] = []
    for index, member in enumerate(members[:6]):
        book = next(
            b for b in books if b.branch_id in (member.branch_id, None) and shelf[b.id] > 0
        )
        shelf[book.id] = ledger.take_copy(book_repo.get_model(book.id))
        loan_date = now - timedelta(days=20 if index == 0 else rng.randint(1, 10))
        loans.append(
            Loan(
                book_id=book.id,
                member_id=member.id,
                branch_id=book.branch_id,
                loan_date=loan_date,
                due_date=(loan_date + timedelta(days=15)).date(),
            )
        )
    session.add_all(loans)

    waiting_for = books[0]
    reservations = [
        Reservation(
            book_id=waiting_for.id,
            member_id=member.id,
            branch_id=waiting_for.branch_id,
            status=ReservationStatusEnum.ACTIVE,
            created_at=now - timedelta(hours=offset),
        )
        for offset, member in zip((3, 2), members[6:8], strict=True)
    ]
    session.add_all(reservations)

    seed_settings(session)
    session.flush()

    counts = {
        "branches": len(branches),
        "books": len(books),
        "members": len(members),
        "loans": len(loans),
        "reservations": len(reservations),
    }
    logger.info("Seeded sample data: %s", counts)
    return counts
