"""
Tests for circulation tools (checkout, return, extend, check, list).

These exercise the handlers end to end:
1. Input validation
2. Success responses and structured data
3. Structured errors with stable codes
4. Committed database state and audit events
"""

from datetime import date, datetime, timedelta

from library_circulation_mcp.database.schema import Book, Loan
from library_circulation_mcp.database.settings_repository import SettingsRepository
from library_circulation_mcp.tools.circulation import (
    check_loan_handler,
    checkout_book_handler,
    extend_loan_handler,
    list_loans_handler,
    return_book_handler,
)
from library_circulation_mcp.tools.reservations import reserve_book_handler


def assert_error(result: dict, code: str, status: int) -> None:
    assert result["isError"] is True
    assert result["error"]["code"] == code
    assert result["error"]["status"] == status
    assert result["content"][0]["type"] == "text"


class TestCheckoutBookTool:
    async def test_checkout_success(self, library, admin, as_payload, available, audit_sink):
        result = await checkout_book_handler(
            {"caller": as_payload(admin), "isbn": "9780306406157", "student_no": "s-100"}
        )

        assert "isError" not in result
        assert "Due date:" in result["content"][0]["text"]
        checkout = result["data"]["checkout"]
        assert checkout["book_id"] == library.atlas
        assert checkout["member_id"] == library.ada
        assert checkout["book_match"] == "normalized"
        assert checkout["branch_id"] == library.main_id
        assert checkout["due_date"] == (date.today() + timedelta(days=15)).isoformat()
        assert checkout["available"] == 0

        assert available(library.atlas) == 0
        assert audit_sink.actions == ["loans.checkout"]

    async def test_explicit_due_date(self, library, admin, as_payload):
        result = await checkout_book_handler(
            {
                "caller": as_payload(admin),
                "book_id": library.chemistry,
                "member_id": library.ada,
                "due_date": "30/06/2031",
            }
        )
        assert result["data"]["checkout"]["due_date"] == "2031-06-30"

    async def test_invalid_caller(self, library):
        result = await checkout_book_handler(
            {"caller": {"email": "not-an-email"}, "book_id": library.atlas, "member_id": 1}
        )
        assert_error(result, "invalid_input", 422)
        assert any(e["field"].startswith("caller") for e in result["error"]["details"]["errors"])

    async def test_missing_caller(self, library):
        result = await checkout_book_handler({"book_id": library.atlas, "member_id": library.ada})
        assert_error(result, "invalid_input", 422)

    async def test_out_of_stock_leaves_no_loan(
        self, library, admin, as_payload, available, db_manager, audit_sink
    ):
        first = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ada}
        )
        second = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ben}
        )

        assert "isError" not in first
        assert_error(second, "out_of_stock", 409)
        assert available(library.atlas) == 0
        with db_manager.session_scope() as s:
            assert s.query(Loan).count() == 1
        assert audit_sink.actions == ["loans.checkout"]

    async def test_other_branch_denied(self, library, north_staff, as_payload, available):
        result = await checkout_book_handler(
            {
                "caller": as_payload(north_staff),
                "book_id": library.chemistry,
                "member_id": library.cy,
            }
        )
        assert_error(result, "access_denied", 403)
        assert result["error"]["details"] == {"branch_id": library.main_id}
        assert available(library.chemistry) == 2

    async def test_queue_conflict(self, library, admin, as_payload):
        reserved = await reserve_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ben}
        )
        assert "isError" not in reserved

        blocked = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ada}
        )
        assert_error(blocked, "queue_conflict", 409)

        fulfilled = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ben}
        )
        reservation_id = reserved["data"]["reservation"]["id"]
        assert fulfilled["data"]["checkout"]["fulfilled_reservation_id"] == reservation_id
        assert f"fulfilled reservation {reservation_id}" in fulfilled["content"][0]["text"]

    async def test_policy_from_settings(self, session, library, admin, as_payload):
        SettingsRepository(session).set_many({"max_active_loans": 1, "loan_days_default": 3})
        session.commit()

        first = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.chemistry, "member_id": library.ada}
        )
        expected_due = date.today() + timedelta(days=3)
        assert first["data"]["checkout"]["due_date"] == expected_due.isoformat()

        second = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ada}
        )
        assert_error(second, "loan_limit", 409)


class TestReturnBookTool:
    async def test_return_by_natural_keys(
        self, library, admin, as_payload, available, loan_row, audit_sink
    ):
        checkout = await checkout_book_handler(
            {"caller": as_payload(admin), "isbn": "978-0-306-40615-7", "student_no": "S-200"}
        )
        loan_id = checkout["data"]["checkout"]["loan_id"]

        result = await return_book_handler(
            {"caller": as_payload(admin), "isbn": "9780306406157", "student_no": "s200"}
        )

        assert "isError" not in result
        assert result["content"][0]["text"] == f"Loan {loan_id} returned."
        assert result["data"]["return"]["fine_cents"] == 0
        assert available(library.atlas) == 1
        assert loan_row(loan_id).return_date is not None
        assert audit_sink.actions == ["loans.checkout", "loans.return"]

    async def test_late_return_with_fine(self, session, library, admin, as_payload):
        SettingsRepository(session).set_many({"fine_enabled": True, "fine_cents_per_day": 150})
        session.add(
            Loan(
                book_id=library.chemistry,
                member_id=library.ada,
                branch_id=library.main_id,
                loan_date=datetime.now() - timedelta(days=20),
                due_date=date.today() - timedelta(days=3),
            )
        )
        session.get(Book, library.chemistry).available = 1
        session.commit()
        loan_id = session.query(Loan.id).scalar()
        session.commit()

        result = await return_book_handler({"caller": as_payload(admin), "loan_id": loan_id})

        assert result["data"]["return"]["days_late"] == 3
        assert result["data"]["return"]["fine_cents"] == 450
        assert "3 day(s) late. Fine: 4.50." in result["content"][0]["text"]

    async def test_second_return_rejected(self, library, admin, as_payload, available):
        checkout = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.chemistry, "member_id": library.ada}
        )
        loan_id = checkout["data"]["checkout"]["loan_id"]
        await return_book_handler({"caller": as_payload(admin), "loan_id": loan_id})

        again = await return_book_handler({"caller": as_payload(admin), "loan_id": loan_id})
        assert_error(again, "already_returned", 409)
        assert available(library.chemistry) == 2

    async def test_requires_reference(self, library, admin, as_payload):
        result = await return_book_handler({"caller": as_payload(admin), "isbn": "123"})
        assert_error(result, "invalid_input", 422)

    async def test_unknown_loan(self, library, admin, as_payload):
        result = await return_book_handler({"caller": as_payload(admin), "loan_id": 999})
        assert_error(result, "loan_not_found", 404)


class TestExtendLoanTool:
    async def test_extend_with_default_days(self, library, admin, as_payload, loan_row):
        checkout = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ada}
        )
        loan_id = checkout["data"]["checkout"]["loan_id"]
        due = date.fromisoformat(checkout["data"]["checkout"]["due_date"])

        result = await extend_loan_handler(
            {"caller": as_payload(admin), "loan_id": loan_id, "days": 0}
        )

        extension = result["data"]["extension"]
        assert extension["days_added"] == 15
        assert extension["previous_due_date"] == due.isoformat()
        assert loan_row(loan_id).due_date == due + timedelta(days=15)

    async def test_extend_returned_loan(self, library, admin, as_payload):
        checkout = await checkout_book_handler(
            {"caller": as_payload(admin), "book_id": library.atlas, "member_id": library.ada}
        )
        loan_id = checkout["data"]["checkout"]["loan_id"]
        await return_book_handler({"caller": as_payload(admin), "loan_id": loan_id})

        result = await extend_loan_handler(
            {"caller": as_payload(admin), "loan_id": loan_id, "days": 5}
        )
        assert_error(result, "already_returned", 409)

    async def test_extend_needs_loan_id(self, library, admin, as_payload):
        result = await extend_loan_handler({"caller": as_payload(admin), "days": 5})
        assert_error(result, "invalid_input", 422)


class TestQueryTools:
    async def test_check_loan(self, library, main_staff, as_payload):
        await checkout_book_handler(
            {
                "caller": as_payload(main_staff),
                "book_id": library.chemistry,
                "member_id": library.ben,
            }
        )

        result = await check_loan_handler(
            {"caller": as_payload(main_staff), "isbn": "978-1111111111", "student_no": "S-200"}
        )

        loan = result["data"]["loan"]
        assert loan["book_title"] == "Chemistry"
        assert loan["member_name"] == "Ben"
        assert loan["is_open"] is True
        assert loan["is_overdue"] is False
        assert "'Chemistry' is on loan to Ben" in result["content"][0]["text"]

    async def test_check_loan_missing(self, library, admin, as_payload):
        result = await check_loan_handler(
            {"caller": as_payload(admin), "isbn": "9781111111111", "student_no": "S-100"}
        )
        assert_error(result, "loan_not_found", 404)

    async def test_list_loans_scoped_to_staff_branch(
        self, library, admin, main_staff, north_staff, as_payload
    ):
        for book_id, member_id in (
            (library.chemistry, library.ada),
            (library.poetry, library.cy),
            (library.atlas, library.ben),
        ):
            await checkout_book_handler(
                {"caller": as_payload(admin), "book_id": book_id, "member_id": member_id}
            )

        everything = await list_loans_handler({"caller": as_payload(admin), "branch": "all"})
        main_view = await list_loans_handler({"caller": as_payload(main_staff), "branch": "all"})
        north_view = await list_loans_handler(
            {"caller": as_payload(north_staff), "query": "poetry"}
        )

        assert everything["data"]["loans"]["total"] == 3
        titles = {item["book_title"] for item in main_view["data"]["loans"]["items"]}
        assert titles == {"Chemistry", "World Atlas"}
        assert [i["book_title"] for i in north_view["data"]["loans"]["items"]] == ["Poetry"]

    async def test_list_loans_pagination(self, library, admin, as_payload):
        for member_id in (library.ada, library.ben):
            await checkout_book_handler(
                {"caller": as_payload(admin), "book_id": library.chemistry, "member_id": member_id}
            )

        result = await list_loans_handler(
            {"caller": as_payload(admin), "branch": "all", "page": 2, "page_size": 1}
        )
        page = result["data"]["loans"]
        assert page["total"] == 2
        assert page["has_previous"] is True
        assert page["has_next"] is False
        assert result["content"][0]["text"] == "Found 2 loan(s); showing page 2 of 2"

    async def test_list_loans_bad_branch(self, library, admin, as_payload):
        result = await list_loans_handler({"caller": as_payload(admin), "branch": "north"})
        assert_error(result, "invalid_branch", 422)

    async def test_list_loans_bad_status(self, library, admin, as_payload):
        result = await list_loans_handler({"caller": as_payload(admin), "status": "lost"})
        assert_error(result, "invalid_input", 422)
