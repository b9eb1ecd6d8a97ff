"""Tests for branch scoping rules."""

import pytest
from sqlalchemy import select

from library_circulation_mcp.circulation.scope import (
    Caller,
    CallerRole,
    can_access,
    normalize_branch_value,
    require_access,
    resolve_write_branch,
    scope_filter,
)
from library_circulation_mcp.database.schema import Book
from library_circulation_mcp.errors import AccessDeniedError, InvalidInputError


class TestNormalizeBranchValue:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, None),
            ("", None),
            ("null", None),
            ("NULL", None),
            (" none ", None),
            (3, 3),
            ("7", 7),
            (" 12 ", 12),
        ],
    )
    def test_accepted_values(self, value, expected):
        assert normalize_branch_value(value) == expected

    @pytest.mark.parametrize("value", ["north", "1.5", True, [1]])
    def test_rejected_values(self, value):
        with pytest.raises(InvalidInputError) as exc_info:
            normalize_branch_value(value)
        assert exc_info.value.code == "invalid_branch"
        assert exc_info.value.status_code == 422


class TestAccess:
    def test_shared_records_are_open_to_everyone(self):
        staff = Caller(email="a@school.org", role=CallerRole.STAFF, branch_id=None)
        assert can_access(staff, None)

    def test_staff_limited_to_home_branch(self):
        staff = Caller(email="a@school.org", role=CallerRole.STAFF, branch_id=1)
        assert can_access(staff, 1)
        assert not can_access(staff, 2)

    def test_staff_without_branch_only_sees_shared(self):
        staff = Caller(email="a@school.org", role=CallerRole.STAFF)
        assert not can_access(staff, 1)

    def test_admin_reaches_every_branch(self):
        admin = Caller(email="a@school.org", role=CallerRole.ADMIN, branch_id=1)
        assert can_access(admin, 2)

    def test_require_access_reports_branch(self):
        staff = Caller(email="a@school.org", branch_id=1)
        with pytest.raises(AccessDeniedError) as exc_info:
            require_access(staff, 2, "book 9")
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "access_denied"
        assert exc_info.value.details == {"branch_id": 2}


class TestResolveWriteBranch:
    def test_staff_always_write_home(self):
        staff = Caller(email="a@school.org", branch_id=4)
        assert resolve_write_branch(staff, 9) == 4
        assert resolve_write_branch(staff, "all") == 4

    def test_admin_targets_requested_branch(self):
        admin = Caller(email="a@school.org", role=CallerRole.ADMIN, branch_id=4)
        assert resolve_write_branch(admin, "9") == 9
        assert resolve_write_branch(admin, "null") is None

    def test_admin_falls_back_to_home(self):
        admin = Caller(email="a@school.org", role=CallerRole.ADMIN, branch_id=4)
        assert resolve_write_branch(admin, None) == 4
        assert resolve_write_branch(admin, "all") == 4


class TestScopeFilter:
    @pytest.fixture
    def shelf(self, branches, make_book):
        main, north = branches
        return {
            "shared": make_book(title="Shared", branch_id=None).id,
            "main": make_book(title="Main", branch_id=main.id).id,
            "north": make_book(title="North", branch_id=north.id).id,
        }

    def _visible(self, session, caller, requested) -> set[int]:
        query = select(Book.id)
        predicate = scope_filter(caller, requested, Book.branch_id)
        if predicate is not None:
            query = query.where(predicate)
        return set(session.execute(query).scalars())

    def test_admin_all_is_unrestricted(self, admin):
        assert scope_filter(admin, "all", Book.branch_id) is None
        assert scope_filter(admin, " ALL ", Book.branch_id) is None

    def test_admin_default_is_home_branch(self, session, admin, shelf):
        assert self._visible(session, admin, None) == {shelf["shared"], shelf["main"]}

    def test_admin_can_pick_branch(self, session, admin, shelf, branches):
        visible = self._visible(session, admin, str(branches[1].id))
        assert visible == {shelf["shared"], shelf["north"]}

    def test_admin_null_means_shared_only(self, session, admin, shelf):
        assert self._visible(session, admin, "null") == {shelf["shared"]}

    def test_staff_request_never_widens(self, session, main_staff, shelf):
        assert self._visible(session, main_staff, "all") == {shelf["shared"], shelf["main"]}

    def test_staff_without_branch_sees_shared(self, session, shelf):
        staff = Caller(email="floater@school.org")
        assert self._visible(session, staff, None) == {shelf["shared"]}

    def test_invalid_admin_branch_rejected(self, admin):
        with pytest.raises(InvalidInputError):
            scope_filter(admin, "north", Book.branch_id)
