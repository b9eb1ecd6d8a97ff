"""Tests for natural key normalization and due date parsing."""

from datetime import date, datetime

import pytest

from library_circulation_mcp.circulation.dates import parse_due_date
from library_circulation_mcp.circulation.keys import isbn_suffix, normalize_key
from library_circulation_mcp.errors import InvalidInputError


class TestNormalizeKey:
    @pytest.mark.parametrize(
        "value",
        ["978-0-306-40615-7", "978 0306 406157", " 9780306406157 ", "978-0306\t40615-7"],
    )
    def test_isbn_shapes_collapse(self, value):
        assert normalize_key(value) == "9780306406157"

    def test_upper_cases(self):
        assert normalize_key("0-8044-2957-x") == "080442957X"

    def test_none_is_empty(self):
        assert normalize_key(None) == ""

    def test_suffix(self):
        assert isbn_suffix("9780306406157") == "0306406157"
        assert isbn_suffix("12345") is None


class TestParseDueDate:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2024-06-30", date(2024, 6, 30)),
            ("2024-06-30T14:00:00", date(2024, 6, 30)),
            ("30.06.2024", date(2024, 6, 30)),
            ("30/06/2024", date(2024, 6, 30)),
            ("1.7.2024", date(2024, 7, 1)),
        ],
    )
    def test_accepted_formats(self, text, expected):
        assert parse_due_date(text) == expected

    def test_date_objects_pass_through(self):
        assert parse_due_date(date(2024, 1, 2)) == date(2024, 1, 2)
        assert parse_due_date(datetime(2024, 1, 2, 9, 30)) == date(2024, 1, 2)

    @pytest.mark.parametrize("text", ["", "tomorrow", "31.02.2024", "2024/06/30", "06-30-2024"])
    def test_rejected(self, text):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_due_date(text)
        assert exc_info.value.code == "invalid_date"
