"""Due date parsing.

Accepted forms:
- ISO dates and datetimes: ``2024-06-30``, ``2024-06-30T14:00:00``
- Day-month-year with dots or slashes: ``30.06.2024``, ``30/06/2024``

Datetimes keep only their date part. Anything else is rejected with
``invalid_date``.
"""

import re
from datetime import date, datetime

from ..errors import InvalidInputError

_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})[./](\d{1,2})[./](\d{4})$")


def parse_due_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        raise InvalidInputError("Due date is empty", code="invalid_date")

    match = _DAY_MONTH_YEAR.match(text)
    try:
        if match:
            day, month, year = (int(part) for part in match.groups())
            return date(year, month, day)
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise InvalidInputError(
            f"Unrecognized due date: {value!r}",
            code="invalid_date",
            details={"value": text},
        ) from None
