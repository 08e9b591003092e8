"""Natural date expressions to calendar dates.

Pure functions. Dates are timezone-naive calendar dates; "today" is supplied
by the caller (see today_in_reference_timezone).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from truepace.coach.errors import InvalidDateFormatError
from truepace.config.settings import settings

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
RELATIVE_DAYS = {"today": 0, "tomorrow": 1, "yesterday": -1}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_in_reference_timezone(tz_name: str | None = None) -> date:
    """Current calendar date in the deployment's reference timezone."""
    return datetime.now(ZoneInfo(tz_name or settings.reference_timezone)).date()


def next_weekday(weekday_name: str, today: date) -> date:
    """Next occurrence of a weekday strictly after today.

    Saying "tuesday" on a Tuesday means a week later, never today.
    """
    target = WEEKDAYS.index(weekday_name)
    days_ahead = (target - today.weekday()) % 7
    if days_ahead == 0:
        days_ahead = 7
    return today + timedelta(days=days_ahead)


def parse_date_expression(expression: str, today: date) -> date:
    """Turn a date expression into a calendar date.

    Rules in priority order: today/tomorrow/yesterday, a bare weekday name,
    a strict ISO-8601 YYYY-MM-DD date.

    Raises:
        InvalidDateFormatError: If no rule matches.
    """
    if not isinstance(expression, str):
        raise InvalidDateFormatError(str(expression))

    token = expression.strip().lower()

    if token in RELATIVE_DAYS:
        return today + timedelta(days=RELATIVE_DAYS[token])

    if token in WEEKDAYS:
        return next_weekday(token, today)

    if _ISO_DATE.match(token):
        try:
            return date.fromisoformat(token)
        except ValueError:
            pass

    raise InvalidDateFormatError(expression)
