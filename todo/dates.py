"""Natural-language due dates for task creation."""

import re
from datetime import date, datetime, time, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from .errors import InvalidDateExpression

DAY_MAP = {
    "monday": MO,
    "mon": MO,
    "tuesday": TU,
    "tue": TU,
    "tues": TU,
    "wednesday": WE,
    "wed": WE,
    "thursday": TH,
    "thu": TH,
    "thurs": TH,
    "friday": FR,
    "fri": FR,
    "saturday": SA,
    "sat": SA,
    "sunday": SU,
    "sun": SU,
}

_ISO_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_WEEKDAY_RE = re.compile(r"(?:(this|next|last)\s+)?([a-z]+)")
_IN_RE = re.compile(r"in\s+(\d+)\s+(day|week|month)s?")


def parse_due_date(expression: str, today: date | None = None) -> date:
    """
    Resolve a due date expression against the caller's local date.

    Accepts ISO dates, "today", "tomorrow", "yesterday", weekday names
    ("friday", "this fri", "next friday", "last monday"), "next week" (next
    Monday), "in N days|weeks|months" and absolute dates such as "Jan 15".

    Raises:
        InvalidDateExpression: nothing sensible could be parsed; there is no
            fallback to "no due date"
    """
    if expression is None:
        raise InvalidDateExpression("")
    value = " ".join(expression.lower().split())
    if not value:
        raise InvalidDateExpression(expression)
    today = today or date.today()

    if _ISO_RE.fullmatch(value):
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise InvalidDateExpression(expression) from e

    if value == "today":
        return today
    if value == "tomorrow":
        return today + timedelta(days=1)
    if value == "yesterday":
        return today - timedelta(days=1)
    if value == "next week":
        return today + relativedelta(days=1, weekday=MO(+1))

    try:
        in_match = _IN_RE.fullmatch(value)
        if in_match:
            num = int(in_match.group(1))
            unit = in_match.group(2)
            if unit == "day":
                return today + timedelta(days=num)
            if unit == "week":
                return today + timedelta(weeks=num)
            return today + relativedelta(months=num)

        day_match = _WEEKDAY_RE.fullmatch(value)
        if day_match and day_match.group(2) in DAY_MAP:
            return _weekday_date(day_match.group(1), DAY_MAP[day_match.group(2)], today)
    except (OverflowError, ValueError) as e:
        raise InvalidDateExpression(expression) from e

    try:
        parsed = date_parser.parse(value, default=datetime.combine(today, time()))
    except (ValueError, OverflowError) as e:
        raise InvalidDateExpression(expression) from e
    return parsed.date()


def _weekday_date(qualifier: str | None, weekday, today: date) -> date:
    if qualifier == "last":
        # strictly before today
        return today + relativedelta(days=-1, weekday=weekday(-1))
    next_day = today + relativedelta(weekday=weekday(+1))
    # "next friday" on a Friday means a week from today
    if qualifier == "next" and next_day == today:
        next_day = today + relativedelta(days=1, weekday=weekday(+1))
    return next_day
