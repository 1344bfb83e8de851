from __future__ import annotations

import re
from datetime import date

from dateutil import parser

# Hours are not capped so end times past midnight still parse
_TIME_RE = re.compile(r"^(\d{1,2}):([0-5]\d)(?::[0-5]\d)?$")
MINUTES_PER_DAY = 24 * 60

_WEEKDAYS_PT = (
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
)
_MONTHS_PT = (
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
)


def time_to_minutes(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` (or ``HH:MM:SS``) string."""
    match = _TIME_RE.match(value.strip()) if value else None
    if not match:
        raise ValueError(f"Invalid time value: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(total_minutes: int) -> str:
    # Values past 23:59 are not wrapped.
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def calculate_end_time(start_time: str, duration_minutes: int) -> str:
    return minutes_to_time(time_to_minutes(start_time) + duration_minutes)


def do_times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Half-open overlap test: ranges that only touch do not overlap."""
    return time_to_minutes(start1) < time_to_minutes(end2) and time_to_minutes(start2) < time_to_minutes(end1)


def format_short_time(value: str) -> str:
    return minutes_to_time(time_to_minutes(value))


def format_clock_time(value: str) -> str:
    """Like ``format_short_time`` but only accepts a wall-clock time, 00:00 to 23:59."""
    minutes = time_to_minutes(value)
    if minutes >= MINUTES_PER_DAY:
        raise ValueError(f"Invalid time value: {value!r}")
    return minutes_to_time(minutes)


def ends_same_day(start_time: str, duration_minutes: int) -> bool:
    return time_to_minutes(start_time) + duration_minutes <= MINUTES_PER_DAY


def format_long_date(value: date | str) -> str:
    """``segunda-feira, 10 de junho`` style date used in patient messages."""
    if isinstance(value, str):
        value = parser.isoparse(value).date()
    return f"{_WEEKDAYS_PT[value.weekday()]}, {value.day:02d} de {_MONTHS_PT[value.month - 1]}"
