"""Shared formatting helpers for dates, times and money"""

import re
from datetime import datetime, time
from typing import Optional

DEFAULT_BOOKING_TIME = time(9, 0)


def ordinal(day: int) -> str:
    """1 -> 1st, 2 -> 2nd, 11 -> 11th, 23 -> 23rd"""
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_time_12h(value: datetime) -> str:
    """9:00 AM style, without a leading zero on the hour"""
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {meridiem}"


def format_cleaning_date(value: datetime) -> str:
    """Invoice note format, e.g. '11th of March, 9:00 AM'"""
    return f"{ordinal(value.day)} of {value.strftime('%B')}, {format_time_12h(value)}"


def format_long_date(value: datetime) -> str:
    """en-GB long date, e.g. 'Monday, 3 March 2025'"""
    return f"{value.strftime('%A')}, {value.day} {value.strftime('%B %Y')}"


def format_money(amount: Optional[float]) -> str:
    return f"£{(amount or 0):.2f}"


def to_minor_units(amount: float) -> int:
    """Pounds to pence, rounded the way card processors expect"""
    return int(round(float(amount) * 100))


def parse_booking_time(value: Optional[str]) -> time:
    """
    Parse the time a customer picked on the booking form.

    Accepts 24h ("14:30"), 12h ("9am", "2:30 pm") and ranges
    ("09:00 - 11:00", "9am-11am") where the start of the range is used.
    Falls back to 09:00 when nothing usable is given.
    """
    if not value:
        return DEFAULT_BOOKING_TIME

    start = re.split(r"\s*[-–]\s*", value.strip())[0].lower().replace(" ", "")
    match = re.match(r"^(\d{1,2})(?:[:.](\d{2}))?(am|pm)?$", start)
    if not match:
        return DEFAULT_BOOKING_TIME

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)

    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0

    if hour > 23 or minute > 59:
        return DEFAULT_BOOKING_TIME
    return time(hour, minute)


def split_name(full_name: Optional[str]) -> tuple[str, str]:
    """'Jane Mary Smith' -> ('Jane', 'Mary Smith')"""
    parts = (full_name or "").strip().split(" ", 1)
    first = parts[0] if parts else ""
    last = parts[1].strip() if len(parts) > 1 else ""
    return first, last
