"""
Formatting helpers for delivery days and dates shown next to products
"""
from datetime import datetime, timezone
from typing import List, Optional

DAY_ABBREVIATIONS = {
    'MONDAY': 'Mon',
    'TUESDAY': 'Tue',
    'WEDNESDAY': 'Wed',
    'THURSDAY': 'Thur',
    'FRIDAY': 'Fri',
    'SATURDAY': 'Sat',
    'SUNDAY': 'Sun',
}


def parse_iso(value: str) -> datetime:
    """Parse an ISO date or datetime; a trailing Z is treated as UTC"""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def format_delivery_days(delivery_days: List[str]) -> str:
    """["Tuesday", "Thursday"] -> "Tue, Thur" """
    return ", ".join(
        DAY_ABBREVIATIONS.get(day.upper(), day[:3]) for day in delivery_days
    )


def format_delivery_date(date_string: str) -> str:
    """ISO date -> "Nov 14" """
    date = parse_iso(date_string)
    return f"{date.strftime('%b')} {date.day}"


def get_delivery_timing(
    delivery_days: Optional[List[str]] = None,
    available_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """
    Labels describing when a product can be delivered.

    A future available_date is shown as a one-time date; recurring delivery
    days follow as an abbreviated list.
    """
    timings: List[str] = []

    if available_date:
        date = parse_iso(available_date)
        reference = now or datetime.now(timezone.utc)
        if date.tzinfo is None and reference.tzinfo is not None:
            date = date.replace(tzinfo=timezone.utc)
        elif date.tzinfo is not None and reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)
        if date > reference:
            timings.append(format_delivery_date(available_date))

    if delivery_days:
        timings.append(format_delivery_days(delivery_days))

    return timings
