"""Display helpers for amounts and transaction timestamps."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

CURRENCY_SYMBOL = "GH₵"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_currency(amount) -> str:
    """Absolute value with thousands separators and two decimals."""
    value = abs(Decimal(str(amount)))
    return f"{CURRENCY_SYMBOL} {value:,.2f}"


def _parse(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def format_transaction_date(value: str | datetime, today: date | None = None) -> str:
    """'Today', 'Yesterday', or a short month-day label like 'Jan 22'."""
    dt = _parse(value)
    today = today or date.today()
    if dt.date() == today:
        return "Today"
    if dt.date() == today - timedelta(days=1):
        return "Yesterday"
    return f"{_MONTHS[dt.month - 1]} {dt.day}"


def format_transaction_time(value: str | datetime) -> str:
    """12-hour clock time, e.g. '3:05 PM'."""
    dt = _parse(value)
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{hour}:{dt.minute:02d} {suffix}"
