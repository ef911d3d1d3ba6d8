"""Display helpers shared by the client views."""

from datetime import date, datetime


def format_status(status: str | None) -> str | None:
    """Statuses are stored with an underscore: for_sale -> for sale."""
    if status is None:
        return None
    return status.replace("_", " ")


def format_date(value: str | date | None) -> str | None:
    """Render a date or ISO date-time as e.g. 'January 5, 2020'."""
    if value is None:
        return None
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    else:
        day = date.fromisoformat(value[:10])
    return f"{day:%B} {day.day}, {day.year}"


def export_date(value: str, upper: bool) -> str:
    """Append the start- or end-of-day time to a date picker value.

    Blank input stays blank so the server applies its default bound.
    """
    if not value:
        return ""
    if upper:
        return value + "T23:59:00.000Z"
    return value + "T00:00:00.000Z"
