"""
Helper utilities
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC

    SQLite hands back naive datetimes for timezone-aware columns, all of
    which are stored in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def invoice_number(order_id) -> str:
    """Invoice number derived from the order id, e.g. ``INV-3F2A91C0``"""
    return f"INV-{str(order_id).replace('-', '')[-8:].upper()}"
