from __future__ import annotations

from datetime import date, datetime
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


def localnow() -> datetime:
    """Wall-clock 'now' in local time, truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


def format_timestamp(dt: Optional[datetime] = None) -> str:
    """Ledger timestamp string: 'YYYY-MM-DD HH:MM:SS' (local time)."""
    return (dt or localnow()).strftime(TIMESTAMP_FORMAT)


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a 'YYYY-MM-DD' date.

    - None / "" -> None
    - anything longer (e.g. a full timestamp) uses only its date part
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return datetime.strptime(s[:10], DATE_FORMAT).date()


def timestamp_date(timestamp: str) -> Optional[date]:
    """Date part of a ledger timestamp, or None when it is unparseable."""
    try:
        return parse_date(timestamp)
    except ValueError:
        return None
