"""Date parsing shared by the collectors (Graph ISO strings, PowerShell JSON, FILETIME)."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

# PowerShell's ConvertTo-Json renders DateTime as "/Date(1700000000000)/"
# (optionally with a +hhmm offset that does not change the epoch value)
_PS_DATE = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")

_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)

# AD stores "never" as 0 or 0x7FFFFFFFFFFFFFFF
_FILETIME_NEVER = (0, 0x7FFFFFFFFFFFFFFF)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse the timestamp shapes the toolkit meets into an aware UTC datetime:
      - Graph ISO 8601 strings ('2024-10-01T12:34:56Z')
      - report CSV dates ('2024-10-01')
      - PowerShell JSON dates ('/Date(1700000000000)/')
      - Windows FILETIME integers (lastLogonTimestamp, pwdLastSet)
    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value in _FILETIME_NEVER or value < 0:
            return None
        return _FILETIME_EPOCH + timedelta(microseconds=value // 10)
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    m = _PS_DATE.match(s)
    if m:
        return datetime.fromtimestamp(int(m.group(1)) / 1000, tz=timezone.utc)

    if s.isdigit():
        return parse_datetime(int(s))

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(s[:10]), datetime.min.time())
        except ValueError:
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def days_since(value: Any, now: Optional[datetime] = None) -> Optional[int]:
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    return ((now or utcnow()) - parsed).days


def iso(value: Any) -> str:
    """Render a timestamp as an ISO string for report rows ('' when unknown)."""
    parsed = parse_datetime(value)
    return parsed.isoformat() if parsed else ""
