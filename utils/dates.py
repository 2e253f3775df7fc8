#utils/dates.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

RUN_FOLDER_FORMAT = "%Y%m%d-%H%M%S"


def _fromisoformat_utc_aware(ts: str) -> datetime:
    """
    Parse an ISO-8601 string into an aware datetime.

    'Z' is translated to '+00:00'; naive strings are taken as UTC.
    """
    s = ts.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def normalize_iso8601(ts: Optional[str]) -> Optional[str]:
    """
    Normalize an API timestamp string to ISO-8601 UTC (Z-notation).

    >>> normalize_iso8601("2015-03-02T10:52:51-07:00")
    '2015-03-02T17:52:51Z'

    Returns None for None; raises ValueError for strings that are not ISO-8601.
    """
    if ts is None:
        return None

    dt = _fromisoformat_utc_aware(ts).astimezone(timezone.utc).replace(microsecond=0)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def run_folder_name(when: Optional[datetime] = None) -> str:
    """Local-time folder name for one export run, e.g. '20150302-105251'."""
    return (when or datetime.now()).strftime(RUN_FOLDER_FORMAT)
