from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .utils import as_utc

_ONE_DAY = timedelta(days=1)


def days_remaining(valid_to: datetime, now: datetime | None = None) -> int:
    """
    Whole days from ``now`` until ``valid_to``, rounded down.
    Expired certificates give a negative count.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return (as_utc(valid_to) - as_utc(now)) // _ONE_DAY
