"""Default season window used when a league has no seasons yet."""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import Tuple


def default_season_window(now: datetime) -> Tuple[str, datetime, datetime]:
    """Return ``("<Month> <Year>", first instant, last instant)`` of ``now``'s month."""

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    last_day = calendar.monthrange(now.year, now.month)[1]
    start = datetime(now.year, now.month, 1, tzinfo=now.tzinfo)
    end = datetime(now.year, now.month, last_day, 23, 59, 59, 999999, tzinfo=now.tzinfo)
    name = f"{calendar.month_name[now.month]} {now.year}"
    return name, start, end
