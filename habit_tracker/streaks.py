"""
Streak calculation for habits.

A daily streak is the run of consecutive days with a completion that ends
today, or ends yesterday while today is still open.  Weekly habits count
consecutive ISO weeks the same way.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _week_index(d: date) -> int:
    """Monotonic week number (weeks start on Monday)."""
    return (d - timedelta(days=d.weekday())).toordinal() // 7


def compute_streak(
    completed: Iterable[date],
    frequency: str = "daily",
    today: Optional[date] = None,
) -> int:
    """Length of the current streak for a set of completion dates."""
    today = today or utc_today()

    if frequency == "weekly":
        periods = {_week_index(d) for d in completed}
        current = _week_index(today)
    else:
        periods = {d.toordinal() for d in completed}
        current = today.toordinal()

    if current not in periods:
        # The current period is still open; the streak may end one earlier.
        current -= 1
        if current not in periods:
            return 0

    streak = 0
    while current in periods:
        streak += 1
        current -= 1
    return streak
