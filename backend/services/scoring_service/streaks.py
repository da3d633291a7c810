"""
Day-based study streaks, shared by quiz submissions and flashcard activity.

Streak Rules:
- First activity ever, or a gap of more than one calendar day -> streak is 1
- Activity exactly one calendar day after the last one -> streak + 1
- Repeat activity on the same day -> unchanged
- Longest streak is the max of itself and the new current streak
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from .utils import to_day

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakUpdate:
    current: int
    longest: int
    changed: bool


def update_streak(
    last_active: Optional[Any],
    today: Any,
    current_streak: int,
    longest_streak: int,
) -> StreakUpdate:
    """
    Compute the streak after activity on `today`.

    Both dates may be datetimes, dates or ISO strings; time-of-day is
    stripped before comparing. The caller is responsible for moving its
    last-active day to `today` afterwards, whether or not `changed`.
    """
    today_day = to_day(today)
    last_day = to_day(last_active)

    if last_day is None or today_day - last_day > ONE_DAY:
        new_current = 1
        changed = True
    elif today_day > last_day:
        new_current = max(0, current_streak) + 1
        changed = True
    else:
        # Same day (or a clock that went backwards): nothing to extend
        new_current = current_streak
        changed = False

    return StreakUpdate(
        current=new_current,
        longest=max(longest_streak, new_current),
        changed=changed,
    )
