"""
Listify: Daily Streak Calculator.

Pure state machine over calendar days: one on-time completion per day keeps
the streak growing, a late completion or a skipped day breaks it. Call it
exactly once per completion event.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakState:
    """Streak fields of a profile, before or after a completion."""

    streak: int = 0
    longest_streak: int = 0
    last_task_date: date | None = None


def local_day(moment: datetime, tz: tzinfo | None = None) -> date:
    """Normalize a timestamp to its calendar day.

    Aware timestamps are converted into ``tz`` first. Naive timestamps are
    taken to be local already.
    """
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def update_streak(
    prior: StreakState,
    completed_on_time: bool,
    now: datetime,
    tz: tzinfo | None = None,
) -> StreakState:
    """Compute the streak after one completion at ``now``.

    Args:
        prior: Streak, longest streak and last completion day before this event.
        completed_on_time: Whether the completion met its deadline.
        now: Completion timestamp.
        tz: Zone whose midnight separates days. Defaults to ``now``'s own zone.

    Returns:
        The new StreakState. ``last_task_date`` is always today.
    """
    today = local_day(now, tz)
    last = prior.last_task_date
    fresh = 1 if completed_on_time else 0

    if last is None:
        streak = fresh
    elif today == last:
        # Same day: neither grows nor resets
        streak = prior.streak
    elif today - last == _ONE_DAY:
        streak = prior.streak + 1 if completed_on_time else 0
    else:
        # Gap of two or more days, or a clock that went backwards
        streak = fresh

    return StreakState(
        streak=streak,
        longest_streak=max(prior.longest_streak, streak),
        last_task_date=today,
    )
