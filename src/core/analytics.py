"""Progress analytics: completion rates and a 7-day completion histogram.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo

from src.core.scoring import is_on_time
from src.core.streak import local_day
from src.data.models import Profile, Task

HISTORY_DAYS = 7


@dataclass
class DailyCompletions:
    date: date
    completed: int = 0
    on_time: int = 0


@dataclass
class Analytics:
    total_tasks: int
    completed_tasks: int
    completion_rate: float     # percent of current tasks that are completed
    on_time_rate: float        # percent of all completions that were on time
    streak: int
    longest_streak: int
    daily: list[DailyCompletions] = field(default_factory=list)


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def build_analytics(
    profile: Profile,
    tasks: list[Task],
    today: date,
    tz: tzinfo | None = None,
) -> Analytics:
    """Summarize a user's progress.

    ``on_time_rate`` uses the profile counters, which survive task deletion
    and the retention sweep; the other figures describe ``tasks`` only.
    """
    completed = [t for t in tasks if t.completed and t.completed_at is not None]

    buckets = {
        today - timedelta(days=offset): DailyCompletions(date=today - timedelta(days=offset))
        for offset in range(HISTORY_DAYS - 1, -1, -1)
    }
    for task in completed:
        bucket = buckets.get(local_day(task.completed_at, tz))
        if bucket is None:
            continue
        bucket.completed += 1
        if is_on_time(task, task.completed_at):
            bucket.on_time += 1

    return Analytics(
        total_tasks=len(tasks),
        completed_tasks=len(completed),
        completion_rate=_percent(len(completed), len(tasks)),
        on_time_rate=_percent(profile.tasks_completed_on_time, profile.total_tasks_completed),
        streak=profile.streak,
        longest_streak=profile.longest_streak,
        daily=sorted(buckets.values(), key=lambda b: b.date),
    )
