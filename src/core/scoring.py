"""
Listify: Scoring Engine.

Turns one task completion into points, a new rank and a new streak.
Inputs are never mutated: the caller receives fresh records and commits the
task and the profile together, or neither.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo

from src.core.errors import AlreadyCompletedError, UnauthorizedError
from src.core.ranks import derive_rank
from src.core.streak import StreakState, update_streak
from src.data.models import Profile, Task

logger = logging.getLogger(__name__)

BASE_POINTS = 5
ON_TIME_BONUS = 15


@dataclass
class CompletionResult:
    """Everything that changed because a task was completed."""

    task: Task
    points_earned: int
    profile: Profile
    streak: StreakState
    on_time: bool


def is_on_time(task: Task, now: datetime) -> bool:
    """A task without a deadline is always on time; the deadline instant counts."""
    return task.deadline is None or now <= task.deadline


def points_for(on_time: bool) -> int:
    return BASE_POINTS + (ON_TIME_BONUS if on_time else 0)


def complete_task(
    task: Task,
    now: datetime,
    profile: Profile,
    tz: tzinfo | None = None,
) -> CompletionResult:
    """Score a completion of ``task`` at ``now`` for ``profile``.

    Raises:
        UnauthorizedError: The profile does not own the task.
        AlreadyCompletedError: The task was completed before.
    """
    if task.owner_id != profile.id:
        raise UnauthorizedError("You can only complete your own tasks")
    if task.completed:
        raise AlreadyCompletedError(f"Task '{task.title}' is already completed")

    on_time = is_on_time(task, now)
    earned = points_for(on_time)
    new_points = profile.points + earned

    streak = update_streak(
        StreakState(profile.streak, profile.longest_streak, profile.last_task_date),
        on_time,
        now,
        tz,
    )

    updated_task = replace(task, completed=True, completed_at=now)
    updated_profile = replace(
        profile,
        points=new_points,
        rank=derive_rank(new_points),
        total_tasks_completed=profile.total_tasks_completed + 1,
        tasks_completed_on_time=profile.tasks_completed_on_time + (1 if on_time else 0),
        streak=streak.streak,
        longest_streak=streak.longest_streak,
        last_task_date=streak.last_task_date,
    )

    logger.debug(
        "Scored task %s for %s: +%d (%s), streak %d",
        task.id, profile.id, earned, "on time" if on_time else "late", streak.streak,
    )
    return CompletionResult(
        task=updated_task,
        points_earned=earned,
        profile=updated_profile,
        streak=streak,
        on_time=on_time,
    )
