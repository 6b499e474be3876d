"""
Listify: Data Models.

Tasks and profiles persist in SQLite. Both are owned by exactly one user:
``Task.owner_id`` and ``Profile.id`` are the owner's user id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass
class Subtask:
    """A checklist item inside a task. Never affects scoring."""

    id: str
    text: str
    completed: bool = False


@dataclass
class Task:
    """A task that earns points when completed."""

    id: str
    owner_id: str
    title: str
    deadline: datetime | None             # tz-aware; locked once set
    description: str = ""
    link: str = ""
    subtasks: list[Subtask] = field(default_factory=list)
    completed: bool = False
    completed_at: datetime | None = None  # set exactly once, on completion
    created_at: datetime | None = None
    deadline_locked: bool = False

    def find_subtask(self, subtask_id: str) -> Subtask | None:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        return None


@dataclass
class Profile:
    """Cumulative statistics for one user.

    ``rank`` always mirrors ``points`` through the rank table, and
    ``longest_streak`` is never below ``streak``.
    """

    id: str
    name: str = "New User"
    email: str = ""
    points: int = 0
    rank: str = "Bronze"
    streak: int = 0
    longest_streak: int = 0
    last_task_date: date | None = None    # local calendar day of last completion
    total_tasks_completed: int = 0
    tasks_completed_on_time: int = 0
    purchased_items: list[str] = field(default_factory=list)
    friends: list[str] = field(default_factory=list)  # followed ids, one-directional
    badges: list[str] = field(default_factory=list)
    created_at: datetime | None = None
