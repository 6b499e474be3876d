"""Tests for src.data.models: Task and Profile dataclasses."""

from dataclasses import asdict
from datetime import datetime, timezone

from src.data.models import Profile, Subtask, Task


def test_task_defaults():
    task = Task(id="task_1", owner_id="u1", title="Plan trip", deadline=None)
    assert task.description == ""
    assert task.link == ""
    assert task.subtasks == []
    assert task.completed is False
    assert task.completed_at is None
    assert task.deadline_locked is False


def test_task_subtask_lists_not_shared():
    a = Task(id="a", owner_id="u1", title="A", deadline=None)
    b = Task(id="b", owner_id="u1", title="B", deadline=None)
    a.subtasks.append(Subtask(id="s", text="x"))
    assert b.subtasks == []


def test_find_subtask():
    task = Task(
        id="task_1", owner_id="u1", title="Trip", deadline=None,
        subtasks=[Subtask(id="sub_1", text="Book"), Subtask(id="sub_2", text="Pack")],
    )
    assert task.find_subtask("sub_2").text == "Pack"
    assert task.find_subtask("sub_9") is None


def test_profile_defaults():
    profile = Profile(id="u1")
    assert profile.name == "New User"
    assert profile.points == 0
    assert profile.rank == "Bronze"
    assert profile.streak == 0
    assert profile.longest_streak == 0
    assert profile.last_task_date is None
    assert profile.purchased_items == []
    assert profile.friends == []


def test_task_serializable():
    deadline = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)
    task = Task(
        id="task_1", owner_id="u1", title="Trip", deadline=deadline,
        subtasks=[Subtask(id="sub_1", text="Book")],
    )
    d = asdict(task)
    assert d["title"] == "Trip"
    assert d["deadline"] == deadline
    assert d["subtasks"] == [{"id": "sub_1", "text": "Book", "completed": False}]
