"""Tests for src.data.db: ListifyDB (SQLite storage)."""

import sqlite3
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from src.core.errors import ValidationError
from src.data.db import ListifyDB
from src.data.models import Profile, Subtask, Task

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _task(task_id="task_1", owner="u1", **kwargs) -> Task:
    defaults = dict(title="Write report", deadline=NOW + timedelta(hours=4))
    defaults.update(kwargs)
    return Task(id=task_id, owner_id=owner, **defaults)


class TestTasks:
    def test_round_trip(self, store):
        task = _task(
            description="Q1 numbers",
            link="https://example.com/doc",
            subtasks=[Subtask(id="sub_1", text="Draft"), Subtask(id="sub_2", text="Send", completed=True)],
            created_at=NOW,
            deadline_locked=True,
        )
        store.save_task(task)
        assert store.get_task("task_1") == task

    def test_missing_task(self, store):
        assert store.get_task("task_nope") is None

    def test_deadline_stored_as_utc(self, store):
        local = datetime(2026, 3, 10, 18, 0, tzinfo=ZoneInfo("Asia/Jerusalem"))
        store.save_task(_task(deadline=local))
        fetched = store.get_task("task_1")
        assert fetched.deadline == local
        assert fetched.deadline.utcoffset() == timedelta(0)

    def test_no_deadline(self, store):
        store.save_task(_task(deadline=None))
        assert store.get_task("task_1").deadline is None

    def test_save_overwrites(self, store):
        store.save_task(_task(title="Old"))
        store.save_task(_task(title="New"))
        assert store.get_task("task_1").title == "New"
        assert len(store.list_tasks("u1")) == 1

    def test_list_by_owner(self, store):
        store.save_task(_task("task_a", owner="u1"))
        store.save_task(_task("task_b", owner="u2"))
        store.save_task(_task("task_c", owner="u1"))
        assert [t.id for t in store.list_tasks("u1")] == ["task_a", "task_c"]
        assert store.list_tasks("u3") == []

    def test_delete(self, store):
        store.save_task(_task())
        assert store.delete_task("task_1") is True
        assert store.get_task("task_1") is None
        assert store.delete_task("task_1") is False

    def test_delete_completed_before(self, store):
        store.save_task(_task("task_old", completed=True, completed_at=NOW - timedelta(days=5)))
        store.save_task(_task("task_new", completed=True, completed_at=NOW - timedelta(days=1)))
        store.save_task(_task("task_open"))
        removed = store.delete_completed_before(NOW - timedelta(days=4))
        assert removed == 1
        assert {t.id for t in store.list_tasks("u1")} == {"task_new", "task_open"}

    def test_delete_completed_before_nothing_stale(self, store):
        store.save_task(_task(completed=True, completed_at=NOW))
        assert store.delete_completed_before(NOW - timedelta(days=4)) == 0


class TestProfiles:
    def test_round_trip(self, store):
        profile = Profile(
            id="u1",
            name="Dana",
            email="dana@example.com",
            points=320,
            rank="Iron",
            streak=2,
            longest_streak=5,
            last_task_date=date(2026, 3, 9),
            total_tasks_completed=17,
            tasks_completed_on_time=12,
            purchased_items=["badge_star"],
            friends=["u2", "u3"],
            badges=["badge_star"],
            created_at=NOW,
        )
        store.save_profile(profile)
        assert store.get_profile("u1") == profile

    def test_missing_profile(self, store):
        assert store.get_profile("ghost") is None

    def test_list_profiles(self, store):
        store.save_profile(Profile(id="u1"))
        store.save_profile(Profile(id="u2"))
        assert [p.id for p in store.list_profiles()] == ["u1", "u2"]

    def test_find_by_email_case_insensitive(self, store):
        store.save_profile(Profile(id="u1", email="Dana@Example.com"))
        found = store.find_profile_by_email("  dana@example.COM ")
        assert found is not None
        assert found.id == "u1"

    def test_find_by_email_missing_or_blank(self, store):
        store.save_profile(Profile(id="u1", email=""))
        assert store.find_profile_by_email("nobody@example.com") is None
        assert store.find_profile_by_email("") is None

    def test_email_unique_case_insensitive(self, store):
        store.save_profile(Profile(id="u1", email="dana@example.com"))
        with pytest.raises(ValidationError):
            store.save_profile(Profile(id="u2", email="DANA@example.com"))
        assert store.get_profile("u2") is None
        assert store.get_profile("u1").email == "dana@example.com"

    def test_blank_emails_not_unique(self, store):
        store.save_profile(Profile(id="u1"))
        store.save_profile(Profile(id="u2"))
        assert len(store.list_profiles()) == 2

    def test_resave_keeps_own_email(self, store):
        store.save_profile(Profile(id="u1", email="dana@example.com"))
        store.save_profile(Profile(id="u1", email="dana@example.com", points=40))
        assert store.get_profile("u1").points == 40


class TestSaveCompletion:
    def test_writes_task_and_profile(self, store):
        task = _task(completed=True, completed_at=NOW)
        profile = Profile(id="u1", points=20, total_tasks_completed=1)
        store.save_completion(task, profile)
        assert store.get_task("task_1").completed is True
        assert store.get_profile("u1").points == 20

    def test_rolls_back_when_profile_write_fails(self, store):
        store.save_task(_task())
        task = _task(completed=True, completed_at=NOW)
        bad_profile = Profile(id="u1", name=None)  # violates NOT NULL
        with pytest.raises(sqlite3.IntegrityError):
            store.save_completion(task, bad_profile)
        assert store.get_task("task_1").completed is False
        assert store.get_profile("u1") is None


class TestMigration:
    def test_adds_missing_columns(self, tmp_db_path):
        conn = sqlite3.connect(tmp_db_path)
        conn.execute("""
            CREATE TABLE tasks (
                id TEXT PRIMARY KEY, owner_id TEXT NOT NULL, title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '', deadline TEXT,
                subtasks TEXT NOT NULL DEFAULT '[]',
                completed INTEGER NOT NULL DEFAULT 0, completed_at TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE profiles (
                id TEXT PRIMARY KEY, name TEXT NOT NULL,
                points INTEGER NOT NULL DEFAULT 0, rank TEXT NOT NULL DEFAULT 'Bronze',
                streak INTEGER NOT NULL DEFAULT 0, longest_streak INTEGER NOT NULL DEFAULT 0,
                last_task_date TEXT,
                total_tasks_completed INTEGER NOT NULL DEFAULT 0,
                tasks_completed_on_time INTEGER NOT NULL DEFAULT 0,
                purchased_items TEXT NOT NULL DEFAULT '[]',
                friends TEXT NOT NULL DEFAULT '[]'
            )
        """)
        conn.execute(
            "INSERT INTO tasks (id, owner_id, title, deadline) VALUES (?, ?, ?, ?)",
            ("task_old", "u1", "Legacy", "2026-03-01T12:00:00"),
        )
        conn.execute("INSERT INTO profiles (id, name, points) VALUES ('u1', 'Old', 40)")
        conn.commit()
        conn.close()

        db = ListifyDB(db_path=tmp_db_path)
        task = db.get_task("task_old")
        assert task.link == ""
        assert task.created_at is None
        assert task.deadline_locked is False
        assert task.deadline == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        profile = db.get_profile("u1")
        assert profile.points == 40
        assert profile.email == ""
        assert profile.badges == []

    def test_reopen_keeps_data(self, tmp_db_path):
        ListifyDB(db_path=tmp_db_path).save_profile(Profile(id="u1", points=7))
        assert ListifyDB(db_path=tmp_db_path).get_profile("u1").points == 7
