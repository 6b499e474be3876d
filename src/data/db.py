"""
Listify: SQLite Store.

Tasks and profiles persist in SQLite across restarts. List-valued fields are
stored as JSON text, timestamps as UTC ISO-8601 and calendar days as
YYYY-MM-DD.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from src.core.errors import ValidationError
from src.data.models import Profile, Subtask, Task

logger = logging.getLogger(__name__)

# Columns added after the first release: name -> DDL used by ALTER TABLE
_TASK_MIGRATIONS = {
    "link": "TEXT NOT NULL DEFAULT ''",
    "created_at": "TEXT",
    "deadline_locked": "INTEGER NOT NULL DEFAULT 0",
}
_PROFILE_MIGRATIONS = {
    "email": "TEXT NOT NULL DEFAULT ''",
    "badges": "TEXT NOT NULL DEFAULT '[]'",
    "created_at": "TEXT",
}


def _dt_to_str(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def _str_to_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ListifyDB:
    """SQLite-backed implementation of LedgerStore."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id              TEXT    PRIMARY KEY,
                    owner_id        TEXT    NOT NULL,
                    title           TEXT    NOT NULL,
                    description     TEXT    NOT NULL DEFAULT '',
                    deadline        TEXT,
                    link            TEXT    NOT NULL DEFAULT '',
                    subtasks        TEXT    NOT NULL DEFAULT '[]',
                    completed       INTEGER NOT NULL DEFAULT 0,
                    completed_at    TEXT,
                    created_at      TEXT,
                    deadline_locked INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks (owner_id)"
            )
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id                      TEXT    PRIMARY KEY,
                    name                    TEXT    NOT NULL,
                    email                   TEXT    NOT NULL DEFAULT '',
                    points                  INTEGER NOT NULL DEFAULT 0,
                    rank                    TEXT    NOT NULL DEFAULT 'Bronze',
                    streak                  INTEGER NOT NULL DEFAULT 0,
                    longest_streak          INTEGER NOT NULL DEFAULT 0,
                    last_task_date          TEXT,
                    total_tasks_completed   INTEGER NOT NULL DEFAULT 0,
                    tasks_completed_on_time INTEGER NOT NULL DEFAULT 0,
                    purchased_items         TEXT    NOT NULL DEFAULT '[]',
                    friends                 TEXT    NOT NULL DEFAULT '[]',
                    badges                  TEXT    NOT NULL DEFAULT '[]',
                    created_at              TEXT
                )
            """)
            # Migrate existing DBs: add new columns if missing
            self._add_missing_columns(conn, "tasks", _TASK_MIGRATIONS)
            self._add_missing_columns(conn, "profiles", _PROFILE_MIGRATIONS)
            # Non-blank emails are unique regardless of case
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_profiles_email "
                "ON profiles (lower(email)) WHERE email != ''"
            )
        logger.debug("Listify tables initialized at %s", self._db_path)

    @staticmethod
    def _add_missing_columns(
        conn: sqlite3.Connection, table: str, columns: dict[str, str],
    ) -> None:
        existing_cols = {
            row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()
        }
        for name, ddl in columns.items():
            if name not in existing_cols:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
                logger.info("Migrated %s: added column %s", table, name)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row["title"],
            description=row["description"],
            deadline=_str_to_dt(row["deadline"]),
            link=row["link"],
            subtasks=[Subtask(**s) for s in json.loads(row["subtasks"] or "[]")],
            completed=bool(row["completed"]),
            completed_at=_str_to_dt(row["completed_at"]),
            created_at=_str_to_dt(row["created_at"]),
            deadline_locked=bool(row["deadline_locked"]),
        )

    @staticmethod
    def _task_params(task: Task) -> tuple:
        return (
            task.id,
            task.owner_id,
            task.title,
            task.description,
            _dt_to_str(task.deadline),
            task.link,
            json.dumps([
                {"id": s.id, "text": s.text, "completed": s.completed}
                for s in task.subtasks
            ]),
            int(task.completed),
            _dt_to_str(task.completed_at),
            _dt_to_str(task.created_at),
            int(task.deadline_locked),
        )

    @staticmethod
    def _row_to_profile(row: sqlite3.Row) -> Profile:
        last_day = row["last_task_date"]
        return Profile(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            points=row["points"],
            rank=row["rank"],
            streak=row["streak"],
            longest_streak=row["longest_streak"],
            last_task_date=date.fromisoformat(last_day) if last_day else None,
            total_tasks_completed=row["total_tasks_completed"],
            tasks_completed_on_time=row["tasks_completed_on_time"],
            purchased_items=json.loads(row["purchased_items"] or "[]"),
            friends=json.loads(row["friends"] or "[]"),
            badges=json.loads(row["badges"] or "[]"),
            created_at=_str_to_dt(row["created_at"]),
        )

    @staticmethod
    def _profile_params(profile: Profile) -> tuple:
        return (
            profile.id,
            profile.name,
            profile.email,
            profile.points,
            profile.rank,
            profile.streak,
            profile.longest_streak,
            profile.last_task_date.isoformat() if profile.last_task_date else None,
            profile.total_tasks_completed,
            profile.tasks_completed_on_time,
            json.dumps(profile.purchased_items),
            json.dumps(profile.friends),
            json.dumps(profile.badges),
            _dt_to_str(profile.created_at),
        )

    _UPSERT_TASK = """
        INSERT OR REPLACE INTO tasks
            (id, owner_id, title, description, deadline, link, subtasks,
             completed, completed_at, created_at, deadline_locked)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """

    # Updates in place by id; a clash on the email index fails instead of
    # replacing the other profile
    _UPSERT_PROFILE = """
        INSERT INTO profiles
            (id, name, email, points, rank, streak, longest_streak,
             last_task_date, total_tasks_completed, tasks_completed_on_time,
             purchased_items, friends, badges, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            email = excluded.email,
            points = excluded.points,
            rank = excluded.rank,
            streak = excluded.streak,
            longest_streak = excluded.longest_streak,
            last_task_date = excluded.last_task_date,
            total_tasks_completed = excluded.total_tasks_completed,
            tasks_completed_on_time = excluded.tasks_completed_on_time,
            purchased_items = excluded.purchased_items,
            friends = excluded.friends,
            badges = excluded.badges,
            created_at = excluded.created_at
    """

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Task | None:
        """Fetch a single task by ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self, owner_id: str) -> list[Task]:
        """Return all tasks of one owner, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE owner_id = ? ORDER BY rowid",
                (owner_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def save_task(self, task: Task) -> None:
        """Insert or overwrite a task."""
        with self._connect() as conn:
            conn.execute(self._UPSERT_TASK, self._task_params(task))

    def delete_task(self, task_id: str) -> bool:
        """Permanently delete a task by ID."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s deleted", task_id)
        return deleted

    def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed tasks whose completed_at is older than cutoff."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, completed_at FROM tasks WHERE completed = 1"
            ).fetchall()
            stale = [
                row["id"] for row in rows
                if row["completed_at"] and _str_to_dt(row["completed_at"]) < cutoff
            ]
            conn.executemany(
                "DELETE FROM tasks WHERE id = ?", [(task_id,) for task_id in stale]
            )
        return len(stale)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, profile_id: str) -> Profile | None:
        """Fetch a profile by user ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM profiles WHERE id = ?", (profile_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def list_profiles(self) -> list[Profile]:
        """Return all profiles."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM profiles ORDER BY rowid"
            ).fetchall()
        return [self._row_to_profile(r) for r in rows]

    def find_profile_by_email(self, email: str) -> Profile | None:
        """Case-insensitive exact match on email."""
        normalized = email.strip().lower()
        if not normalized:
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM profiles WHERE lower(email) = ?", (normalized,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_profile(row)

    def save_profile(self, profile: Profile) -> None:
        """Insert or overwrite a profile.

        Raises ValidationError when another profile already uses the email.
        """
        try:
            with self._connect() as conn:
                conn.execute(self._UPSERT_PROFILE, self._profile_params(profile))
        except sqlite3.IntegrityError as exc:
            if "idx_profiles_email" not in str(exc) and "lower(email)" not in str(exc):
                raise
            raise ValidationError(f"Email {profile.email} is already in use") from exc

    def save_completion(self, task: Task, profile: Profile) -> None:
        """Write a completed task and its scored profile in one transaction."""
        with self._connect() as conn:
            conn.execute(self._UPSERT_TASK, self._task_params(task))
            conn.execute(self._UPSERT_PROFILE, self._profile_params(profile))
