"""
Listify: Task Ledger.

Owns task records: creation, partial updates under the deadline lock,
subtask toggles, deletion and the one-shot completion that hands off to the
scoring engine. Client payloads are validated by pydantic models; only the
fields those models declare can ever reach a stored task.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import (
    AlreadyCompletedError,
    DeadlineLockedError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from src.core.locking import OwnerLocks
from src.core.scoring import CompletionResult, complete_task
from src.data.models import Subtask, Task

if TYPE_CHECKING:
    from src.core.profiles import ProfileAggregate
    from src.ports.store_port import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=4)

# Fields the ledger owns; a patch can never set them
_LEDGER_FIELDS = frozenset(
    {"id", "owner_id", "completed", "completed_at", "created_at", "deadline_locked"}
)


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class SubtaskIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    text: str
    completed: bool = False


def _coerce_subtasks(v: Any) -> Any:
    """Accept bare strings as subtask text."""
    if v is None:
        return []
    if isinstance(v, list):
        return [{"text": item} if isinstance(item, str) else item for item in v]
    return v


class TaskCreate(BaseModel):
    """Payload for creating a task. Title and deadline are required."""

    model_config = ConfigDict(extra="ignore")

    title: str
    deadline: datetime | None = None
    description: str = ""
    link: str = ""
    subtasks: list[SubtaskIn] = []

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("subtasks", mode="before")
    @classmethod
    def coerce_subtasks(cls, v: Any) -> Any:
        return _coerce_subtasks(v)


class TaskPatch(BaseModel):
    """Partial update. Ledger-controlled keys are dropped by ``extra="ignore"``."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    description: str | None = None
    link: str | None = None
    deadline: datetime | None = None
    subtasks: list[SubtaskIn] | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("subtasks", mode="before")
    @classmethod
    def coerce_subtasks(cls, v: Any) -> Any:
        return _coerce_subtasks(v)


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = str(err.get("msg", "Invalid input")).removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


def _new_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:12]}"


def _new_subtask_id() -> str:
    return f"sub_{uuid.uuid4().hex[:8]}"


def _build_subtasks(items: list[SubtaskIn]) -> list[Subtask]:
    return [
        Subtask(id=item.id or _new_subtask_id(), text=item.text, completed=item.completed)
        for item in items
    ]


# ---------------------------------------------------------------------------
# TaskLedger
# ---------------------------------------------------------------------------


class TaskLedger:
    """Task CRUD plus completion, serialized per owner."""

    def __init__(
        self,
        store: LedgerStore,
        profiles: ProfileAggregate,
        locks: OwnerLocks | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._locks = locks or OwnerLocks()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tz = tz

    def _aware(self, moment: datetime) -> datetime:
        """Interpret naive timestamps in the configured zone."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self._tz)
        return moment

    def _owned_task(self, owner_id: str, task_id: str) -> Task:
        task = self._store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.owner_id != owner_id:
            raise UnauthorizedError("You can only change your own tasks")
        return task

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(
        self,
        owner_id: str,
        title: str,
        deadline: datetime | str | None,
        description: str = "",
        link: str = "",
        subtasks: list[str | dict[str, Any]] | None = None,
    ) -> Task:
        """Create a task. Raises ValidationError without a title or deadline."""
        try:
            payload = TaskCreate.model_validate({
                "title": title,
                "deadline": deadline,
                "description": description or "",
                "link": link or "",
                "subtasks": subtasks,
            })
        except PydanticValidationError as exc:
            raise ValidationError(_first_error(exc)) from exc
        if payload.deadline is None:
            raise ValidationError("deadline: Deadline is required")

        task = Task(
            id=_new_task_id(),
            owner_id=owner_id,
            title=payload.title,
            deadline=self._aware(payload.deadline),
            description=payload.description,
            link=payload.link,
            subtasks=_build_subtasks(payload.subtasks),
            completed=False,
            completed_at=None,
            created_at=self._clock(),
            deadline_locked=True,
        )
        with self._locks.hold(owner_id):
            self._store.save_task(task)
        logger.info("Task created: %s '%s' for user %s", task.id, task.title, owner_id)
        return task

    def get(self, owner_id: str, task_id: str) -> Task:
        return self._owned_task(owner_id, task_id)

    def list_tasks(self, owner_id: str) -> list[Task]:
        """Active tasks by deadline, then completed tasks newest first."""
        tasks = self._store.list_tasks(owner_id)
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        active = sorted(
            (t for t in tasks if not t.completed),
            key=lambda t: t.deadline or far_future,
        )
        done = sorted(
            (t for t in tasks if t.completed),
            key=lambda t: t.completed_at or far_future,
            reverse=True,
        )
        return active + done

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self, owner_id: str, task_id: str, patch: dict[str, Any] | TaskPatch,
    ) -> Task:
        """Apply a partial patch.

        Any ``deadline`` key on a locked task is rejected, even when it repeats
        the stored value. Ledger-controlled keys are ignored.
        """
        if isinstance(patch, TaskPatch):
            touches_deadline = "deadline" in patch.model_fields_set
        else:
            touches_deadline = "deadline" in patch

        with self._locks.hold(owner_id):
            task = self._owned_task(owner_id, task_id)
            if touches_deadline and task.deadline_locked:
                raise DeadlineLockedError("Deadline cannot be changed once set")
            if task.completed:
                raise AlreadyCompletedError(f"Task '{task.title}' is already completed")

            if not isinstance(patch, TaskPatch):
                try:
                    patch = TaskPatch.model_validate(
                        {k: v for k, v in patch.items() if k not in _LEDGER_FIELDS}
                    )
                except PydanticValidationError as exc:
                    raise ValidationError(_first_error(exc)) from exc

            changes: dict[str, Any] = {}
            for name in patch.model_fields_set:
                value = getattr(patch, name)
                if name == "subtasks":
                    changes["subtasks"] = _build_subtasks(value or [])
                elif name == "deadline":
                    if value is not None:
                        changes["deadline"] = self._aware(value)
                        changes["deadline_locked"] = True
                elif value is not None:
                    changes[name] = value

            updated = replace(task, **changes)
            self._store.save_task(updated)
        logger.info("Task %s updated: %s", task_id, ", ".join(sorted(changes)) or "no changes")
        return updated

    def toggle_subtask(self, owner_id: str, task_id: str, subtask_id: str) -> Task:
        """Flip one subtask. Leaves the task's own completion untouched."""
        with self._locks.hold(owner_id):
            task = self._store.get_task(task_id)
            if task is None or task.owner_id != owner_id:
                raise NotFoundError(f"Task {task_id} not found")
            if task.find_subtask(subtask_id) is None:
                raise NotFoundError(f"Subtask {subtask_id} not found")
            subtasks = [
                replace(s, completed=not s.completed) if s.id == subtask_id else s
                for s in task.subtasks
            ]
            updated = replace(task, subtasks=subtasks)
            self._store.save_task(updated)
        logger.debug("Subtask %s of task %s toggled", subtask_id, task_id)
        return updated

    # ------------------------------------------------------------------
    # Complete / delete
    # ------------------------------------------------------------------

    def complete(
        self, owner_id: str, task_id: str, now: datetime | None = None,
    ) -> CompletionResult:
        """Complete a task and score it; task and profile are stored together."""
        moment = self._aware(now) if now is not None else self._clock()
        with self._locks.hold(owner_id):
            task = self._owned_task(owner_id, task_id)
            profile = self._profiles.get_or_new(owner_id)
            result = complete_task(task, moment, profile, self._tz)
            self._store.save_completion(result.task, result.profile)
        logger.info(
            "Task %s completed by %s: +%d points (%s), rank %s, streak %d",
            task_id, owner_id, result.points_earned,
            "on time" if result.on_time else "late",
            result.profile.rank, result.streak.streak,
        )
        return result

    def delete(self, owner_id: str, task_id: str) -> bool:
        """Delete a task in any state. Returns True on success."""
        with self._locks.hold(owner_id):
            self._owned_task(owner_id, task_id)
            self._store.delete_task(task_id)
        return True

    def sweep_completed(
        self, now: datetime | None = None, retention: timedelta = DEFAULT_RETENTION,
    ) -> int:
        """Delete completed tasks finished more than ``retention`` ago."""
        moment = self._aware(now) if now is not None else self._clock()
        removed = self._store.delete_completed_before(moment - retention)
        if removed:
            logger.info("Sweep removed %d completed task(s) older than %s", removed, retention)
        return removed
