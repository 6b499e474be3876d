"""Store port: abstract persistence interface for tasks and profiles.

Core modules depend on this protocol, never on a specific database.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.data.models import Profile, Task


class LedgerStore(Protocol):
    """Two independent collections, tasks keyed by id and profiles keyed by user id."""

    def get_task(self, task_id: str) -> Task | None: ...

    def list_tasks(self, owner_id: str) -> list[Task]: ...

    def save_task(self, task: Task) -> None: ...

    def delete_task(self, task_id: str) -> bool: ...

    def delete_completed_before(self, cutoff: datetime) -> int: ...

    def get_profile(self, profile_id: str) -> Profile | None: ...

    def list_profiles(self) -> list[Profile]: ...

    def find_profile_by_email(self, email: str) -> Profile | None: ...

    def save_profile(self, profile: Profile) -> None:
        """Insert or overwrite; ValidationError if another profile holds the email."""
        ...

    def save_completion(self, task: Task, profile: Profile) -> None:
        """Persist a completed task and its scored profile in one transaction."""
        ...
