"""
Listify: UI-Agnostic Service.

Single entry point for every user action: tasks, completion scoring,
profiles, friends, leaderboards, the reward store and analytics. One store,
one per-owner lock registry and one clock are shared by all components, so
the scoring engine and the reward ledger never race on the same profile.

Each UI adapter (Telegram today) calls this service and renders the returned
records in its own way. Failures surface as ``ListifyError`` subclasses.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Callable
from zoneinfo import ZoneInfo

from src.core.analytics import Analytics, build_analytics
from src.core.locking import OwnerLocks
from src.core.profiles import LeaderboardEntry, ProfileAggregate
from src.core.rewards import Reward, RewardLedger
from src.core.scoring import CompletionResult
from src.core.streak import local_day
from src.core.task_ledger import DEFAULT_RETENTION, TaskLedger

if TYPE_CHECKING:
    from src.data.models import Profile, Task
    from src.ports.store_port import LedgerStore

logger = logging.getLogger(__name__)


class ListifyService:
    """Facade over the task ledger, profiles and reward ledger."""

    def __init__(
        self,
        store: LedgerStore,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if tz is None:
            from src.config import settings
            tz = ZoneInfo(settings.TIMEZONE)

        self._store = store
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        locks = OwnerLocks()
        self.profiles = ProfileAggregate(store, locks, self._clock)
        self.tasks = TaskLedger(store, self.profiles, locks, self._clock, tz)
        self.rewards = RewardLedger(store, self.profiles, locks)

    @property
    def tz(self) -> tzinfo:
        return self._tz

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        owner_id: str,
        title: str,
        deadline: datetime | str | None,
        description: str = "",
        link: str = "",
        subtasks: list[str | dict[str, Any]] | None = None,
    ) -> Task:
        return self.tasks.create(owner_id, title, deadline, description, link, subtasks)

    def update_task(self, owner_id: str, task_id: str, patch: dict[str, Any]) -> Task:
        return self.tasks.update(owner_id, task_id, patch)

    def complete_task(
        self, owner_id: str, task_id: str, now: datetime | None = None,
    ) -> CompletionResult:
        return self.tasks.complete(owner_id, task_id, now)

    def delete_task(self, owner_id: str, task_id: str) -> bool:
        return self.tasks.delete(owner_id, task_id)

    def toggle_subtask(self, owner_id: str, task_id: str, subtask_id: str) -> Task:
        return self.tasks.toggle_subtask(owner_id, task_id, subtask_id)

    def list_tasks(self, owner_id: str) -> list[Task]:
        return self.tasks.list_tasks(owner_id)

    def sweep_completed_tasks(
        self, now: datetime | None = None, retention: timedelta = DEFAULT_RETENTION,
    ) -> int:
        return self.tasks.sweep_completed(now, retention)

    # ------------------------------------------------------------------
    # Profiles and friends
    # ------------------------------------------------------------------

    def get_profile(self, owner_id: str) -> Profile:
        return self.profiles.get(owner_id)

    def update_profile(self, owner_id: str, patch: dict[str, Any]) -> Profile:
        return self.profiles.update(owner_id, patch)

    def add_friend(self, owner_id: str, friend_email: str) -> Profile:
        return self.profiles.add_friend(owner_id, friend_email)

    def get_friends(self, owner_id: str) -> list[LeaderboardEntry]:
        return self.profiles.list_friends(owner_id)

    def get_global_leaderboard(self) -> list[LeaderboardEntry]:
        return self.profiles.global_leaderboard()

    def get_friends_leaderboard(self, owner_id: str) -> list[LeaderboardEntry]:
        return self.profiles.friends_leaderboard(owner_id)

    # ------------------------------------------------------------------
    # Rewards and analytics
    # ------------------------------------------------------------------

    def get_rewards(self) -> list[Reward]:
        return self.rewards.catalog

    def purchase_reward(
        self, owner_id: str, reward_id: str, price: int | None = None,
    ) -> Profile:
        return self.rewards.purchase(owner_id, reward_id, price)

    def get_analytics(self, owner_id: str) -> Analytics:
        profile = self.profiles.get(owner_id)
        tasks = self._store.list_tasks(owner_id)
        today = local_day(self._clock(), self._tz)
        return build_analytics(profile, tasks, today, self._tz)
