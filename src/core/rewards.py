"""
Listify: Reward Store.

A static catalog of cosmetic rewards and the ledger that spends points on
them. Rewards never feed back into scoring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

from src.core.errors import AlreadyPurchasedError, InsufficientBalanceError, NotFoundError
from src.core.locking import OwnerLocks
from src.core.ranks import derive_rank
from src.data.models import Profile

if TYPE_CHECKING:
    from src.core.profiles import ProfileAggregate
    from src.ports.store_port import LedgerStore

logger = logging.getLogger(__name__)


class RewardType(Enum):
    BADGE = "badge"
    THEME = "theme"
    BACKGROUND = "background"


@dataclass(frozen=True)
class Reward:
    id: str
    name: str
    type: RewardType
    price: int
    description: str
    icon: str = ""     # rendering hint only


DEFAULT_REWARDS: tuple[Reward, ...] = (
    Reward("badge_champion", "Champion Badge", RewardType.BADGE, 100,
           "Show off your champion status", "🏆"),
    Reward("badge_star", "Star Performer", RewardType.BADGE, 150,
           "You're a star!", "⭐"),
    Reward("badge_fire", "On Fire", RewardType.BADGE, 200,
           "Your streak is blazing", "🔥"),
    Reward("theme_dark", "Dark Mode Theme", RewardType.THEME, 250,
           "Sleek dark interface", "🌙"),
    Reward("theme_ocean", "Ocean Theme", RewardType.THEME, 300,
           "Calming blue waves", "🌊"),
    Reward("theme_sunset", "Sunset Theme", RewardType.THEME, 300,
           "Warm sunset colors", "🌅"),
    Reward("bg_gradient", "Gradient Background", RewardType.BACKGROUND, 400,
           "Colorful gradient background", "🎨"),
    Reward("bg_galaxy", "Galaxy Background", RewardType.BACKGROUND, 500,
           "Stunning space background", "🌌"),
)


def find_reward(reward_id: str, catalog: tuple[Reward, ...] = DEFAULT_REWARDS) -> Reward | None:
    for reward in catalog:
        if reward.id == reward_id:
            return reward
    return None


class RewardLedger:
    """Validates and records point-spend transactions."""

    def __init__(
        self,
        store: LedgerStore,
        profiles: ProfileAggregate,
        locks: OwnerLocks | None = None,
        catalog: tuple[Reward, ...] = DEFAULT_REWARDS,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._locks = locks or OwnerLocks()
        self._catalog = catalog

    @property
    def catalog(self) -> list[Reward]:
        return list(self._catalog)

    def purchase(self, owner_id: str, reward_id: str, price: int | None = None) -> Profile:
        """Spend ``price`` points on ``reward_id``.

        When ``price`` is omitted it comes from the catalog, and an unknown
        reward id raises NotFoundError. Rank is recomputed from the new
        balance.
        """
        if price is None:
            reward = find_reward(reward_id, self._catalog)
            if reward is None:
                raise NotFoundError(f"Reward {reward_id} not found")
            price = reward.price
        if price < 0:
            raise ValueError(f"Price cannot be negative: {price}")

        with self._locks.hold(owner_id):
            profile = self._profiles.get_or_new(owner_id)
            if profile.points < price:
                raise InsufficientBalanceError(
                    f"Not enough points: {price} needed, {profile.points} available"
                )
            if reward_id in profile.purchased_items:
                raise AlreadyPurchasedError(f"Reward {reward_id} already purchased")

            new_points = profile.points - price
            updated = replace(
                profile,
                points=new_points,
                rank=derive_rank(new_points),
                purchased_items=[*profile.purchased_items, reward_id],
            )
            self._store.save_profile(updated)

        logger.info(
            "User %s purchased %s for %d points (%d left)",
            owner_id, reward_id, price, updated.points,
        )
        return updated
