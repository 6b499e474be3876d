"""
Listify: Profile Aggregate.

Profiles are created lazily on first access. Clients may only change their
display name and email; points, rank, streaks, counters, purchases and
friends are written by the scoring engine, the reward ledger and
``add_friend`` alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import AlreadyFriendsError, NotFoundError, ValidationError
from src.core.locking import OwnerLocks
from src.core.ranks import LOWEST_RANK
from src.data.models import Profile

if TYPE_CHECKING:
    from src.ports.store_port import LedgerStore

logger = logging.getLogger(__name__)


class ProfilePatch(BaseModel):
    """Client-settable profile fields. Anything else in a patch is dropped."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    email: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if v and ("@" not in v or v.startswith("@") or v.endswith("@")):
            raise ValueError(f"Not an email address: {v!r}")
        return v


@dataclass
class LeaderboardEntry:
    id: str
    name: str
    points: int
    rank: str
    streak: int

    @classmethod
    def from_profile(cls, profile: Profile) -> LeaderboardEntry:
        return cls(
            id=profile.id,
            name=profile.name,
            points=profile.points,
            rank=profile.rank,
            streak=profile.streak,
        )


def _rank_entries(profiles: list[Profile]) -> list[LeaderboardEntry]:
    """Leaderboard shape, highest points first (ties keep store order)."""
    entries = [LeaderboardEntry.from_profile(p) for p in profiles]
    return sorted(entries, key=lambda e: e.points, reverse=True)


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    return str(err.get("msg", "Invalid input")).removeprefix("Value error, ")


class ProfileAggregate:
    """Read/update accessor over profiles, plus friends and leaderboards."""

    def __init__(
        self,
        store: LedgerStore,
        locks: OwnerLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._locks = locks or OwnerLocks()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def get(self, owner_id: str) -> Profile:
        """Return the owner's profile, creating a zeroed one if absent."""
        with self._locks.hold(owner_id):
            profile = self._store.get_profile(owner_id)
            if profile is None:
                profile = self._new_profile(owner_id)
                self._store.save_profile(profile)
                logger.info("Profile created for user %s", owner_id)
            return profile

    def get_or_new(self, owner_id: str) -> Profile:
        """Like ``get``, but a missing profile is returned unsaved.

        Writers use this so a rejected action leaves no profile behind; the
        new profile is stored together with the first successful change.
        """
        profile = self._store.get_profile(owner_id)
        return profile if profile is not None else self._new_profile(owner_id)

    def _new_profile(self, owner_id: str) -> Profile:
        return Profile(id=owner_id, rank=LOWEST_RANK, created_at=self._clock())

    def update(self, owner_id: str, patch: dict[str, Any] | ProfilePatch) -> Profile:
        """Apply name/email changes; protected fields in the patch are ignored."""
        if not isinstance(patch, ProfilePatch):
            try:
                patch = ProfilePatch.model_validate(patch)
            except PydanticValidationError as exc:
                raise ValidationError(_first_error(exc)) from exc

        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return self.get(owner_id)
        with self._locks.hold(owner_id):
            profile = self.get_or_new(owner_id)
            if "email" in changes and changes["email"]:
                other = self._store.find_profile_by_email(changes["email"])
                if other is not None and other.id != owner_id:
                    raise ValidationError(f"Email {changes['email']} is already in use")
            updated = replace(profile, **changes)
            self._store.save_profile(updated)
        logger.info("Profile %s updated: %s", owner_id, ", ".join(sorted(changes)))
        return updated

    # ------------------------------------------------------------------
    # Friends
    # ------------------------------------------------------------------

    def add_friend(self, owner_id: str, friend_email: str) -> Profile:
        """Follow the profile registered under ``friend_email``.

        The relation is one-directional: the friend's own list is untouched.
        """
        friend = self._store.find_profile_by_email(friend_email)
        if friend is None:
            raise NotFoundError(f"No user with email {friend_email}")
        if friend.id == owner_id:
            raise ValidationError("You cannot add yourself as a friend")

        with self._locks.hold(owner_id):
            profile = self.get_or_new(owner_id)
            if friend.id in profile.friends:
                raise AlreadyFriendsError(f"You already follow {friend.name}")
            updated = replace(profile, friends=[*profile.friends, friend.id])
            self._store.save_profile(updated)
        logger.info("User %s now follows %s", owner_id, friend.id)
        return updated

    def list_friends(self, owner_id: str) -> list[LeaderboardEntry]:
        """Followed profiles that still exist, in the order they were added."""
        profile = self.get(owner_id)
        friends = [self._store.get_profile(fid) for fid in profile.friends]
        return [LeaderboardEntry.from_profile(f) for f in friends if f is not None]

    # ------------------------------------------------------------------
    # Leaderboards
    # ------------------------------------------------------------------

    def global_leaderboard(self) -> list[LeaderboardEntry]:
        return _rank_entries(self._store.list_profiles())

    def friends_leaderboard(self, owner_id: str) -> list[LeaderboardEntry]:
        """The owner plus everyone they follow, highest points first."""
        profile = self.get(owner_id)
        members = [profile]
        for fid in profile.friends:
            friend = self._store.get_profile(fid)
            if friend is not None:
                members.append(friend)
        return _rank_entries(members)
