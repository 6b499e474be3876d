"""Tests for src.core.profiles: lazy profiles, patches, friends, leaderboards."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from src.core.errors import AlreadyFriendsError, NotFoundError, ValidationError
from src.data.models import Profile


def _score(service, clock, owner_id, times=1):
    for _ in range(times):
        task = service.create_task(owner_id, "Quick win", clock.now + timedelta(hours=1))
        service.complete_task(owner_id, task.id)


class TestGetProfile:
    def test_created_lazily(self, service, store, clock):
        assert store.get_profile("u1") is None
        profile = service.get_profile("u1")
        assert profile.points == 0
        assert profile.rank == "Bronze"
        assert profile.streak == 0
        assert profile.created_at == clock.now
        assert store.get_profile("u1") == profile

    def test_second_get_returns_stored(self, service, clock):
        first = service.get_profile("u1")
        clock.advance(days=1)
        assert service.get_profile("u1") == first


class TestUpdateProfile:
    def test_name_and_email(self, service):
        updated = service.update_profile("u1", {"name": "  Dana ", "email": "dana@example.com"})
        assert updated.name == "Dana"
        assert updated.email == "dana@example.com"

    def test_protected_fields_ignored(self, service, clock):
        _score(service, clock, "u1")
        updated = service.update_profile("u1", {
            "name": "Dana", "points": 99999, "rank": "Legendary", "streak": 50,
            "purchased_items": ["bg_galaxy"], "friends": ["u9"],
        })
        assert updated.name == "Dana"
        assert updated.points == 20
        assert updated.rank == "Bronze"
        assert updated.streak == 1
        assert updated.purchased_items == []
        assert updated.friends == []

    def test_empty_patch_is_noop(self, service):
        before = service.get_profile("u1")
        assert service.update_profile("u1", {}) == before

    def test_blank_name_rejected(self, service):
        with pytest.raises(ValidationError):
            service.update_profile("u1", {"name": "   "})

    def test_malformed_email_rejected(self, service):
        with pytest.raises(ValidationError):
            service.update_profile("u1", {"email": "not-an-email"})

    def test_email_must_be_unique(self, service, store):
        service.update_profile("u1", {"email": "dana@example.com"})
        with pytest.raises(ValidationError):
            service.update_profile("u2", {"email": "DANA@example.com"})
        assert store.get_profile("u2") is None

    def test_keeping_own_email_is_fine(self, service):
        service.update_profile("u1", {"email": "dana@example.com"})
        updated = service.update_profile("u1", {"email": "dana@example.com", "name": "D"})
        assert updated.name == "D"

    def test_store_rejects_email_taken_between_check_and_save(self, service, store):
        service.update_profile("u1", {"email": "dana@example.com"})
        # A concurrent writer on another owner's lock passes the lookup first
        with patch.object(store, "find_profile_by_email", return_value=None):
            with pytest.raises(ValidationError):
                service.update_profile("u2", {"email": "Dana@Example.com"})
        assert store.get_profile("u2") is None
        assert store.get_profile("u1").email == "dana@example.com"


class TestFriends:
    def test_add_friend_one_directional(self, service):
        service.update_profile("u2", {"name": "Noa", "email": "noa@example.com"})
        profile = service.add_friend("u1", "noa@example.com")
        assert profile.friends == ["u2"]
        assert service.get_profile("u2").friends == []

    def test_unknown_email(self, service):
        with pytest.raises(NotFoundError):
            service.add_friend("u1", "ghost@example.com")

    def test_cannot_add_self(self, service):
        service.update_profile("u1", {"email": "me@example.com"})
        with pytest.raises(ValidationError):
            service.add_friend("u1", "me@example.com")

    def test_duplicate_friend(self, service):
        service.update_profile("u2", {"email": "noa@example.com"})
        service.add_friend("u1", "noa@example.com")
        with pytest.raises(AlreadyFriendsError):
            service.add_friend("u1", "Noa@Example.com")
        assert service.get_profile("u1").friends == ["u2"]

    def test_get_friends(self, service):
        service.update_profile("u2", {"name": "Noa", "email": "noa@example.com"})
        service.update_profile("u3", {"name": "Ori", "email": "ori@example.com"})
        service.add_friend("u1", "ori@example.com")
        service.add_friend("u1", "noa@example.com")
        assert [f.name for f in service.get_friends("u1")] == ["Ori", "Noa"]

    def test_missing_friend_profiles_skipped(self, service, store):
        store.save_profile(Profile(id="u1", friends=["u_gone"]))
        assert service.get_friends("u1") == []
        assert [e.id for e in service.get_friends_leaderboard("u1")] == ["u1"]


class TestLeaderboards:
    def test_global_sorted_by_points(self, service, clock):
        _score(service, clock, "u1", times=1)
        _score(service, clock, "u2", times=3)
        _score(service, clock, "u3", times=2)
        board = service.get_global_leaderboard()
        assert [e.id for e in board] == ["u2", "u3", "u1"]
        assert [e.points for e in board] == [60, 40, 20]
        assert board[0].rank == "Bronze"
        assert board[0].streak == 1

    def test_global_includes_zero_point_profiles(self, service):
        service.get_profile("u1")
        assert [e.id for e in service.get_global_leaderboard()] == ["u1"]

    def test_friends_board_includes_self(self, service, clock):
        service.update_profile("u2", {"email": "noa@example.com"})
        service.update_profile("u3", {"email": "ori@example.com"})
        service.add_friend("u1", "noa@example.com")
        _score(service, clock, "u2", times=2)
        _score(service, clock, "u3", times=5)
        board = service.get_friends_leaderboard("u1")
        assert [e.id for e in board] == ["u2", "u1"]

    def test_leaderboard_entries_hide_private_fields(self, service):
        service.update_profile("u1", {"email": "dana@example.com"})
        entry = service.get_global_leaderboard()[0]
        assert not hasattr(entry, "email")
        assert not hasattr(entry, "friends")
