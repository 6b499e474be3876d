"""Tests for src.core.listify_service: the facade wiring and a full user journey."""

from datetime import timedelta, timezone
from zoneinfo import ZoneInfo

from src.core.listify_service import ListifyService


class TestWiring:
    def test_default_zone_from_settings(self, store):
        assert ListifyService(store).tz == ZoneInfo("UTC")

    def test_components_share_locks(self, service):
        assert service.tasks._locks is service.profiles._locks
        assert service.rewards._locks is service.profiles._locks

    def test_completion_survives_restart(self, store, tmp_db_path, clock):
        from src.data.db import ListifyDB

        first = ListifyService(store, tz=timezone.utc, clock=clock)
        task = first.create_task("u1", "Report", clock.now + timedelta(hours=1))
        first.complete_task("u1", task.id)

        second = ListifyService(ListifyDB(db_path=tmp_db_path), tz=timezone.utc, clock=clock)
        profile = second.get_profile("u1")
        assert profile.points == 20
        assert profile.streak == 1
        assert second.list_tasks("u1")[0].completed is True


class TestJourney:
    def test_score_climb_and_spend(self, service, clock):
        service.update_profile("u1", {"name": "Dana", "email": "dana@example.com"})
        service.update_profile("u2", {"name": "Noa", "email": "noa@example.com"})
        service.add_friend("u2", "dana@example.com")

        # Five on-time completions a day for three days: 15 x 20 = 300 points
        for _ in range(3):
            for _ in range(5):
                task = service.create_task("u1", "Chore", clock.now + timedelta(hours=2))
                service.complete_task("u1", task.id)
            clock.advance(days=1)

        profile = service.get_profile("u1")
        assert profile.points == 300
        assert profile.rank == "Iron"
        assert profile.streak == 3
        assert profile.longest_streak == 3

        profile = service.purchase_reward("u1", "badge_fire")
        assert profile.points == 100
        assert profile.rank == "Bronze"

        board = service.get_friends_leaderboard("u2")
        assert [e.name for e in board] == ["Dana", "Noa"]

        stats = service.get_analytics("u1")
        assert stats.completed_tasks == 15
        assert stats.on_time_rate == 100.0
