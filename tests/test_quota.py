"""Tests for the daily quota tracker."""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from backend.services.quota import DailyQuotaTracker


class TestReservation:

    def test_reserve_until_limit(self, clock):
        """Test that reservations succeed exactly `limit` times."""
        quota = DailyQuotaTracker(2, clock=clock)

        assert quota.try_reserve() is True
        assert quota.try_reserve() is True
        assert quota.try_reserve() is False
        assert quota.count == 2
        assert quota.get_remaining() == 0

    def test_zero_limit_never_reserves(self, clock):
        quota = DailyQuotaTracker(0, clock=clock)
        assert quota.get_remaining() == 0
        assert quota.try_reserve() is False
        assert quota.count == 0

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            DailyQuotaTracker(-1)

    def test_concurrent_reservations_capped_at_remaining(self, clock):
        """Test that N remaining slots admit at most N concurrent reservations."""
        quota = DailyQuotaTracker(10, clock=clock)
        quota.try_reserve()
        quota.try_reserve()
        barrier = threading.Barrier(40)

        def reserve():
            barrier.wait()
            return quota.try_reserve()

        with ThreadPoolExecutor(max_workers=40) as pool:
            results = list(pool.map(lambda _: reserve(), range(40)))

        assert sum(results) == 8
        assert quota.count == 10
        assert quota.get_remaining() == 0


class TestRollover:

    def test_resets_on_new_utc_day(self, clock):
        """Test that the count resets once the UTC date changes."""
        clock.set(2024, 1, 1, 23, 59)
        quota = DailyQuotaTracker(3, clock=clock)
        for _ in range(3):
            quota.try_reserve()
        assert quota.get_remaining() == 0

        clock.set(2024, 1, 2, 0, 0, 1)

        assert quota.get_remaining() == 3
        assert quota.day_key == "2024-01-02"
        assert quota.count == 0

    def test_reset_only_once_per_day(self, clock):
        """Test that repeated checks on the same day do not reset again."""
        quota = DailyQuotaTracker(5, clock=clock)
        assert quota.reset_if_new_day() is False

        clock.now = clock.now + timedelta(days=1)
        assert quota.reset_if_new_day() is True

        quota.try_reserve()
        clock.now = clock.now + timedelta(hours=3)
        assert quota.reset_if_new_day() is False
        assert quota.count == 1

    def test_day_key_uses_utc(self, clock):
        """Test that a non-UTC clock reading is bucketed by its UTC date."""
        clock.now = datetime(2024, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=-5)))
        quota = DailyQuotaTracker(5, clock=clock)
        assert quota.day_key == "2024-01-02"

    def test_reserve_rolls_over_lazily(self, clock):
        quota = DailyQuotaTracker(1, clock=clock)
        assert quota.try_reserve() is True
        assert quota.try_reserve() is False

        clock.now = clock.now + timedelta(days=1)
        assert quota.try_reserve() is True


class TestRelease:

    def test_release_returns_slot(self, clock):
        quota = DailyQuotaTracker(1, clock=clock)
        quota.try_reserve()
        quota.release(quota.day_key)
        assert quota.get_remaining() == 1

    def test_release_from_previous_day_ignored(self, clock):
        """Test that a slot reserved before midnight is not returned to the new day."""
        quota = DailyQuotaTracker(2, clock=clock)
        quota.try_reserve()
        stale_day = quota.day_key

        clock.now = clock.now + timedelta(days=1)
        quota.try_reserve()
        quota.release(stale_day)

        assert quota.count == 1

    def test_release_never_goes_negative(self, clock):
        quota = DailyQuotaTracker(2, clock=clock)
        quota.release()
        assert quota.count == 0

    def test_snapshot(self, clock):
        quota = DailyQuotaTracker(4, clock=clock)
        quota.try_reserve()
        assert quota.snapshot() == {"count": 1, "day_key": "2024-01-01", "limit": 4, "remaining": 3}
