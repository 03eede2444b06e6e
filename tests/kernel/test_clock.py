"""Tests for the injectable clocks (eventops_kernel/domain/clock.py)."""

from datetime import datetime, timedelta, timezone

from eventops_kernel.domain.clock import DeterministicClock, SystemClock

T0 = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class TestDeterministicClock:
    def test_frozen_until_advanced(self):
        clock = DeterministicClock(T0)
        assert clock.now() == clock.now() == T0

    def test_advance_and_tick(self):
        clock = DeterministicClock(T0)
        clock.advance(1.5)
        assert clock.now() == T0 + timedelta(seconds=1.5)
        assert clock.tick() == T0 + timedelta(seconds=2.5)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock(T0)
        clock.advance(30)
        later = T0 + timedelta(days=1)
        clock.set_time(later)
        assert clock.now() == later

    def test_default_time_is_aware(self):
        assert DeterministicClock().now().tzinfo is not None


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo == timezone.utc
