"""Tests for the virtual clock."""

import time

import pytest

from iap_entitlements.utils.clock import VirtualClock, system_clock


class TestVirtualClock:
    """Test VirtualClock behavior."""

    def test_starts_at_given_time(self):
        clock = VirtualClock(start_millis=1_000)
        assert clock() == 1_000
        assert clock.get_current_time_millis() == 1_000

    def test_defaults_to_now(self):
        before = system_clock()
        clock = VirtualClock()
        after = system_clock()
        assert before <= clock() <= after

    def test_does_not_move_on_its_own(self):
        clock = VirtualClock(start_millis=5_000)
        time.sleep(0.01)
        assert clock() == 5_000

    def test_advance_time(self):
        """Test advancing by days, hours, minutes and millis."""
        clock = VirtualClock(start_millis=0)
        new_time = clock.advance_time(days=1, hours=2, minutes=3, millis=4)
        assert new_time == ((24 + 2) * 60 + 3) * 60 * 1000 + 4
        assert clock() == new_time

    def test_advance_negative_raises(self):
        clock = VirtualClock(start_millis=0)
        with pytest.raises(ValueError):
            clock.advance_time(days=-1)

    def test_set_time_forward(self):
        clock = VirtualClock(start_millis=0)
        assert clock.set_time(10_000) == 10_000
        assert clock() == 10_000

    def test_set_time_backwards_raises(self):
        clock = VirtualClock(start_millis=10_000)
        with pytest.raises(ValueError) as exc_info:
            clock.set_time(5_000)
        assert "backwards" in str(exc_info.value)
