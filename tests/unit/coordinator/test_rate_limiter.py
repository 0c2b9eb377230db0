"""
Unit tests for RateLimiter.
"""

import threading
import time

import pytest

from cs_loader.coordinator import RateLimiter


def test_first_slot_is_immediate(clock):
    rl = RateLimiter(10_000, clock=clock, sleep=clock.sleep)
    assert rl.await_slot() == 0.0
    assert clock.sleeps == []
    assert rl.last_dispatch == clock.now


def test_back_to_back_waits_full_interval(clock):
    rl = RateLimiter(10_000, clock=clock, sleep=clock.sleep)
    rl.await_slot()
    waited = rl.await_slot()
    assert waited == pytest.approx(10.0)
    assert sum(clock.sleeps) == pytest.approx(10.0)


def test_waits_only_the_remainder(clock):
    rl = RateLimiter(10_000, clock=clock, sleep=clock.sleep)
    rl.await_slot()
    clock.now += 4.0  # e.g. a 4s upload
    assert rl.await_slot() == pytest.approx(6.0)


def test_no_burst_after_idle_period(clock):
    """Unused slots are not banked: after a long idle, only one slot is free."""
    rl = RateLimiter(10_000, clock=clock, sleep=clock.sleep)
    rl.await_slot()
    clock.now += 60.0
    assert rl.await_slot() == 0.0
    assert rl.await_slot() == pytest.approx(10.0)


def test_reset_frees_next_slot(clock):
    rl = RateLimiter(10_000, clock=clock, sleep=clock.sleep)
    rl.await_slot()
    rl.reset()
    assert rl.await_slot() == 0.0


def test_negative_interval_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-1)


def test_real_clock_spacing():
    """Two immediate calls on the real clock are spaced by at least the interval."""
    rl = RateLimiter(50)
    rl.await_slot()
    t0 = time.monotonic()
    rl.await_slot()
    assert time.monotonic() - t0 >= 0.05 - 0.005


def test_concurrent_callers_keep_the_floor():
    """Four threads sharing one limiter need at least three full intervals."""
    rl = RateLimiter(30)
    threads = [threading.Thread(target=rl.await_slot) for _ in range(4)]
    t0 = time.monotonic()
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert time.monotonic() - t0 >= 3 * 0.03 - 0.005
