"""Tests for the throttle registry and its background sweeper."""

import threading
import time
from unittest.mock import Mock

import pytest

from throttler.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttler.adapters.rate_limit.registry import ThrottleEntry, ThrottleRegistry
from throttler.adapters.rate_limit.sweeper import RegistrySweeper


def test_registry_put_get_delete() -> None:
    registry = ThrottleRegistry()
    entry = ThrottleEntry(key="a", count=1, window_reset_at=100.0)

    registry.put(entry)

    assert registry.get("a") is entry
    assert "a" in registry
    assert len(registry) == 1
    assert registry.delete("a") is True
    assert registry.delete("a") is False
    assert registry.get("a") is None


def test_put_replaces_existing_entry() -> None:
    registry = ThrottleRegistry()
    registry.put(ThrottleEntry(key="a", count=7, window_reset_at=100.0))
    registry.put(ThrottleEntry(key="a", count=1, window_reset_at=200.0))

    assert registry.get("a").count == 1
    assert len(registry) == 1


def test_purge_expired_uses_strict_comparison() -> None:
    registry = ThrottleRegistry()
    registry.put(ThrottleEntry(key="past", count=1, window_reset_at=99.0))
    registry.put(ThrottleEntry(key="now", count=1, window_reset_at=100.0))
    registry.put(ThrottleEntry(key="future", count=1, window_reset_at=101.0))

    removed = registry.purge_expired(100.0)

    assert removed == 1
    assert sorted(registry.keys()) == ["future", "now"]


def test_swept_key_behaves_like_first_request() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=2, window_ms=1_000, clock=clock)
    limiter.consume("a")
    limiter.consume("a")
    assert limiter.consume("a").allowed is False

    clock.return_value = 1002.0
    limiter.sweep()
    assert "a" not in limiter.registry

    result = limiter.consume("a")
    assert result.allowed is True
    assert result.remaining == 1


def test_sweeper_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        RegistrySweeper(lambda: 0, interval_seconds=0)


def test_sweeper_runs_periodically_until_stopped() -> None:
    calls = threading.Event()
    sweep = Mock(side_effect=lambda: calls.set() or 0)
    sweeper = RegistrySweeper(sweep, interval_seconds=0.01, name="test")

    sweeper.start()
    try:
        assert calls.wait(2.0)
        assert sweeper.running is True
    finally:
        sweeper.stop()

    assert sweeper.running is False
    count_after_stop = sweep.call_count
    time.sleep(0.05)
    assert sweep.call_count == count_after_stop


def test_sweeper_survives_failing_sweep() -> None:
    second_call = threading.Event()
    attempts: list[int] = []

    def flaky_sweep() -> int:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        second_call.set()
        return 0

    sweeper = RegistrySweeper(flaky_sweep, interval_seconds=0.01)
    sweeper.start()
    try:
        assert second_call.wait(2.0)
    finally:
        sweeper.stop()


def test_start_is_idempotent() -> None:
    sweeper = RegistrySweeper(lambda: 0, interval_seconds=10)
    sweeper.start()
    first_thread = sweeper._thread
    try:
        sweeper.start()
        assert sweeper._thread is first_thread
    finally:
        sweeper.stop()


def test_limiter_owns_sweeper_lifecycle() -> None:
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_ms=1_000, sweep_interval_seconds=30)
    assert limiter.sweeper is not None
    assert limiter.sweeper.running is True

    limiter.close()

    assert limiter.sweeper.running is False


def test_background_sweep_removes_expired_entries() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(
        limit=1, window_ms=1_000, clock=clock, sweep_interval_seconds=0.01
    )
    try:
        limiter.consume("a")
        clock.return_value = 1005.0

        deadline = time.monotonic() + 2.0
        while "a" in limiter.registry and time.monotonic() < deadline:
            time.sleep(0.01)

        assert "a" not in limiter.registry
    finally:
        limiter.close()
