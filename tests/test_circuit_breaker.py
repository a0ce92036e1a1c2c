"""Tests for the extractor circuit breaker."""
from __future__ import annotations

from orghealth.circuit_breaker import BreakerState, CircuitBreaker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_opens_after_threshold_failures():
    breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=10, clock=FakeClock())

    for _ in range(2):
        breaker.record_failure(RuntimeError("x"))
        assert breaker.allow()

    breaker.record_failure(RuntimeError("x"))

    assert breaker.state is BreakerState.OPEN
    assert not breaker.allow()


def test_success_resets_consecutive_failures():
    breaker = CircuitBreaker(failure_threshold=2, clock=FakeClock())

    breaker.record_failure(RuntimeError("x"))
    breaker.record_success()
    breaker.record_failure(RuntimeError("x"))

    assert breaker.state is BreakerState.CLOSED


def test_half_open_after_recovery_timeout():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
    breaker.record_failure(RuntimeError("x"))

    clock.now = 9.9
    assert not breaker.allow()

    clock.now = 10.0
    assert breaker.allow()
    assert breaker.state is BreakerState.HALF_OPEN

    breaker.record_success()
    assert breaker.state is BreakerState.CLOSED


def test_failed_trial_reopens():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=10, clock=clock)
    for _ in range(5):
        breaker.record_failure(RuntimeError("x"))

    clock.now = 11
    assert breaker.allow()
    breaker.record_failure(RuntimeError("again"))

    assert breaker.state is BreakerState.OPEN
    assert not breaker.allow()


def test_to_dict():
    breaker = CircuitBreaker()
    breaker.record_success()
    breaker.record_failure(RuntimeError("x"))

    assert breaker.to_dict() == {
        "state": "closed",
        "success_count": 1,
        "failure_count": 1,
        "total_calls": 2,
    }
