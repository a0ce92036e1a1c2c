"""Tests for candidate-signal extraction and the guarded wrapper."""
from __future__ import annotations

import json
import threading

import pytest

from orghealth.analysis import extractor as ex
from orghealth.circuit_breaker import BreakerState, CircuitBreaker
from orghealth.exceptions import CollaboratorUnavailable
from orghealth.models import CandidateSignal, FeedbackRecord, SentimentLabel

RECORDS = [
    FeedbackRecord("r1", "wlb", "I answer email at 11pm", SentimentLabel.NEGATIVE, 0.1),
    FeedbackRecord("r2", "wlb", "Flexible Fridays are great", SentimentLabel.POSITIVE, 0.9),
]

MODEL_PAYLOAD = {
    "frictions": [
        {
            "text": "After-hours email is expected",
            "evidence_ids": ["r1"],
            "confidence": 4,
            "group": "after hours",
            "cause": "After-hours communication",
            "recommendation": "Set quiet hours",
        }
    ],
    "strengths": [{"text": "Flexible Fridays", "evidence_ids": ["r2"]}],
    "patterns": [],
}


def _fake_completion(content):
    def _inner(messages, **kwargs):  # noqa: D401 – stub
        _inner.calls.append((messages, kwargs))
        return {"choices": [{"message": {"content": content}}]}

    _inner.calls = []
    return _inner


def test_openai_extractor_parses_signals(monkeypatch):
    fake = _fake_completion("Sure! " + json.dumps(MODEL_PAYLOAD) + " Hope this helps.")
    monkeypatch.setattr(ex, "chat_completion", fake)

    signals = ex.OpenAISignalExtractor(theme_names={"wlb": "Work-Life Balance"}).extract_signals(
        "wlb", RECORDS
    )

    assert [s.polarity for s in signals] == ["negative", "positive"]
    friction = signals[0]
    assert friction.evidence_ids == ("r1",)
    assert friction.confidence == 4
    assert friction.cause == "After-hours communication"
    assert friction.recommendation == "Set quiet hours"
    messages, kwargs = fake.calls[0]
    assert "Work-Life Balance" in messages[1]["content"]
    assert "[r1]" in messages[1]["content"]
    assert kwargs["temperature"] == 0.0


def test_openai_extractor_rejects_reply_without_choices(monkeypatch):
    monkeypatch.setattr(ex, "chat_completion", lambda messages, **kwargs: {"choices": []})

    with pytest.raises(ValueError, match="did not contain a JSON object"):
        ex.OpenAISignalExtractor().extract_signals("wlb", RECORDS)


def test_openai_extractor_skips_empty_input(monkeypatch):
    fake = _fake_completion("{}")
    monkeypatch.setattr(ex, "chat_completion", fake)

    assert ex.OpenAISignalExtractor().extract_signals("wlb", []) == []
    assert fake.calls == []


@pytest.mark.parametrize(
    "content",
    [
        "no json here",
        "{not valid json}",
        '{"frictions": "oops"}',
        '{"frictions": ["just a string"]}',
    ],
)
def test_parse_response_rejects_bad_payloads(content):
    with pytest.raises(ValueError):
        ex._parse_response(content)


def test_static_extractor_accepts_both_shapes():
    static = ex.StaticSignalExtractor(
        {
            "wlb": MODEL_PAYLOAD,
            "career": [{"text": "Stuck", "polarity": "negative", "evidence_ids": ["c1"]}],
        }
    )

    wlb = static.extract_signals("wlb", RECORDS)
    career = static.extract_signals("career", [])

    assert [s.text for s in wlb] == ["After-hours email is expected", "Flexible Fridays"]
    assert career == [CandidateSignal("Stuck", "negative", ("c1",))]
    assert static.extract_signals("other", RECORDS) == []


class _Boom:
    def extract_signals(self, theme_id, responses):
        raise RuntimeError("upstream 500")


class _Slow:
    def __init__(self):
        self.release = threading.Event()

    def extract_signals(self, theme_id, responses):
        self.release.wait(5)
        return []


def test_guard_without_extractor_is_unavailable():
    guard = ex.GuardedExtractor(None)
    try:
        with pytest.raises(CollaboratorUnavailable) as info:
            guard.extract("wlb", RECORDS)
    finally:
        guard.shutdown()

    assert info.value.theme_id == "wlb"


def test_guard_wraps_errors_without_tripping_breaker():
    guard = ex.GuardedExtractor(
        _Boom(),
        breaker_factory=lambda: CircuitBreaker(failure_threshold=2, recovery_timeout=60),
        timeout=1,
    )
    try:
        for _ in range(3):
            with pytest.raises(CollaboratorUnavailable, match="upstream 500"):
                guard.extract("wlb", RECORDS)
    finally:
        guard.shutdown()

    assert guard.breaker.state is BreakerState.CLOSED
    assert guard.breaker.stats.failure_count == 0


def test_guard_timeouts_open_breaker():
    slow = _Slow()
    guard = ex.GuardedExtractor(
        slow,
        breaker_factory=lambda: CircuitBreaker(failure_threshold=2, recovery_timeout=60),
        timeout=0.05,
        max_workers=2,
    )
    try:
        for _ in range(2):
            with pytest.raises(CollaboratorUnavailable, match="timed out"):
                guard.extract("wlb", RECORDS)
        assert guard.breaker.state is BreakerState.OPEN

        with pytest.raises(CollaboratorUnavailable, match="circuit open"):
            guard.extract("wlb", RECORDS)
    finally:
        slow.release.set()
        guard.shutdown()

    assert guard.breaker.stats.failure_count == 2


def test_guard_uses_breaker_passed_per_call():
    guard = ex.GuardedExtractor(ex.StaticSignalExtractor({"wlb": MODEL_PAYLOAD}))
    tripped = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    tripped.record_failure(RuntimeError("earlier run"))
    try:
        with pytest.raises(CollaboratorUnavailable, match="circuit open"):
            guard.extract("wlb", RECORDS, tripped)
        fresh = guard.new_breaker()
        assert len(guard.extract("wlb", RECORDS, fresh)) == 2
    finally:
        guard.shutdown()

    assert fresh is not guard.breaker
    assert fresh.stats.success_count == 1
    assert guard.breaker.stats.success_count == 0


def test_guard_times_out_slow_extractor():
    slow = _Slow()
    guard = ex.GuardedExtractor(slow, timeout=0.05)
    try:
        with pytest.raises(CollaboratorUnavailable, match="timed out"):
            guard.extract("wlb", RECORDS)
    finally:
        slow.release.set()
        guard.shutdown()

    assert guard.breaker.stats.failure_count == 1


def test_guard_passes_through_signals():
    guard = ex.GuardedExtractor(ex.StaticSignalExtractor({"wlb": MODEL_PAYLOAD}))
    try:
        signals = guard.extract("wlb", RECORDS)
    finally:
        guard.shutdown()

    assert len(signals) == 2
    assert guard.breaker.stats.success_count == 1
