"""Tests for folding candidate signals into insights."""
from __future__ import annotations

from orghealth.analysis.signals import aggregate_signals, fallback_insights, normalize_label
from orghealth.models import (
    CandidateSignal,
    ConfidenceTier,
    FeedbackRecord,
    InsightBucket,
    SentimentLabel,
)


def _records(n, theme_id="t1", label=SentimentLabel.NEGATIVE, start=1):
    return [
        FeedbackRecord(
            id=f"r{i}",
            theme_id=theme_id,
            text=f"response {i}",
            sentiment_label=label,
            sentiment_score=0.2,
        )
        for i in range(start, start + n)
    ]


def _signal(text, ids, polarity="negative", **kwargs):
    return CandidateSignal(text=text, polarity=polarity, evidence_ids=tuple(ids), **kwargs)


def test_duplicate_signals_merge_evidence():
    records = _records(5)
    candidates = [
        _signal("Too many meetings", ["r1", "r2"]),
        _signal("too many  meetings.", ["r2", "r3"]),
    ]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert len(insights.frictions) == 1
    friction = insights.frictions[0]
    assert friction.evidence_ids == ("r1", "r2", "r3")
    assert friction.voice_count == 3
    assert friction.agreement_pct == 60
    assert friction.sentiment == "negative"
    assert friction.id == "t1-friction-1"


def test_group_label_merges_different_wording():
    records = _records(4)
    candidates = [
        _signal("Meetings eat the day", ["r1"], group="meetings"),
        _signal("Calendar is full of syncs", ["r2"], group="Meetings"),
    ]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert len(insights.frictions) == 1
    assert insights.frictions[0].text == "Meetings eat the day"
    assert insights.frictions[0].voice_count == 2


def test_ordering_by_voice_then_agreement_then_insertion():
    records = _records(6)
    candidates = [
        _signal("first single", ["r1"]),
        _signal("pair", ["r2", "r3"]),
        _signal("second single", ["r4"]),
        _signal("triple", ["r4", "r5", "r6"]),
    ]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert [i.text for i in insights.frictions] == [
        "triple",
        "pair",
        "first single",
        "second single",
    ]
    assert [i.id for i in insights.frictions] == [
        "t1-friction-1",
        "t1-friction-2",
        "t1-friction-3",
        "t1-friction-4",
    ]


def test_buckets_follow_polarity():
    records = _records(3)
    candidates = [
        _signal("Bad", ["r1"], polarity="negative"),
        _signal("Good", ["r2"], polarity="positive"),
        _signal("Meh", ["r3"], polarity="neutral"),
    ]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert [i.bucket for i in insights.all()] == [
        InsightBucket.FRICTION,
        InsightBucket.STRENGTH,
        InsightBucket.PATTERN,
    ]


def test_foreign_or_missing_evidence_is_dropped():
    records = _records(2)
    candidates = [
        _signal("No evidence", []),
        _signal("Other theme only", ["x9"]),
        _signal("Partly valid", ["r1", "x9"]),
    ]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert [i.text for i in insights.frictions] == ["Partly valid"]
    assert insights.frictions[0].evidence_ids == ("r1",)


def test_voice_count_never_exceeds_response_count():
    records = _records(3)
    candidates = [_signal("Everyone", ["r1", "r2", "r3", "r1", "r2"])]

    insights = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)

    assert insights.frictions[0].voice_count == 3
    assert insights.frictions[0].agreement_pct == 100


def test_confidence_capped_by_tier():
    records = _records(2)
    candidates = [_signal("Confident", ["r1"], confidence=5)]

    high = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH)
    low = aggregate_signals("t1", records, candidates, ConfidenceTier.LOW)

    assert high.frictions[0].confidence == 5
    assert low.frictions[0].confidence == 2


def test_recommendations_and_cause_carried():
    records = _records(2)
    candidates = [
        _signal("Overloaded", ["r1"], group="load", cause="Workload"),
        _signal("Swamped", ["r2"], group="load", recommendation="Hire"),
    ]

    friction = aggregate_signals("t1", records, candidates, ConfidenceTier.HIGH).frictions[0]

    assert friction.cause == "Workload"
    assert friction.recommendations == ("Hire",)


def test_no_records_no_insights():
    insights = aggregate_signals("t1", [], [_signal("x", ["r1"])], ConfidenceTier.HIGH)

    assert insights.all() == ()


def test_fallback_counts_labels():
    records = (
        _records(4, label=SentimentLabel.NEGATIVE)
        + _records(2, label=SentimentLabel.POSITIVE, start=5)
        + _records(1, label=SentimentLabel.MIXED, start=7)
    )

    insights = fallback_insights("t1", records, ConfidenceTier.HIGH, theme_name="Work-Life Balance")

    friction = insights.frictions[0]
    assert friction.text == "4 response(s) expressed concern about work-life balance"
    assert friction.voice_count == 4
    assert friction.agreement_pct == 57
    assert friction.confidence == 2
    assert friction.evidence_ids == ("r1", "r2", "r3")
    assert insights.strengths[0].voice_count == 2
    assert insights.patterns[0].voice_count == 1
    assert all(i.confidence <= 2 for i in insights.all())


def test_fallback_skips_empty_buckets():
    insights = fallback_insights("t1", _records(2, label=SentimentLabel.POSITIVE), ConfidenceTier.LOW)

    assert insights.frictions == ()
    assert insights.patterns == ()
    assert len(insights.strengths) == 1


def test_normalize_label():
    assert normalize_label("  Too   Many Meetings! ") == "too many meetings"
