"""Tests for sample confidence scoring and quality notes."""
from __future__ import annotations

import pytest

from orghealth.analysis import confidence
from orghealth.models import ConfidenceProfile, ConfidenceTier, FeedbackRecord, SentimentLabel


def _profile(session_id="s1", exchanges=10, themes=4, completed=True, mood=True):
    return ConfidenceProfile(
        session_id=session_id,
        exchange_count=exchanges,
        themes_explored=themes,
        completed=completed,
        mood_tracked=mood,
    )


def _record(record_id, theme_id="t1", session_id=None):
    return FeedbackRecord(
        id=record_id,
        theme_id=theme_id,
        text="",
        sentiment_label=SentimentLabel.NEUTRAL,
        sentiment_score=0.5,
        session_id=session_id,
    )


def test_full_engagement_scores_100():
    result = confidence.score_session(_profile())

    assert result.score == 100
    assert result.tier is ConfidenceTier.HIGH


@pytest.mark.parametrize(
    "kwargs,score,tier",
    [
        ({"mood": False}, 85, ConfidenceTier.HIGH),
        ({"themes": 1}, 75, ConfidenceTier.HIGH),
        ({"themes": 1, "mood": False}, 60, ConfidenceTier.MEDIUM),
        ({"exchanges": 3, "themes": 1}, 45, ConfidenceTier.LOW),
        ({"exchanges": 0, "themes": 0, "completed": False, "mood": False}, 0, ConfidenceTier.LOW),
    ],
)
def test_partial_engagement(kwargs, score, tier):
    result = confidence.score_session(_profile(**kwargs))

    assert result.score == score
    assert result.tier is tier


def test_exchange_and_theme_minimums_are_inclusive():
    result = confidence.score_session(_profile(exchanges=8, themes=3, completed=False, mood=False))

    assert result.score == 55


def test_summary_counts_and_average():
    profiles = [
        _profile("a"),  # 100
        _profile("b", themes=1, mood=False),  # 60
        _profile("c", exchanges=1, themes=1, completed=False),  # 15
    ]

    summary = confidence.summarize(profiles)

    assert summary.total_sessions == 3
    assert summary.high_confidence_count == 1
    assert summary.medium_confidence_count == 1
    assert summary.low_confidence_count == 1
    assert summary.average_confidence_score == 58
    assert summary.tier is ConfidenceTier.MEDIUM
    assert summary.completed_sessions == 2
    assert summary.mood_tracked_sessions == 2
    assert summary.high_engagement_sessions == 2
    assert summary.high_depth_sessions == 1


def test_empty_summary_is_low_confidence():
    summary = confidence.summarize([])

    assert summary.total_sessions == 0
    assert summary.average_confidence_score == 0
    assert summary.tier is ConfidenceTier.LOW


def test_insight_caps_follow_tier():
    assert confidence.insight_confidence_cap(ConfidenceTier.HIGH) == 5
    assert confidence.insight_confidence_cap(ConfidenceTier.MEDIUM) == 3
    assert confidence.insight_confidence_cap(ConfidenceTier.LOW) == 2


@pytest.mark.parametrize(
    "a,b,expected",
    [
        (ConfidenceTier.HIGH, ConfidenceTier.LOW, ConfidenceTier.LOW),
        (ConfidenceTier.LOW, ConfidenceTier.HIGH, ConfidenceTier.LOW),
        (ConfidenceTier.HIGH, ConfidenceTier.MEDIUM, ConfidenceTier.MEDIUM),
        (ConfidenceTier.HIGH, ConfidenceTier.HIGH, ConfidenceTier.HIGH),
    ],
)
def test_stricter_tier_picks_lower_cap(a, b, expected):
    assert confidence.stricter_tier(a, b) is expected


@pytest.mark.parametrize(
    "score,expected",
    [(100, 74), (80, 74), (74, 49), (50, 49), (30, 30), (0, 0)],
)
def test_reduce_score_drops_one_tier(score, expected):
    assert confidence.reduce_score(score) == expected


def test_theme_scores_use_matching_sessions():
    records_by_theme = {
        "t1": [_record("r1", session_id="a"), _record("r2", session_id="b")],
        "t2": [_record("r3", "t2", session_id="unknown")],
    }
    profiles = [_profile("a"), _profile("b", themes=1, mood=False)]

    scores = confidence.theme_confidence_scores(records_by_theme, profiles, fallback=42)

    assert scores["t1"] == pytest.approx(80.0)
    assert scores["t2"] == 42.0


def test_quality_notes_flag_low_confidence_and_completion():
    profiles = [
        _profile(str(i), exchanges=1, themes=1, completed=False, mood=False) for i in range(4)
    ]
    notes = confidence.quality_notes(confidence.summarize(profiles))
    titles = {n.title for n in notes}

    assert "Low Confidence in Analytics" in titles
    assert "Low Completion Rate" in titles
    assert "Mood Rarely Tracked" in titles
    assert all(n.kind == "concern" for n in notes)


def test_quality_notes_praise_reliable_sample():
    notes = confidence.quality_notes(confidence.summarize([_profile("a"), _profile("b")]))

    assert [n.title for n in notes] == ["High Confidence Analytics"]
    assert notes[0].kind == "strength"


def test_quality_notes_without_profiles():
    notes = confidence.quality_notes(confidence.summarize([]))

    assert len(notes) == 1
    assert notes[0].kind == "concern"
    assert notes[0].title == "No Session Quality Data"
