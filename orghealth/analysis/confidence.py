"""Sample confidence: how much the feedback behind a conclusion can be trusted.

Each session is scored 0–100 from four yes/no signals (engagement, depth,
completion, mood tracked at start and end). The weights live in
:mod:`orghealth.config` and sum to 100.
"""
from __future__ import annotations

import logging
import statistics
from typing import Dict, Iterable, List, Mapping, Sequence

from orghealth import config
from orghealth.models import (
    ConfidenceProfile,
    ConfidenceSummary,
    ConfidenceTier,
    FeedbackRecord,
    QualityNote,
    SessionConfidence,
)

logger = logging.getLogger(__name__)

_INSIGHT_CAPS = {
    ConfidenceTier.HIGH: 5,
    ConfidenceTier.MEDIUM: 3,
    ConfidenceTier.LOW: 2,
}


def tier_for(score: float) -> ConfidenceTier:
    if score >= config.HIGH_CONFIDENCE_MIN:
        return ConfidenceTier.HIGH
    if score >= config.MEDIUM_CONFIDENCE_MIN:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def score_session(profile: ConfidenceProfile) -> SessionConfidence:
    """Return the weighted 0–100 confidence score and tier for one session."""
    score = 0
    if profile.exchange_count >= config.ENGAGEMENT_MIN_EXCHANGES:
        score += config.ENGAGEMENT_WEIGHT
    if profile.themes_explored >= config.DEPTH_MIN_THEMES:
        score += config.DEPTH_WEIGHT
    if profile.completed:
        score += config.COMPLETION_WEIGHT
    if profile.mood_tracked:
        score += config.MOOD_WEIGHT
    return SessionConfidence(profile.session_id, score, tier_for(score))


def summarize(profiles: Sequence[ConfidenceProfile]) -> ConfidenceSummary:
    """Aggregate per-session scores into a batch-level summary.

    An empty batch is treated as unassessed: score 0, tier ``low``.
    """
    scored = [score_session(p) for p in profiles]
    average = round(statistics.fmean(s.score for s in scored)) if scored else 0

    def _count(tier: ConfidenceTier) -> int:
        return sum(1 for s in scored if s.tier is tier)

    return ConfidenceSummary(
        total_sessions=len(scored),
        high_confidence_count=_count(ConfidenceTier.HIGH),
        medium_confidence_count=_count(ConfidenceTier.MEDIUM),
        low_confidence_count=_count(ConfidenceTier.LOW),
        average_confidence_score=average,
        tier=tier_for(average),
        completed_sessions=sum(1 for p in profiles if p.completed),
        high_engagement_sessions=sum(
            1 for p in profiles if p.exchange_count >= config.ENGAGEMENT_MIN_EXCHANGES
        ),
        high_depth_sessions=sum(
            1 for p in profiles if p.themes_explored >= config.DEPTH_MIN_THEMES
        ),
        mood_tracked_sessions=sum(1 for p in profiles if p.mood_tracked),
    )


def insight_confidence_cap(tier: ConfidenceTier) -> int:
    """Highest insight confidence (1–5) a sample of *tier* may support."""
    return _INSIGHT_CAPS[tier]


def stricter_tier(a: ConfidenceTier, b: ConfidenceTier) -> ConfidenceTier:
    """Return whichever of *a* and *b* allows the lower insight confidence."""
    return a if _INSIGHT_CAPS[a] <= _INSIGHT_CAPS[b] else b


def reduce_tier(tier: ConfidenceTier) -> ConfidenceTier:
    if tier is ConfidenceTier.HIGH:
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW


def reduce_score(score: float) -> float:
    """Lower *score* into the next tier down (never raises it)."""
    tier = reduce_tier(tier_for(score))
    if tier is ConfidenceTier.MEDIUM:
        return min(score, config.HIGH_CONFIDENCE_MIN - 1)
    return min(score, config.MEDIUM_CONFIDENCE_MIN - 1)


def theme_confidence_scores(
    records_by_theme: Mapping[str, Sequence[FeedbackRecord]],
    profiles: Iterable[ConfidenceProfile],
    fallback: float,
) -> Dict[str, float]:
    """Return the mean session score behind each theme's records.

    Themes whose records cannot be matched to any profile inherit *fallback*
    (normally the batch average).
    """
    session_scores = {p.session_id: score_session(p).score for p in profiles}
    out: Dict[str, float] = {}
    for theme_id, records in records_by_theme.items():
        sessions = {r.session_id for r in records if r.session_id in session_scores}
        if sessions:
            out[theme_id] = statistics.fmean(session_scores[s] for s in sorted(sessions))
        else:
            out[theme_id] = float(fallback)
    return out


def quality_notes(summary: ConfidenceSummary) -> List[QualityNote]:
    """Describe strengths and concerns about the sample behind the analysis."""
    total = summary.total_sessions
    if not total:
        return [
            QualityNote(
                kind="concern",
                title="No Session Quality Data",
                description="No conversation profiles were supplied; every conclusion is low confidence.",
                impact="high",
                affected_sessions=0,
                recommendation="Collect engagement and completion data alongside feedback.",
            )
        ]

    notes: List[QualityNote] = []
    low_pct = summary.low_confidence_count / total * 100
    if low_pct > config.LOW_CONFIDENCE_ALERT_PCT:
        notes.append(
            QualityNote(
                kind="concern",
                title="Low Confidence in Analytics",
                description=(
                    f"{round(low_pct)}% of conversations have low confidence scores. "
                    "Analytics may not be reliable."
                ),
                impact="high",
                affected_sessions=summary.low_confidence_count,
                recommendation=(
                    "Encourage longer responses, ensure completion and explore more themes."
                ),
            )
        )
    elif summary.average_confidence_score >= config.HIGH_CONFIDENCE_MIN:
        notes.append(
            QualityNote(
                kind="strength",
                title="High Confidence Analytics",
                description=(
                    f"Average confidence score of {summary.average_confidence_score}/100 "
                    "indicates reliable analytics."
                ),
                impact="high",
                affected_sessions=total,
            )
        )

    completion_pct = summary.completed_sessions / total * 100
    if completion_pct < config.COMPLETION_ALERT_PCT:
        notes.append(
            QualityNote(
                kind="concern",
                title="Low Completion Rate",
                description=(
                    f"Only {round(completion_pct)}% of conversations were completed. "
                    "This reduces data quality."
                ),
                impact="medium",
                affected_sessions=total - summary.completed_sessions,
                recommendation="Consider shorter conversations or reminders.",
            )
        )

    mood_pct = summary.mood_tracked_sessions / total * 100
    if mood_pct < config.MOOD_TRACKING_ALERT_PCT:
        notes.append(
            QualityNote(
                kind="concern",
                title="Mood Rarely Tracked",
                description=(
                    f"Mood was tracked at start and end in {round(mood_pct)}% of conversations."
                ),
                impact="low",
                affected_sessions=total - summary.mood_tracked_sessions,
            )
        )

    logger.debug("quality notes for %d sessions: %d", total, len(notes))
    return notes
