"""Value objects passed between the engine stages.

Every derived object is rebuilt from the current batch of feedback records on
each analysis run; none of them is mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from orghealth.exceptions import InputError


class SentimentLabel(str, Enum):
    """Sentiment classes attached to feedback records by the NLP service."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


class HealthStatus(str, Enum):
    THRIVING = "thriving"
    STABLE = "stable"
    EMERGING = "emerging"
    FRICTION = "friction"
    CRITICAL = "critical"


class PolarizationLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InsightBucket(str, Enum):
    """Bucket an insight is filed under; also decides its sentiment."""

    FRICTION = "friction"
    STRENGTH = "strength"
    PATTERN = "pattern"

    @property
    def sentiment(self) -> str:
        return {
            InsightBucket.FRICTION: "negative",
            InsightBucket.STRENGTH: "positive",
            InsightBucket.PATTERN: "neutral",
        }[self]

    @classmethod
    def from_polarity(cls, polarity: str) -> "InsightBucket":
        """Map a collaborator polarity (``negative``/``friction`` …) to a bucket."""
        value = (polarity or "").strip().lower()
        if value in ("negative", "friction", "frictions"):
            return cls.FRICTION
        if value in ("positive", "strength", "strengths"):
            return cls.STRENGTH
        return cls.PATTERN


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EffortLevel(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"critical": 4, "high": 3, "medium": 2, "low": 1}[self.value]


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeedbackRecord:
    """One sentiment-scored, theme-tagged response."""

    id: str
    theme_id: str
    text: str
    sentiment_label: SentimentLabel
    sentiment_score: float  # 0.0 .. 1.0
    session_id: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FeedbackRecord":
        """Build a record from a loosely typed mapping.

        Accepts both ``snake_case`` and ``camelCase`` keys.

        Raises
        ------
        InputError
            If a required field is missing or the score is not a number in
            ``[0, 1]``.
        """
        if not isinstance(payload, Mapping):
            raise InputError(f"Feedback record must be an object, got {type(payload).__name__}")

        record_id = payload.get("id")
        theme_id = payload.get("theme_id", payload.get("themeId"))
        if not record_id or not theme_id:
            raise InputError("Feedback record requires 'id' and 'theme_id'")

        raw_score = payload.get("sentiment_score", payload.get("sentimentScore"))
        if isinstance(raw_score, bool) or not isinstance(raw_score, (int, float)):
            raise InputError(f"Record {record_id}: sentiment_score missing or not numeric")
        score = float(raw_score)
        if not 0.0 <= score <= 1.0:
            raise InputError(f"Record {record_id}: sentiment_score {score} outside [0, 1]")

        raw_label = payload.get("sentiment_label", payload.get("sentimentLabel", "neutral"))
        try:
            label = SentimentLabel(str(raw_label).lower())
        except ValueError as exc:
            raise InputError(f"Record {record_id}: unexpected sentiment label {raw_label!r}") from exc

        session_id = payload.get("session_id", payload.get("sessionId"))
        return cls(
            id=str(record_id),
            theme_id=str(theme_id),
            text=str(payload.get("text") or ""),
            sentiment_label=label,
            sentiment_score=score,
            session_id=str(session_id) if session_id else None,
        )


@dataclass(frozen=True)
class ConfidenceProfile:
    """Session-level engagement signals used to judge sample trustworthiness."""

    session_id: str
    exchange_count: int = 0
    themes_explored: int = 0
    completed: bool = False
    mood_tracked: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConfidenceProfile":
        if not isinstance(payload, Mapping) or not payload.get("session_id", payload.get("sessionId")):
            raise InputError("Confidence profile requires 'session_id'")
        try:
            return cls(
                session_id=str(payload.get("session_id", payload.get("sessionId"))),
                exchange_count=int(payload.get("exchange_count", payload.get("exchangeCount", 0))),
                themes_explored=int(payload.get("themes_explored", payload.get("themesExplored", 0))),
                completed=bool(payload.get("completed", False)),
                mood_tracked=bool(payload.get("mood_tracked", payload.get("moodTracked", False))),
            )
        except (TypeError, ValueError) as exc:
            raise InputError(f"Malformed confidence profile: {exc}") from exc


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Polarization:
    level: PolarizationLevel
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "score": round(self.score, 4)}


@dataclass(frozen=True)
class ThemeStats:
    """Per-theme health statistics (see :mod:`orghealth.analysis.scoring`)."""

    theme_id: str
    intensity: float
    direction: float
    health_index: int
    health_status: HealthStatus
    polarization: Polarization
    response_count: int

    @property
    def current_sentiment(self) -> float:
        """Mean sentiment on a 0–100 scale."""
        return (self.direction + 1) * 50

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme_id": self.theme_id,
            "intensity": round(self.intensity, 4),
            "direction": round(self.direction, 4),
            "health_index": self.health_index,
            "health_status": self.health_status.value,
            "polarization": self.polarization.to_dict(),
            "response_count": self.response_count,
        }


@dataclass(frozen=True)
class SessionConfidence:
    session_id: str
    score: int
    tier: ConfidenceTier


@dataclass(frozen=True)
class ConfidenceSummary:
    """Batch-level confidence aggregate, shown next to every conclusion."""

    total_sessions: int
    high_confidence_count: int
    medium_confidence_count: int
    low_confidence_count: int
    average_confidence_score: int
    tier: ConfidenceTier
    completed_sessions: int = 0
    high_engagement_sessions: int = 0
    high_depth_sessions: int = 0
    mood_tracked_sessions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "high_confidence_count": self.high_confidence_count,
            "medium_confidence_count": self.medium_confidence_count,
            "low_confidence_count": self.low_confidence_count,
            "average_confidence_score": self.average_confidence_score,
            "tier": self.tier.value,
            "confidence_factors": {
                "completed_sessions": self.completed_sessions,
                "high_engagement_sessions": self.high_engagement_sessions,
                "high_depth_sessions": self.high_depth_sessions,
                "mood_tracked_sessions": self.mood_tracked_sessions,
            },
        }


@dataclass(frozen=True)
class QualityNote:
    """Strength or concern about the quality of the feedback sample."""

    kind: str  # "strength" | "concern"
    title: str
    description: str
    impact: str
    affected_sessions: int
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "impact": self.impact,
            "affected_sessions": self.affected_sessions,
            "recommendation": self.recommendation,
        }


# ---------------------------------------------------------------------------
# Signals & insights
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CandidateSignal:
    """Raw signal suggested by the NLP collaborator for one theme."""

    text: str
    polarity: str
    evidence_ids: Tuple[str, ...]
    confidence: int = 3
    group: Optional[str] = None  # signals sharing a group are the same idea
    cause: Optional[str] = None
    recommendation: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], polarity: Optional[str] = None) -> "CandidateSignal":
        evidence = payload.get("evidence_ids", payload.get("evidenceIds")) or []
        if isinstance(evidence, str):
            evidence = [evidence]
        try:
            confidence = int(payload.get("confidence", 3))
        except (TypeError, ValueError):
            confidence = 3
        return cls(
            text=str(payload.get("text", "")).strip(),
            polarity=str(polarity or payload.get("polarity", payload.get("sentiment", "neutral"))),
            evidence_ids=tuple(str(e) for e in evidence),
            confidence=confidence,
            group=payload.get("group") or None,
            cause=payload.get("cause") or None,
            recommendation=payload.get("recommendation") or None,
        )


@dataclass(frozen=True)
class Insight:
    id: str
    theme_id: str
    bucket: InsightBucket
    text: str
    agreement_pct: int
    voice_count: int
    confidence: int  # 1..5
    evidence_ids: Tuple[str, ...]
    cause: Optional[str] = None
    recommendations: Tuple[str, ...] = ()

    @property
    def sentiment(self) -> str:
        return self.bucket.sentiment

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "sentiment": self.sentiment,
            "agreement_pct": self.agreement_pct,
            "voice_count": self.voice_count,
            "confidence": self.confidence,
            "evidence_ids": list(self.evidence_ids),
            "cause": self.cause,
        }


@dataclass(frozen=True)
class ThemeInsights:
    frictions: Tuple[Insight, ...] = ()
    strengths: Tuple[Insight, ...] = ()
    patterns: Tuple[Insight, ...] = ()

    def all(self) -> Tuple[Insight, ...]:
        return self.frictions + self.strengths + self.patterns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frictions": [i.to_dict() for i in self.frictions],
            "strengths": [i.to_dict() for i in self.strengths],
            "patterns": [i.to_dict() for i in self.patterns],
        }


# ---------------------------------------------------------------------------
# Root causes, interventions, predictions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RootCause:
    id: str
    theme_id: str
    cause: str
    frequency: int
    impact_score: float  # 0..100
    affected_employees: int
    evidence: Tuple[str, ...] = ()
    related_theme_ids: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "theme_id": self.theme_id,
            "cause": self.cause,
            "frequency": self.frequency,
            "impact_score": self.impact_score,
            "affected_employees": self.affected_employees,
            "evidence": list(self.evidence),
            "related_theme_ids": list(self.related_theme_ids),
        }


@dataclass(frozen=True)
class InterventionCandidate:
    """Unscored intervention proposal attached to one or more root causes."""

    title: str
    root_cause_ids: Tuple[str, ...]
    estimated_impact: float
    effort_level: EffortLevel
    timeline: str
    description: str = ""
    action_steps: Tuple[str, ...] = ()
    success_metrics: Tuple[str, ...] = ()
    id: Optional[str] = None


@dataclass(frozen=True)
class Intervention:
    id: str
    title: str
    theme_ids: Tuple[str, ...]
    root_cause_ids: Tuple[str, ...]
    estimated_impact: float
    effort_level: EffortLevel
    priority: Priority
    quick_win: bool
    timeline: str
    description: str = ""
    action_steps: Tuple[str, ...] = ()
    success_metrics: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "theme_ids": list(self.theme_ids),
            "root_cause_ids": list(self.root_cause_ids),
            "estimated_impact": self.estimated_impact,
            "effort_level": self.effort_level.value,
            "priority": self.priority.value,
            "quick_win": self.quick_win,
            "timeline": self.timeline,
            "description": self.description,
            "action_steps": list(self.action_steps),
            "success_metrics": list(self.success_metrics),
        }


@dataclass(frozen=True)
class ImpactPrediction:
    theme_id: str
    current_sentiment: float
    predicted_sentiment: float
    confidence: int  # 0..100
    intervention_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def improvement(self) -> float:
        return self.predicted_sentiment - self.current_sentiment

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme_id": self.theme_id,
            "current_sentiment": round(self.current_sentiment, 2),
            "predicted_sentiment": round(self.predicted_sentiment, 2),
            "improvement": round(self.improvement, 2),
            "confidence": self.confidence,
            "intervention_ids": list(self.intervention_ids),
        }
