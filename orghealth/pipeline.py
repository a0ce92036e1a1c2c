"""End-to-end analysis pipeline.

One :meth:`HealthEngine.analyze` call takes an immutable snapshot of feedback
records and returns a complete :class:`AnalysisResult`:

1. sample confidence for the batch (and per theme);
2. per theme, fanned out on a thread pool: statistics → candidate signals
   (guarded extractor, fallback on failure) → insights;
3. sequentially, once every theme is done: root causes → interventions →
   impact predictions.

Nothing is cached between runs, so identical input yields identical output.
"""
from __future__ import annotations

import json
import logging
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from orghealth import config
from orghealth.analysis.confidence import (
    quality_notes,
    reduce_score,
    stricter_tier,
    summarize,
    theme_confidence_scores,
    tier_for,
)
from orghealth.analysis.extractor import GuardedExtractor, SignalExtractor
from orghealth.analysis.impact import predict_impact
from orghealth.analysis.interventions import rank_interventions, suggest_interventions
from orghealth.analysis.root_causes import synthesize_root_causes
from orghealth.analysis.scoring import score_theme
from orghealth.analysis.signals import aggregate_signals, fallback_insights
from orghealth.circuit_breaker import CircuitBreaker
from orghealth.exceptions import CollaboratorUnavailable, InputError
from orghealth.models import (
    ConfidenceProfile,
    ConfidenceSummary,
    ConfidenceTier,
    FeedbackRecord,
    ImpactPrediction,
    Intervention,
    QualityNote,
    RootCause,
    ThemeInsights,
    ThemeStats,
)

logger = logging.getLogger(__name__)

EXTRACTION_AI = "ai"
EXTRACTION_FALLBACK = "fallback"
EXTRACTION_NONE = "none"


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AnalysisRequest:
    survey_id: str
    records: Tuple[FeedbackRecord, ...] = ()
    profiles: Tuple[ConfidenceProfile, ...] = ()
    theme_names: Dict[str, str] = field(default_factory=dict)


def _theme_names(raw: Any) -> Dict[str, str]:
    """Accept ``{"id": "name"}`` or ``[{"id": ..., "name": ...}]``."""
    if isinstance(raw, Mapping):
        return {str(k): str(v) for k, v in raw.items()}
    names: Dict[str, str] = {}
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, Mapping) and item.get("id"):
                names[str(item["id"])] = str(item.get("name") or item["id"])
    return names


def build_request(payload: Any) -> AnalysisRequest:
    """Turn a raw JSON batch into an :class:`AnalysisRequest`.

    Malformed records and profiles are skipped with a warning; duplicate
    record ids keep their first occurrence. A payload that is not an object
    is treated as an empty batch.
    """
    if not isinstance(payload, Mapping):
        logger.warning("Batch payload is not an object; treating it as empty")
        return AnalysisRequest(survey_id="unknown")

    records: List[FeedbackRecord] = []
    seen = set()
    for raw in payload.get("records") or payload.get("responses") or []:
        try:
            record = FeedbackRecord.from_dict(raw)
        except InputError as exc:
            logger.warning("Skipping feedback record: %s", exc)
            continue
        if record.id in seen:
            logger.warning("Skipping duplicate feedback record %s", record.id)
            continue
        seen.add(record.id)
        records.append(record)

    profiles: List[ConfidenceProfile] = []
    for raw in payload.get("profiles") or []:
        try:
            profiles.append(ConfidenceProfile.from_dict(raw))
        except InputError as exc:
            logger.warning("Skipping confidence profile: %s", exc)

    survey_id = payload.get("survey_id", payload.get("surveyId")) or "unknown"
    return AnalysisRequest(
        survey_id=str(survey_id),
        records=tuple(records),
        profiles=tuple(profiles),
        theme_names=_theme_names(payload.get("themes") or payload.get("theme_names")),
    )


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThemeAnalysis:
    """Per-theme slice of the result."""

    theme_id: str
    name: str
    stats: ThemeStats
    insights: ThemeInsights
    sample_score: float
    tier: ConfidenceTier
    extraction: str = EXTRACTION_AI
    degraded_reason: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None


@dataclass(frozen=True)
class AnalysisResult:
    survey_id: str
    confidence: ConfidenceSummary
    quality_notes: Tuple[QualityNote, ...]
    themes: Tuple[ThemeAnalysis, ...]
    root_causes: Tuple[RootCause, ...]
    interventions: Tuple[Intervention, ...]
    predictions: Tuple[ImpactPrediction, ...]

    @property
    def quick_wins(self) -> Tuple[Intervention, ...]:
        return tuple(i for i in self.interventions if i.quick_win)

    @property
    def degraded_themes(self) -> Tuple[str, ...]:
        return tuple(t.theme_id for t in self.themes if t.degraded)

    def theme(self, theme_id: str) -> Optional[ThemeAnalysis]:
        return next((t for t in self.themes if t.theme_id == theme_id), None)

    def to_dict(self) -> Dict[str, Any]:
        predictions = {p.theme_id: p for p in self.predictions}
        themes: Dict[str, Any] = OrderedDict()
        for theme in self.themes:
            prediction = predictions.get(theme.theme_id)
            themes[theme.theme_id] = {
                "name": theme.name,
                "stats": theme.stats.to_dict(),
                "confidence": {
                    "score": round(theme.sample_score, 2),
                    "tier": theme.tier.value,
                    "degraded": theme.degraded,
                    "degraded_reason": theme.degraded_reason,
                },
                "extraction": theme.extraction,
                "insights": theme.insights.to_dict(),
                "root_cause_ids": [c.id for c in self.root_causes if c.theme_id == theme.theme_id],
                "intervention_ids": [
                    i.id for i in self.interventions if theme.theme_id in i.theme_ids
                ],
                "prediction": prediction.to_dict() if prediction else None,
            }
        return {
            "survey_id": self.survey_id,
            "confidence": {
                **self.confidence.to_dict(),
                "quality_notes": [n.to_dict() for n in self.quality_notes],
            },
            "themes": themes,
            "root_causes": [c.to_dict() for c in self.root_causes],
            "interventions": [i.to_dict() for i in self.interventions],
            "quick_wins": [i.id for i in self.quick_wins],
            "predictions": [p.to_dict() for p in self.predictions],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _log_future_exception(fut: Future) -> None:  # noqa: WPS430 – small util
    """Logs any exception raised by a completed *Future*."""
    exc = fut.exception()
    if exc is not None:
        logger.error("Theme task raised an exception: %s", exc, exc_info=exc)


class HealthEngine:
    """Run the scoring pipeline over feedback batches.

    The engine holds no analysis state between runs; only its thread pools
    live across calls. Each :meth:`analyze` gets a fresh circuit breaker, so
    an earlier run's failures never decide how a later run is treated.
    """

    def __init__(
        self,
        extractor: Optional[SignalExtractor] = None,
        *,
        max_workers: Optional[int] = None,
        extract_timeout: Optional[float] = None,
        breaker_factory: Optional[Callable[[], CircuitBreaker]] = None,
    ) -> None:
        workers = max_workers or config.MAX_WORKERS
        self._guard = GuardedExtractor(
            extractor,
            timeout=extract_timeout,
            breaker_factory=breaker_factory,
            max_workers=workers,
        )
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="theme")

    def __enter__(self) -> "HealthEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
        self._guard.shutdown()

    def _submit(self, func, /, *args, **kwargs) -> Future:  # noqa: WPS110
        """Submit *func* to the theme pool with automatic error logging."""
        fut = self._executor.submit(func, *args, **kwargs)
        fut.add_done_callback(_log_future_exception)
        return fut

    def _analyze_theme(
        self,
        theme_id: str,
        name: str,
        records: Sequence[FeedbackRecord],
        sample_score: float,
        batch_tier: ConfidenceTier,
        breaker: CircuitBreaker,
    ) -> ThemeAnalysis:
        stats = score_theme(theme_id, [r.sentiment_score for r in records])
        tier = tier_for(sample_score)
        # insights never claim more than the whole batch supports
        cap_tier = stricter_tier(tier, batch_tier)

        if not records:
            return ThemeAnalysis(
                theme_id=theme_id,
                name=name,
                stats=stats,
                insights=ThemeInsights(),
                sample_score=sample_score,
                tier=tier,
                extraction=EXTRACTION_NONE,
            )

        try:
            candidates = self._guard.extract(theme_id, records, breaker)
        except CollaboratorUnavailable as exc:
            logger.warning("%s; using fallback insights", exc)
            reduced = reduce_score(sample_score)
            reduced_tier = tier_for(reduced)
            return ThemeAnalysis(
                theme_id=theme_id,
                name=name,
                stats=stats,
                insights=fallback_insights(
                    theme_id,
                    records,
                    stricter_tier(reduced_tier, batch_tier),
                    theme_name=name,
                ),
                sample_score=reduced,
                tier=reduced_tier,
                extraction=EXTRACTION_FALLBACK,
                degraded_reason=exc.reason,
            )

        return ThemeAnalysis(
            theme_id=theme_id,
            name=name,
            stats=stats,
            insights=aggregate_signals(theme_id, records, candidates, cap_tier),
            sample_score=sample_score,
            tier=tier,
        )

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """Analyse one batch. Never raises for bad data or collaborator failures."""
        summary = summarize(request.profiles)
        notes = quality_notes(summary)
        breaker = self._guard.new_breaker()

        records_by_theme: Dict[str, List[FeedbackRecord]] = {
            theme_id: [] for theme_id in request.theme_names
        }
        for record in request.records:
            records_by_theme.setdefault(record.theme_id, []).append(record)

        theme_ids = sorted(records_by_theme)
        sample_scores = theme_confidence_scores(
            records_by_theme,
            request.profiles,
            fallback=summary.average_confidence_score,
        )

        logger.info(
            "Analysing survey %s: %d record(s) across %d theme(s)",
            request.survey_id,
            len(request.records),
            len(theme_ids),
            extra={"survey_id": request.survey_id},
        )

        futures = {
            theme_id: self._submit(
                self._analyze_theme,
                theme_id,
                request.theme_names.get(theme_id, theme_id),
                records_by_theme[theme_id],
                sample_scores[theme_id],
                summary.tier,
                breaker,
            )
            for theme_id in theme_ids
        }
        themes = tuple(futures[theme_id].result() for theme_id in theme_ids)

        stats_by_theme = {t.theme_id: t.stats for t in themes}
        frictions = [insight for t in themes for insight in t.insights.frictions]
        record_texts = {r.id: r.text for r in request.records if r.text}

        root_causes = synthesize_root_causes(stats_by_theme, frictions, record_texts)
        candidates = suggest_interventions(
            root_causes, {t.theme_id: t.name for t in themes}
        )
        interventions = rank_interventions(candidates, root_causes)
        predictions = predict_impact(
            stats_by_theme,
            interventions,
            root_causes,
            {t.theme_id: t.sample_score for t in themes},
        )

        result = AnalysisResult(
            survey_id=request.survey_id,
            confidence=summary,
            quality_notes=tuple(notes),
            themes=themes,
            root_causes=tuple(root_causes),
            interventions=tuple(interventions),
            predictions=tuple(predictions),
        )
        if result.degraded_themes:
            logger.warning(
                "Survey %s: %d theme(s) used fallback insights: %s",
                request.survey_id,
                len(result.degraded_themes),
                ", ".join(result.degraded_themes),
            )
        return result
