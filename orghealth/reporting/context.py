"""Context dataclasses for rendering health reports.

:class:`ReportContext` holds every value the Markdown template
``orghealth/reporting/templates/report.md.j2`` expects. Building the context
is kept apart from rendering so the selection and formatting logic can be
tested without touching template strings.
"""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from datetime import datetime as _dt
from datetime import timezone as _tz
from typing import Any, Dict, List, Optional

from orghealth import config
from orghealth.models import HealthStatus
from orghealth.pipeline import AnalysisResult, ThemeAnalysis

__all__ = [
    "ThemeRow",
    "ReportContext",
    "build_report_context",
]

_STATUS_EMOJI = {
    HealthStatus.THRIVING: "🟢",
    HealthStatus.STABLE: "🔵",
    HealthStatus.EMERGING: "🟡",
    HealthStatus.FRICTION: "🟠",
    HealthStatus.CRITICAL: "🔴",
}


@dataclass(slots=True)
class ThemeRow:
    """One theme as displayed in the report."""

    theme_id: str
    name: str
    health_index: int
    health_status: str
    status_emoji: str
    responses: int
    polarization: str
    tier: str
    degraded: bool
    frictions: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)


@dataclass(slots=True)
class ReportContext:
    """Container with all fields used by the report template."""

    # Header & meta
    survey_id: str
    date: str  # ISO-8601 date string (UTC)

    # Sample confidence
    confidence_score: int
    confidence_tier: str
    total_sessions: int
    quality_concerns: List[Dict[str, Any]] = field(default_factory=list)
    quality_strengths: List[Dict[str, Any]] = field(default_factory=list)

    # Analysis outputs
    themes: List[ThemeRow] = field(default_factory=list)
    root_causes: List[Dict[str, Any]] = field(default_factory=list)
    interventions: List[Dict[str, Any]] = field(default_factory=list)
    quick_wins: List[Dict[str, Any]] = field(default_factory=list)
    predictions: List[Dict[str, Any]] = field(default_factory=list)
    degraded_themes: List[str] = field(default_factory=list)

    # Misc / versioning
    version: str = "1"

    def to_dict(self) -> Dict[str, Any]:  # noqa: D401 – simple helper
        """Return a *plain* ``dict`` (recursively) for Jinja rendering."""
        return asdict(self)


def _insight_line(text: str, agreement_pct: int, voice_count: int, confidence: int) -> str:
    return f"{text} ({agreement_pct}% · {voice_count} voice(s) · confidence {confidence}/5)"


def _theme_row(theme: ThemeAnalysis, max_each: int) -> ThemeRow:
    def _lines(insights) -> List[str]:
        return [
            _insight_line(i.text, i.agreement_pct, i.voice_count, i.confidence)
            for i in insights[:max_each]
        ]

    return ThemeRow(
        theme_id=theme.theme_id,
        name=theme.name,
        health_index=theme.stats.health_index,
        health_status=theme.stats.health_status.value,
        status_emoji=_STATUS_EMOJI[theme.stats.health_status],
        responses=theme.stats.response_count,
        polarization=theme.stats.polarization.level.value,
        tier=theme.tier.value,
        degraded=theme.degraded,
        frictions=_lines(theme.insights.frictions),
        strengths=_lines(theme.insights.strengths),
        patterns=_lines(theme.insights.patterns),
    )


def build_report_context(
    result: AnalysisResult, *, date: Optional[str] = None
) -> ReportContext:
    """Convert an :class:`AnalysisResult` into a :class:`ReportContext`.

    Themes are listed worst health first so the report opens on what needs
    attention. *date* defaults to today (UTC).
    """
    names = {t.theme_id: t.name for t in result.themes}
    themes = sorted(result.themes, key=lambda t: (t.stats.health_index, t.theme_id))

    notes = [n.to_dict() for n in result.quality_notes]

    interventions = []
    for intervention in result.interventions[: config.MAX_INTERVENTIONS]:
        row = intervention.to_dict()
        row["theme_names"] = [names.get(t, t) for t in intervention.theme_ids]
        interventions.append(row)

    predictions = []
    for prediction in result.predictions:
        row = prediction.to_dict()
        row["theme_name"] = names.get(prediction.theme_id, prediction.theme_id)
        predictions.append(row)

    root_causes = []
    for cause in result.root_causes:
        row = cause.to_dict()
        row["theme_name"] = names.get(cause.theme_id, cause.theme_id)
        root_causes.append(row)

    return ReportContext(
        survey_id=result.survey_id,
        date=date or _dt.now(tz=_tz.utc).strftime("%Y-%m-%d"),
        confidence_score=result.confidence.average_confidence_score,
        confidence_tier=result.confidence.tier.value,
        total_sessions=result.confidence.total_sessions,
        quality_concerns=[n for n in notes if n["kind"] == "concern"],
        quality_strengths=[n for n in notes if n["kind"] == "strength"],
        themes=[_theme_row(t, config.MAX_INSIGHTS_EACH) for t in themes],
        root_causes=root_causes,
        interventions=interventions,
        quick_wins=[i.to_dict() for i in result.quick_wins],
        predictions=predictions,
        degraded_themes=[names.get(t, t) for t in result.degraded_themes],
        version=os.getenv("REPORT_VERSION", "0.1"),
    )
