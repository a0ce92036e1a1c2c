"""Predict post-intervention sentiment per theme."""
from __future__ import annotations

import logging
import statistics
from collections import OrderedDict
from typing import Dict, List, Mapping, Sequence

from orghealth import config
from orghealth.models import ImpactPrediction, Intervention, RootCause, ThemeStats

logger = logging.getLogger(__name__)

# Confidence components (sum to 100)
_CORROBORATION_POINTS = 30
_SAMPLE_WEIGHT = 0.5
_TIGHTNESS_POINTS = 20
_CORROBORATION_CAP = 3


def predicted_uplift(impacts: Sequence[float]) -> float:
    """Sum *impacts* with diminishing returns (largest first)."""
    ordered = sorted(impacts, reverse=True)
    return sum(impact * config.IMPACT_DECAY ** n for n, impact in enumerate(ordered))


def prediction_confidence(
    intervention_count: int,
    sample_score: float,
    root_cause_impacts: Sequence[float],
) -> int:
    """Confidence (0–100) in a theme's prediction.

    Grows with corroborating interventions and with the sample confidence
    score, and shrinks as contributing root-cause impact scores spread out.
    """
    corroboration = min(intervention_count, _CORROBORATION_CAP) / _CORROBORATION_CAP
    spread = statistics.pstdev(root_cause_impacts) if len(root_cause_impacts) > 1 else 0.0
    tightness = 1 - min(spread / 50, 1.0)
    sample = max(0.0, min(100.0, sample_score))
    raw = (
        corroboration * _CORROBORATION_POINTS
        + sample * _SAMPLE_WEIGHT
        + tightness * _TIGHTNESS_POINTS
    )
    return int(round(max(0.0, min(100.0, raw))))


def predict_impact(
    stats_by_theme: Mapping[str, ThemeStats],
    interventions: Sequence[Intervention],
    root_causes: Sequence[RootCause],
    sample_scores: Mapping[str, float],
) -> List[ImpactPrediction]:
    """Return one :class:`ImpactPrediction` per theme with interventions.

    *sample_scores* holds the per-theme sample confidence score (0–100);
    missing themes count as 0.
    """
    causes_by_id: Dict[str, RootCause] = {c.id: c for c in root_causes}

    by_theme: "OrderedDict[str, List[Intervention]]" = OrderedDict()
    for intervention in interventions:
        for theme_id in intervention.theme_ids:
            by_theme.setdefault(theme_id, []).append(intervention)

    predictions: List[ImpactPrediction] = []
    for theme_id in sorted(by_theme):
        stats = stats_by_theme.get(theme_id)
        if stats is None:
            logger.warning("No statistics for theme %s; skipping prediction", theme_id)
            continue
        targeted = by_theme[theme_id]
        current = stats.current_sentiment
        predicted = min(100.0, current + predicted_uplift([i.estimated_impact for i in targeted]))

        impacts = [
            causes_by_id[rc_id].impact_score
            for rc_id in sorted({rc for i in targeted for rc in i.root_cause_ids})
            if rc_id in causes_by_id and causes_by_id[rc_id].theme_id == theme_id
        ]
        predictions.append(
            ImpactPrediction(
                theme_id=theme_id,
                current_sentiment=current,
                predicted_sentiment=max(0.0, predicted),
                confidence=prediction_confidence(
                    len(targeted), sample_scores.get(theme_id, 0.0), impacts
                ),
                intervention_ids=tuple(i.id for i in targeted),
            )
        )

    predictions.sort(key=lambda p: (-p.improvement, p.theme_id))
    return predictions
