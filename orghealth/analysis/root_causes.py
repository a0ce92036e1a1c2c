"""Cross-reference friction insights into ranked root causes."""
from __future__ import annotations

import logging
from collections import OrderedDict, defaultdict
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from orghealth import config
from orghealth.analysis.signals import normalize_label
from orghealth.exceptions import check_invariant
from orghealth.models import Insight, RootCause, ThemeStats

logger = logging.getLogger(__name__)


def cause_label(insight: Insight) -> str:
    """Return the label an insight is grouped under (cause hint or text)."""
    return insight.cause or insight.text


def impact_score(affected: int, response_count: int, health_index: int) -> float:
    """Weighted mix of reach and health deficiency, clamped to 0..100."""
    reach = affected / response_count * 100 if response_count else 0.0
    deficiency = 100 - health_index
    raw = config.ROOT_CAUSE_REACH_WEIGHT * reach + config.ROOT_CAUSE_HEALTH_WEIGHT * deficiency
    return round(max(0.0, min(100.0, raw)), 1)


def synthesize_root_causes(
    stats_by_theme: Mapping[str, ThemeStats],
    frictions: Sequence[Insight],
    record_texts: Optional[Mapping[str, str]] = None,
) -> List[RootCause]:
    """Group *frictions* by cause and rank the resulting root causes.

    Frictions are grouped per theme by their exact (normalised) cause label.
    Frictions for themes missing from *stats_by_theme* are ignored. A theme
    without frictions contributes nothing.
    """
    record_texts = record_texts or {}

    groups: "OrderedDict[Tuple[str, str], List[Insight]]" = OrderedDict()
    for insight in frictions:
        if insight.theme_id not in stats_by_theme:
            logger.warning("Ignoring friction %s for unknown theme %s", insight.id, insight.theme_id)
            continue
        key = (insight.theme_id, normalize_label(cause_label(insight)))
        groups.setdefault(key, []).append(insight)

    themes_by_label: Dict[str, Set[str]] = defaultdict(set)
    for theme_id, label in groups:
        themes_by_label[label].add(theme_id)

    per_theme_counter: Dict[str, int] = defaultdict(int)
    causes: List[RootCause] = []
    for (theme_id, label), insights in groups.items():
        stats = stats_by_theme[theme_id]
        response_count = stats.response_count

        evidence_ids: "OrderedDict[str, None]" = OrderedDict()
        for insight in insights:
            for evidence_id in insight.evidence_ids:
                evidence_ids.setdefault(evidence_id, None)

        frequency = min(sum(i.voice_count for i in insights), response_count)
        affected = max(len(evidence_ids), max(i.voice_count for i in insights))
        if not check_invariant(
            affected <= response_count,
            f"theme {theme_id}: affected_employees {affected} exceeds response_count {response_count}",
        ):
            affected = response_count

        evidence = tuple(
            record_texts.get(evidence_id) or evidence_id
            for evidence_id in list(evidence_ids)[: config.ROOT_CAUSE_MAX_EVIDENCE]
        )
        recommendations: List[str] = []
        for insight in insights:
            for rec in insight.recommendations:
                if rec not in recommendations:
                    recommendations.append(rec)

        per_theme_counter[theme_id] += 1
        causes.append(
            RootCause(
                id=f"{theme_id}-rc-{per_theme_counter[theme_id]}",
                theme_id=theme_id,
                cause=cause_label(insights[0]),
                frequency=frequency,
                impact_score=impact_score(affected, response_count, stats.health_index),
                affected_employees=affected,
                evidence=evidence,
                related_theme_ids=tuple(sorted(themes_by_label[label] - {theme_id})),
                recommendations=tuple(recommendations),
            )
        )

    causes.sort(key=lambda c: (-c.impact_score, -c.affected_employees))
    logger.info("Synthesized %d root cause(s) from %d friction insight(s)", len(causes), len(frictions))
    return causes
