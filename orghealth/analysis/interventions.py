"""Intervention suggestion and ranking.

:func:`suggest_interventions` proposes candidates from a small rule-based
playbook plus any recommendation hints the signal extractor attached to the
root causes. :func:`rank_interventions` only scores and classifies: priority,
quick-win flag and final ordering.
"""
from __future__ import annotations

import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from orghealth import config
from orghealth.exceptions import check_invariant
from orghealth.models import (
    EffortLevel,
    Intervention,
    InterventionCandidate,
    Priority,
    RootCause,
)

logger = logging.getLogger(__name__)

_QUICK_EFFORT = (EffortLevel.VERY_LOW, EffortLevel.LOW)


@dataclass(frozen=True)
class _Play:
    """Playbook entry matched on theme name and (optionally) cause keywords."""

    theme_keywords: Tuple[str, ...]
    cause_keywords: Tuple[str, ...]
    title: str
    description: str
    estimated_impact: float
    effort_level: EffortLevel
    timeline: str
    action_steps: Tuple[str, ...]
    success_metrics: Tuple[str, ...]

    def matches_theme(self, theme_name: str) -> bool:
        return not self.theme_keywords or any(k in theme_name for k in self.theme_keywords)

    def matching_causes(self, causes: Sequence[RootCause]) -> List[RootCause]:
        if not self.cause_keywords:
            return list(causes)
        return [c for c in causes if any(k in c.cause.lower() for k in self.cause_keywords)]


_PLAYBOOK: Tuple[_Play, ...] = (
    _Play(
        theme_keywords=("work-life", "balance"),
        cause_keywords=("overload", "hours", "overtime", "workload"),
        title="Implement Flexible Work Hours Policy",
        description="Create a flexible work hours policy to address work-life balance concerns.",
        estimated_impact=15,
        effort_level=EffortLevel.MEDIUM,
        timeline="3-4 weeks",
        action_steps=(
            "Draft flexible work hours policy document",
            "Review with legal and HR teams",
            "Announce policy to all employees",
            "Schedule check-in after 1 month",
        ),
        success_metrics=(
            "Reduction in work-life balance concerns",
            "Increase in positive sentiment for the theme",
        ),
    ),
    _Play(
        theme_keywords=("work-life", "balance"),
        cause_keywords=("after hours", "after-hours", "evening", "weekend"),
        title="Establish 'No After-Hours Communication' Policy",
        description="Set clear boundaries for after-hours communication to reduce stress.",
        estimated_impact=12,
        effort_level=EffortLevel.LOW,
        timeline="1-2 weeks",
        action_steps=(
            "Draft communication policy",
            "Get leadership buy-in",
            "Set expectations with managers",
        ),
        success_metrics=("Reduction in after-hours messages",),
    ),
    _Play(
        theme_keywords=("career", "growth", "development"),
        cause_keywords=("stuck", "stagnant", "dead end", "promotion"),
        title="Launch Career Development Program",
        description="Create structured career paths and a mentorship programme.",
        estimated_impact=20,
        effort_level=EffortLevel.HIGH,
        timeline="6-8 weeks",
        action_steps=(
            "Define career paths for each role",
            "Create mentorship matching program",
            "Launch pilot program",
            "Gather feedback and iterate",
        ),
        success_metrics=(
            "Employees enrolled in mentorship",
            "Internal promotion rate",
        ),
    ),
    _Play(
        theme_keywords=("career", "growth", "development"),
        cause_keywords=(),
        title="Implement Quarterly Career Check-ins",
        description="Schedule regular one-on-ones focused on career goals.",
        estimated_impact=10,
        effort_level=EffortLevel.LOW,
        timeline="2 weeks",
        action_steps=(
            "Create career check-in template",
            "Train managers on conducting check-ins",
            "Schedule first round of check-ins",
        ),
        success_metrics=("Completion rate of career check-ins",),
    ),
    _Play(
        theme_keywords=("communication", "transparency"),
        cause_keywords=(),
        title="Improve Communication Transparency",
        description="Establish regular communication channels and transparent updates.",
        estimated_impact=15,
        effort_level=EffortLevel.MEDIUM,
        timeline="3-4 weeks",
        action_steps=(
            "Create monthly all-hands schedule",
            "Publish decision-making guidelines",
            "Train leadership on transparent communication",
        ),
        success_metrics=("Sentiment improvement in communication theme",),
    ),
    _Play(
        theme_keywords=("team", "collaboration"),
        cause_keywords=("silo", "isolation"),
        title="Break Down Team Silos",
        description="Create cross-functional projects and shared channels.",
        estimated_impact=18,
        effort_level=EffortLevel.MEDIUM,
        timeline="4-6 weeks",
        action_steps=(
            "Identify cross-functional opportunities",
            "Create cross-team project groups",
            "Set up shared communication channels",
        ),
        success_metrics=("Number of cross-functional projects",),
    ),
    _Play(
        theme_keywords=(),
        cause_keywords=("meeting",),
        title="Implement Meeting-Free Fridays",
        description="Designate one day a week as meeting-free to reduce meeting overload.",
        estimated_impact=8,
        effort_level=EffortLevel.VERY_LOW,
        timeline="1 week",
        action_steps=("Announce meeting-free day", "Move recurring meetings"),
        success_metrics=("Fewer meeting-related concerns",),
    ),
)


def _hint_impact(cause: RootCause) -> float:
    return round(max(3.0, min(20.0, cause.impact_score / 5)), 1)


def suggest_interventions(
    root_causes: Sequence[RootCause],
    theme_names: Optional[Mapping[str, str]] = None,
) -> List[InterventionCandidate]:
    """Propose at least one candidate intervention for every root cause."""
    theme_names = theme_names or {}
    by_theme: "OrderedDict[str, List[RootCause]]" = OrderedDict()
    for cause in root_causes:
        by_theme.setdefault(cause.theme_id, []).append(cause)

    candidates: List[InterventionCandidate] = []
    for theme_id in sorted(by_theme):
        causes = by_theme[theme_id]
        name = theme_names.get(theme_id, theme_id)
        lowered = name.lower()
        covered: Set[str] = set()
        themed: List[InterventionCandidate] = []

        for play in _PLAYBOOK:
            if not play.matches_theme(lowered):
                continue
            matched = play.matching_causes(causes)
            if not matched:
                continue
            covered.update(c.id for c in matched)
            themed.append(
                InterventionCandidate(
                    title=play.title,
                    root_cause_ids=tuple(c.id for c in matched),
                    estimated_impact=play.estimated_impact,
                    effort_level=play.effort_level,
                    timeline=play.timeline,
                    description=play.description,
                    action_steps=play.action_steps,
                    success_metrics=play.success_metrics,
                )
            )

        for cause in causes:
            for hint in cause.recommendations:
                covered.add(cause.id)
                themed.append(
                    InterventionCandidate(
                        title=hint,
                        root_cause_ids=(cause.id,),
                        estimated_impact=_hint_impact(cause),
                        effort_level=EffortLevel.MEDIUM,
                        timeline="2-4 weeks",
                        description=f"Suggested response to: {cause.cause}",
                        success_metrics=(f"Sentiment improvement in {name}",),
                    )
                )

        uncovered = [c for c in causes if c.id not in covered]
        if uncovered:
            top = max(uncovered, key=lambda c: c.impact_score)
            themed.append(
                InterventionCandidate(
                    title=f"Address {name} Concerns",
                    root_cause_ids=tuple(c.id for c in uncovered),
                    estimated_impact=_hint_impact(top),
                    effort_level=EffortLevel.MEDIUM,
                    timeline="4-6 weeks",
                    description=f"Take action to improve employee sentiment in {name}.",
                    action_steps=(
                        "Conduct focus group with affected employees",
                        "Identify specific pain points",
                        "Develop and implement action plan",
                        "Monitor and adjust",
                    ),
                    success_metrics=(
                        f"Sentiment improvement in {name}",
                        "Reduction in negative mentions",
                    ),
                )
            )

        for index, candidate in enumerate(themed, start=1):
            candidates.append(_with_id(candidate, f"{theme_id}-iv-{index}"))

    return candidates


def _with_id(candidate: InterventionCandidate, fallback_id: str) -> InterventionCandidate:
    if candidate.id:
        return candidate
    return replace(candidate, id=fallback_id)


def priority_for(impact: float, affected: int) -> Priority:
    if impact >= config.CRITICAL_IMPACT_MIN and affected >= config.CRITICAL_AFFECTED_FLOOR:
        return Priority.CRITICAL
    if impact >= config.HIGH_IMPACT_MIN:
        return Priority.HIGH
    if impact >= config.MEDIUM_IMPACT_MIN:
        return Priority.MEDIUM
    return Priority.LOW


def quick_win_threshold(impacts: Sequence[float]) -> float:
    """Lowest ``estimated_impact`` in the batch's top tertile.

    ``QUICK_WIN_MIN_IMPACT`` overrides the relative threshold with an
    absolute one. An empty batch has no quick wins.
    """
    if config.QUICK_WIN_MIN_IMPACT is not None:
        return config.QUICK_WIN_MIN_IMPACT
    if not impacts:
        return float("inf")
    ordered = sorted(impacts)
    return ordered[(2 * len(ordered)) // 3]


def rank_interventions(
    candidates: Sequence[InterventionCandidate],
    root_causes: Sequence[RootCause],
) -> List[Intervention]:
    """Score, classify and order *candidates*.

    References to root causes outside *root_causes* are invariant
    violations; such ids are stripped and a candidate left with no valid
    reference is discarded.
    """
    by_id: Dict[str, RootCause] = {c.id: c for c in root_causes}

    valid: List[Tuple[InterventionCandidate, List[RootCause]]] = []
    for candidate in candidates:
        refs = [by_id[i] for i in candidate.root_cause_ids if i in by_id]
        check_invariant(
            len(refs) == len(candidate.root_cause_ids),
            f"intervention {candidate.id or candidate.title!r} references unknown root cause(s)",
            root_cause_ids=list(candidate.root_cause_ids),
        )
        if refs:
            valid.append((candidate, refs))

    threshold = quick_win_threshold([c.estimated_impact for c, _ in valid])
    counters: Dict[str, int] = defaultdict(int)

    ranked: List[Intervention] = []
    for candidate, refs in valid:
        priority = max(
            (priority_for(r.impact_score, r.affected_employees) for r in refs),
            key=lambda p: p.rank,
        )
        theme_ids = tuple(sorted({r.theme_id for r in refs}))
        if candidate.id:
            intervention_id = candidate.id
        else:
            counters[theme_ids[0]] += 1
            intervention_id = f"{theme_ids[0]}-iv-x{counters[theme_ids[0]]}"
        ranked.append(
            Intervention(
                id=intervention_id,
                title=candidate.title,
                theme_ids=theme_ids,
                root_cause_ids=tuple(r.id for r in refs),
                estimated_impact=float(candidate.estimated_impact),
                effort_level=candidate.effort_level,
                priority=priority,
                quick_win=(
                    candidate.effort_level in _QUICK_EFFORT
                    and candidate.estimated_impact >= threshold
                ),
                timeline=candidate.timeline,
                description=candidate.description,
                action_steps=candidate.action_steps,
                success_metrics=candidate.success_metrics,
            )
        )

    ranked.sort(key=lambda i: (-i.priority.rank, -i.estimated_impact, not i.quick_win))
    logger.info(
        "Ranked %d intervention(s); %d quick win(s) at threshold %.1f",
        len(ranked),
        sum(1 for i in ranked if i.quick_win),
        threshold,
    )
    return ranked
