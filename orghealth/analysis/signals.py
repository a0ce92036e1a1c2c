"""Fold candidate signals into deduplicated, weighted insights.

Candidate signals come from the NLP collaborator (see
:mod:`orghealth.analysis.extractor`). When the collaborator is unavailable,
:func:`fallback_insights` derives coarse insights by counting sentiment labels
so the pipeline always has something to show.
"""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from orghealth import config
from orghealth.analysis.confidence import insight_confidence_cap
from orghealth.exceptions import check_invariant
from orghealth.models import (
    CandidateSignal,
    ConfidenceTier,
    FeedbackRecord,
    Insight,
    InsightBucket,
    SentimentLabel,
    ThemeInsights,
)

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")


def normalize_label(text: str) -> str:
    """Casefold *text* and collapse whitespace so labels compare equal."""
    return _WS_RE.sub(" ", text.strip().casefold()).rstrip(".!")


class _Draft:
    """Mutable accumulator for one merged insight (internal only)."""

    __slots__ = ("bucket", "text", "evidence", "confidence", "cause", "recommendations")

    def __init__(self, bucket: InsightBucket, signal: CandidateSignal) -> None:
        self.bucket = bucket
        self.text = signal.text
        self.evidence: "OrderedDict[str, None]" = OrderedDict()
        self.confidence = signal.confidence
        self.cause: Optional[str] = signal.cause
        self.recommendations: List[str] = []

    def absorb(self, signal: CandidateSignal, valid_ids: Sequence[str]) -> None:
        for evidence_id in valid_ids:
            self.evidence.setdefault(evidence_id, None)
        self.confidence = max(self.confidence, signal.confidence)
        if not self.cause and signal.cause:
            self.cause = signal.cause
        if signal.recommendation and signal.recommendation not in self.recommendations:
            self.recommendations.append(signal.recommendation)


def _agreement(voice_count: int, response_count: int) -> int:
    if not response_count:
        return 0
    return round(voice_count / response_count * 100)


def _finalize(
    theme_id: str,
    drafts: Sequence[_Draft],
    bucket: InsightBucket,
    response_count: int,
    cap: int,
) -> Tuple[Insight, ...]:
    rows = []
    for draft in drafts:
        voice_count = len(draft.evidence)
        if not check_invariant(
            voice_count <= response_count,
            f"theme {theme_id}: voice_count {voice_count} exceeds response_count {response_count}",
        ):
            voice_count = response_count
        rows.append((draft, voice_count, _agreement(voice_count, response_count)))

    # sorted() is stable, so equal rows keep insertion order
    rows = sorted(rows, key=lambda row: (-row[1], -row[2]))

    return tuple(
        Insight(
            id=f"{theme_id}-{bucket.value}-{index}",
            theme_id=theme_id,
            bucket=bucket,
            text=draft.text,
            agreement_pct=agreement,
            voice_count=voice_count,
            confidence=max(1, min(draft.confidence, cap)),
            evidence_ids=tuple(draft.evidence),
            cause=draft.cause,
            recommendations=tuple(draft.recommendations),
        )
        for index, (draft, voice_count, agreement) in enumerate(rows, start=1)
    )


def aggregate_signals(
    theme_id: str,
    records: Sequence[FeedbackRecord],
    candidates: Sequence[CandidateSignal],
    tier: ConfidenceTier,
) -> ThemeInsights:
    """Merge *candidates* for *theme_id* into :class:`ThemeInsights`.

    Candidates sharing a ``group`` (or, without one, the same normalised text)
    within a bucket collapse into one insight whose evidence is the union of
    theirs. Evidence ids that do not belong to this theme are ignored and
    candidates left without evidence are dropped.
    """
    record_ids = {r.id for r in records}
    response_count = len(records)
    cap = insight_confidence_cap(tier)

    drafts: Dict[InsightBucket, "OrderedDict[str, _Draft]"] = {
        bucket: OrderedDict() for bucket in InsightBucket
    }
    dropped = 0
    for signal in candidates:
        valid_ids = [e for e in signal.evidence_ids if e in record_ids]
        if not signal.text or not valid_ids:
            dropped += 1
            continue
        bucket = InsightBucket.from_polarity(signal.polarity)
        key = normalize_label(signal.group) if signal.group else normalize_label(signal.text)
        draft = drafts[bucket].get(key)
        if draft is None:
            draft = drafts[bucket][key] = _Draft(bucket, signal)
        draft.absorb(signal, valid_ids)

    if dropped:
        logger.debug("theme %s: dropped %d candidate(s) without valid evidence", theme_id, dropped)

    return ThemeInsights(
        frictions=_finalize(
            theme_id, list(drafts[InsightBucket.FRICTION].values()),
            InsightBucket.FRICTION, response_count, cap,
        ),
        strengths=_finalize(
            theme_id, list(drafts[InsightBucket.STRENGTH].values()),
            InsightBucket.STRENGTH, response_count, cap,
        ),
        patterns=_finalize(
            theme_id, list(drafts[InsightBucket.PATTERN].values()),
            InsightBucket.PATTERN, response_count, cap,
        ),
    )


_FALLBACK_TEMPLATES = {
    InsightBucket.FRICTION: "{n} response(s) expressed concern about {theme}",
    InsightBucket.STRENGTH: "{n} response(s) showed satisfaction with {theme}",
    InsightBucket.PATTERN: "{n} response(s) were neutral or mixed about {theme}",
}

_LABEL_BUCKETS = {
    SentimentLabel.NEGATIVE: InsightBucket.FRICTION,
    SentimentLabel.POSITIVE: InsightBucket.STRENGTH,
    SentimentLabel.NEUTRAL: InsightBucket.PATTERN,
    SentimentLabel.MIXED: InsightBucket.PATTERN,
}


def fallback_insights(
    theme_id: str,
    records: Sequence[FeedbackRecord],
    tier: ConfidenceTier,
    theme_name: Optional[str] = None,
) -> ThemeInsights:
    """Coarse insights counted from ``sentiment_label`` alone.

    Used when the signal extractor is unavailable. Every non-empty sentiment
    bucket yields one insight with confidence at most 2 and at most three
    evidence ids.
    """
    name = (theme_name or theme_id).lower()
    response_count = len(records)
    confidence = min(config.FALLBACK_CONFIDENCE, insight_confidence_cap(tier))

    grouped: Dict[InsightBucket, List[FeedbackRecord]] = {bucket: [] for bucket in InsightBucket}
    for record in records:
        grouped[_LABEL_BUCKETS[record.sentiment_label]].append(record)

    def _build(bucket: InsightBucket) -> Tuple[Insight, ...]:
        matching = grouped[bucket]
        if not matching:
            return ()
        count = len(matching)
        return (
            Insight(
                id=f"{theme_id}-{bucket.value}-1",
                theme_id=theme_id,
                bucket=bucket,
                text=_FALLBACK_TEMPLATES[bucket].format(n=count, theme=name),
                agreement_pct=_agreement(count, response_count),
                voice_count=count,
                confidence=confidence,
                evidence_ids=tuple(r.id for r in matching[: config.FALLBACK_MAX_EVIDENCE]),
            ),
        )

    return ThemeInsights(
        frictions=_build(InsightBucket.FRICTION),
        strengths=_build(InsightBucket.STRENGTH),
        patterns=_build(InsightBucket.PATTERN),
    )
