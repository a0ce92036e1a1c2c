"""Theme Health Index (THI) statistics.

Pure math, no I/O. Sentiment scores arrive on a 0–1 scale and are reduced to:

* *intensity*  – standard deviation normalised to 0..1 (max stddev of a 0–1
  variable is 0.5), i.e. how strongly opinions diverge;
* *direction*  – mean sentiment rescaled to -1..1;
* *health index* – ``round(clamp(intensity * direction * 50 + 50, 0, 100))``,
  or ``direction * 50 + 50`` when every score is identical;
* *polarization* – whether the theme is split into opposing camps.

High variance pulls the index back towards 50: disagreement undermines a
confident read in either direction.
"""
from __future__ import annotations

import logging
import statistics
from typing import Sequence

from orghealth import config
from orghealth.exceptions import check_invariant
from orghealth.models import HealthStatus, Polarization, PolarizationLevel, ThemeStats

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def calculate_intensity(scores: Sequence[float]) -> float:
    """Return normalised dispersion of *scores* (0 for empty input)."""
    if not scores:
        return 0.0
    return min(statistics.pstdev(scores) / 0.5, 1.0)


def calculate_direction(scores: Sequence[float]) -> float:
    """Return mean sentiment rescaled from 0..1 to -1..1 (0 for empty input)."""
    if not scores:
        return 0.0
    return statistics.fmean((s - 0.5) * 2 for s in scores)


def calculate_health_index(intensity: float, direction: float) -> int:
    """Map intensity and direction to the 0..100 index.

    A unanimous theme (zero variance) is scored on direction alone.
    """
    weight = intensity if intensity > 0 else 1.0
    raw = weight * direction * 50 + 50
    return round(_clamp(raw, 0, 100))


def health_status_for(health_index: int) -> HealthStatus:
    if health_index >= config.THRIVING_MIN:
        return HealthStatus.THRIVING
    if health_index >= config.STABLE_MIN:
        return HealthStatus.STABLE
    if health_index >= config.EMERGING_MIN:
        return HealthStatus.EMERGING
    if health_index >= config.FRICTION_MIN:
        return HealthStatus.FRICTION
    return HealthStatus.CRITICAL


def detect_polarization(scores: Sequence[float]) -> Polarization:
    """Detect a bimodal split by comparing both extremes against the middle.

    Fewer than three scores is not enough to call a split and yields
    ``low`` / ``0``.
    """
    if len(scores) < config.POLARIZATION_MIN_SAMPLE:
        return Polarization(PolarizationLevel.LOW, 0.0)

    low = sum(1 for s in scores if s < config.POLARIZATION_LOW_BAND)
    high = sum(1 for s in scores if s > config.POLARIZATION_HIGH_BAND)
    total = len(scores)

    extreme_ratio = (low + high) / total
    bimodal_score = min(low, high) / total
    score = bimodal_score * 2 * extreme_ratio

    if score > config.POLARIZATION_HIGH:
        level = PolarizationLevel.HIGH
    elif score > config.POLARIZATION_MEDIUM:
        level = PolarizationLevel.MEDIUM
    else:
        level = PolarizationLevel.LOW
    return Polarization(level, score)


def score_theme(theme_id: str, scores: Sequence[float]) -> ThemeStats:
    """Compute :class:`ThemeStats` for one theme.

    Never raises: an empty score list yields the neutral result
    (intensity 0, direction 0, index 50, ``emerging``).
    """
    scores = list(scores)
    intensity = calculate_intensity(scores)
    direction = calculate_direction(scores)
    health_index = calculate_health_index(intensity, direction)

    if not check_invariant(
        0.0 <= intensity <= 1.0 and -1.0 <= direction <= 1.0,
        f"theme {theme_id}: intensity/direction out of bounds",
        intensity=intensity,
        direction=direction,
    ):
        intensity = _clamp(intensity, 0.0, 1.0)
        direction = _clamp(direction, -1.0, 1.0)
        health_index = calculate_health_index(intensity, direction)

    stats = ThemeStats(
        theme_id=theme_id,
        intensity=intensity,
        direction=direction,
        health_index=health_index,
        health_status=health_status_for(health_index),
        polarization=detect_polarization(scores),
        response_count=len(scores),
    )
    logger.debug(
        "theme %s: THI=%d intensity=%.2f direction=%.2f polarization=%s",
        theme_id,
        stats.health_index,
        stats.intensity,
        stats.direction,
        stats.polarization.level.value,
    )
    return stats
