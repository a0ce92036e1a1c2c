"""Configuration constants for the health scoring engine.

Values come from environment variables (optionally via a ``.env`` file) so
thresholds can be tuned per deployment without code changes.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str):
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else None


# Logging level used by the CLI bootstrap
LOG_LEVEL: str = os.getenv("ORGHEALTH_LOG_LEVEL", "INFO")

# Raise on invariant violations instead of clamping (development / CI)
STRICT_INVARIANTS: bool = _env_bool("ORGHEALTH_STRICT_INVARIANTS", "false")

# ---------------------------------------------------------------------------
# Theme health index buckets (lower bounds, 0–100)
# ---------------------------------------------------------------------------
THRIVING_MIN: int = int(os.getenv("HEALTH_THRIVING_MIN", "85"))
STABLE_MIN: int = int(os.getenv("HEALTH_STABLE_MIN", "70"))
EMERGING_MIN: int = int(os.getenv("HEALTH_EMERGING_MIN", "50"))
FRICTION_MIN: int = int(os.getenv("HEALTH_FRICTION_MIN", "30"))

# Score bands used for polarization detection
POLARIZATION_LOW_BAND: float = 0.35
POLARIZATION_HIGH_BAND: float = 0.65
POLARIZATION_HIGH: float = float(os.getenv("POLARIZATION_HIGH", "0.4"))
POLARIZATION_MEDIUM: float = float(os.getenv("POLARIZATION_MEDIUM", "0.2"))
POLARIZATION_MIN_SAMPLE: int = 3

# ---------------------------------------------------------------------------
# Sample confidence
# ---------------------------------------------------------------------------
ENGAGEMENT_MIN_EXCHANGES: int = int(os.getenv("CONFIDENCE_MIN_EXCHANGES", "8"))
DEPTH_MIN_THEMES: int = int(os.getenv("CONFIDENCE_MIN_THEMES", "3"))

# Weights must sum to 100
ENGAGEMENT_WEIGHT: int = 30
DEPTH_WEIGHT: int = 25
COMPLETION_WEIGHT: int = 30
MOOD_WEIGHT: int = 15

HIGH_CONFIDENCE_MIN: int = 75
MEDIUM_CONFIDENCE_MIN: int = 50

# Share of low-confidence sessions (%) above which the sample is flagged
LOW_CONFIDENCE_ALERT_PCT: float = float(os.getenv("LOW_CONFIDENCE_ALERT_PCT", "30"))
COMPLETION_ALERT_PCT: float = float(os.getenv("COMPLETION_ALERT_PCT", "70"))
MOOD_TRACKING_ALERT_PCT: float = float(os.getenv("MOOD_TRACKING_ALERT_PCT", "50"))

# ---------------------------------------------------------------------------
# Signal aggregation
# ---------------------------------------------------------------------------
FALLBACK_CONFIDENCE: int = 2
FALLBACK_MAX_EVIDENCE: int = 3

# ---------------------------------------------------------------------------
# Root causes & interventions
# ---------------------------------------------------------------------------
ROOT_CAUSE_REACH_WEIGHT: float = float(os.getenv("ROOT_CAUSE_REACH_WEIGHT", "0.6"))
ROOT_CAUSE_HEALTH_WEIGHT: float = float(os.getenv("ROOT_CAUSE_HEALTH_WEIGHT", "0.4"))
ROOT_CAUSE_MAX_EVIDENCE: int = 5

CRITICAL_IMPACT_MIN: float = 70.0
HIGH_IMPACT_MIN: float = 50.0
MEDIUM_IMPACT_MIN: float = 30.0
# Root causes must affect at least this many employees to be "critical"
CRITICAL_AFFECTED_FLOOR: int = int(os.getenv("CRITICAL_AFFECTED_FLOOR", "5"))

# Absolute quick-win impact threshold; unset means top tertile of the batch
QUICK_WIN_MIN_IMPACT = _env_optional_float("QUICK_WIN_MIN_IMPACT")

# ---------------------------------------------------------------------------
# Impact prediction
# ---------------------------------------------------------------------------
# Each additional intervention on a theme contributes DECAY**n of its estimate
IMPACT_DECAY: float = float(os.getenv("IMPACT_DECAY", "0.5"))

# ---------------------------------------------------------------------------
# Concurrency & collaborator
# ---------------------------------------------------------------------------
MAX_WORKERS: int = int(os.getenv("ORGHEALTH_MAX_WORKERS", "8"))
EXTRACT_TIMEOUT_SECONDS: float = float(os.getenv("EXTRACT_TIMEOUT_SECONDS", "30"))
BREAKER_FAILURE_THRESHOLD: int = int(os.getenv("BREAKER_FAILURE_THRESHOLD", "3"))
BREAKER_RECOVERY_SECONDS: float = float(os.getenv("BREAKER_RECOVERY_SECONDS", "60"))

OPENAI_MODEL: str = os.getenv("SIGNAL_MODEL", "gpt-4.1")

# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
MAX_INSIGHTS_EACH: int = int(os.getenv("REPORT_MAX_INSIGHTS_EACH", "5"))
MAX_INTERVENTIONS: int = int(os.getenv("REPORT_MAX_INTERVENTIONS", "10"))
SLACK_MESSAGE_LIMIT: int = 2800
