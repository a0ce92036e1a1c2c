"""Candidate-signal extraction (the NLP collaborator).

Extractors turn one theme's responses into :class:`CandidateSignal` objects
for :func:`orghealth.analysis.signals.aggregate_signals`. They are expected to
raise on any failure; :class:`GuardedExtractor` bounds each call with a
timeout and a circuit breaker and converts every failure into
:class:`CollaboratorUnavailable` so the pipeline can fall back.
"""
from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from orghealth import config
from orghealth.circuit_breaker import CircuitBreaker
from orghealth.exceptions import CollaboratorUnavailable
from orghealth.models import CandidateSignal, FeedbackRecord
from orghealth.openai_client import chat_completion, reply_text

logger = logging.getLogger(__name__)

_BUCKET_KEYS = {"frictions": "negative", "strengths": "positive", "patterns": "neutral"}


class SignalExtractor(Protocol):
    def extract_signals(
        self, theme_id: str, responses: Sequence[FeedbackRecord]
    ) -> List[CandidateSignal]:
        ...


# ---------------------------------------------------------------------------
# OpenAI-backed extractor
# ---------------------------------------------------------------------------

# Greedy match of the outermost JSON object (robust to prose around it)
_RESPONSE_RE = re.compile(r"\{[\s\S]*\}")

_PROMPT_SYSTEM = (
    "You are an organisational psychologist analysing anonymous employee "
    "feedback about a single theme. Identify frictions (problems), strengths "
    "and neutral patterns. Respond ONLY with a minified JSON object with keys "
    '"frictions", "strengths" and "patterns". Each is an array of objects with '
    'keys "text" (one sentence), "evidence_ids" (ids of the responses that '
    'support it), "confidence" (1-5), "group" (short label shared by signals '
    'that describe the same idea), "cause" (short underlying cause, frictions '
    'only) and "recommendation" (optional short action). Use only response ids '
    "that appear in the input."
)


def _parse_response(content: str) -> List[CandidateSignal]:
    """Return candidate signals from the raw model *content* string."""

    match = _RESPONSE_RE.search(content)
    if not match:
        raise ValueError("Model response did not contain a JSON object")

    try:
        data: Any = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError("Failed to parse JSON from model response") from exc

    if not isinstance(data, dict):
        raise ValueError("JSON payload was not an object")

    signals: List[CandidateSignal] = []
    for key, polarity in _BUCKET_KEYS.items():
        items = data.get(key) or []
        if not isinstance(items, list):
            raise ValueError(f"'{key}' was not an array")
        for item in items:
            if not isinstance(item, dict):
                raise ValueError(f"'{key}' entries must be objects")
            signals.append(CandidateSignal.from_dict(item, polarity=polarity))
    return signals


class OpenAISignalExtractor:
    """Ask an OpenAI chat model for candidate signals."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        temperature: float = 0.0,
        timeout: Optional[float] = None,
        theme_names: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.theme_names = dict(theme_names or {})

    def extract_signals(
        self, theme_id: str, responses: Sequence[FeedbackRecord]
    ) -> List[CandidateSignal]:
        if not responses:
            return []

        name = self.theme_names.get(theme_id, theme_id)
        joined = "\n".join(
            f"- [{r.id}] ({r.sentiment_label.value}) {r.text}" for r in responses
        )
        user_prompt = (
            f"Theme: {name}\n\nAnalyse the following responses and return ONLY the "
            "JSON object described above.\n\nResponses:\n" + joined
        )
        messages = [
            {"role": "system", "content": _PROMPT_SYSTEM},
            {"role": "user", "content": user_prompt},
        ]

        response = chat_completion(
            messages,
            model=self.model,
            timeout=self.timeout,
            temperature=self.temperature,
        )
        signals = _parse_response(reply_text(response))
        logger.debug("theme %s: model returned %d candidate signal(s)", theme_id, len(signals))
        return signals


# ---------------------------------------------------------------------------
# Precomputed signals
# ---------------------------------------------------------------------------


class StaticSignalExtractor:
    """Serve signals precomputed upstream (e.g. the ``signals`` block of a batch file).

    *signals* maps a theme id either to a list of signal objects (each with a
    ``polarity``) or to a ``{"frictions": [...], "strengths": [...],
    "patterns": [...]}`` object. Themes without an entry yield no signals.
    """

    def __init__(self, signals: Optional[Mapping[str, Any]] = None) -> None:
        self._signals: Dict[str, List[CandidateSignal]] = {}
        for theme_id, payload in (signals or {}).items():
            self._signals[str(theme_id)] = self._coerce(payload)

    @staticmethod
    def _coerce(payload: Any) -> List[CandidateSignal]:
        if isinstance(payload, Mapping):
            out: List[CandidateSignal] = []
            for key, polarity in _BUCKET_KEYS.items():
                out.extend(
                    CandidateSignal.from_dict(item, polarity=polarity)
                    for item in payload.get(key) or []
                    if isinstance(item, Mapping)
                )
            return out
        if isinstance(payload, list):
            return [CandidateSignal.from_dict(item) for item in payload if isinstance(item, Mapping)]
        raise ValueError(f"Unsupported signal payload type: {type(payload).__name__}")

    def extract_signals(
        self, theme_id: str, responses: Sequence[FeedbackRecord]
    ) -> List[CandidateSignal]:
        return list(self._signals.get(theme_id, []))


# ---------------------------------------------------------------------------
# Timeout + circuit breaker wrapper
# ---------------------------------------------------------------------------


class GuardedExtractor:
    """Bound every extractor call with a timeout and a circuit breaker.

    Calls run on a dedicated pool so a hung collaborator never blocks the
    theme workers past *timeout* seconds. Abandoned calls keep running in the
    background; their results are discarded.

    Only timeouts count against the breaker. A collaborator that answers
    with an error for one theme has not stalled the run, so that theme falls
    back on its own and the others still get their call. Callers that want a
    breaker scoped to one run pass one from :meth:`new_breaker` to
    :meth:`extract`.
    """

    def __init__(
        self,
        extractor: Optional[SignalExtractor],
        *,
        timeout: Optional[float] = None,
        breaker_factory: Optional[Callable[[], CircuitBreaker]] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.extractor = extractor
        self.timeout = config.EXTRACT_TIMEOUT_SECONDS if timeout is None else timeout
        self._breaker_factory = breaker_factory or _default_breaker
        self.breaker = self.new_breaker()
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers or config.MAX_WORKERS,
            thread_name_prefix="signal-extract",
        )

    def new_breaker(self) -> CircuitBreaker:
        return self._breaker_factory()

    def extract(
        self,
        theme_id: str,
        responses: Sequence[FeedbackRecord],
        breaker: Optional[CircuitBreaker] = None,
    ) -> List[CandidateSignal]:
        """Return candidate signals or raise :class:`CollaboratorUnavailable`."""
        breaker = breaker or self.breaker
        if self.extractor is None:
            raise CollaboratorUnavailable(theme_id, "no extractor configured")
        if not breaker.allow():
            raise CollaboratorUnavailable(theme_id, "circuit open")

        future = self._pool.submit(self.extractor.extract_signals, theme_id, list(responses))
        try:
            signals = future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            future.cancel()
            breaker.record_failure(exc)
            raise CollaboratorUnavailable(theme_id, f"timed out after {self.timeout}s") from exc
        except Exception as exc:  # noqa: BLE001 – any collaborator error degrades the theme
            raise CollaboratorUnavailable(theme_id, str(exc) or type(exc).__name__) from exc

        breaker.record_success()
        return list(signals)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False)


def _default_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        failure_threshold=config.BREAKER_FAILURE_THRESHOLD,
        recovery_timeout=config.BREAKER_RECOVERY_SECONDS,
    )
