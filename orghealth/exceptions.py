"""Project-wide custom exception types."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


class EngineError(RuntimeError):
    """Base class for errors raised by the health scoring engine."""


class InputError(EngineError, ValueError):
    """Raised when a feedback record or profile payload is malformed."""


class CollaboratorUnavailable(EngineError):
    """Raised when the signal extractor times out, errors or is switched off."""

    def __init__(self, theme_id: str, reason: str) -> None:  # noqa: D401 – simple constructor
        super().__init__(f"Signal extraction unavailable for theme {theme_id}: {reason}")
        self.theme_id = theme_id
        self.reason = reason


class InvariantViolation(EngineError, AssertionError):
    """Raised when a derived value escapes its defined bounds (a defect)."""


def check_invariant(condition: bool, message: str, **context: Any) -> bool:
    """Log *message* as a hard error when *condition* is false.

    In strict mode (``ORGHEALTH_STRICT_INVARIANTS=true``) the violation is
    raised as :class:`InvariantViolation`; otherwise the caller is expected to
    clamp the value and carry on. Returns *condition* for convenience.
    """
    if condition:
        return True

    from orghealth import config  # local import to avoid cycles

    logger.error("invariant_violation: %s", message, extra={"context": context})
    if config.STRICT_INVARIANTS:
        raise InvariantViolation(message)
    return False
