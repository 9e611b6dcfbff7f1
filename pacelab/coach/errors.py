"""Error types for the coaching engine.

Distinct error types separate caller mistakes, external-capability failures
and storage failures so the API layer can map each to the right response.
"""

from __future__ import annotations

from datetime import date
from typing import Any


class InputValidationError(Exception):
    """Raised when a request payload is malformed.

    Raised before any aggregation; nothing is persisted.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)


class DecisionCapabilityError(Exception):
    """Raised when the decision capability times out, errors or returns a malformed document."""

    def __init__(self, capability: str, message: str | None = None):
        self.capability = capability
        self.message = message or f"Decision capability {capability} failed"
        super().__init__(self.message)


class DecisionUnavailableError(Exception):
    """Raised to callers when no fresh decision could be produced.

    No decision is written. `last_decision_date` names the most recent stored
    decision before the requested day, if there is one.
    """

    def __init__(self, athlete_id: str, decision_date: date, last_decision_date: date | None = None, reason: str | None = None):
        self.athlete_id = athlete_id
        self.decision_date = decision_date
        self.last_decision_date = last_decision_date
        self.reason = reason
        self.message = f"Daily decision temporarily unavailable for {decision_date.isoformat()}, retry later"
        super().__init__(self.message)


class DecisionPersistenceError(Exception):
    """Raised when a decision was produced but could not be stored.

    `result` holds the in-memory decision, marked persisted=False; a retry
    recomputes it.
    """

    def __init__(self, result: Any, cause: Exception | None = None):
        self.result = result
        self.cause = cause
        self.message = "Decision computed but not durably cached"
        super().__init__(self.message)


class PhilosophyTransitionError(Exception):
    """Raised when closing the open philosophy period and opening the next one failed.

    The transaction was rolled back; the previous period is still the only open one.
    """

    def __init__(self, athlete_id: str, target_mode: str, message: str | None = None):
        self.athlete_id = athlete_id
        self.target_mode = target_mode
        self.message = message or f"Philosophy transition to {target_mode} failed for athlete {athlete_id}"
        super().__init__(self.message)
