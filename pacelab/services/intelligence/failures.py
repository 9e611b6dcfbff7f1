"""Failure responses for the daily decision.

Fail loudly and safely. Never fabricate a session: an unavailable decision
is reported as unavailable, with the date of the last stored one if any.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from pacelab.coach.errors import DecisionPersistenceError, DecisionUnavailableError


class IntelligenceFailureHandler:
    """Turns engine failures into caller-facing documents."""

    @staticmethod
    def unavailable(error: DecisionUnavailableError) -> dict[str, Any]:
        logger.warning(
            f"Daily decision unavailable: athlete_id={error.athlete_id}, date={error.decision_date.isoformat()}, reason={error.reason}"
        )
        return {
            "unavailable": True,
            "message": "Today's recommendation is temporarily unavailable. Please retry in a moment.",
            "decision_date": error.decision_date.isoformat(),
            "last_decision_date": error.last_decision_date.isoformat() if error.last_decision_date else None,
            "recommended_session": None,
        }

    @staticmethod
    def not_persisted(error: DecisionPersistenceError) -> dict[str, Any]:
        logger.error(f"Daily decision not persisted: {error.cause}")
        return {
            "unavailable": False,
            "persisted": False,
            "message": "Decision computed but could not be saved; it will be recomputed next time.",
            "decision": error.result.model_dump(mode="json"),
        }
