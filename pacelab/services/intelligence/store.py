"""Persistence for daily decisions and the athlete's responses to them.

One decision row per (athlete, day). A refresh overwrites it in place:
last write wins, no versions.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pacelab.coach.schemas.decision import DecisionPayload
from pacelab.db.models import DailyDecision, SessionModification
from pacelab.db.session import get_session


class DecisionStore:
    """Store for the per-day decision cache."""

    @staticmethod
    def get_decision(athlete_id: str, decision_date: date) -> DailyDecision | None:
        with get_session() as session:
            return session.execute(
                select(DailyDecision).where(
                    DailyDecision.athlete_id == athlete_id,
                    DailyDecision.decision_date == decision_date,
                )
            ).scalar_one_or_none()

    @staticmethod
    def get_latest_decision_before(athlete_id: str, decision_date: date) -> DailyDecision | None:
        with get_session() as session:
            return session.execute(
                select(DailyDecision)
                .where(
                    DailyDecision.athlete_id == athlete_id,
                    DailyDecision.decision_date < decision_date,
                )
                .order_by(DailyDecision.decision_date.desc())
            ).scalars().first()

    @staticmethod
    def _apply(row: DailyDecision, payload: DecisionPayload, fields: dict[str, Any]) -> None:
        row.action = payload.decision.action
        row.recovery_score = payload.recovery_assessment.overall_score
        row.recovery_status = payload.recovery_assessment.status
        row.show_warning = payload.warning_ui.show_warning
        row.decision_data = payload.model_dump(mode="json")
        row.planned_session = fields.get("planned_session")
        row.context_hash = fields.get("context_hash")
        row.capability_name = fields.get("capability_name")
        row.manual_input = bool(fields.get("manual_input", False))

    @classmethod
    def upsert_decision(
        cls,
        athlete_id: str,
        decision_date: date,
        payload: DecisionPayload,
        planned_session: dict[str, Any] | None = None,
        context_hash: str | None = None,
        capability_name: str | None = None,
        manual_input: bool = False,
    ) -> DailyDecision:
        """Insert or overwrite the decision for (athlete, day).

        A concurrent insert of the same key surfaces as an IntegrityError;
        it is retried once as an update of the row that won.
        """
        fields = {
            "planned_session": planned_session,
            "context_hash": context_hash,
            "capability_name": capability_name,
            "manual_input": manual_input,
        }
        try:
            row = cls._write(athlete_id, decision_date, payload, fields)
        except IntegrityError:
            logger.warning(
                f"Concurrent decision insert detected, retrying as update: athlete_id={athlete_id}, date={decision_date.isoformat()}"
            )
            row = cls._write(athlete_id, decision_date, payload, fields)

        logger.info(
            f"Daily decision stored: decision_id={row.id}, athlete_id={athlete_id}, "
            f"date={decision_date.isoformat()}, action={payload.decision.action}"
        )
        return row

    @classmethod
    def _write(cls, athlete_id: str, decision_date: date, payload: DecisionPayload, fields: dict[str, Any]) -> DailyDecision:
        with get_session() as session:
            row = session.execute(
                select(DailyDecision).where(
                    DailyDecision.athlete_id == athlete_id,
                    DailyDecision.decision_date == decision_date,
                )
            ).scalar_one_or_none()
            if row is None:
                row = DailyDecision(athlete_id=athlete_id, decision_date=decision_date)
                session.add(row)
            cls._apply(row, payload, fields)
            session.flush()
        return row

    @staticmethod
    def record_session_modification(
        decision: DailyDecision,
        choice: str,
        modified_type: str | None = None,
        modified_distance_km: float | None = None,
        modified_pace: str | None = None,
        reason: str | None = None,
    ) -> SessionModification:
        """Append the athlete's response to a decision."""
        original = decision.planned_session or {}
        recommended = (decision.decision_data or {}).get("decision", {}).get("recommended_session", {})
        if choice == "accepted":
            modified_type = modified_type or recommended.get("type")
            modified_distance_km = modified_distance_km if modified_distance_km is not None else recommended.get("distance_km")
            modified_pace = modified_pace or recommended.get("pace_range")
        elif choice == "declined":
            modified_type = original.get("type")
            modified_distance_km = original.get("distance_km")
            modified_pace = None

        original_pace = None
        if original.get("target_pace_min") and original.get("target_pace_max"):
            original_pace = f"{original['target_pace_min']}-{original['target_pace_max']}"

        with get_session() as session:
            modification = SessionModification(
                athlete_id=decision.athlete_id,
                decision_id=decision.id,
                modification_date=decision.decision_date,
                choice=choice,
                original_type=original.get("type"),
                original_distance_km=original.get("distance_km"),
                original_pace=original_pace,
                modified_type=modified_type,
                modified_distance_km=modified_distance_km,
                modified_pace=modified_pace,
                reason=reason or (decision.decision_data or {}).get("decision", {}).get("vs_original", {}).get("reason_short"),
                recovery_score=decision.recovery_score,
            )
            session.add(modification)
        logger.info(f"Session modification recorded: athlete_id={decision.athlete_id}, decision_id={decision.id}, choice={choice}")
        return modification

    @staticmethod
    def list_session_modifications(athlete_id: str, limit: int = 30) -> list[SessionModification]:
        with get_session() as session:
            return list(
                session.execute(
                    select(SessionModification)
                    .where(SessionModification.athlete_id == athlete_id)
                    .order_by(SessionModification.created_at.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
