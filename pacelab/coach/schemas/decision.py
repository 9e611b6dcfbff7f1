"""Decision payload contract.

The decision capability must return a document that validates against
DecisionPayload. Anything that does not, including an action outside
proceed|modify|replace|rest, is a capability failure.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

DecisionAction = Literal["proceed", "modify", "replace", "rest"]
RecoveryStatus = Literal["OPTIMAL", "SUBOPTIMAL", "POOR", "VERY_POOR"]


class RecoveryAssessment(BaseModel):
    overall_score: int = Field(..., ge=0, le=100)
    status: RecoveryStatus
    primary_concern: str
    pattern_detected: bool
    pattern_description: str | None


class RecommendedSession(BaseModel):
    """Session the athlete should run today. Rest days carry null metrics."""

    type: str
    distance_km: float | None = Field(..., ge=0)
    pace_range: str | None
    hr_target: str | None
    estimated_load: float | None = Field(..., ge=0)
    duration_min: int | None = Field(..., ge=0)
    structure: str | None = None


class VsOriginal(BaseModel):
    changed: bool
    reason_short: str
    intensity_change: Literal["same", "reduced", "significantly_reduced", "replaced"] | None = None
    volume_change_percent: float | None = None


class DecisionBody(BaseModel):
    action: DecisionAction
    recommended_session: RecommendedSession
    vs_original: VsOriginal
    confidence: Literal["high", "medium", "low"] | None = None


class Reasoning(BaseModel):
    summary: str
    key_factors: list[str] = Field(..., max_length=6)
    health_analysis: str | None = None
    load_analysis: str | None = None


class CoachMessage(BaseModel):
    title: str
    body: str
    tone: Literal["encouraging", "cautionary", "firm", "neutral"]


class WarningUI(BaseModel):
    show_warning: bool
    warning_level: Literal["none", "amber", "orange", "red"]
    warning_headline: str | None
    warning_subline: str | None


class DecisionPayload(BaseModel):
    """Full structured daily recommendation."""

    recovery_assessment: RecoveryAssessment
    decision: DecisionBody
    reasoning: Reasoning
    coach_message: CoachMessage
    warning_ui: WarningUI


class DailyDecisionResult(BaseModel):
    """What the orchestrator hands back to callers."""

    athlete_id: str
    decision_date: str
    payload: DecisionPayload
    cached: bool
    persisted: bool = True
    decision_id: str | None = None
    capability: str | None = None
