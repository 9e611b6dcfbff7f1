"""Rule-based daily decision.

Deterministic stand-in for the model-backed capability. It reads the same
serialized DailyContext and produces the same DecisionPayload shape.

Recovery score starts at 100 (85 with no wellness data) and loses points for:
- HRV below baseline (5 / 15 / 30 points at -5% / -10% / -20%)
- 3+ days of HRV below baseline (10)
- resting HR above baseline (8 / 15 at +5% / +10%)
- consecutive poor nights (5 / 10 / 20 for 1 / 2 / 3+)
- under 6 hours of sleep (5)
- soreness 3 / 4 (10 / 20)
- week-over-week load spike above 10% (10)
- 6+ consecutive run days (10)
- acute:chronic ratio above 1.5 (10)

Status: >=80 OPTIMAL, >=60 SUBOPTIMAL, >=40 POOR, else VERY_POOR.

Action:
- no session or a planned rest day: proceed
- VERY_POOR: rest
- hard session on a POOR day, or a workout type the philosophy forbids: replace with easy
- hard session on a SUBOPTIMAL day, or in poor weather: modify (shorter, softer)
- easy session on a POOR day: modify (shorter)
- otherwise: proceed
"""

from __future__ import annotations

from typing import Any

from pacelab.config.policy import FALLBACK_STRESS_PER_HOUR, HARD_SESSION_TYPES
from pacelab.metrics.training_stress import parse_pace

DEFAULT_EASY_PACE_SEC = 360  # 6:00/km
MAX_REPLACEMENT_EASY_KM = 8.0


def _score(health: dict | None, load: dict | None) -> tuple[int, list[str]]:
    factors: list[str] = []
    score = 100 if health else 85

    if health:
        hrv_dev = health.get("hrv_deviation_percent")
        if hrv_dev is not None:
            if hrv_dev <= -20:
                score -= 30
                factors.append(f"HRV {hrv_dev:.0f}% below baseline")
            elif hrv_dev <= -10:
                score -= 15
                factors.append(f"HRV {hrv_dev:.0f}% below baseline")
            elif hrv_dev <= -5:
                score -= 5
        if (health.get("hrv_days_below_baseline") or 0) >= 3:
            score -= 10
            factors.append(f"HRV below baseline {health['hrv_days_below_baseline']} of last 7 days")

        rhr_dev = health.get("resting_hr_deviation_percent")
        if rhr_dev is not None:
            if rhr_dev >= 10:
                score -= 15
                factors.append(f"Resting HR {rhr_dev:.0f}% above baseline")
            elif rhr_dev >= 5:
                score -= 8

        poor_nights = health.get("consecutive_poor_sleep") or 0
        if poor_nights >= 3:
            score -= 20
            factors.append(f"{poor_nights} consecutive poor nights of sleep")
        elif poor_nights == 2:
            score -= 10
            factors.append("2 consecutive poor nights of sleep")
        elif poor_nights == 1:
            score -= 5

        sleep_hours = health.get("sleep_hours")
        if sleep_hours is not None and sleep_hours < 6:
            score -= 5
            factors.append(f"Only {sleep_hours:.1f}h of sleep")

        soreness = health.get("soreness")
        if soreness == 4:
            score -= 20
            factors.append("Severe soreness reported")
        elif soreness == 3:
            score -= 10
            factors.append("Moderate soreness reported")

    if load:
        change = load.get("week_over_week_change_percent")
        if change is not None and change > 10:
            score -= 10
            factors.append(f"Weekly volume up {change:.0f}%")
        if (load.get("consecutive_run_days") or 0) >= 6:
            score -= 10
            factors.append(f"{load['consecutive_run_days']} consecutive run days")
        acwr = load.get("acute_chronic_ratio")
        if acwr is not None and acwr > 1.5:
            score -= 10
            factors.append(f"Acute:chronic load ratio {acwr:.2f}")

    return max(0, min(100, score)), factors


def _status(score: int) -> str:
    if score >= 80:
        return "OPTIMAL"
    if score >= 60:
        return "SUBOPTIMAL"
    if score >= 40:
        return "POOR"
    return "VERY_POOR"


def _warning(score: int, has_health: bool) -> tuple[str, str | None, str | None]:
    if score >= 80 or (not has_health and score >= 60):
        return "none", None, None
    if score >= 60:
        return "amber", "Recovery is slightly down", "Today's session has been softened"
    if score >= 40:
        return "orange", "Your body is showing fatigue", "Hard training today would cost more than it gives"
    return "red", "Recovery is very low", "Rest today and reassess tomorrow"


def _easy_pace(profile: dict | None) -> tuple[str | None, float]:
    if profile and profile.get("easy_pace_min") and profile.get("easy_pace_max"):
        pace_range = f"{profile['easy_pace_min']}-{profile['easy_pace_max']}"
        return pace_range, parse_pace(profile["easy_pace_max"]) or DEFAULT_EASY_PACE_SEC
    return None, DEFAULT_EASY_PACE_SEC


def _easy_hr(profile: dict | None) -> str:
    if profile and profile.get("aerobic_threshold_hr"):
        return f"below {profile['aerobic_threshold_hr']} bpm"
    return "Zone 2"


def _session(session_type: str, distance_km: float | None, pace_range: str | None, hr_target: str | None, pace_sec: float, structure: str | None = None) -> dict:
    if session_type == "rest" or not distance_km:
        return {
            "type": session_type,
            "distance_km": None,
            "pace_range": None,
            "hr_target": None,
            "estimated_load": None,
            "duration_min": None,
            "structure": structure,
        }
    duration_min = round(distance_km * pace_sec / 60)
    return {
        "type": session_type,
        "distance_km": round(distance_km, 1),
        "pace_range": pace_range,
        "hr_target": hr_target,
        "estimated_load": float(round(duration_min / 60 * FALLBACK_STRESS_PER_HOUR)),
        "duration_min": duration_min,
        "structure": structure,
    }


def decide_heuristically(context: dict[str, Any]) -> dict[str, Any]:
    """Produce a DecisionPayload-shaped document from a serialized DailyContext."""
    health = context.get("health")
    load = context.get("training_load")
    profile = context.get("profile")
    planned = context.get("planned_session")
    philosophy = context.get("current_philosophy")
    conditions = context.get("running_conditions_score") or "unknown"

    score, factors = _score(health, load)
    status = _status(score)
    easy_range, easy_pace_sec = _easy_pace(profile)
    easy_hr = _easy_hr(profile)

    planned_type = (planned or {}).get("type", "rest").lower()
    planned_km = (planned or {}).get("distance_km")
    is_hard = planned_type in HARD_SESSION_TYPES
    forbidden = set((philosophy or {}).get("forbidden_workout_types") or [])

    intensity_change = "same"
    volume_change: float = 0.0
    if planned is None or planned_type == "rest":
        action = "proceed"
        session = _session("rest", None, None, None, easy_pace_sec, structure="Rest day")
        reason = "Rest day as planned"
    elif status == "VERY_POOR":
        action = "rest"
        session = _session("rest", None, None, None, easy_pace_sec, structure="Full rest")
        reason = "Recovery too low to train"
        intensity_change = "replaced"
        volume_change = -100.0
    elif planned_type in forbidden or (is_hard and status == "POOR"):
        action = "replace"
        distance = min((planned_km or MAX_REPLACEMENT_EASY_KM) * 0.6, MAX_REPLACEMENT_EASY_KM)
        session = _session("easy", distance, easy_range, easy_hr, easy_pace_sec, structure="Easy continuous run")
        reason = "Hard session swapped for easy running" if planned_type not in forbidden else f"{planned_type} is off the table this block"
        intensity_change = "replaced"
        volume_change = round((distance - planned_km) / planned_km * 100) if planned_km else 0.0
    elif is_hard and (status == "SUBOPTIMAL" or conditions == "poor"):
        action = "modify"
        distance = planned_km * 0.8 if planned_km else None
        pace_range = None
        if planned.get("target_pace_min") and planned.get("target_pace_max"):
            pace_range = f"{planned['target_pace_min']}-{planned['target_pace_max']}"
        session = _session(planned_type, distance, pace_range, planned.get("target_hr_zone"), parse_pace(planned.get("target_pace_max")) or easy_pace_sec, structure=planned.get("structure"))
        reason = "Session shortened, effort capped" if conditions != "poor" else "Shortened for poor conditions"
        intensity_change = "reduced"
        volume_change = -20.0
        if conditions == "poor":
            factors.append("Poor running conditions")
    elif not is_hard and status == "POOR":
        action = "modify"
        distance = planned_km * 0.7 if planned_km else None
        session = _session(planned_type, distance, easy_range, easy_hr, easy_pace_sec, structure=planned.get("structure"))
        reason = "Easy run shortened"
        volume_change = -30.0
    else:
        action = "proceed"
        pace_range = None
        if planned.get("target_pace_min") and planned.get("target_pace_max"):
            pace_range = f"{planned['target_pace_min']}-{planned['target_pace_max']}"
        elif not is_hard:
            pace_range = easy_range
        session = _session(
            planned_type,
            planned_km,
            pace_range,
            planned.get("target_hr_zone") or (None if is_hard else easy_hr),
            parse_pace(planned.get("target_pace_max")) or easy_pace_sec,
            structure=planned.get("structure"),
        )
        if planned.get("estimated_load") is not None:
            session["estimated_load"] = planned["estimated_load"]
        reason = "Good to go as planned"

    warning_level, headline, subline = _warning(score, health is not None)
    if not factors:
        factors.append("No recovery red flags")
    factors = factors[:6]

    primary_concern = factors[0] if score < 80 else "None"
    poor_nights = (health or {}).get("consecutive_poor_sleep") or 0
    hrv_low_days = (health or {}).get("hrv_days_below_baseline") or 0
    pattern = poor_nights >= 3 or hrv_low_days >= 3
    tone = {"proceed": "encouraging", "modify": "cautionary", "replace": "cautionary", "rest": "firm"}[action]
    titles = {
        "proceed": "Train as planned",
        "modify": "Adjusted session",
        "replace": "Swap to easy",
        "rest": "Rest day",
    }

    return {
        "recovery_assessment": {
            "overall_score": score,
            "status": status,
            "primary_concern": primary_concern,
            "pattern_detected": bool(pattern),
            "pattern_description": "Accumulated fatigue over several days" if pattern else None,
        },
        "decision": {
            "action": action,
            "confidence": "medium" if context.get("insufficient_baseline_data") else "high",
            "recommended_session": session,
            "vs_original": {
                "changed": action != "proceed",
                "reason_short": reason,
                "intensity_change": intensity_change,
                "volume_change_percent": volume_change,
            },
        },
        "reasoning": {
            "summary": f"Recovery score {score}/100 ({status.lower()}). {reason}.",
            "key_factors": factors,
            "health_analysis": None,
            "load_analysis": None,
        },
        "coach_message": {
            "title": titles[action],
            "body": f"{reason}. Recovery is at {score}/100 today.",
            "tone": tone,
        },
        "warning_ui": {
            "show_warning": warning_level != "none",
            "warning_level": warning_level,
            "warning_headline": headline,
            "warning_subline": subline,
        },
    }
