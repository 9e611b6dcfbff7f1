"""Tests for bottleneck detection."""

from datetime import date, timedelta

from pacelab.services.adaptation.bottleneck import (
    AthleteSnapshot,
    build_snapshot,
    confidence_for,
    detect_bottleneck,
    detect_signals,
    select_primary,
)
from pacelab.services.athlete_data import AthleteDataStore

TODAY = date(2025, 3, 12)


def _snapshot(**values) -> AthleteSnapshot:
    values.setdefault("runs_28d", 12)
    values.setdefault("hard_runs_28d", 2)
    values.setdefault("hard_sessions_14d", 1)
    return AthleteSnapshot(today=TODAY, **values)


def _types(signals):
    return {s.type for s in signals}


def test_nothing_wrong_is_balanced_fitness():
    signals = detect_signals(_snapshot())
    assert _types(signals) == {"balanced_fitness"}
    primary = select_primary(signals)
    assert primary.score == 0
    assert confidence_for(primary, signals) == "low"


def test_too_much_intensity_is_weak_aerobic_base():
    signals = detect_signals(_snapshot(runs_28d=10, hard_runs_28d=5))
    primary = select_primary(signals)
    assert primary.type == "weak_aerobic_base"
    assert confidence_for(primary, signals) == "medium"


def test_no_quality_work_is_weak_threshold():
    signals = detect_signals(_snapshot(hard_runs_28d=0, hard_sessions_14d=0))
    assert "weak_lactate_threshold" in _types(signals)

    close_to_race = detect_signals(_snapshot(hard_runs_28d=0, hard_sessions_14d=0, weeks_to_race=6))
    assert "weak_lactate_threshold" not in _types(close_to_race)


def test_short_long_runs_for_the_race_distance():
    signals = detect_signals(_snapshot(race_distance="marathon", longest_run_28d_km=15.0))
    endurance = next(s for s in signals if s.type == "poor_race_specific_endurance")
    assert endurance.strength == "strong"
    assert endurance.score == 80

    signals = detect_signals(_snapshot(race_distance="half", longest_run_28d_km=14.0))
    endurance = next(s for s in signals if s.type == "poor_race_specific_endurance")
    assert endurance.score == 55


def test_fatigue_flags_escalate_to_critical_overtraining():
    two_flags = detect_signals(_snapshot(hrv_days_suppressed=3, poor_sleep_nights=3))
    overtraining = next(s for s in two_flags if s.type == "overtraining_risk")
    assert overtraining.strength == "strong"

    four_flags = detect_signals(
        _snapshot(
            acute_load_7d=400.0,
            chronic_load_28d=300.0,
            hrv_days_suppressed=4,
            rhr_above_baseline_bpm=8.0,
            load_increase_percent=20.0,
        )
    )
    overtraining = next(s for s in four_flags if s.type == "overtraining_risk")
    assert overtraining.strength == "critical"
    assert overtraining.score == 100


def test_critical_overtraining_outranks_race_taper():
    signals = detect_signals(
        _snapshot(
            weeks_to_race=2,
            hrv_days_suppressed=3,
            poor_sleep_nights=4,
            consecutive_run_days=6,
            load_increase_percent=30.0,
        )
    )
    assert select_primary(signals).type == "overtraining_risk"


def test_race_taper_outranks_elevated_injury_risk():
    signals = detect_signals(_snapshot(acwr=1.4, weeks_to_race=2))
    assert {"injury_risk_high", "pre_race_peak"} <= _types(signals)
    assert select_primary(signals).type == "pre_race_peak"


def test_critical_injury_risk_outranks_race_taper():
    signals = detect_signals(_snapshot(acwr=1.6, weeks_to_race=3))
    assert select_primary(signals).type == "injury_risk_high"


def test_fresh_athlete_under_capacity_needs_volume():
    signals = detect_signals(
        _snapshot(vo2max=55.0, weekly_km_4wk=[28.0, 30.0, 30.0, 30.0], chronic_load_28d=200.0, acute_load_7d=150.0)
    )
    assert select_primary(signals).type == "insufficient_volume"


def test_flat_consistent_training_is_a_plateau():
    signals = detect_signals(
        _snapshot(weekly_km_4wk=[40.0, 40.0, 41.0, 40.0], recent_outcomes=["on_target", "on_target", "on_target"])
    )
    assert "performance_plateau" in _types(signals)

    signals = detect_signals(
        _snapshot(weekly_km_4wk=[40.0, 40.0, 41.0, 40.0], recent_outcomes=["on_target", "undertrained", "on_target"])
    )
    assert "performance_plateau" not in _types(signals)


def test_detect_bottleneck_stores_assessment_and_change(seed):
    seed.profile(race_distance="marathon")
    seed.bottleneck("weak_aerobic_base")
    seed.run(TODAY - timedelta(days=2), 10.0, "easy")
    seed.run(TODAY - timedelta(days=4), 12.0, "tempo")

    assessment = detect_bottleneck("athlete-1", TODAY)

    # All recent volume landed in the last week: acute:chronic spike
    assert assessment.primary_bottleneck == "injury_risk_high"
    assert assessment.strength == 95
    assert assessment.confidence == "medium"
    assert assessment.previous_bottleneck == "weak_aerobic_base"
    assert assessment.bottleneck_changed is True
    assert [s["type"] for s in assessment.secondary_signals] == ["poor_race_specific_endurance", "weak_aerobic_base"]
    assert AthleteDataStore.get_latest_bottleneck("athlete-1").id == assessment.id


def test_first_assessment_is_not_a_change(seed):
    assessment = detect_bottleneck("athlete-1", TODAY)

    assert assessment.primary_bottleneck == "balanced_fitness"
    assert assessment.previous_bottleneck is None
    assert assessment.bottleneck_changed is False


def test_snapshot_weekly_volume_covers_four_full_weeks(seed):
    sunday = date(2025, 3, 16)
    for offset in range(42):
        seed.run(sunday - timedelta(days=offset), 5.0)

    snapshot = build_snapshot("athlete-1", sunday)

    assert snapshot.weekly_km_4wk == [35.0, 35.0, 35.0, 35.0]
    assert snapshot.acwr == 1.0
    assert snapshot.runs_28d == 28
    assert snapshot.longest_run_28d_km == 5.0
    assert "injury_risk_high" not in _types(detect_signals(snapshot))
