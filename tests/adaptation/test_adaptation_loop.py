"""Tests for the weekly adaptation loop."""

from datetime import date, timedelta

import pytest

from pacelab.coach.errors import PhilosophyTransitionError
from pacelab.db.models import AdaptationRecord, PlannedSession
from pacelab.services.adaptation.loop import AdaptationLoop, classify_adaptation
from pacelab.services.adaptation.philosophy import count_open_periods
from pacelab.services.adaptation.scheduler import register_adaptation_job, run_adaptation_for_all_athletes
from pacelab.services.athlete_data import AthleteDataStore

TODAY = date(2025, 3, 12)  # Wednesday
LAST_MONDAY = date(2025, 3, 3)
ATHLETE = "athlete-1"


@pytest.mark.parametrize(
    ("ratio", "completion", "mode", "expected"),
    [
        (None, None, None, ("neutral", "hold", 0.0, 0.0)),
        (1.2, 1.0, None, ("overreached", "reduce", -10.0, 0.0)),
        (1.35, 1.0, None, ("overreached", "reduce", -10.0, -10.0)),
        (0.6, 0.5, "recovery_mode", ("recovering", "hold", 0.0, 0.0)),
        (0.4, 0.5, None, ("undertrained", "reduce", -10.0, 0.0)),
        (0.8, 1.0, None, ("undertrained", "hold", 0.0, 0.0)),
        (1.0, 0.5, None, ("undertrained", "hold", 0.0, 0.0)),
        (1.0, 1.0, None, ("on_target", "continue", 5.0, 0.0)),
        (1.15, 1.0, None, ("on_target", "continue", 5.0, 0.0)),
        (0.85, 0.75, None, ("on_target", "continue", 5.0, 0.0)),
    ],
)
def test_classify_adaptation(ratio, completion, mode, expected):
    decision = classify_adaptation(ratio, completion, mode)
    assert (
        decision.outcome,
        decision.action,
        decision.volume_adjustment_percent,
        decision.intensity_adjustment_percent,
    ) == expected


def test_on_target_uses_philosophy_progression():
    assert classify_adaptation(1.0, 1.0, "base_building", 8.0).volume_adjustment_percent == 8.0


@pytest.fixture
def week(seed):
    """Last week planned 40km over three runs; this week has sessions left."""
    plan = seed.plan(LAST_MONDAY - timedelta(weeks=2))
    seed.session(plan, LAST_MONDAY + timedelta(days=1), "easy", 10.0)
    seed.session(plan, LAST_MONDAY + timedelta(days=3), "tempo", 10.0)
    seed.session(plan, LAST_MONDAY + timedelta(days=5), "long", 20.0)
    seed.session(plan, LAST_MONDAY + timedelta(days=6), "rest", None)

    current = {
        "past": seed.session(plan, TODAY - timedelta(days=1), "easy", 10.0),
        "today": seed.session(plan, TODAY, "easy", 10.0),
        "intervals": seed.session(plan, TODAY + timedelta(days=1), "intervals", 8.0, structure="5x1km"),
        "short": seed.session(plan, TODAY + timedelta(days=2), "recovery", 2.0),
        "rest": seed.session(plan, TODAY + timedelta(days=4), "rest", None),
        "next_week": seed.session(plan, TODAY + timedelta(days=6), "easy", 10.0),
    }
    return seed, current


def _planned(db_session, session_id):
    with db_session() as session:
        return session.get(PlannedSession, session_id)


def _run_last_week(seed, distances):
    for offset, km in zip((1, 3, 5), distances, strict=True):
        seed.run(LAST_MONDAY + timedelta(days=offset), km)


def test_on_target_week_progresses_remaining_sessions(week, db_session):
    seed, current = week
    _run_last_week(seed, (10.0, 10.0, 20.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.week_start == LAST_MONDAY
    assert record.planned_km == 40.0
    assert record.actual_km == 40.0
    assert record.planned_sessions == 3
    assert record.completed_sessions == 3
    assert record.adaptation_ratio == 1.0
    assert record.outcome == "on_target"
    assert record.sessions_adjusted == 3
    assert _planned(db_session, current["today"].id).distance_km == 10.5
    assert _planned(db_session, current["intervals"].id).distance_km == 8.4
    assert _planned(db_session, current["past"].id).distance_km == 10.0
    assert _planned(db_session, current["next_week"].id).distance_km == 10.0
    assert _planned(db_session, current["rest"].id).distance_km is None


def test_overreached_week_reduces_volume(week, db_session):
    seed, current = week
    _run_last_week(seed, (12.0, 12.0, 24.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.outcome == "overreached"
    assert record.action_taken == "reduce"
    assert _planned(db_session, current["today"].id).distance_km == 9.0
    assert _planned(db_session, current["short"].id).distance_km == 2.0
    intervals = _planned(db_session, current["intervals"].id)
    assert intervals.type == "intervals"
    assert "volume -10%" in intervals.modification_reason


def test_severe_overreach_swaps_intensity_for_easy(week, db_session):
    seed, current = week
    _run_last_week(seed, (15.0, 15.0, 25.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.adaptation_ratio == pytest.approx(1.375)
    assert record.intensity_adjustment_percent == -10.0
    intervals = _planned(db_session, current["intervals"].id)
    assert intervals.type == "easy"
    assert intervals.structure is None
    assert "intervals replaced with easy running" in intervals.modification_reason


def test_deload_block_shortfall_is_recovering(week, db_session):
    seed, current = week
    seed.philosophy("recovery_mode", bottleneck="overtraining_risk", progression_rate_percent=0.0)
    _run_last_week(seed, (6.0, 6.0, 12.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.outcome == "recovering"
    assert record.sessions_adjusted == 0
    assert _planned(db_session, current["today"].id).distance_km == 10.0


def test_zero_progression_philosophy_holds_volume_on_target(week, db_session):
    seed, current = week
    seed.philosophy("recovery_mode", bottleneck="overtraining_risk", progression_rate_percent=0.0)
    _run_last_week(seed, (10.0, 10.0, 20.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.outcome == "on_target"
    assert record.volume_adjustment_percent == 0.0
    assert record.sessions_adjusted == 0
    assert _planned(db_session, current["today"].id).distance_km == 10.0


def test_failed_reassessment_is_retried_on_rerun(week, monkeypatch):
    seed, _ = week
    _run_last_week(seed, (10.0, 10.0, 20.0))
    loop = AdaptationLoop()

    def failing_transition(athlete_id, selection):
        raise PhilosophyTransitionError(athlete_id, selection.config.mode, "database unavailable")

    with monkeypatch.context() as patched:
        patched.setattr("pacelab.services.adaptation.loop.transition_philosophy", failing_transition)
        with pytest.raises(PhilosophyTransitionError):
            loop.run_for_athlete(ATHLETE, TODAY)

    stored = AthleteDataStore.get_latest_adaptation(ATHLETE)
    assert stored.reassessed_at is None
    assert count_open_periods(ATHLETE) == 0

    record = loop.run_for_athlete(ATHLETE, TODAY)

    assert record.id == stored.id
    assert record.philosophy_changed is True
    assert record.reassessed_at is not None
    assert count_open_periods(ATHLETE) == 1


def test_completion_counts_status_or_a_run_that_day(week, db_session):
    seed, _ = week
    seed.run(LAST_MONDAY + timedelta(days=1), 10.0)
    with db_session() as session:
        tempo = session.query(PlannedSession).filter_by(session_date=LAST_MONDAY + timedelta(days=3)).one()
        tempo.status = "completed"
        session.commit()

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.completed_sessions == 2
    assert record.completion_rate == 0.67
    assert record.outcome == "undertrained"
    assert record.action_taken == "reduce"


def test_rerun_for_the_same_week_is_idempotent(week, db_session):
    seed, current = week
    _run_last_week(seed, (10.0, 10.0, 20.0))
    loop = AdaptationLoop()

    first = loop.run_for_athlete(ATHLETE, TODAY)
    second = loop.run_for_athlete(ATHLETE, TODAY + timedelta(days=1))

    assert second.id == first.id
    assert _planned(db_session, current["intervals"].id).distance_km == 8.4
    with db_session() as session:
        assert session.query(AdaptationRecord).count() == 1


def test_week_is_skipped_when_a_later_one_was_reviewed(week, db_session):
    with db_session() as session:
        session.add(
            AdaptationRecord(
                athlete_id=ATHLETE,
                week_start=TODAY - timedelta(days=2),
                week_end=TODAY + timedelta(days=4),
                outcome="on_target",
                action_taken="continue",
            )
        )
        session.commit()

    assert AdaptationLoop().run_for_athlete(ATHLETE, TODAY) is None


def test_no_plan_last_week_is_neutral(seed):
    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.outcome == "neutral"
    assert record.adaptation_ratio is None
    assert record.completion_rate is None


def test_first_review_opens_a_philosophy(week):
    seed, _ = week
    _run_last_week(seed, (10.0, 10.0, 20.0))

    record = AdaptationLoop().run_for_athlete(ATHLETE, TODAY)

    assert record.philosophy_changed is True
    assert count_open_periods(ATHLETE) == 1


def test_unchanged_bottleneck_keeps_philosophy(week):
    seed, _ = week
    _run_last_week(seed, (10.0, 10.0, 20.0))
    loop = AdaptationLoop()
    record = loop.run_for_athlete(ATHLETE, TODAY)
    opened = loop.store.get_open_philosophy(ATHLETE)

    # Same data, same day: the detected bottleneck matches the open period
    assert loop._reassess(ATHLETE, TODAY, record).philosophy_changed is False
    assert loop.store.get_open_philosophy(ATHLETE).id == opened.id
    assert count_open_periods(ATHLETE) == 1


def test_scheduler_runs_every_athlete_with_an_active_plan(week):
    seed, _ = week
    _run_last_week(seed, (10.0, 10.0, 20.0))

    assert run_adaptation_for_all_athletes(TODAY) == {"adapted": 1, "skipped": 0, "failed": 0}
    assert run_adaptation_for_all_athletes(TODAY) == {"adapted": 1, "skipped": 0, "failed": 0}


def test_scheduler_isolates_failures(week):
    class BrokenLoop(AdaptationLoop):
        def run_for_athlete(self, athlete_id, today):
            raise RuntimeError("boom")

    assert run_adaptation_for_all_athletes(TODAY, loop=BrokenLoop()) == {"adapted": 0, "skipped": 0, "failed": 1}


def test_adaptation_job_registration():
    from apscheduler.schedulers.background import BackgroundScheduler

    scheduler = BackgroundScheduler(timezone="UTC")
    register_adaptation_job(scheduler)

    job = scheduler.get_job("weekly_adaptation")
    assert job is not None
    assert "day_of_week='mon'" in str(job.trigger)
    assert "hour='4'" in str(job.trigger)
