"""Tests for the athlete data store: wellness upserts and append-only run history."""

from datetime import date, datetime, timedelta

from pacelab.services.athlete_data import AthleteDataStore

TODAY = date(2025, 3, 12)
ATHLETE = "athlete-1"


def test_wellness_upsert_replaces_same_day(db_session):
    AthleteDataStore.upsert_wellness_sample(ATHLETE, TODAY, hrv_ms=60.0, resting_hr=50.0, sleep_score=80.0)
    AthleteDataStore.upsert_wellness_sample(ATHLETE, TODAY, hrv_ms=52.0, manual_input=True)

    samples = AthleteDataStore.get_wellness_history(ATHLETE, TODAY - timedelta(days=1), TODAY)

    assert len(samples) == 1
    assert samples[0].hrv_ms == 52.0
    # Same-day data is replaced, not merged
    assert samples[0].resting_hr is None
    assert samples[0].source == "manual"


def test_soft_deleted_runs_drop_out_of_history(db_session):
    kept = AthleteDataStore.add_training_record(
        ATHLETE, datetime(2025, 3, 10, 7), distance_meters=8000, duration_seconds=2880, session_type="easy"
    )
    removed = AthleteDataStore.add_training_record(
        ATHLETE, datetime(2025, 3, 11, 7), distance_meters=12000, duration_seconds=3600, session_type="tempo"
    )

    assert AthleteDataStore.soft_delete_training_record(removed.id) is True
    assert AthleteDataStore.soft_delete_training_record(removed.id) is False
    assert AthleteDataStore.soft_delete_training_record("missing") is False

    runs = AthleteDataStore.get_training_records(ATHLETE, TODAY - timedelta(days=7), TODAY)
    assert [r.id for r in runs] == [kept.id]
