"""Root conftest for all tests.

Every test touching storage gets its own file-backed SQLite database, so
worker-thread reads in the aggregator see the same data as the test.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

import pacelab.db.session as session_module
from pacelab.config.settings import settings
from pacelab.db.models import (
    AthleteProfile,
    Baseline,
    BottleneckAssessment,
    PhilosophyPeriod,
    PlannedSession,
    TrainingPlan,
    TrainingRecord,
    WellnessSample,
)


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Deterministic settings: no network, heuristic capability, known JWT key."""
    monkeypatch.setattr(settings, "weather_enabled", False)
    monkeypatch.setattr(settings, "openweather_api_key", "")
    monkeypatch.setattr(settings, "decision_capability", "heuristic")
    monkeypatch.setattr(settings, "auth_secret_key", "test-secret-key")
    monkeypatch.setattr(settings, "adaptation_scheduler_enabled", False)
    return settings


@pytest.fixture
def db_session(monkeypatch, tmp_path):
    """Isolated SQLite database wired into pacelab.db.session.

    Yields the session factory for direct inspection.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pacelab_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    session_module.Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(session_module, "_SessionLocal", factory)

    try:
        yield factory
    finally:
        engine.dispose()


class Seeder:
    """Writes fixture rows for one athlete."""

    def __init__(self, factory, athlete_id: str = "athlete-1"):
        self.factory = factory
        self.athlete_id = athlete_id

    def _add(self, row):
        with self.factory() as session:
            session.add(row)
            session.commit()
        return row

    def profile(self, **values) -> AthleteProfile:
        values.setdefault("race_distance", "marathon")
        values.setdefault("easy_pace_min", "5:40")
        values.setdefault("easy_pace_max", "6:10")
        values.setdefault("threshold_pace", "4:45")
        values.setdefault("aerobic_threshold_hr", 145)
        return self._add(AthleteProfile(athlete_id=self.athlete_id, **values))

    def wellness(self, day: date, **values) -> WellnessSample:
        return self._add(WellnessSample(athlete_id=self.athlete_id, sample_date=day, **values))

    def baseline(self, calculated_on: date | None = None, **values) -> Baseline:
        calculated_at = datetime.combine(calculated_on, time(6)) if calculated_on else datetime.now(timezone.utc)
        values.setdefault("days_used", 30)
        return self._add(Baseline(athlete_id=self.athlete_id, calculated_at=calculated_at, **values))

    def run(self, day: date, km: float, session_type: str = "easy", minutes: float | None = None, **values) -> TrainingRecord:
        duration = int((minutes if minutes is not None else km * 6) * 60)
        return self._add(
            TrainingRecord(
                athlete_id=self.athlete_id,
                started_at=datetime.combine(day, time(7)),
                distance_meters=km * 1000,
                duration_seconds=duration,
                session_type=session_type,
                **values,
            )
        )

    def plan(self, start: date, **values) -> TrainingPlan:
        values.setdefault("name", "Marathon build")
        values.setdefault("phase", "build")
        values.setdefault("total_weeks", 16)
        return self._add(TrainingPlan(athlete_id=self.athlete_id, start_date=start, is_active=True, **values))

    def session(self, plan: TrainingPlan, day: date, session_type: str = "easy", km: float | None = 8.0, **values) -> PlannedSession:
        return self._add(
            PlannedSession(
                plan_id=plan.id,
                athlete_id=self.athlete_id,
                session_date=day,
                type=session_type,
                distance_km=km,
                **values,
            )
        )

    def philosophy(self, mode: str, bottleneck: str | None = None, **values) -> PhilosophyPeriod:
        return self._add(PhilosophyPeriod(athlete_id=self.athlete_id, mode=mode, bottleneck=bottleneck, **values))

    def bottleneck(self, primary: str, **values) -> BottleneckAssessment:
        values.setdefault("strength", 50.0)
        values.setdefault("confidence", "medium")
        return self._add(BottleneckAssessment(athlete_id=self.athlete_id, primary_bottleneck=primary, **values))

    def steady_wellness(self, end: date, days: int, hrv: float = 60.0, rhr: float = 50.0, sleep: float = 80.0) -> None:
        for offset in range(days):
            self.wellness(
                end - timedelta(days=offset),
                hrv_ms=hrv,
                resting_hr=rhr,
                sleep_score=sleep,
                sleep_duration_seconds=7 * 3600,
            )


@pytest.fixture
def seed(db_session) -> Seeder:
    return Seeder(db_session)
