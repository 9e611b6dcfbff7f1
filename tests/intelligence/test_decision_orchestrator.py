"""Tests for the daily decision orchestrator: caching, refresh and failure handling."""

import asyncio
from datetime import date, timedelta

import pytest

from pacelab.coach.capability import HeuristicDecisionCapability
from pacelab.coach.errors import DecisionPersistenceError, DecisionUnavailableError, InputValidationError
from pacelab.coach.heuristic import decide_heuristically
from pacelab.services.intelligence.runtime import DailyDecisionOrchestrator
from pacelab.services.intelligence.store import DecisionStore

TODAY = date(2025, 3, 12)
ATHLETE = "athlete-1"


class NoWeather:
    def fetch_current_conditions(self, lat, lon):
        return None


class CountingCapability:
    name = "counting"

    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay

    async def decide(self, context):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return decide_heuristically(context)


class InvalidActionCapability:
    name = "invalid"

    async def decide(self, context):
        document = decide_heuristically(context)
        document["decision"]["action"] = "sprint"
        return document


class SlowCapability:
    name = "slow"

    async def decide(self, context):
        await asyncio.sleep(5)
        return decide_heuristically(context)


class ExplodingCapability:
    name = "exploding"

    async def decide(self, context):
        raise ConnectionError("model endpoint unreachable")


class FailingStore(DecisionStore):
    @classmethod
    def upsert_decision(cls, *args, **kwargs):
        raise OSError("disk full")


def _orchestrator(capability, store=None, timeout=5.0):
    return DailyDecisionOrchestrator(capability=capability, store=store or DecisionStore(), weather_client=NoWeather(), timeout_seconds=timeout)


@pytest.mark.asyncio
async def test_second_request_is_served_from_cache(seed):
    capability = CountingCapability()
    orchestrator = _orchestrator(capability)

    first = await orchestrator.get_daily_decision(ATHLETE, TODAY)
    second = await orchestrator.get_daily_decision(ATHLETE, TODAY)

    assert first.cached is False
    assert first.persisted is True
    assert second.cached is True
    assert second.decision_id == first.decision_id
    assert second.payload == first.payload
    assert capability.calls == 1


class ScriptedActionCapability:
    """Returns the heuristic decision with the action taken from a script, one per call."""

    name = "scripted"

    def __init__(self, actions):
        self.actions = list(actions)

    async def decide(self, context):
        document = decide_heuristically(context)
        document["decision"]["action"] = self.actions.pop(0)
        return document


@pytest.mark.asyncio
async def test_force_refresh_overwrites_in_place(seed):
    orchestrator = _orchestrator(ScriptedActionCapability(["proceed", "rest"]))

    first = await orchestrator.get_daily_decision(ATHLETE, TODAY)
    refreshed = await orchestrator.get_daily_decision(ATHLETE, TODAY, force_refresh=True)

    assert first.payload.decision.action == "proceed"
    assert refreshed.cached is False
    assert refreshed.decision_id == first.decision_id
    assert refreshed.payload.decision.action == "rest"

    stored = DecisionStore.get_decision(ATHLETE, TODAY)
    assert stored.action == "rest"
    assert stored.decision_data["decision"]["action"] == "rest"

    cached = await orchestrator.get_daily_decision(ATHLETE, TODAY)
    assert cached.cached is True
    assert cached.decision_id == first.decision_id
    assert cached.payload.decision.action == "rest"


@pytest.mark.asyncio
async def test_concurrent_requests_compute_once(seed):
    capability = CountingCapability(delay=0.05)
    orchestrator = _orchestrator(capability)

    results = await asyncio.gather(
        orchestrator.get_daily_decision(ATHLETE, TODAY),
        orchestrator.get_daily_decision(ATHLETE, TODAY),
    )

    assert capability.calls == 1
    assert sorted(r.cached for r in results) == [False, True]
    assert results[0].decision_id == results[1].decision_id


@pytest.mark.asyncio
async def test_manual_wellness_changes_nothing_once_cached(seed):
    capability = CountingCapability()
    orchestrator = _orchestrator(capability)

    await orchestrator.get_daily_decision(ATHLETE, TODAY)
    cached = await orchestrator.get_daily_decision(ATHLETE, TODAY, manual_wellness={"energy": 1})

    assert cached.cached is True
    assert capability.calls == 1


@pytest.mark.asyncio
async def test_invalid_manual_wellness_is_rejected_before_any_work(seed):
    capability = CountingCapability()
    orchestrator = _orchestrator(capability)

    with pytest.raises(InputValidationError) as exc_info:
        await orchestrator.get_daily_decision(ATHLETE, TODAY, manual_wellness={"energy": 9})

    assert exc_info.value.errors
    assert capability.calls == 0
    assert DecisionStore.get_decision(ATHLETE, TODAY) is None


@pytest.mark.asyncio
async def test_invalid_action_is_a_capability_failure(seed):
    await _orchestrator(HeuristicDecisionCapability()).get_daily_decision(ATHLETE, TODAY - timedelta(days=2))

    with pytest.raises(DecisionUnavailableError) as exc_info:
        await _orchestrator(InvalidActionCapability()).get_daily_decision(ATHLETE, TODAY)

    assert exc_info.value.last_decision_date == TODAY - timedelta(days=2)
    assert DecisionStore.get_decision(ATHLETE, TODAY) is None


@pytest.mark.asyncio
async def test_timeout_is_reported_as_unavailable(seed):
    with pytest.raises(DecisionUnavailableError) as exc_info:
        await _orchestrator(SlowCapability(), timeout=0.05).get_daily_decision(ATHLETE, TODAY)

    assert "timed out" in exc_info.value.reason
    assert exc_info.value.last_decision_date is None
    assert DecisionStore.get_decision(ATHLETE, TODAY) is None


@pytest.mark.asyncio
async def test_capability_exception_is_reported_as_unavailable(seed):
    with pytest.raises(DecisionUnavailableError):
        await _orchestrator(ExplodingCapability()).get_daily_decision(ATHLETE, TODAY)


@pytest.mark.asyncio
async def test_storage_failure_returns_unpersisted_result(seed):
    with pytest.raises(DecisionPersistenceError) as exc_info:
        await _orchestrator(HeuristicDecisionCapability(), store=FailingStore()).get_daily_decision(ATHLETE, TODAY)

    result = exc_info.value.result
    assert result.persisted is False
    assert result.payload.decision.action in {"proceed", "modify", "replace", "rest"}
    assert DecisionStore.get_decision(ATHLETE, TODAY) is None


@pytest.mark.asyncio
async def test_fatigued_athlete_with_intervals_gets_warned(seed):
    seed.profile()
    seed.baseline(TODAY, hrv_baseline_avg=45.0, rhr_baseline_avg=50.0, sleep_baseline_avg=90.0)
    for offset in range(3):
        seed.wellness(TODAY - timedelta(days=offset), hrv_ms=28.0, resting_hr=51.0, sleep_score=70.0)
    plan = seed.plan(TODAY - timedelta(days=21))
    seed.session(plan, TODAY, "intervals", 10.0, target_pace_min="4:00", target_pace_max="4:10")

    result = await _orchestrator(HeuristicDecisionCapability()).get_daily_decision(ATHLETE, TODAY)

    assert result.payload.decision.action in {"modify", "replace", "rest"}
    assert result.payload.warning_ui.show_warning is True

    stored = DecisionStore.get_decision(ATHLETE, TODAY)
    assert stored.action == result.payload.decision.action
    assert stored.show_warning is True
    assert stored.planned_session["type"] == "intervals"
    assert stored.capability_name == "heuristic"


@pytest.mark.asyncio
async def test_session_modification_is_recorded(seed):
    plan = seed.plan(TODAY - timedelta(days=7))
    seed.session(plan, TODAY, "tempo", 12.0)
    result = await _orchestrator(HeuristicDecisionCapability()).get_daily_decision(ATHLETE, TODAY)

    decision = DecisionStore.get_decision(ATHLETE, TODAY)
    modification = DecisionStore.record_session_modification(decision, "declined")

    assert modification.decision_id == result.decision_id
    assert modification.modified_type == "tempo"
    assert modification.modified_distance_km == 12.0
    assert [m.id for m in DecisionStore.list_session_modifications(ATHLETE)] == [modification.id]
