"""Weekly adaptation trigger.

The loop runs Monday 04:00 UTC for every athlete with an active plan, after
the previous week has closed in every timezone.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from pacelab.services.adaptation.loop import AdaptationLoop
from pacelab.services.athlete_data import AthleteDataStore

ADAPTATION_JOB_ID = "weekly_adaptation"


def run_adaptation_for_all_athletes(today: date | None = None, loop: AdaptationLoop | None = None) -> dict[str, int]:
    """Run the adaptation loop for each athlete with an active plan.

    One athlete failing does not stop the others.

    Returns:
        Counts of athletes adapted, skipped and failed
    """
    today = today or datetime.now(timezone.utc).date()
    loop = loop or AdaptationLoop()
    athlete_ids = AthleteDataStore.list_athletes_with_active_plan()
    logger.info(f"[ADAPTATION] Weekly run starting: date={today.isoformat()}, athletes={len(athlete_ids)}")

    counts = {"adapted": 0, "skipped": 0, "failed": 0}
    for athlete_id in athlete_ids:
        with logger.contextualize(athlete=athlete_id):
            try:
                record = loop.run_for_athlete(athlete_id, today)
            except Exception as e:
                counts["failed"] += 1
                logger.exception(f"[ADAPTATION] Failed for athlete_id={athlete_id}: {e}")
                continue
        if record is None:
            counts["skipped"] += 1
        else:
            counts["adapted"] += 1

    logger.info(f"[ADAPTATION] Weekly run finished: {counts}")
    return counts


def register_adaptation_job(scheduler: BaseScheduler) -> None:
    scheduler.add_job(
        run_adaptation_for_all_athletes,
        trigger=CronTrigger(day_of_week="mon", hour=4, minute=0, timezone="UTC"),
        id=ADAPTATION_JOB_ID,
        name="Weekly Adaptation Loop",
        replace_existing=True,
    )
    logger.info("[SCHEDULER] Weekly adaptation job registered (Mondays 04:00 UTC)")
