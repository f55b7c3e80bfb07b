from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from catalog_search.services.session_lifecycle import SWEEP_INTERVAL, SessionLifecycleCoordinator
import logging

logger = logging.getLogger(__name__)

SESSION_SWEEP_JOB_ID = "session_sweep"


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(timezone="UTC")


async def run_session_sweep(coordinator: SessionLifecycleCoordinator):
    report = await coordinator.sweep()
    if report.failed:
        logger.warning(f"[Scheduler] {len(report.failed)} sessions could not be cleaned, retrying next run")


def schedule_session_sweep(scheduler: AsyncIOScheduler, coordinator: SessionLifecycleCoordinator):
    scheduler.add_job(
        run_session_sweep,
        trigger=IntervalTrigger(seconds=SWEEP_INTERVAL.total_seconds()),
        args=[coordinator],
        id=SESSION_SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"[Scheduler] Session sweep scheduled every {SWEEP_INTERVAL}")
