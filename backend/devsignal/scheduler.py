"""APScheduler configuration for periodic alert, scoring and sync jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select

from devsignal.alerts.engine import AlertEngine
from devsignal.config import settings
from devsignal.database import AsyncSessionLocal
from devsignal.models import Organization
from devsignal.schemas.alerts import EvaluationSummary
from devsignal.scoring.engine import ScoringEngine
from devsignal.services.notifications import NotificationService
from devsignal.services.signal_sync import SignalSyncService
from devsignal.services.tier_notifier import TierChangeNotifier

logger = logging.getLogger(__name__)

# Create scheduler instance
scheduler = AsyncIOScheduler()


async def run_time_based_alerts():
    """
    Evaluate engagement_drop and account_inactive rules for every
    organization that has at least one enabled time-based rule.
    """
    async with AsyncSessionLocal() as db:
        org_ids = await AlertEngine(db).organizations_with_time_based_rules()

    logger.info(f"Alert sweep: {len(org_ids)} organizations with time-based rules")
    totals = EvaluationSummary()
    for org_id in org_ids:
        try:
            async with AsyncSessionLocal() as db:
                totals.merge(
                    await AlertEngine(db).evaluate_time_based(org_id),
                    sample_size=settings.ALERT_ERROR_SAMPLE_SIZE
                )
        except Exception as e:
            logger.error(f"Alert sweep failed for org {org_id}: {e}")

    logger.info(
        f"Alert sweep finished: {totals.evaluated} evaluated, {totals.triggered} triggered, {totals.errors} errors"
    )
    return totals


async def run_score_sweep():
    """Recompute every account so decayed signals age out of scores."""
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Organization.id))
        org_ids = [row[0] for row in result.all()]

    for org_id in org_ids:
        try:
            async with AsyncSessionLocal() as db:
                engine = ScoringEngine(db, tier_notifier=TierChangeNotifier(NotificationService(db)))
                await engine.recompute_organization(org_id)
        except Exception as e:
            logger.error(f"Score sweep failed for org {org_id}: {e}")


async def run_source_sync():
    async with AsyncSessionLocal() as db:
        summaries = await SignalSyncService(db).sync_all()
    logger.info(f"Polling sync finished for {len(summaries)} sources")


def start_scheduler():
    """Start the APScheduler with all jobs."""
    scheduler.add_job(
        run_time_based_alerts,
        trigger=IntervalTrigger(minutes=settings.ALERT_SWEEP_INTERVAL_MINUTES),
        id="time_based_alerts",
        name="Evaluate time-based alert rules",
        replace_existing=True,
        max_instances=1
    )

    scheduler.add_job(
        run_score_sweep,
        trigger=CronTrigger.from_crontab(settings.SCORE_SWEEP_SCHEDULE),
        id="score_sweep",
        name="Recompute all account scores",
        replace_existing=True,
        max_instances=1
    )

    scheduler.add_job(
        run_source_sync,
        trigger=IntervalTrigger(minutes=settings.SOURCE_SYNC_INTERVAL_MINUTES),
        id="source_sync",
        name="Poll HTTP signal sources",
        replace_existing=True,
        max_instances=1
    )

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
