import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wardbot.config import settings
from wardbot.moderation.engine import ModerationEngine
from wardbot.utils import utc_now

logger = logging.getLogger(__name__)

# Resolved escalations are kept this long so late button presses report "already resolved"
ESCALATION_RETENTION = timedelta(days=2)

_scheduler: AsyncIOScheduler | None = None


async def job_sweep_verifications(engine: ModerationEngine):
    """Expire overdue join challenges and remove their users. Runs every few seconds."""
    expired = await engine.sweep_verifications(utc_now())
    if expired:
        logger.info(f"Verification sweep: {len(expired)} challenge(s) expired")


async def job_prune_escalations(engine: ModerationEngine):
    pruned = engine.escalations.prune(utc_now() - ESCALATION_RETENTION)
    if pruned:
        logger.info(f"Pruned {pruned} escalation(s)")


async def setup_scheduler(engine: ModerationEngine) -> AsyncIOScheduler:
    global _scheduler
    _scheduler = AsyncIOScheduler(timezone="UTC")
    _scheduler.add_job(
        job_sweep_verifications,
        IntervalTrigger(seconds=settings.verification_sweep_seconds),
        args=[engine],
        id="sweep_verifications",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        job_prune_escalations,
        IntervalTrigger(hours=1),
        args=[engine],
        id="prune_escalations",
    )
    _scheduler.start()
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
