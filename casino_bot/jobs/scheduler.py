import logging
import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from casino_bot.config import Settings, settings as default_settings
from casino_bot.services.casino import Casino
from casino_bot.services.roll_oracle import RollRequestStore
from casino_bot.worker import fulfil_pending_rolls

logger = logging.getLogger(__name__)

logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)

_scheduler: AsyncIOScheduler | None = None


async def job_reap_stale_games(casino: Casino):
    """Refund and clear abandoned games; drop idle chat sessions."""
    try:
        await casino.reaper.sweep()
    except Exception as e:
        logger.error(f"Reaper sweep failed: {e}", exc_info=True)


async def job_local_roll_worker(store: RollRequestStore):
    """Answer pending roll requests when no external roll service runs."""
    try:
        await fulfil_pending_rolls(store)
    except Exception as e:
        logger.error(f"Local roll worker failed: {e}", exc_info=True)


async def setup_scheduler(casino: Casino, config: Settings | None = None) -> AsyncIOScheduler:
    global _scheduler
    if _scheduler:
        return _scheduler
    config = config or default_settings
    tz = pytz.timezone(config.timezone)
    _scheduler = AsyncIOScheduler(timezone=tz)
    _scheduler.add_job(
        job_reap_stale_games,
        IntervalTrigger(minutes=config.reaper_interval_minutes),
        args=[casino],
        id="reap_stale_games",
        max_instances=1,
        coalesce=True,
    )
    if config.local_roll_worker_enabled:
        _scheduler.add_job(
            job_local_roll_worker,
            IntervalTrigger(seconds=max(1, int(config.roll_poll_interval_seconds))),
            args=[casino.roll_store],
            id="local_roll_worker",
            max_instances=1,
            coalesce=True,
        )
        logger.warning("Local roll worker enabled: rolls are generated in-process")
    _scheduler.start()
    logger.info(f"Scheduler started: reaper every {config.reaper_interval_minutes} min")
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
    _scheduler = None
