import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from petnest import config

logger = logging.getLogger(__name__)


async def log_relay_summary(relay):
    """Log live room usage for capacity tracking"""
    stats = relay.stats()
    logger.info("Relay summary: %d rooms, %d connections", stats["rooms"], stats["connections"])
    return stats


def create_scheduler(relay) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        log_relay_summary,
        "interval",
        minutes=config.RELAY_STATS_INTERVAL_MINUTES,
        args=[relay],
        id="relay_summary",
    )
    return scheduler
