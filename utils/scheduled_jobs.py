"""
Scheduled Jobs
Background cache maintenance: periodic cleanup of expired entries and a stats report
"""

from typing import Any, Dict, Optional

from discord.ext import tasks

import config
from helpers.cache_helper import CacheStore
from helpers.logging_helper import get_logger

logger = get_logger("ScheduledJobs")


class CacheMaintenance:
    """
    Runs CacheStore.cleanup() and logs CacheStore.get_stats() on fixed intervals.
    Both loops fire once immediately on start().
    """

    def __init__(
        self,
        cache: CacheStore,
        cleanup_hours: float = config.CACHE_CLEANUP_INTERVAL_HOURS,
        stats_hours: float = config.CACHE_STATS_INTERVAL_HOURS,
    ):
        self.cache = cache
        self.cleanup_hours = cleanup_hours
        self.stats_hours = stats_hours
        self.last_stats: Optional[Dict[str, Any]] = None
        self.cleanup_cache.change_interval(hours=cleanup_hours)
        self.log_cache_stats.change_interval(hours=stats_hours)

    def start(self):
        if not self.cleanup_cache.is_running():
            self.cleanup_cache.start()
        if not self.log_cache_stats.is_running():
            self.log_cache_stats.start()
        logger.info(
            f"✅ Cache maintenance started (cleanup every {self.cleanup_hours}h, stats every {self.stats_hours}h)"
        )

    def stop(self):
        self.cleanup_cache.cancel()
        self.log_cache_stats.cancel()
        logger.info("Cache maintenance stopped")

    async def run_cleanup(self) -> int:
        try:
            removed = await self.cache.cleanup()
            if removed:
                logger.info(f"🧹 Cache cleanup removed {removed} expired entries")
            else:
                logger.debug("Cache cleanup found nothing to remove")
            return removed
        except Exception as e:
            logger.error(f"Error in cache cleanup job: {e}", exc_info=True)
            return 0

    async def run_stats(self) -> Optional[Dict[str, Any]]:
        try:
            stats = await self.cache.get_stats()
        except Exception as e:
            logger.error(f"Error in cache stats job: {e}", exc_info=True)
            return None

        self.last_stats = stats
        logger.info(
            f"📊 Cache stats: {stats['total_files']} files "
            f"({stats['valid_files']} valid, {stats['expired_files']} expired), "
            f"{stats['total_size_mb']} MB"
        )
        return stats

    @tasks.loop(hours=1)
    async def cleanup_cache(self):
        await self.run_cleanup()

    @tasks.loop(hours=24)
    async def log_cache_stats(self):
        await self.run_stats()
