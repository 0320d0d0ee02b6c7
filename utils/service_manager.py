"""
Service Manager
Builds the core components from config and owns their lifetime
"""

from typing import List, Optional

import config
from database import PreferenceStore
from helpers.cache_helper import CacheStore
from helpers.http_helper import RateLimitedClient, RateLimiter
from helpers.itad_helper import DealsCatalog
from helpers.logging_helper import get_logger
from helpers.rawg_helper import RawgCatalog
from helpers.recommendation_helper import RecommendationEngine
from helpers.steam_helper import SteamCatalog
from utils.scheduled_jobs import CacheMaintenance

logger = get_logger("ServiceManager")


def _build_client(name: str) -> RateLimitedClient:
    """One client and one limiter per upstream, shared by every request to it."""
    return RateLimitedClient(
        name,
        rate_limiter=RateLimiter(config.MAX_REQUESTS_PER_SECOND, config.MAX_REQUESTS_PER_MINUTE),
        timeout=config.API_TIMEOUT,
        max_retries=config.API_MAX_RETRIES,
        retry_delay=config.API_RETRY_DELAY,
    )


class ServiceManager:
    """
    Explicitly constructed replacement for process-wide singletons.

    Usage:
        services = ServiceManager()
        await services.init()
        game = await services.engine.get_personalized(user_id)
        ...
        await services.close()
    """

    def __init__(self, db_path: Optional[str] = None, cache_dir: Optional[str] = None, start_jobs: bool = True):
        self.start_jobs = start_jobs
        self.cache = CacheStore(cache_dir or config.CACHE_DIR)
        self.store = PreferenceStore(db_path or config.DB_PATH)

        self.steam_client = _build_client("Steam")
        self.rawg_client = _build_client("RAWG")
        self.itad_client = _build_client("ITAD") if config.ITAD_ENABLED else None
        self._clients: List[RateLimitedClient] = [
            c for c in (self.steam_client, self.rawg_client, self.itad_client) if c is not None
        ]

        self.steam = SteamCatalog(self.steam_client, self.cache, api_key=config.STEAM_API_KEY)
        self.rawg = RawgCatalog(self.rawg_client, api_key=config.RAWG_API_KEY)
        self.deals = DealsCatalog(self.itad_client, api_key=config.ITAD_API_KEY, enabled=config.ITAD_ENABLED)
        self.engine = RecommendationEngine(self.store, self.steam, self.rawg, self.deals)
        self.maintenance = CacheMaintenance(self.cache)
        self._initialized = False

    async def init(self):
        if self._initialized:
            return
        if not config.RAWG_API_KEY:
            logger.warning("⚠️ RAWG_API_KEY is not set - RAWG requests will be rejected")

        await self.cache.init()
        await self.store.init()
        if self.start_jobs:
            self.maintenance.start()

        self._initialized = True
        logger.info("✅ Services initialized")

    async def close(self):
        if self.start_jobs:
            self.maintenance.stop()
        for client in self._clients:
            await client.close()
        self._initialized = False
        logger.info("Services closed")
