"""
Housekeeping Service
Background loops reclaiming expired cache entries and rate-limit windows.
Memory hygiene only: lookups already treat expired state as absent.
"""

import asyncio
from typing import Dict, List, Optional

from ai_gateway.services.rate_limiter import RateLimiterService
from ai_gateway.services.response_cache import ResponseCacheService
from ai_gateway.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingService:
    """Runs periodic sweeps on the event loop, independent of request traffic"""

    def __init__(
        self,
        cache: ResponseCacheService,
        rate_limiter: RateLimiterService,
        cache_sweep_interval: float = 600.0,
        rate_limit_sweep_interval: float = 60.0,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.cache_sweep_interval = cache_sweep_interval
        self.rate_limit_sweep_interval = rate_limit_sweep_interval
        self._tasks: List[asyncio.Task] = []
        self.last_sweep: Dict[str, Optional[int]] = {"cache": None, "rate_limits": None}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self):
        if self.is_running:
            logger.warning("Housekeeping already running")
            return

        self._tasks = [
            asyncio.create_task(self._loop("cache", self.cache_sweep_interval, self.cache.sweep_expired)),
            asyncio.create_task(self._loop("rate_limits", self.rate_limit_sweep_interval, self.rate_limiter.reclaim_expired)),
        ]
        logger.info(
            f"Housekeeping started (cache every {self.cache_sweep_interval}s, "
            f"rate limits every {self.rate_limit_sweep_interval}s)"
        )

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Housekeeping stopped")

    async def _loop(self, name: str, interval: float, sweep):
        while True:
            await asyncio.sleep(interval)
            try:
                self.last_sweep[name] = sweep()
            except Exception as e:
                logger.error(f"Housekeeping sweep {name} failed: {str(e)}")

    def run_once(self) -> Dict[str, int]:
        """Run both sweeps immediately"""
        results = {
            "cache": self.cache.sweep_expired(),
            "rate_limits": self.rate_limiter.reclaim_expired(),
        }
        self.last_sweep.update(results)
        return results
