"""
Read-through cache for daily rankings.

Provides a TTL cache in front of ranking computation for read paths
(results pages, claim previews). Settlement always bypasses it.
"""

import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

from prizepool.config import Config
from prizepool.data_models.settlement import DailyRanking
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class RankingCache:
    """Day id -> DailyRanking cache with a declared staleness bound."""

    def __init__(self, ttl: Optional[float] = None, max_size: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = Config.RANKING_CACHE_TTL if ttl is None else ttl
        self.max_size = Config.RANKING_CACHE_MAX_SIZE if max_size is None else max_size
        self._clock = clock
        self._cache: Dict[int, Tuple[float, DailyRanking]] = {}  # day_id -> (loaded_at, ranking)

    async def get_or_load(self, day_id: int,
                          loader: Callable[[int], Awaitable[DailyRanking]]) -> DailyRanking:
        """Return the cached ranking if younger than the TTL, otherwise load it."""
        cached = self._cache.get(day_id)
        if cached is not None:
            loaded_at, ranking = cached
            if self._clock() - loaded_at < self.ttl:
                logger.debug(f"Ranking cache hit for day {day_id}")
                return ranking

        logger.debug(f"Ranking cache miss for day {day_id}, computing fresh")
        ranking = await loader(day_id)
        self._cache[day_id] = (self._clock(), ranking)

        if len(self._cache) > self.max_size:
            self._cleanup_cache()

        return ranking

    def invalidate(self, day_id: int):
        """Drop the cached ranking for one day."""
        if self._cache.pop(day_id, None) is not None:
            logger.debug(f"Invalidated ranking cache for day {day_id}")

    def invalidate_all(self):
        logger.info("Clearing entire ranking cache")
        self._cache.clear()

    def __contains__(self, day_id: int) -> bool:
        return day_id in self._cache

    def _cleanup_cache(self):
        """Remove oldest cache entries to stay within size limit."""
        sorted_items = sorted(self._cache.items(), key=lambda x: x[1][0], reverse=True)
        self._cache = dict(sorted_items[:self.max_size])
        logger.debug(f"Cleaned ranking cache, kept {len(self._cache)} entries")
