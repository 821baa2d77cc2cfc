"""
Ranking Aggregator service.

Turns one day's session rows into an ordered DailyRanking. Rankings are
always derived from the session store; the prize ledger, not this service,
is the source of truth for who won.
"""

import time
from typing import Callable, Optional

from prizepool.data_models.settlement import DailyRanking, SessionRow
from prizepool.services.ranking_cache import RankingCache
from prizepool.services.session_store import SessionStore
from prizepool.utils.day import day_id_from_millis, from_epoch_millis
from prizepool.utils.ranking import build_daily_ranking
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class RankingService:
    """Computes daily rankings, optionally through a read cache."""

    def __init__(self, session_store: SessionStore, cache: Optional[RankingCache] = None,
                 clock: Callable[[], float] = time.time):
        self.session_store = session_store
        self.cache = cache
        self._clock = clock

    async def get_daily_ranking(self, day_id: int, use_cache: bool = True) -> DailyRanking:
        """
        Ranking for a day.

        Args:
            day_id: UTC epoch-day
            use_cache: Serve from the read cache when one is configured.
                Settlement passes False so it always reads the store.
        """
        if use_cache and self.cache is not None:
            return await self.cache.get_or_load(day_id, self._compute)
        return await self._compute(day_id)

    async def record_session(self, player, points, bonus_hits=0, penalty_hits=0,
                             timestamp=None) -> SessionRow:
        """Append a session (timestamped now unless given) and invalidate its day."""
        if timestamp is None:
            timestamp = from_epoch_millis(int(self._clock() * 1000))
        row = await self.session_store.append(
            player, points, timestamp, bonus_hits=bonus_hits, penalty_hits=penalty_hits
        )
        if self.cache is not None:
            self.cache.invalidate(day_id_from_millis(row.timestamp_ms))
        return row

    async def _compute(self, day_id: int) -> DailyRanking:
        rows = await self.session_store.list_sessions(day_id)
        ranking = build_daily_ranking(day_id, rows)
        logger.debug(f"Computed ranking for day {day_id}: {len(rows)} sessions, {ranking.total_players} players")
        return ranking
