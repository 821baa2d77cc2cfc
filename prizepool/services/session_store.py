"""
Session store for play-session records.

All externally sourced session rows enter through `append`, which is the one
place timestamps and addresses are parsed. Rows that cannot be parsed are
quarantined instead of coerced.
"""

import json
from typing import List, Optional

from sqlalchemy import select

from prizepool.data_models.settlement import SessionRow
from prizepool.database.models import QuarantinedSession, SessionRecord
from prizepool.services.base import BaseService
from prizepool.utils.address import normalize_address
from prizepool.utils.day import day_bounds_millis, parse_timestamp
from prizepool.utils.settlement_exceptions import (
    InvalidSessionError, SettlementValidationError
)
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


def _require_int(name: str, value, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidSessionError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise InvalidSessionError(f"{name} must be >= {minimum}, got {value}")
    return value


class SessionStore(BaseService):
    """Append-only store of play sessions, queried by day id."""

    async def append(self, player, points, timestamp, bonus_hits=0, penalty_hits=0) -> SessionRow:
        """
        Validate and append one session row.

        Args:
            player: Wallet address, any case
            points: Points scored in the session
            timestamp: datetime, epoch millis or ISO-8601 string with offset
            bonus_hits: Bonus targets hit
            penalty_hits: Penalty targets hit

        Returns:
            The stored row

        Raises:
            SettlementValidationError: The row was quarantined
        """
        try:
            row = SessionRow(
                player=normalize_address(player),
                points=_require_int('points', points),
                bonus_hits=_require_int('bonus_hits', bonus_hits, minimum=0),
                penalty_hits=_require_int('penalty_hits', penalty_hits, minimum=0),
                timestamp_ms=parse_timestamp(timestamp),
            )
        except SettlementValidationError as e:
            await self.quarantine({
                'player': player,
                'points': points,
                'bonus_hits': bonus_hits,
                'penalty_hits': penalty_hits,
                'timestamp': timestamp,
            }, str(e))
            raise

        async with self.get_session() as session:
            session.add(SessionRecord(
                player=row.player,
                points=row.points,
                bonus_hits=row.bonus_hits,
                penalty_hits=row.penalty_hits,
                timestamp_ms=row.timestamp_ms
            ))
        return row

    async def list_sessions(self, day_id: int) -> List[SessionRow]:
        """All sessions whose timestamp falls inside the given UTC day."""
        start_ms, end_ms = day_bounds_millis(day_id)
        async with self.get_session() as session:
            result = await session.execute(
                select(SessionRecord).where(
                    SessionRecord.timestamp_ms >= start_ms,
                    SessionRecord.timestamp_ms <= end_ms
                ).order_by(SessionRecord.id)
            )
            return [
                SessionRow(
                    player=record.player,
                    points=record.points,
                    bonus_hits=record.bonus_hits,
                    penalty_hits=record.penalty_hits,
                    timestamp_ms=record.timestamp_ms
                )
                for record in result.scalars()
            ]

    async def quarantine(self, payload: dict, reason: str):
        """Keep a rejected row for later inspection."""
        logger.warning(f"Quarantined session row: {reason}")
        async with self.get_session() as session:
            session.add(QuarantinedSession(
                raw_payload=json.dumps(payload, default=str, sort_keys=True),
                reason=reason[:500]
            ))

    async def list_quarantined(self) -> List[QuarantinedSession]:
        async with self.get_session() as session:
            result = await session.execute(select(QuarantinedSession).order_by(QuarantinedSession.id))
            return list(result.scalars())
