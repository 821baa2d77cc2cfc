"""
Migration holds: players whose credit migrations wait for manual review.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select

from prizepool.database.models import MigrationHold
from prizepool.services.base import BaseService
from prizepool.utils.address import normalize_address
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class MigrationHoldStore(BaseService):
    """Active holds block every further migration for a player."""

    async def get_active_hold(self, player: str) -> Optional[str]:
        """Reason of the oldest unreleased hold, None when the player is free."""
        player = normalize_address(player)
        async with self.get_session() as session:
            result = await session.execute(
                select(MigrationHold.reason).where(
                    MigrationHold.player == player,
                    MigrationHold.released == False  # noqa: E712
                ).order_by(MigrationHold.id).limit(1)
            )
            return result.scalar_one_or_none()

    async def place_hold(self, player: str, reason: str):
        player = normalize_address(player)
        async with self.get_session() as session:
            session.add(MigrationHold(player=player, reason=reason))
        logger.error(f"Migration hold placed on {player}: {reason}")

    async def release_hold(self, player: str, note: str) -> int:
        """Release every active hold for a player. Returns how many were released."""
        player = normalize_address(player)
        async with self.get_session() as session:
            result = await session.execute(
                select(MigrationHold).where(
                    MigrationHold.player == player,
                    MigrationHold.released == False  # noqa: E712
                )
            )
            holds = list(result.scalars())
            for hold in holds:
                hold.released = True
                hold.released_at = datetime.now(timezone.utc)
                hold.release_note = note
        if holds:
            logger.info(f"Released {len(holds)} migration hold(s) on {player}: {note}")
        return len(holds)

    async def list_active_holds(self) -> List[MigrationHold]:
        async with self.get_session() as session:
            result = await session.execute(
                select(MigrationHold).where(MigrationHold.released == False)  # noqa: E712
                .order_by(MigrationHold.id)
            )
            return list(result.scalars())
