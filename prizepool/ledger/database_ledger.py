"""
Database-backed ledger adapters.

Implements the observable behaviour of the prize and credit ledger contracts
on top of the settlement database, for local runs, staging and tests:
- winner slots are write-once per day
- a claim flag flips once and never resets
- a migration credits the target deployment and emits one event per call

Transport concerns (signing, gas, confirmation) do not exist here, every
call is confirmed when it returns.
"""

import secrets
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select, distinct
from sqlalchemy.exc import IntegrityError

from prizepool.config import Config
from prizepool.data_models.settlement import MigrationEventData, TxReceipt
from prizepool.database.models import (
    CreditBalance, MigrationEvent, PrizeClaim, PrizeDay, PrizeWinner
)
from prizepool.ledger.base import CreditLedger, PrizeLedger
from prizepool.services.base import BaseService
from prizepool.utils.address import is_empty_address, normalize_address
from prizepool.utils.settlement_exceptions import LedgerRejectedError
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


def new_tx_hash() -> str:
    return '0x' + secrets.token_hex(32)


class DatabasePrizeLedger(BaseService, PrizeLedger):
    """Prize ledger stored in the prize_days / prize_winners / prize_claims tables."""

    def __init__(self, session_factory):
        super().__init__(session_factory)

    async def get_winner(self, day_id: int, rank: int) -> Optional[str]:
        async with self.get_session() as session:
            result = await session.execute(
                select(PrizeWinner.player).where(
                    PrizeWinner.day_id == day_id,
                    PrizeWinner.rank == rank
                )
            )
            return result.scalar_one_or_none()

    async def is_claimed(self, day_id: int, rank: int) -> bool:
        async with self.get_session() as session:
            result = await session.execute(
                select(PrizeClaim.claimed).where(
                    PrizeClaim.day_id == day_id,
                    PrizeClaim.rank == rank
                )
            )
            return bool(result.scalar_one_or_none())

    async def get_total_players(self, day_id: int) -> int:
        async with self.get_session() as session:
            day = await session.get(PrizeDay, day_id)
            return day.total_players if day else 0

    async def register_winners(self, day_id: int, winners: Sequence[Optional[str]],
                               total_players: int) -> TxReceipt:
        if len(winners) != Config.WINNER_SLOTS:
            raise ValueError(f"Expected {Config.WINNER_SLOTS} winner slots, got {len(winners)}")

        tx_hash = new_tx_hash()
        try:
            async with self.get_session() as session:
                existing = await session.execute(
                    select(PrizeWinner.id).where(PrizeWinner.day_id == day_id).limit(1)
                )
                if existing.scalar_one_or_none() is not None or await session.get(PrizeDay, day_id):
                    raise LedgerRejectedError('register_winners', f"day {day_id} already registered")

                session.add(PrizeDay(day_id=day_id, total_players=total_players, tx_hash=tx_hash))
                for rank, winner in enumerate(winners, start=1):
                    if is_empty_address(winner):
                        continue
                    session.add(PrizeWinner(day_id=day_id, rank=rank, player=normalize_address(winner)))
                    session.add(PrizeClaim(day_id=day_id, rank=rank, claimed=False))
        except IntegrityError as e:
            raise LedgerRejectedError('register_winners', f"constraint violated for day {day_id}") from e

        logger.debug(f"Stored winners for day {day_id} in tx {tx_hash}")
        return TxReceipt(tx_hash=tx_hash, success=True)

    async def claim(self, day_id: int, rank: int, claimant: str) -> TxReceipt:
        claimant = normalize_address(claimant)
        tx_hash = new_tx_hash()
        async with self.get_session() as session:
            winner = await session.execute(
                select(PrizeWinner.player).where(
                    PrizeWinner.day_id == day_id,
                    PrizeWinner.rank == rank
                )
            )
            if winner.scalar_one_or_none() != claimant:
                raise LedgerRejectedError('claim', "not winner")

            result = await session.execute(
                select(PrizeClaim).where(
                    PrizeClaim.day_id == day_id,
                    PrizeClaim.rank == rank
                )
            )
            claim = result.scalar_one()
            if claim.claimed:
                raise LedgerRejectedError('claim', "already claimed")

            claim.claimed = True
            claim.claimed_by = claimant
            claim.claimed_at = datetime.now(timezone.utc)
            claim.tx_hash = tx_hash

        return TxReceipt(tx_hash=tx_hash, success=True)


class DatabaseCreditLedger(BaseService, CreditLedger):
    """One credit ledger deployment stored in credit_balances / credit_migration_events."""

    def __init__(self, session_factory, version: str):
        BaseService.__init__(self, session_factory)
        CreditLedger.__init__(self, version)

    async def get_balance(self, player: str) -> int:
        player = normalize_address(player)
        async with self.get_session() as session:
            result = await session.execute(
                select(CreditBalance.balance).where(
                    CreditBalance.player == player,
                    CreditBalance.contract_version == self.version
                )
            )
            return result.scalar_one_or_none() or 0

    async def migrate(self, player: str, amount: int, source_version: str) -> TxReceipt:
        if amount <= 0:
            raise LedgerRejectedError('migrate', "amount must be positive")
        player = normalize_address(player)
        tx_hash = new_tx_hash()
        async with self.get_session() as session:
            balance = await self._get_or_create_balance(session, player)
            balance.balance += amount
            session.add(MigrationEvent(
                player=player,
                amount=amount,
                source_version=source_version,
                target_version=self.version,
                tx_hash=tx_hash
            ))
        return TxReceipt(tx_hash=tx_hash, success=True)

    async def list_migration_events(self, player: Optional[str] = None,
                                    source_version: Optional[str] = None) -> List[MigrationEventData]:
        stmt = select(MigrationEvent).where(MigrationEvent.target_version == self.version)
        if player is not None:
            stmt = stmt.where(MigrationEvent.player == normalize_address(player))
        if source_version is not None:
            stmt = stmt.where(MigrationEvent.source_version == source_version)
        stmt = stmt.order_by(MigrationEvent.id)

        async with self.get_session() as session:
            result = await session.execute(stmt)
            return [
                MigrationEventData(
                    player=event.player,
                    amount=event.amount,
                    source_version=event.source_version,
                    target_version=event.target_version,
                    tx_hash=event.tx_hash
                )
                for event in result.scalars()
            ]

    async def list_players(self) -> List[str]:
        async with self.get_session() as session:
            result = await session.execute(
                select(distinct(CreditBalance.player))
                .where(CreditBalance.contract_version == self.version)
                .order_by(CreditBalance.player)
            )
            return list(result.scalars())

    async def purchase_credits(self, player: str, amount: int) -> TxReceipt:
        """Add purchased credits to a player's balance."""
        if amount <= 0:
            raise LedgerRejectedError('purchase_credits', "amount must be positive")
        player = normalize_address(player)
        async with self.get_session() as session:
            balance = await self._get_or_create_balance(session, player)
            balance.balance += amount
        return TxReceipt(tx_hash=new_tx_hash(), success=True)

    async def consume_credits(self, player: str, amount: int) -> TxReceipt:
        """Spend credits for a play session."""
        player = normalize_address(player)
        async with self.get_session() as session:
            balance = await self._get_or_create_balance(session, player)
            if amount <= 0 or balance.balance < amount:
                raise LedgerRejectedError('consume_credits', f"insufficient credits for {player}")
            balance.balance -= amount
        return TxReceipt(tx_hash=new_tx_hash(), success=True)

    async def _get_or_create_balance(self, session, player: str) -> CreditBalance:
        result = await session.execute(
            select(CreditBalance).where(
                CreditBalance.player == player,
                CreditBalance.contract_version == self.version
            )
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            balance = CreditBalance(player=player, contract_version=self.version, balance=0)
            session.add(balance)
        return balance
