"""
Claim path: Claim Window Enforcer and the claim request surface.

A registered winner may claim a day's prize until

    deadline = day_start_seconds(day_id) + CLAIM_PERIOD_SECONDS

All instant arithmetic here is in epoch seconds. Day ids are converted
through prizepool.utils.day only.
"""

import time
from typing import Callable, List, Optional

from prizepool.config import Config
from prizepool.data_models.settlement import ClaimOutcome, ClaimResult, PrizeSlot
from prizepool.ledger.base import PrizeLedger
from prizepool.utils.address import is_empty_address, normalize_address
from prizepool.utils.day import MAX_EPOCH_MS, day_start_seconds
from prizepool.utils.settlement_exceptions import (
    ClaimDeadlineAnomalyError, InvalidAddressError, LedgerRejectedError, TransactionFailedError
)
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)

MAX_EPOCH_SECONDS = MAX_EPOCH_MS // 1000


class ClaimWindowEnforcer:
    """Pure gate deciding whether a winner slot can be claimed now."""

    def __init__(self, claim_period_seconds: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        self.claim_period_seconds = (Config.CLAIM_PERIOD_SECONDS
                                     if claim_period_seconds is None else claim_period_seconds)
        if self.claim_period_seconds <= 0:
            raise ValueError("claim_period_seconds must be positive")
        self._clock = clock

    def claim_deadline(self, day_id: int) -> int:
        """
        Last epoch second at which a claim for the day is accepted.

        Raises:
            ClaimDeadlineAnomalyError: The day id is negative, not an integer,
                or so large it was most likely a timestamp passed as a day id
        """
        if isinstance(day_id, bool) or not isinstance(day_id, int) or day_id < 0:
            raise ClaimDeadlineAnomalyError(day_id)
        deadline = day_start_seconds(day_id) + self.claim_period_seconds
        if deadline > MAX_EPOCH_SECONDS:
            raise ClaimDeadlineAnomalyError(day_id, deadline)
        return deadline

    def is_within_window(self, day_id: int, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        return now <= self.claim_deadline(day_id)

    def evaluate(self, day_id: int, winner: Optional[str], claimed: bool,
                 now: Optional[float] = None) -> ClaimOutcome:
        """Outcome for a slot, ignoring who is asking."""
        if is_empty_address(winner):
            return ClaimOutcome.NO_WINNER
        if claimed:
            return ClaimOutcome.ALREADY_CLAIMED
        if not self.is_within_window(day_id, now):
            return ClaimOutcome.EXPIRED
        return ClaimOutcome.CLAIMABLE


class ClaimService:
    """Validates claim requests and forwards accepted ones to the prize ledger."""

    def __init__(self, prize_ledger: PrizeLedger, enforcer: Optional[ClaimWindowEnforcer] = None):
        self.prize_ledger = prize_ledger
        self.enforcer = enforcer or ClaimWindowEnforcer()

    async def request_claim(self, day_id: int, rank: int, caller: str) -> ClaimResult:
        """
        Claim a prize for `caller`.

        Business rejections come back as ClaimResult outcomes. Ledger
        failures and deadline anomalies are raised to the caller.
        """
        if isinstance(rank, bool) or not isinstance(rank, int) or not 1 <= rank <= Config.WINNER_SLOTS:
            return ClaimResult(day_id=day_id, rank=rank, outcome=ClaimOutcome.INVALID_RANK)
        try:
            caller = normalize_address(caller)
        except InvalidAddressError:
            return ClaimResult(day_id=day_id, rank=rank, outcome=ClaimOutcome.INVALID_ADDRESS)

        self.enforcer.claim_deadline(day_id)

        winner = await self.prize_ledger.get_winner(day_id, rank)
        if is_empty_address(winner):
            return self._rejected(day_id, rank, caller, ClaimOutcome.NO_WINNER)
        if normalize_address(winner) != caller:
            return self._rejected(day_id, rank, caller, ClaimOutcome.NOT_WINNER)

        claimed = await self.prize_ledger.is_claimed(day_id, rank)
        outcome = self.enforcer.evaluate(day_id, winner, claimed)
        if outcome is not ClaimOutcome.CLAIMABLE:
            return self._rejected(day_id, rank, caller, outcome)

        try:
            receipt = await self.prize_ledger.claim(day_id, rank, caller)
        except LedgerRejectedError:
            # Lost a race with another claim for the same slot
            if await self.prize_ledger.is_claimed(day_id, rank):
                return self._rejected(day_id, rank, caller, ClaimOutcome.ALREADY_CLAIMED)
            raise
        if not receipt.success:
            raise TransactionFailedError('claim', receipt.tx_hash)

        prize = Config.get_prize_amount(rank)
        logger.info(f"Prize claimed: day {day_id} rank {rank} by {caller}, amount {prize} (tx {receipt.tx_hash})")
        return ClaimResult(
            day_id=day_id,
            rank=rank,
            outcome=ClaimOutcome.CLAIMED,
            player=caller,
            prize_amount=prize,
            tx_hash=receipt.tx_hash
        )

    async def get_day_prizes(self, day_id: int) -> List[PrizeSlot]:
        """Prize table for a day: winner, claim state and deadline per rank."""
        deadline = self.enforcer.claim_deadline(day_id)
        slots = []
        for rank in range(1, Config.WINNER_SLOTS + 1):
            winner = await self.prize_ledger.get_winner(day_id, rank)
            claimed = False if is_empty_address(winner) else await self.prize_ledger.is_claimed(day_id, rank)
            slots.append(PrizeSlot(
                day_id=day_id,
                rank=rank,
                winner=None if is_empty_address(winner) else winner,
                claimed=claimed,
                prize_amount=Config.get_prize_amount(rank),
                claim_deadline=deadline,
                claimable=self.enforcer.evaluate(day_id, winner, claimed) is ClaimOutcome.CLAIMABLE
            ))
        return slots

    @staticmethod
    def _rejected(day_id: int, rank: int, caller: str, outcome: ClaimOutcome) -> ClaimResult:
        logger.info(f"Claim rejected: day {day_id} rank {rank} by {caller}: {outcome.value}")
        return ClaimResult(day_id=day_id, rank=rank, outcome=outcome, player=caller)
