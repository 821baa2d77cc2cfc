"""
Winner Registration Orchestrator.

Commits each day's top three players to the prize ledger exactly once.

Per-day state machine:
    UNREGISTERED --submit--> SUBMITTED --confirmed--> REGISTERED
    SUBMITTED --failure/timeout--> UNREGISTERED (retry via the gate)

Every attempt starts at the idempotency gate: the ledger's rank-1 slot is
re-read, and a filled slot means the day is REGISTERED without submitting.
This covers retried scheduler runs and transactions that were included
after their confirmation wait timed out.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from prizepool.config import Config
from prizepool.data_models.settlement import (
    RegistrationOutcome, RegistrationState, RegistrationStatus
)
from prizepool.ledger.base import PrizeLedger
from prizepool.services.base import BaseService
from prizepool.services.day_lock import DayLockManager
from prizepool.services.ranking_service import RankingService
from prizepool.utils.address import is_empty_address, normalize_address
from prizepool.utils.logger import setup_logger
from prizepool.utils.ranking import winner_slots
from prizepool.utils.settlement_exceptions import (
    DuplicateWinnerError, LedgerRejectedError, SettlementValidationError, TooManyWinnersError,
    TransactionFailedError, TransactionTimeoutError, TransientLedgerError
)

logger = setup_logger(__name__)


class WinnerRegistrationService(BaseService):
    """Registers daily winners on the prize ledger, idempotently."""

    def __init__(self, ranking_service: RankingService, prize_ledger: PrizeLedger,
                 day_lock: Optional[DayLockManager] = None, max_attempts: Optional[int] = None,
                 confirmation_timeout: Optional[float] = None, retry_delay: Optional[float] = None):
        super().__init__(retry_delay=retry_delay)
        self.ranking_service = ranking_service
        self.prize_ledger = prize_ledger
        self.day_lock = day_lock or DayLockManager()
        self.max_attempts = Config.TX_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.confirmation_timeout = (Config.TX_CONFIRMATION_TIMEOUT
                                     if confirmation_timeout is None else confirmation_timeout)
        self.slots = Config.WINNER_SLOTS

    async def register_day(self, day_id: int) -> RegistrationOutcome:
        """
        Settle one day.

        Never raises for transient or validation failures; they are reported
        in the returned outcome so one bad day does not stop a batch.
        """
        async with self.day_lock.hold(day_id) as acquired:
            if not acquired:
                return RegistrationOutcome(
                    day_id=day_id,
                    status=RegistrationStatus.LOCKED,
                    state=RegistrationState.UNREGISTERED,
                    error="another settlement run holds this day"
                )
            return await self._settle_day(day_id)

    async def _settle_day(self, day_id: int) -> RegistrationOutcome:
        submitted = False
        winners: tuple = ()
        total_players = 0
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            # Idempotency gate
            try:
                first_winner = await self.prize_ledger.get_winner(day_id, 1)
            except TransientLedgerError as e:
                last_error = str(e)
                logger.warning(f"Day {day_id}: ledger read failed on attempt {attempt}: {e}")
                await self._backoff_before_next(attempt)
                continue

            if not is_empty_address(first_winner):
                if submitted:
                    try:
                        stored = await self._stored_winners(day_id)
                    except TransientLedgerError as e:
                        last_error = str(e)
                        logger.warning(f"Day {day_id}: ledger read failed on attempt {attempt}: {e}")
                        await self._backoff_before_next(attempt)
                        continue
                    if stored == winners:
                        logger.info(f"Day {day_id}: submission confirmed by ledger state, "
                                    f"{RegistrationState.SUBMITTED.value} -> {RegistrationState.REGISTERED.value}")
                        return self._outcome(day_id, RegistrationStatus.REGISTERED, RegistrationState.REGISTERED,
                                             winners, total_players, attempts=attempt)
                    logger.warning(f"Day {day_id}: ledger holds winners={list(stored)} from another run, "
                                   f"ours were {list(winners)}")
                    return self._outcome(day_id, RegistrationStatus.ALREADY_REGISTERED, RegistrationState.REGISTERED,
                                         stored, attempts=attempt)
                logger.info(f"Day {day_id} already registered (rank 1: {first_winner})")
                return self._outcome(day_id, RegistrationStatus.ALREADY_REGISTERED, RegistrationState.REGISTERED,
                                     attempts=attempt)

            ranking = await self.ranking_service.get_daily_ranking(day_id, use_cache=False)
            if ranking.is_empty:
                logger.info(f"Day {day_id}: no sessions, nothing to register")
                return self._outcome(day_id, RegistrationStatus.NO_SESSIONS, RegistrationState.UNREGISTERED,
                                     attempts=attempt)

            total_players = ranking.total_players
            try:
                winners = tuple(self.validate_winners(day_id, winner_slots(ranking, self.slots)))
            except SettlementValidationError as e:
                logger.error(f"Day {day_id}: refusing to submit winners: {e}")
                return self._outcome(day_id, RegistrationStatus.VALIDATION_FAILED, RegistrationState.UNREGISTERED,
                                     total_players=total_players, attempts=attempt, error=str(e))

            logger.info(f"Day {day_id}: {RegistrationState.UNREGISTERED.value} -> {RegistrationState.SUBMITTED.value} "
                        f"winners={list(winners)} total_players={total_players}")
            submitted = True
            try:
                receipt = await asyncio.wait_for(
                    self.prize_ledger.register_winners(day_id, list(winners), total_players),
                    timeout=self.confirmation_timeout
                )
                if not receipt.success:
                    raise TransactionFailedError('register_winners', receipt.tx_hash)
            except asyncio.TimeoutError:
                last_error = str(TransactionTimeoutError('register_winners', self.confirmation_timeout))
                logger.warning(f"Day {day_id}: {last_error}, "
                               f"{RegistrationState.SUBMITTED.value} -> {RegistrationState.UNREGISTERED.value}")
                await self._backoff_before_next(attempt)
                continue
            except TransientLedgerError as e:
                last_error = str(e)
                if isinstance(e, LedgerRejectedError):
                    # Nothing of ours landed; a filled slot now belongs to another run
                    submitted = False
                logger.warning(f"Day {day_id}: submission failed: {e}, "
                               f"{RegistrationState.SUBMITTED.value} -> {RegistrationState.UNREGISTERED.value}")
                await self._backoff_before_next(attempt)
                continue

            logger.info(f"Day {day_id}: {RegistrationState.SUBMITTED.value} -> {RegistrationState.REGISTERED.value} "
                        f"(tx {receipt.tx_hash})")
            return self._outcome(day_id, RegistrationStatus.REGISTERED, RegistrationState.REGISTERED,
                                 winners, total_players, tx_hash=receipt.tx_hash, attempts=attempt)

        logger.error(f"Day {day_id}: giving up after {self.max_attempts} attempts, "
                     f"next scheduled run will retry: {last_error}")
        return self._outcome(day_id, RegistrationStatus.TRANSIENT_FAILURE, RegistrationState.UNREGISTERED,
                             winners, total_players, attempts=self.max_attempts, error=last_error)

    def validate_winners(self, day_id: int, winners: Sequence[Optional[str]]) -> List[Optional[str]]:
        """
        Check a computed winner list and pad it to one entry per slot.

        Raises:
            TooManyWinnersError: More entries than winner slots
            DuplicateWinnerError: An address fills more than one slot
            InvalidAddressError: An entry is not a valid address
            SettlementValidationError: A filled slot follows an empty one
        """
        if len(winners) > self.slots:
            raise TooManyWinnersError(day_id, len(winners), self.slots)

        validated: List[Optional[str]] = []
        seen = set()
        for rank, winner in enumerate(winners, start=1):
            if is_empty_address(winner):
                validated.append(None)
                continue
            if validated and validated[-1] is None:
                raise SettlementValidationError(f"Rank {rank} filled after an empty rank for day {day_id}")
            address = normalize_address(winner)
            if address in seen:
                raise DuplicateWinnerError(day_id, address)
            seen.add(address)
            validated.append(address)

        validated.extend([None] * (self.slots - len(validated)))
        return validated

    async def _stored_winners(self, day_id: int) -> Tuple[Optional[str], ...]:
        """Every slot as the ledger holds it, in the same form as validate_winners."""
        stored = []
        for rank in range(1, self.slots + 1):
            winner = await self.prize_ledger.get_winner(day_id, rank)
            stored.append(None if is_empty_address(winner) else normalize_address(winner))
        return tuple(stored)

    async def _backoff_before_next(self, attempt: int):
        if attempt < self.max_attempts:
            await self.backoff(attempt - 1)

    @staticmethod
    def _outcome(day_id, status, state, winners=(), total_players=0, tx_hash=None, attempts=0, error=None):
        return RegistrationOutcome(
            day_id=day_id,
            status=status,
            state=state,
            winners=tuple(winners),
            total_players=total_players,
            tx_hash=tx_hash,
            attempts=attempts,
            error=error
        )
