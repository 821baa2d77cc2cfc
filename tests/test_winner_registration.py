import asyncio

import pytest
from sqlalchemy import func, select

from prizepool.data_models.settlement import (
    DailyRanking, RankingEntry, RegistrationState, RegistrationStatus
)
from prizepool.database.database import Database
from prizepool.database.models import PrizeDay
from prizepool.ledger.base import PrizeLedger
from prizepool.ledger.database_ledger import DatabasePrizeLedger
from prizepool.services.day_lock import DayLockManager
from prizepool.services.ranking_service import RankingService
from prizepool.services.session_store import SessionStore
from prizepool.services.winner_registration import WinnerRegistrationService
from prizepool.utils.settlement_exceptions import (
    DuplicateWinnerError, InvalidAddressError, SettlementValidationError,
    TooManyWinnersError, TransactionTimeoutError, TransientLedgerError
)

from conftest import DAY, DAY_START_MS, PLAYER_A, PLAYER_B, PLAYER_C, PLAYER_D


class WrappedPrizeLedger(PrizeLedger):
    """Delegates to a real ledger; subclasses inject faults."""

    def __init__(self, inner):
        self.inner = inner
        self.register_calls = 0

    async def get_winner(self, day_id, rank):
        return await self.inner.get_winner(day_id, rank)

    async def is_claimed(self, day_id, rank):
        return await self.inner.is_claimed(day_id, rank)

    async def get_total_players(self, day_id):
        return await self.inner.get_total_players(day_id)

    async def register_winners(self, day_id, winners, total_players):
        self.register_calls += 1
        return await self.inner.register_winners(day_id, winners, total_players)

    async def claim(self, day_id, rank, claimant):
        return await self.inner.claim(day_id, rank, claimant)


class MinedThenTimeoutLedger(WrappedPrizeLedger):
    """The transaction lands but its confirmation is reported as timed out."""

    async def register_winners(self, day_id, winners, total_players):
        await super().register_winners(day_id, winners, total_players)
        raise TransactionTimeoutError('register_winners', 120)


class SlowConfirmationLedger(WrappedPrizeLedger):
    """The transaction lands but confirmation takes longer than the wait."""

    async def register_winners(self, day_id, winners, total_players):
        await super().register_winners(day_id, winners, total_players)
        await asyncio.sleep(10)


class RacedLedger(WrappedPrizeLedger):
    """Another run registers the day between our gate read and our submission."""

    async def register_winners(self, day_id, winners, total_players):
        await self.inner.register_winners(day_id, [PLAYER_D, None, None], 1)
        return await super().register_winners(day_id, winners, total_players)


class RacedThenTimeoutLedger(WrappedPrizeLedger):
    """Another run registers different winners while our confirmation wait times out."""

    async def register_winners(self, day_id, winners, total_players):
        self.register_calls += 1
        await self.inner.register_winners(day_id, [PLAYER_D, None, None], 1)
        raise TransactionTimeoutError('register_winners', 120)


class UnavailableLedger(WrappedPrizeLedger):
    async def register_winners(self, day_id, winners, total_players):
        self.register_calls += 1
        raise TransientLedgerError('register_winners', "connection refused")


class StubRankingService:
    def __init__(self, ranking):
        self.ranking = ranking

    async def get_daily_ranking(self, day_id, use_cache=True):
        return self.ranking


async def setup(database_url, sessions=(), ledger_wrapper=None, **kwargs):
    db = Database(database_url)
    await db.initialize()
    store = SessionStore(db.session_factory)
    for player, points, bonus in sessions:
        await store.append(player, points, DAY_START_MS + 1000, bonus_hits=bonus)
    ledger = (ledger_wrapper or WrappedPrizeLedger)(DatabasePrizeLedger(db.session_factory))
    kwargs.setdefault('retry_delay', 0)
    service = WinnerRegistrationService(RankingService(store), ledger, DayLockManager(), **kwargs)
    return db, ledger, service


async def count_prize_days(db):
    async with db.get_session() as session:
        result = await session.execute(select(func.count()).select_from(PrizeDay))
        return result.scalar_one()


def test_registers_top_three(database_url):
    sessions = [(PLAYER_A, 100, 2), (PLAYER_B, 100, 3), (PLAYER_C, 90, 5), (PLAYER_D, 10, 0)]

    async def scenario():
        db, ledger, service = await setup(database_url, sessions)
        try:
            outcome = await service.register_day(DAY)
            slots = [await ledger.get_winner(DAY, rank) for rank in (1, 2, 3)]
            return outcome, slots, await ledger.get_total_players(DAY)
        finally:
            await db.close()

    outcome, slots, total_players = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.REGISTERED
    assert outcome.state is RegistrationState.REGISTERED
    assert outcome.tx_hash
    assert slots == [PLAYER_B, PLAYER_A, PLAYER_C]
    assert total_players == 4


def test_second_run_is_a_no_op(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0), (PLAYER_B, 3, 0)])
        try:
            first = await service.register_day(DAY)
            second = await service.register_day(DAY)
            return first, second, ledger.register_calls, await count_prize_days(db)
        finally:
            await db.close()

    first, second, register_calls, days = asyncio.run(scenario())
    assert first.status is RegistrationStatus.REGISTERED
    assert second.status is RegistrationStatus.ALREADY_REGISTERED
    assert second.is_registered
    assert register_calls == 1
    assert days == 1


def test_single_player_fills_rank_one_only(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)])
        try:
            outcome = await service.register_day(DAY)
            slots = [await ledger.get_winner(DAY, rank) for rank in (1, 2, 3)]
            return outcome, slots
        finally:
            await db.close()

    outcome, slots = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.REGISTERED
    assert outcome.winners == (PLAYER_A, None, None)
    assert outcome.total_players == 1
    assert slots == [PLAYER_A, None, None]


def test_day_without_sessions_is_not_registered(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url)
        try:
            return await service.register_day(DAY), ledger.register_calls
        finally:
            await db.close()

    outcome, register_calls = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.NO_SESSIONS
    assert register_calls == 0


def test_timed_out_but_mined_registration_is_not_resubmitted(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)],
                                          ledger_wrapper=MinedThenTimeoutLedger)
        try:
            outcome = await service.register_day(DAY)
            return outcome, ledger.register_calls, await count_prize_days(db)
        finally:
            await db.close()

    outcome, register_calls, days = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.REGISTERED
    assert outcome.attempts == 2
    assert register_calls == 1
    assert days == 1


def test_confirmation_wait_is_bounded(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)],
                                          ledger_wrapper=SlowConfirmationLedger,
                                          confirmation_timeout=0.05)
        try:
            outcome = await service.register_day(DAY)
            return outcome, ledger.register_calls
        finally:
            await db.close()

    outcome, register_calls = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.REGISTERED
    assert register_calls == 1


def test_gives_up_after_bounded_attempts(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)],
                                          ledger_wrapper=UnavailableLedger, max_attempts=3)
        try:
            outcome = await service.register_day(DAY)
            return outcome, ledger.register_calls, await count_prize_days(db)
        finally:
            await db.close()

    outcome, register_calls, days = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.TRANSIENT_FAILURE
    assert outcome.state is RegistrationState.UNREGISTERED
    assert "connection refused" in outcome.error
    assert register_calls == 3
    assert days == 0


def test_duplicate_winner_list_is_never_submitted(database_url):
    entry = RankingEntry(player=PLAYER_A, score=10, bonus_hits=0, penalty_hits=0, first_played_ms=DAY_START_MS)
    broken = DailyRanking(day_id=DAY, entries=(entry, entry))

    async def scenario():
        db = Database(database_url)
        await db.initialize()
        try:
            ledger = WrappedPrizeLedger(DatabasePrizeLedger(db.session_factory))
            service = WinnerRegistrationService(StubRankingService(broken), ledger, DayLockManager(),
                                                retry_delay=0)
            return await service.register_day(DAY), ledger.register_calls
        finally:
            await db.close()

    outcome, register_calls = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.VALIDATION_FAILED
    assert "Duplicate winner" in outcome.error
    assert register_calls == 0


def test_busy_day_is_skipped(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)])
        try:
            async with service.day_lock.hold(DAY) as acquired:
                assert acquired
                outcome = await service.register_day(DAY)
            return outcome, ledger.register_calls
        finally:
            await db.close()

    outcome, register_calls = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.LOCKED
    assert register_calls == 0


class TestValidateWinners:
    def setup_method(self):
        self.service = WinnerRegistrationService(StubRankingService(None), None, DayLockManager())

    def test_pads_and_normalizes(self):
        assert self.service.validate_winners(DAY, ['0x' + 'A' * 40]) == [PLAYER_A, None, None]

    def test_duplicate(self):
        with pytest.raises(DuplicateWinnerError):
            self.service.validate_winners(DAY, [PLAYER_A, PLAYER_B, PLAYER_A.upper().replace('0X', '0x')])

    def test_too_many(self):
        with pytest.raises(TooManyWinnersError):
            self.service.validate_winners(DAY, [PLAYER_A, PLAYER_B, PLAYER_C, PLAYER_D])

    def test_malformed_address(self):
        with pytest.raises(InvalidAddressError):
            self.service.validate_winners(DAY, [PLAYER_A, '0x1234'])

    def test_gap_between_ranks(self):
        with pytest.raises(SettlementValidationError):
            self.service.validate_winners(DAY, [PLAYER_A, None, PLAYER_B])


def test_registration_by_another_run_is_reported_as_already_registered(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)], ledger_wrapper=RacedLedger)
        try:
            outcome = await service.register_day(DAY)
            return outcome, await ledger.get_winner(DAY, 1)
        finally:
            await db.close()

    outcome, first_winner = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.ALREADY_REGISTERED
    assert first_winner == PLAYER_D


def test_timed_out_submission_reports_the_winners_the_ledger_holds(database_url):
    async def scenario():
        db, ledger, service = await setup(database_url, [(PLAYER_A, 5, 0)],
                                          ledger_wrapper=RacedThenTimeoutLedger)
        try:
            outcome = await service.register_day(DAY)
            return outcome, ledger.register_calls
        finally:
            await db.close()

    outcome, register_calls = asyncio.run(scenario())
    assert outcome.status is RegistrationStatus.ALREADY_REGISTERED
    assert outcome.state is RegistrationState.REGISTERED
    assert outcome.winners == (PLAYER_D, None, None)
    assert register_calls == 1
