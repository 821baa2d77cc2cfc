"""
Command line entry point for the prize pool settlement pipeline.

    prizepool settle [--lookback N] [--day D] [--interval S]
    prizepool pending [--lookback N]
    prizepool ranking DAY [--player ADDRESS]
    prizepool results DAY
    prizepool claim DAY RANK ADDRESS
    prizepool record-session PLAYER POINTS [--bonus-hits N] [--penalty-hits N] [--timestamp T]
    prizepool migrate [--player ADDRESS ...]
    prizepool audit-migrations
    prizepool release-hold PLAYER --note TEXT
"""

import argparse
import asyncio
import sys
import traceback
from typing import Optional

from prizepool.config import Config
from prizepool.data_models.settlement import MigrationStatus
from prizepool.database.database import Database
from prizepool.ledger.database_ledger import DatabaseCreditLedger, DatabasePrizeLedger
from prizepool.ledger.registry import CreditLedgerRegistry
from prizepool.services.claim_service import ClaimService, ClaimWindowEnforcer
from prizepool.services.day_lock import DayLockManager
from prizepool.services.migration_holds import MigrationHoldStore
from prizepool.services.migration_reconciler import MigrationReconciler
from prizepool.services.pending_day_scanner import PendingDayScanner
from prizepool.services.ranking_cache import RankingCache
from prizepool.services.ranking_service import RankingService
from prizepool.services.session_store import SessionStore
from prizepool.services.settlement_service import SettlementService
from prizepool.services.winner_registration import WinnerRegistrationService
from prizepool.utils.day import day_start
from prizepool.utils.logger import setup_logger
from prizepool.utils.ranking import rank_of
from prizepool.utils.redis_utils import RedisUtils
from prizepool.utils.settlement_exceptions import SettlementException


class SettlementApp:
    """Wires the database, ledgers and services together."""

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.db = Database(database_url)
        self.redis_client = None

    async def setup(self):
        self.logger.info("Setting up settlement pipeline...")
        await self.db.initialize()
        session_factory = self.db.session_factory

        self.redis_client = await RedisUtils.create_redis_client()
        if self.redis_client is None:
            self.logger.info("Redis not configured, using in-process day locks")

        self.prize_ledger = DatabasePrizeLedger(session_factory)
        self.credit_registry = CreditLedgerRegistry(
            DatabaseCreditLedger(session_factory, version)
            for version in Config.get_credit_ledger_versions()
        )
        self.hold_store = MigrationHoldStore(session_factory)
        self.session_store = SessionStore(session_factory)

        self.ranking_service = RankingService(self.session_store, RankingCache())
        self.registration = WinnerRegistrationService(
            self.ranking_service, self.prize_ledger, DayLockManager(self.redis_client)
        )
        self.scanner = PendingDayScanner(self.ranking_service, self.prize_ledger)
        self.settlement = SettlementService(self.scanner, self.registration)
        self.claims = ClaimService(self.prize_ledger, ClaimWindowEnforcer())
        self.reconciler = MigrationReconciler(self.credit_registry, self.hold_store)

    async def close(self):
        self.logger.info("Shutting down settlement pipeline...")
        if self.redis_client is not None:
            await self.redis_client.aclose()
        await self.db.close()


async def cmd_settle(app: SettlementApp, args) -> int:
    if args.day is not None:
        outcome = await app.settlement.settle_day(args.day)
        print(f"Day {outcome.day_id}: {outcome.status.value}"
              + (f" winners={list(outcome.winners)}" if outcome.winners else "")
              + (f" tx={outcome.tx_hash}" if outcome.tx_hash else "")
              + (f" error={outcome.error}" if outcome.error else ""))
        return 0 if outcome.is_registered or outcome.error is None else 1

    while True:
        report = await app.settlement.run_settlement(lookback_days=args.lookback)
        for outcome in report.outcomes:
            print(f"Day {outcome.day_id}: {outcome.status.value}"
                  + (f" tx={outcome.tx_hash}" if outcome.tx_hash else "")
                  + (f" error={outcome.error}" if outcome.error else ""))
        for day_id, error in sorted(report.scan_errors.items()):
            print(f"Day {day_id}: scan failed: {error}")
        if not report.outcomes and not report.scan_errors:
            print(f"No pending days in {report.day_range.first_day}..{report.day_range.last_day}")

        if args.interval is None:
            return 1 if report.failed_days else 0
        await asyncio.sleep(args.interval)


async def cmd_pending(app: SettlementApp, args) -> int:
    scan = await app.scanner.find_pending_days(app.settlement.trailing_range(args.lookback))
    for day_id in scan.pending:
        print(f"{day_id}  {day_start(day_id).date().isoformat()}")
    for day_id, error in sorted(scan.errors.items()):
        print(f"{day_id}  scan failed: {error}")
    print(f"{len(scan.pending)} pending, {len(scan.settled)} settled, {len(scan.empty)} without sessions")
    return 1 if scan.errors else 0


async def cmd_ranking(app: SettlementApp, args) -> int:
    ranking = await app.ranking_service.get_daily_ranking(args.day)
    print(f"Day {args.day} ({day_start(args.day).date().isoformat()}): {ranking.total_players} players")
    for position, entry in enumerate(ranking.entries, start=1):
        print(f"{position:>4}. {entry.player}  score={entry.score} "
              f"bonus={entry.bonus_hits} penalty={entry.penalty_hits}")
    if args.player:
        position = rank_of(ranking, args.player)
        if position is None:
            print(f"{args.player} has no sessions on day {args.day}")
            return 1
        print(f"{args.player} is #{position} of {ranking.total_players}")
    return 0


async def cmd_results(app: SettlementApp, args) -> int:
    total_players = await app.prize_ledger.get_total_players(args.day)
    slots = await app.claims.get_day_prizes(args.day)
    print(f"Day {args.day}: {total_players} players, claim deadline {slots[0].claim_deadline}")
    for slot in slots:
        state = 'claimed' if slot.claimed else ('claimable' if slot.claimable else 'unclaimed')
        print(f"  #{slot.rank} {slot.winner or '-'}  {slot.prize_amount}  {state if slot.winner else ''}")
    return 0


async def cmd_claim(app: SettlementApp, args) -> int:
    result = await app.claims.request_claim(args.day, args.rank, args.address)
    print(result.outcome.user_message)
    if result.succeeded:
        print(f"Amount: {result.prize_amount}  tx={result.tx_hash}")
        return 0
    return 1


async def cmd_record_session(app: SettlementApp, args) -> int:
    row = await app.ranking_service.record_session(
        args.player, args.points,
        bonus_hits=args.bonus_hits,
        penalty_hits=args.penalty_hits,
        timestamp=args.timestamp
    )
    print(f"Recorded session for {row.player} at {row.timestamp_ms}")
    return 0


async def cmd_migrate(app: SettlementApp, args) -> int:
    report = await app.reconciler.reconcile_players(args.player or None)
    for result in report.results:
        line = f"{result.player} {result.source_version}->{result.target_version}: {result.status.value}"
        if result.amount:
            line += f" amount={result.amount}"
        if result.error:
            line += f" ({result.error})"
        print(line)
    print(f"Total migrated: {report.total_migrated}")
    failed = report.with_status(MigrationStatus.ANOMALY) + report.with_status(MigrationStatus.FAILED)
    return 1 if failed else 0


async def cmd_audit_migrations(app: SettlementApp, args) -> int:
    findings = await app.reconciler.audit_duplicates()
    for finding in findings:
        print(f"{finding.player} {finding.source_version}->{finding.target_version}: "
              f"{finding.event_count} events, {finding.total_amount} credits")
    holds = await app.hold_store.list_active_holds()
    for hold in holds:
        print(f"HOLD {hold.player}: {hold.reason}")
    if not findings and not holds:
        print("No duplicate migrations and no active holds")
    return 1 if findings else 0


async def cmd_release_hold(app: SettlementApp, args) -> int:
    released = await app.reconciler.release_hold(args.player, args.note)
    print(f"Released {released} hold(s)")
    return 0 if released else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='prizepool', description='Daily prize pool settlement')
    parser.add_argument('--database-url', help='Override DATABASE_URL')
    sub = parser.add_subparsers(dest='command', required=True)

    settle = sub.add_parser('settle', help='Register winners for every pending day')
    settle.add_argument('--lookback', type=int, default=None, help='Days to look back from yesterday')
    settle.add_argument('--day', type=int, default=None, help='Settle one day id only')
    settle.add_argument('--interval', type=float, default=None, help='Repeat every S seconds')
    settle.set_defaults(handler=cmd_settle)

    pending = sub.add_parser('pending', help='List days with sessions but no winners')
    pending.add_argument('--lookback', type=int, default=None)
    pending.set_defaults(handler=cmd_pending)

    ranking = sub.add_parser('ranking', help='Show the ranking for a day')
    ranking.add_argument('day', type=int)
    ranking.add_argument('--player', default=None, help="Also report this player's position")
    ranking.set_defaults(handler=cmd_ranking)

    results = sub.add_parser('results', help='Show registered winners and claim state for a day')
    results.add_argument('day', type=int)
    results.set_defaults(handler=cmd_results)

    claim = sub.add_parser('claim', help='Claim a prize')
    claim.add_argument('day', type=int)
    claim.add_argument('rank', type=int)
    claim.add_argument('address')
    claim.set_defaults(handler=cmd_claim)

    record = sub.add_parser('record-session', help='Record a play session')
    record.add_argument('player')
    record.add_argument('points', type=int)
    record.add_argument('--bonus-hits', type=int, default=0)
    record.add_argument('--penalty-hits', type=int, default=0)
    record.add_argument('--timestamp', default=None, help='ISO-8601 with offset, or epoch millis')
    record.set_defaults(handler=cmd_record_session)

    migrate = sub.add_parser('migrate', help='Carry credit balances to the newest deployment')
    migrate.add_argument('--player', action='append', help='Limit to these addresses')
    migrate.set_defaults(handler=cmd_migrate)

    audit = sub.add_parser('audit-migrations', help='Report duplicate migrations and active holds')
    audit.set_defaults(handler=cmd_audit_migrations)

    release = sub.add_parser('release-hold', help='Release migration holds after manual review')
    release.add_argument('player')
    release.add_argument('--note', required=True)
    release.set_defaults(handler=cmd_release_hold)

    return parser


async def run(argv=None) -> int:
    args = build_parser().parse_args(argv)
    Config.validate()

    app = SettlementApp(args.database_url)
    try:
        await app.setup()
        return await args.handler(app, args)
    except SettlementException as e:
        app.logger.error(f"{args.command} failed: {e}")
        print(e.user_message, file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        app.logger.error(f"Fatal error in {args.command}: {e}")
        traceback.print_exc()
        return 1
    finally:
        await app.close()


def main():
    """Main entry point"""
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
