"""
Credit Ledger Migration Reconciler.

Carries player balances forward when a credit ledger deployment is replaced.
Deployments are walked oldest to newest, one (source, target) pair at a time.

For each pair the reconciler:
1. refuses to touch players with an active migration hold
2. skips pairs that already have a migration event (idempotency gate)
3. skips zero balances
4. submits the migration and re-checks the gate before any retry
5. verifies target_after == target_before + source_before

Duplicate events and failed conservation checks put the player on hold for
manual review. Nothing is corrected automatically.
"""

import asyncio
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from prizepool.config import Config
from prizepool.data_models.settlement import (
    DuplicateMigration, MigrationReport, MigrationResult, MigrationStatus
)
from prizepool.ledger.base import CreditLedger
from prizepool.ledger.registry import CreditLedgerRegistry
from prizepool.services.base import BaseService
from prizepool.services.migration_holds import MigrationHoldStore
from prizepool.utils.address import normalize_address
from prizepool.utils.logger import setup_logger
from prizepool.utils.settlement_exceptions import (
    BalanceMismatchError, ConsistencyAnomalyError, DuplicateMigrationError,
    TransactionFailedError, TransactionTimeoutError, TransientLedgerError
)

logger = setup_logger(__name__)

# Statuses after which later pairs for the same player are not attempted
_STOPPING = (MigrationStatus.ANOMALY, MigrationStatus.BLOCKED, MigrationStatus.FAILED)


class MigrationReconciler(BaseService):
    """Migrates and reconciles credit balances across ledger deployments."""

    def __init__(self, registry: CreditLedgerRegistry, hold_store: MigrationHoldStore,
                 max_attempts: Optional[int] = None, confirmation_timeout: Optional[float] = None,
                 retry_delay: Optional[float] = None):
        super().__init__(retry_delay=retry_delay)
        self.registry = registry
        self.hold_store = hold_store
        self.max_attempts = Config.TX_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.confirmation_timeout = (Config.TX_CONFIRMATION_TIMEOUT
                                     if confirmation_timeout is None else confirmation_timeout)

    async def reconcile_players(self, players: Optional[Iterable[str]] = None) -> MigrationReport:
        """
        Reconcile many players, isolating failures per player.

        Args:
            players: Addresses to migrate. Defaults to every player known to
                any deployment other than the current one.
        """
        if players is None:
            players = await self.known_players()

        report = MigrationReport()
        for player in players:
            try:
                report.results.extend(await self.reconcile_player(player))
            except Exception as e:
                logger.error(f"Unexpected error migrating {player}: {e}", exc_info=True)
                report.results.append(MigrationResult(
                    player=player,
                    source_version='',
                    target_version=self.registry.current.version,
                    status=MigrationStatus.FAILED,
                    error=str(e)
                ))

        logger.info(f"Migration run complete: {len(report.with_status(MigrationStatus.MIGRATED))} migrated, "
                    f"{len(report.with_status(MigrationStatus.ANOMALY))} anomalies, "
                    f"{len(report.with_status(MigrationStatus.FAILED))} failed, "
                    f"{report.total_migrated} credits moved")
        return report

    async def reconcile_player(self, player: str) -> List[MigrationResult]:
        """Walk every deployment pair for one player, stopping at the first failure."""
        player = normalize_address(player)
        results = []
        for source, target in self.registry.migration_pairs():
            result = await self.migrate_pair(player, source, target)
            results.append(result)
            if result.status in _STOPPING:
                break
        return results

    async def migrate_pair(self, player: str, source: CreditLedger, target: CreditLedger) -> MigrationResult:
        """Migrate one player's balance from `source` to `target` at most once."""
        player = normalize_address(player)

        hold = await self.hold_store.get_active_hold(player)
        if hold is not None:
            logger.warning(f"Skipping {player} {source.version}->{target.version}: on hold ({hold})")
            return self._result(player, source, target, MigrationStatus.BLOCKED, error=hold)

        try:
            existing = await self._existing_migration(player, source, target)
            if existing is not None:
                return self._result(player, source, target, MigrationStatus.ALREADY_MIGRATED,
                                    amount=existing[0], tx_hash=existing[1])

            source_before = await self.execute_with_retry(
                lambda: source.get_balance(player), self.max_attempts)
            if source_before == 0:
                return self._result(player, source, target, MigrationStatus.NOTHING_TO_MIGRATE)

            target_before = await self.execute_with_retry(
                lambda: target.get_balance(player), self.max_attempts)

            tx_hash = await self._submit(player, source_before, source, target)

            target_after = await self.execute_with_retry(
                lambda: target.get_balance(player), self.max_attempts)
            expected = target_before + source_before
            if target_after != expected:
                raise BalanceMismatchError(player, target.version, expected, target_after)

        except ConsistencyAnomalyError as e:
            await self.hold_store.place_hold(player, str(e))
            return self._result(player, source, target, MigrationStatus.ANOMALY, error=str(e))
        except TransientLedgerError as e:
            logger.warning(f"Migration {player} {source.version}->{target.version} failed: {e}")
            return self._result(player, source, target, MigrationStatus.FAILED, error=str(e))

        logger.info(f"Migrated {source_before} credits for {player} {source.version}->{target.version} "
                    f"(target {target_before} -> {target_after}, tx {tx_hash})")
        return self._result(player, source, target, MigrationStatus.MIGRATED, amount=source_before,
                            target_before=target_before, target_after=target_after, tx_hash=tx_hash)

    async def _existing_migration(self, player: str, source: CreditLedger,
                                  target: CreditLedger) -> Optional[Tuple[int, Optional[str]]]:
        """Idempotency gate. Returns (amount, tx_hash) of the single prior event, if any."""
        events = await self.execute_with_retry(
            lambda: target.list_migration_events(player, source.version), self.max_attempts)
        if len(events) > 1:
            raise DuplicateMigrationError(player, source.version, target.version, len(events))
        if events:
            return events[0].amount, events[0].tx_hash
        return None

    async def _submit(self, player: str, amount: int, source: CreditLedger, target: CreditLedger) -> Optional[str]:
        """Submit the migration, going back through the gate after a failed or timed-out attempt."""
        last_error: Optional[TransientLedgerError] = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                existing = await self._existing_migration(player, source, target)
                if existing is not None:
                    logger.info(f"Migration for {player} {source.version}->{target.version} "
                                f"confirmed by event after a failed wait")
                    return existing[1]
            try:
                receipt = await asyncio.wait_for(
                    target.migrate(player, amount, source.version),
                    timeout=self.confirmation_timeout
                )
                if not receipt.success:
                    raise TransactionFailedError('migrate', receipt.tx_hash)
                return receipt.tx_hash
            except asyncio.TimeoutError:
                last_error = TransactionTimeoutError('migrate', self.confirmation_timeout)
            except TransientLedgerError as e:
                last_error = e
            logger.warning(f"Migration attempt {attempt} for {player} failed: {last_error}")
            if attempt < self.max_attempts:
                await self.backoff(attempt - 1)
        raise last_error

    async def known_players(self) -> List[str]:
        """Players with a balance record on any deployment that is not the newest."""
        players = set()
        for source, _ in self.registry.migration_pairs():
            players.update(await source.list_players())
        return sorted(players)

    async def audit_duplicates(self) -> List[DuplicateMigration]:
        """Every (player, source, target) with more than one migration event."""
        findings = []
        for source, target in self.registry.migration_pairs():
            events = await target.list_migration_events(source_version=source.version)
            grouped: Dict[str, List[int]] = defaultdict(list)
            for event in events:
                grouped[event.player].append(event.amount)
            for player, amounts in sorted(grouped.items()):
                if len(amounts) > 1:
                    findings.append(DuplicateMigration(
                        player=player,
                        source_version=source.version,
                        target_version=target.version,
                        event_count=len(amounts),
                        total_amount=sum(amounts)
                    ))
        if findings:
            logger.error(f"Found {len(findings)} duplicate migration(s)")
        return findings

    async def release_hold(self, player: str, note: str) -> int:
        """Operator action after manual review."""
        return await self.hold_store.release_hold(player, note)

    @staticmethod
    def _result(player, source, target, status, **kwargs) -> MigrationResult:
        return MigrationResult(
            player=player,
            source_version=source.version,
            target_version=target.version,
            status=status,
            **kwargs
        )
