"""
Pending-Day Scanner.

Finds days in a range that have sessions but no rank-1 winner on the prize
ledger. Each day is evaluated on its own; a failed read is recorded for that
day and the scan moves on.
"""


from prizepool.data_models.settlement import DayRange, ScanReport
from prizepool.ledger.base import PrizeLedger
from prizepool.services.ranking_service import RankingService
from prizepool.utils.address import is_empty_address
from prizepool.utils.settlement_exceptions import TransientLedgerError
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class PendingDayScanner:
    """Scans a day range for unsettled days."""

    def __init__(self, ranking_service: RankingService, prize_ledger: PrizeLedger):
        self.ranking_service = ranking_service
        self.prize_ledger = prize_ledger

    async def find_pending_days(self, day_range: DayRange) -> ScanReport:
        report = ScanReport(day_range=day_range)

        for day_id in day_range:
            try:
                ranking = await self.ranking_service.get_daily_ranking(day_id, use_cache=False)
                if ranking.is_empty:
                    report.empty.append(day_id)
                    continue

                first_winner = await self.prize_ledger.get_winner(day_id, 1)
            except TransientLedgerError as e:
                logger.warning(f"Scan of day {day_id} failed: {e}")
                report.errors[day_id] = str(e)
                continue
            except Exception as e:
                logger.error(f"Unexpected error scanning day {day_id}: {e}", exc_info=True)
                report.errors[day_id] = str(e)
                continue

            if is_empty_address(first_winner):
                report.pending.append(day_id)
            else:
                report.settled.append(day_id)

        logger.info(f"Scanned days {day_range.first_day}..{day_range.last_day}: "
                    f"{len(report.pending)} pending, {len(report.settled)} settled, "
                    f"{len(report.empty)} empty, {len(report.errors)} errors")
        return report
