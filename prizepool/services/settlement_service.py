"""
Daily settlement job.

Entry point for the scheduler: scan the trailing days for pending settlement
and register winners day by day. Safe to invoke arbitrarily often.
"""

import time
from typing import Callable, Optional

from prizepool.config import Config
from prizepool.data_models.settlement import (
    DayRange, RegistrationOutcome, RegistrationState, RegistrationStatus, SettlementReport
)
from prizepool.services.pending_day_scanner import PendingDayScanner
from prizepool.services.winner_registration import WinnerRegistrationService
from prizepool.utils.day import current_day_id
from prizepool.utils.logger import setup_logger

logger = setup_logger(__name__)


class SettlementService:
    """Runs the scanner and the registration orchestrator over a day range."""

    def __init__(self, scanner: PendingDayScanner, registration: WinnerRegistrationService,
                 clock: Callable[[], float] = time.time):
        self.scanner = scanner
        self.registration = registration
        self._clock = clock

    def trailing_range(self, lookback_days: Optional[int] = None) -> DayRange:
        """Yesterday back through the lookback window. Today is never settled."""
        lookback = Config.SCAN_LOOKBACK_DAYS if lookback_days is None else lookback_days
        if lookback < 1:
            raise ValueError("lookback_days must be at least 1")
        return DayRange.trailing(current_day_id(self._clock()), lookback)

    async def run_settlement(self, lookback_days: Optional[int] = None,
                             day_range: Optional[DayRange] = None) -> SettlementReport:
        """
        Settle every pending day in the range, oldest first.

        Args:
            lookback_days: Size of the trailing window ending yesterday
            day_range: Explicit range, overrides lookback_days
        """
        day_range = day_range or self.trailing_range(lookback_days)
        logger.info(f"Settlement run for days {day_range.first_day}..{day_range.last_day}")

        scan = await self.scanner.find_pending_days(day_range)
        report = SettlementReport(day_range=day_range, scan_errors=dict(scan.errors))

        for day_id in scan.pending:
            try:
                outcome = await self.registration.register_day(day_id)
            except Exception as e:
                logger.error(f"Unexpected error settling day {day_id}: {e}", exc_info=True)
                outcome = RegistrationOutcome(
                    day_id=day_id,
                    status=RegistrationStatus.TRANSIENT_FAILURE,
                    state=RegistrationState.UNREGISTERED,
                    error=str(e)
                )
            report.outcomes.append(outcome)

        logger.info(
            f"Settlement run complete: "
            f"{len(report.days_with_status(RegistrationStatus.REGISTERED))} registered, "
            f"{len(report.days_with_status(RegistrationStatus.ALREADY_REGISTERED))} already registered, "
            f"{len(report.failed_days)} failed"
        )
        return report

    async def settle_day(self, day_id: int) -> RegistrationOutcome:
        """Settle one explicit day, for operators re-running a single date."""
        if day_id >= current_day_id(self._clock()):
            raise ValueError(f"Day {day_id} has not ended yet")
        return await self.registration.register_day(day_id)
