"""
Settlement data models.

Immutable data transfer objects passed between the ranking, registration,
claim and migration services. None of these are persisted as-is.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class SessionRow:
    """One parsed play session."""
    player: str
    points: int
    bonus_hits: int
    penalty_hits: int
    timestamp_ms: int


@dataclass(frozen=True)
class RankingEntry:
    """Per-day aggregate of one player's sessions."""
    player: str
    score: int
    bonus_hits: int
    penalty_hits: int
    first_played_ms: int


@dataclass(frozen=True)
class DailyRanking:
    """Ordered ranking for a single day."""
    day_id: int
    entries: Tuple[RankingEntry, ...]

    @property
    def total_players(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def top(self, slots: int) -> Tuple[RankingEntry, ...]:
        return self.entries[:slots]


@dataclass(frozen=True)
class DayRange:
    """Inclusive range of day ids, iterated oldest first."""
    first_day: int
    last_day: int

    def __post_init__(self):
        if self.first_day > self.last_day:
            raise ValueError(f"Empty day range {self.first_day}..{self.last_day}")

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.first_day, self.last_day + 1))

    def __len__(self) -> int:
        return self.last_day - self.first_day + 1

    @classmethod
    def trailing(cls, today: int, lookback_days: int) -> 'DayRange':
        """Yesterday back through `lookback_days` days; today is still open."""
        return cls(today - lookback_days, today - 1)


@dataclass(frozen=True)
class TxReceipt:
    """Confirmation of an externally submitted transaction."""
    tx_hash: str
    success: bool


class RegistrationState(Enum):
    UNREGISTERED = "unregistered"
    SUBMITTED = "submitted"
    REGISTERED = "registered"


class RegistrationStatus(Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    NO_SESSIONS = "no_sessions"
    LOCKED = "locked"
    VALIDATION_FAILED = "validation_failed"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class RegistrationOutcome:
    day_id: int
    status: RegistrationStatus
    state: RegistrationState
    winners: Tuple[Optional[str], ...] = ()
    total_players: int = 0
    tx_hash: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def is_registered(self) -> bool:
        return self.state is RegistrationState.REGISTERED


@dataclass
class ScanReport:
    """Result of scanning a day range for unsettled days."""
    day_range: DayRange
    pending: List[int] = field(default_factory=list)
    settled: List[int] = field(default_factory=list)
    empty: List[int] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)


@dataclass
class SettlementReport:
    day_range: DayRange
    outcomes: List[RegistrationOutcome] = field(default_factory=list)
    scan_errors: Dict[int, str] = field(default_factory=dict)

    def days_with_status(self, status: RegistrationStatus) -> List[int]:
        return [o.day_id for o in self.outcomes if o.status is status]

    @property
    def failed_days(self) -> List[int]:
        failed = {o.day_id for o in self.outcomes if not o.is_registered and o.status in (
            RegistrationStatus.VALIDATION_FAILED, RegistrationStatus.TRANSIENT_FAILURE
        )}
        return sorted(failed | set(self.scan_errors))


class ClaimOutcome(Enum):
    CLAIMED = "claimed"
    CLAIMABLE = "claimable"
    NOT_WINNER = "not_winner"
    ALREADY_CLAIMED = "already_claimed"
    EXPIRED = "expired"
    NO_WINNER = "no_winner"
    INVALID_RANK = "invalid_rank"
    INVALID_ADDRESS = "invalid_address"

    @property
    def user_message(self) -> str:
        return _CLAIM_MESSAGES[self]


_CLAIM_MESSAGES = {
    ClaimOutcome.CLAIMED: "Prize claimed.",
    ClaimOutcome.CLAIMABLE: "Prize can be claimed.",
    ClaimOutcome.NOT_WINNER: "This wallet is not the winner for that rank.",
    ClaimOutcome.ALREADY_CLAIMED: "This prize has already been claimed.",
    ClaimOutcome.EXPIRED: "The claim period for this day has ended.",
    ClaimOutcome.NO_WINNER: "No winner is registered for that day and rank.",
    ClaimOutcome.INVALID_RANK: "Rank must be 1, 2 or 3.",
    ClaimOutcome.INVALID_ADDRESS: "That is not a valid wallet address.",
}


@dataclass(frozen=True)
class ClaimResult:
    day_id: int
    rank: int
    outcome: ClaimOutcome
    player: Optional[str] = None
    prize_amount: int = 0
    tx_hash: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ClaimOutcome.CLAIMED


@dataclass(frozen=True)
class PrizeSlot:
    """One rank of a day's prize table as seen by a claimant."""
    day_id: int
    rank: int
    winner: Optional[str]
    claimed: bool
    prize_amount: int
    claim_deadline: int
    claimable: bool


@dataclass(frozen=True)
class MigrationEventData:
    player: str
    amount: int
    source_version: str
    target_version: str
    tx_hash: Optional[str] = None


class MigrationStatus(Enum):
    MIGRATED = "migrated"
    NOTHING_TO_MIGRATE = "nothing_to_migrate"
    ALREADY_MIGRATED = "already_migrated"
    BLOCKED = "blocked"
    ANOMALY = "anomaly"
    FAILED = "failed"


@dataclass(frozen=True)
class MigrationResult:
    player: str
    source_version: str
    target_version: str
    status: MigrationStatus
    amount: int = 0
    target_before: Optional[int] = None
    target_after: Optional[int] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MigrationReport:
    results: List[MigrationResult] = field(default_factory=list)

    def with_status(self, status: MigrationStatus) -> List[MigrationResult]:
        return [r for r in self.results if r.status is status]

    @property
    def total_migrated(self) -> int:
        return sum(r.amount for r in self.with_status(MigrationStatus.MIGRATED))


@dataclass(frozen=True)
class DuplicateMigration:
    """More than one migration event for the same player and deployment pair."""
    player: str
    source_version: str
    target_version: str
    event_count: int
    total_amount: int
