"""
Ledger ports.

The prize ledger and the credit ledger are external, authoritative state
machines. Settlement code only talks to them through these interfaces and
always re-reads their state before a mutating call.

Mutating calls return once the transaction is confirmed. Implementations
raise TransientLedgerError subclasses for network failures, timeouts and
reverted transactions.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from prizepool.data_models.settlement import MigrationEventData, TxReceipt


class PrizeLedger(ABC):
    """Daily winners and prize claims."""

    @abstractmethod
    async def get_winner(self, day_id: int, rank: int) -> Optional[str]:
        """Winner address for a slot, None when the slot is empty."""

    @abstractmethod
    async def is_claimed(self, day_id: int, rank: int) -> bool:
        ...

    @abstractmethod
    async def get_total_players(self, day_id: int) -> int:
        ...

    @abstractmethod
    async def register_winners(self, day_id: int, winners: Sequence[Optional[str]],
                               total_players: int) -> TxReceipt:
        """Commit the ordered winner slots for a day. None marks an empty slot."""

    @abstractmethod
    async def claim(self, day_id: int, rank: int, claimant: str) -> TxReceipt:
        ...


class CreditLedger(ABC):
    """One deployment of the prepaid credit ledger."""

    def __init__(self, version: str):
        self.version = version

    @abstractmethod
    async def get_balance(self, player: str) -> int:
        ...

    @abstractmethod
    async def migrate(self, player: str, amount: int, source_version: str) -> TxReceipt:
        """Credit `amount` migrated from `source_version` onto this deployment."""

    @abstractmethod
    async def list_migration_events(self, player: Optional[str] = None,
                                    source_version: Optional[str] = None) -> List[MigrationEventData]:
        """Migration events emitted by this deployment, oldest first."""

    @abstractmethod
    async def list_players(self) -> List[str]:
        """Every player this deployment has a balance record for."""

    def __repr__(self):
        return f"<{type(self).__name__}(version='{self.version}')>"
