"""
Ordered credit ledger deployments.

Deployments are listed oldest first. Balances move forward one step at a
time, so a player's credits on the first deployment reach the newest one
through every deployment in between.
"""

from typing import Dict, Iterable, List, Tuple

from prizepool.ledger.base import CreditLedger


class CreditLedgerRegistry:
    """Credit ledgers keyed by version, in deployment order."""

    def __init__(self, ledgers: Iterable[CreditLedger]):
        self._ledgers: Dict[str, CreditLedger] = {}
        for ledger in ledgers:
            if ledger.version in self._ledgers:
                raise ValueError(f"Credit ledger version {ledger.version!r} registered twice")
            self._ledgers[ledger.version] = ledger
        if not self._ledgers:
            raise ValueError("At least one credit ledger deployment is required")

    @property
    def versions(self) -> List[str]:
        return list(self._ledgers)

    @property
    def current(self) -> CreditLedger:
        return self._ledgers[self.versions[-1]]

    def get(self, version: str) -> CreditLedger:
        try:
            return self._ledgers[version]
        except KeyError:
            raise KeyError(f"Unknown credit ledger version {version!r}") from None

    def migration_pairs(self) -> List[Tuple[CreditLedger, CreditLedger]]:
        """Successive (source, target) deployments, oldest pair first."""
        ledgers = list(self._ledgers.values())
        return list(zip(ledgers, ledgers[1:]))

    def __len__(self):
        return len(self._ledgers)
