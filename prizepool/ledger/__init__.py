"""
Ledger ports and adapters.

- PrizeLedger / CreditLedger: remote operations settlement depends on
- CreditLedgerRegistry: credit ledger deployments in deployment order
- Database*Ledger: adapters backed by the settlement database
"""

from .base import CreditLedger, PrizeLedger
from .registry import CreditLedgerRegistry

__all__ = ['CreditLedger', 'PrizeLedger', 'CreditLedgerRegistry']
