"""
Wallet address normalization.

Addresses are compared case-insensitively and stored lowercase.
"""

import re
from typing import Optional

from prizepool.utils.settlement_exceptions import InvalidAddressError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_ADDRESS_RE = re.compile(r'^0x[0-9a-f]{40}$')


def normalize_address(address) -> str:
    """Return the lowercase form of a hex address or raise InvalidAddressError."""
    if not isinstance(address, str):
        raise InvalidAddressError(address)
    candidate = address.strip().lower()
    if not _ADDRESS_RE.match(candidate):
        raise InvalidAddressError(address)
    return candidate


def is_empty_address(address: Optional[str]) -> bool:
    """True for an unset ledger slot."""
    return not address or address.lower() == ZERO_ADDRESS
