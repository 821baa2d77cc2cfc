"""
Exceptions for the daily settlement pipeline.

Three families mirror how failures are handled:
- transient ledger errors are retried through the idempotency gate
- validation errors are fatal for one unit of work and never retried
- consistency anomalies are surfaced to an operator and never auto-corrected
"""

from typing import Optional


class SettlementException(Exception):
    """Base exception for settlement-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


# Transient

class TransientLedgerError(SettlementException):
    """Raised when a ledger call fails for a reason that may clear on retry."""
    def __init__(self, operation: str, details: str = None):
        super().__init__(
            f"Ledger call {operation} failed: {details}",
            "Ledger temporarily unavailable. Please try again later."
        )
        self.operation = operation


class TransactionTimeoutError(TransientLedgerError):
    """Raised when a submitted transaction is not confirmed in time."""
    def __init__(self, operation: str, timeout: float, tx_hash: Optional[str] = None):
        super().__init__(operation, f"no confirmation after {timeout}s (tx {tx_hash or 'unknown'})")
        self.timeout = timeout
        self.tx_hash = tx_hash


class TransactionFailedError(TransientLedgerError):
    """Raised when a transaction was included but reported a failed status."""
    def __init__(self, operation: str, tx_hash: Optional[str] = None):
        super().__init__(operation, f"transaction {tx_hash or 'unknown'} reverted")
        self.tx_hash = tx_hash


class LedgerRejectedError(TransientLedgerError):
    """Raised when the ledger refuses a write because its state moved on."""
    def __init__(self, operation: str, reason: str):
        super().__init__(operation, f"rejected: {reason}")
        self.reason = reason


# Validation

class SettlementValidationError(SettlementException):
    """Raised when input to a settlement step is malformed."""


class DuplicateWinnerError(SettlementValidationError):
    """Raised when the same address appears in more than one winner slot."""
    def __init__(self, day_id: int, address: str):
        super().__init__(
            f"Duplicate winner {address} for day {day_id}",
            "Winner list is inconsistent and was not submitted."
        )
        self.day_id = day_id
        self.address = address


class TooManyWinnersError(SettlementValidationError):
    """Raised when more winners than slots are computed for a day."""
    def __init__(self, day_id: int, count: int, slots: int):
        super().__init__(
            f"{count} winners computed for day {day_id}, only {slots} slots exist",
            "Winner list is inconsistent and was not submitted."
        )
        self.day_id = day_id


class InvalidAddressError(SettlementValidationError):
    """Raised when a player address is not a 20-byte hex address."""
    def __init__(self, address):
        super().__init__(
            f"Invalid player address {address!r}",
            "That is not a valid wallet address."
        )
        self.address = address


class InvalidTimestampError(SettlementValidationError):
    """Raised when a session timestamp cannot be parsed."""
    def __init__(self, value, reason: str):
        super().__init__(f"Invalid timestamp {value!r}: {reason}")
        self.value = value


class InvalidSessionError(SettlementValidationError):
    """Raised when a session row carries unusable counters."""
    def __init__(self, reason: str):
        super().__init__(f"Invalid session record: {reason}")


# Consistency anomalies

class ConsistencyAnomalyError(SettlementException):
    """Raised when ledger-adjacent state contradicts an invariant."""
    def __init__(self, message: str):
        super().__init__(message, "Inconsistent ledger state detected. An operator has to review it.")


class DuplicateMigrationError(ConsistencyAnomalyError):
    def __init__(self, player: str, source_version: str, target_version: str, count: int):
        super().__init__(
            f"{count} migration events for {player} from {source_version} to {target_version}"
        )
        self.player = player
        self.count = count


class BalanceMismatchError(ConsistencyAnomalyError):
    def __init__(self, player: str, target_version: str, expected: int, actual: int):
        super().__init__(
            f"Balance of {player} on {target_version} is {actual} after migration, expected {expected}"
        )
        self.player = player
        self.expected = expected
        self.actual = actual


class ClaimDeadlineAnomalyError(ConsistencyAnomalyError):
    def __init__(self, day_id, deadline=None):
        super().__init__(f"Claim deadline for day {day_id!r} is not usable: {deadline!r}")
        self.day_id = day_id
