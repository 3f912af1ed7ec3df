"""Error taxonomy for ledger, engine and registry operations.

Every failure aborts the whole call (see predamm.guard); nothing here is retried.
`code` is the machine-readable name used by the API error body.
"""

from __future__ import annotations


class MarketError(Exception):
    """Base for all rejected venue operations."""

    code = "market_error"

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context


# --- Idempotency violations ---
class AlreadyExistsError(MarketError):
    code = "already_exists"


class AlreadyRegisteredError(AlreadyExistsError):
    code = "already_registered"


class AlreadyInitializedError(AlreadyExistsError):
    code = "already_initialized"


class AlreadyResolvedError(AlreadyExistsError):
    code = "already_resolved"


# --- Missing preconditions ---
class NotFoundError(MarketError):
    code = "not_found"


class NotInitializedError(NotFoundError):
    code = "not_initialized"


class NotResolvedError(MarketError):
    code = "not_resolved"


class UnauthorizedError(MarketError):
    code = "unauthorized"


# --- Invalid input ---
class InvalidInputError(MarketError):
    code = "invalid_input"


class ZeroAmountError(InvalidInputError):
    code = "zero_amount"


class FeeTooHighError(InvalidInputError):
    code = "fee_too_high"


class InvalidRecipientError(InvalidInputError):
    code = "invalid_recipient"


class InvalidOutcomeError(InvalidInputError):
    code = "invalid_outcome"


class InvalidPartitionError(InvalidInputError):
    code = "invalid_partition"


class LengthMismatchError(InvalidInputError):
    code = "length_mismatch"


# --- Underflow guards ---
class InsufficientBalanceError(MarketError):
    code = "insufficient_balance"


class InsufficientAllowanceError(InsufficientBalanceError):
    code = "insufficient_allowance"


class InsufficientSharesError(MarketError):
    code = "insufficient_shares"


class NoSharesError(InsufficientSharesError):
    code = "no_shares"


class SlippageExceededError(MarketError):
    code = "slippage_exceeded"


class ReentrancyError(MarketError):
    code = "reentrancy"
