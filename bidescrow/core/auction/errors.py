"""
Error taxonomy for the settlement engine.

Precondition checks raise AuctionException internally. The engine turns it
into a failed OperationResult after restoring the pre-call state, so
callers see a tagged error kind and never a partially applied operation.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class AuctionError(IntEnum):
    """Kind of a rejected operation."""
    INVALID_DURATION = 1
    AUCTION_CLOSED = 2
    ZERO_VALUE = 3
    BID_TOO_LOW = 4
    NO_PENDING_REFUND = 5
    TRANSFER_FAILED = 6
    AUCTION_NOT_ENDED = 7
    ALREADY_FINALIZED = 8
    AUCTION_NOT_FINALIZED = 9
    NOTHING_TO_WITHDRAW = 10
    NO_REMAINING_BALANCE = 11
    WINNER_RESTRICTED = 12
    INSUFFICIENT_FUNDS = 13
    UNAUTHORIZED = 14
    REENTRANT_CALL = 15
    FUNDS_ALREADY_WITHDRAWN = 16
    INVALID_PRINCIPAL = 17
    INVALID_AMOUNT = 18
    INVALID_TIME = 19


class AuctionException(Exception):
    """Raised when an operation violates a precondition."""

    def __init__(self, error: AuctionError, message: str = ""):
        self.error = error
        self.message = message or error.name.replace("_", " ").capitalize()
        super().__init__(f"{error.name}: {self.message}")


class InvariantViolation(RuntimeError):
    """Ledger state no longer satisfies an accounting invariant."""


@dataclass
class OperationResult:
    """
    Outcome of a mutating engine call.

    Attributes:
        success: Whether the operation was applied
        error: Error kind when rejected
        message: Human-readable detail
        amount: Value paid out or accepted by the call
    """
    success: bool
    error: Optional[AuctionError] = None
    message: str = ""
    amount: int = 0

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, amount: int = 0, message: str = "") -> "OperationResult":
        return cls(success=True, amount=amount, message=message)

    @classmethod
    def failed(cls, exc: AuctionException) -> "OperationResult":
        return cls(success=False, error=exc.error, message=exc.message)

    def raise_for_error(self) -> "OperationResult":
        """Raise AuctionException if the operation was rejected."""
        if not self.success:
            raise AuctionException(self.error, self.message)
        return self


__all__ = [
    "AuctionError",
    "AuctionException",
    "InvariantViolation",
    "OperationResult",
]
