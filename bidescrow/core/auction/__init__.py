"""
Auction Module.

Single-auction escrow:
- Ledger state and invariants
- Bid acceptance, refunds and settlement
- Error taxonomy and operation results
- Notifications
"""

from bidescrow.core.auction.errors import (
    AuctionError,
    AuctionException,
    InvariantViolation,
    OperationResult,
)

from bidescrow.core.auction.state import (
    AuctionPhase,
    AuctionState,
    BidRecord,
)

from bidescrow.core.auction.events import (
    AuctionFinalized,
    BidAccepted,
    EventBus,
)

from bidescrow.core.auction.engine import (
    SettlementEngine,
    SECONDS_PER_MINUTE,
)

__all__ = [
    # Errors
    "AuctionError",
    "AuctionException",
    "InvariantViolation",
    "OperationResult",
    # State
    "AuctionPhase",
    "AuctionState",
    "BidRecord",
    # Events
    "AuctionFinalized",
    "BidAccepted",
    "EventBus",
    # Engine
    "SettlementEngine",
    "SECONDS_PER_MINUTE",
]
