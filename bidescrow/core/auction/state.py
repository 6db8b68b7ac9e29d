"""
AuctionState - ledger data for a single escrow auction.

Conceptual Background:
---------------------
The auction holds every value a bidder sends. Nothing is refunded
automatically when a bidder is outbid; instead the engine keeps books:

1. **Deposits**: value a principal has sent and not yet withdrawn
2. **Pending refunds**: the part of a deposit that belongs to superseded
   bids of the same principal and may be withdrawn before the auction ends
3. **Highest bid**: the live winning amount, locked until settlement

Conservation:
------------
    sum(deposits) == total_accepted - total_withdrawn

Unsolicited value (sent outside a bid) is held in the balance but never
credited to anyone's deposit.

Snapshot:
--------
Each engine call works on the live state. A deep-copy snapshot taken at the
start of the call is restored if the call fails, giving all-or-nothing
semantics.

Owner settlement pays two legs (proceeds and commission) with separate
transfers. Each leg is committed as soon as its transfer succeeds, so the
snapshot only ever rolls back the leg that failed.
"""

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from bidescrow.core.auction.errors import InvariantViolation
from bidescrow.crypto import auction_id, bid_record_id


class AuctionPhase(IntEnum):
    """Lifecycle phase, derived from the finalized flag and ledger time."""
    CREATED = 0    # No bids yet, window open
    ACTIVE = 1     # Accepting bids
    ENDED = 2      # Window elapsed, awaiting finalization
    FINALIZED = 3  # Terminal


@dataclass(frozen=True)
class BidRecord:
    """An accepted bid in the audit trail."""
    bidder: str
    amount: int
    position: int    # 0-based index in the bid sequence
    timestamp: int

    @property
    def record_id(self) -> str:
        return bid_record_id(self.bidder, self.amount, self.position)


@dataclass
class AuctionState:
    """
    Mutable ledger data of one auction.

    Attributes:
        owner: Beneficiary principal
        end_time: Timestamp after which no bids are accepted
        commission_rate: Percent of the winning bid kept as commission
        created_time: Timestamp of creation
        finalized: Terminal flag
        highest_bid: Current leading amount (0 when no bids)
        highest_bidder: Owner of the leading bid
        bids: Append-only audit trail
        deposits: principal -> value held for it
        user_bid_history: principal -> amounts it has bid, in order
        pending_refunds: principal -> value withdrawable before settlement
        total_accepted: Sum of all accepted bid value
        total_withdrawn: Sum of all value paid out
        unsolicited_total: Value received outside of bids
        proceeds_paid: Owner share of the winning bid has been paid
        commission_paid: Commission share of the winning bid has been paid
        settled_amount: Part of the winning bid already paid out
    """
    owner: str
    end_time: int
    commission_rate: int = 2
    created_time: int = 0
    finalized: bool = False

    highest_bid: int = 0
    highest_bidder: Optional[str] = None

    bids: List[BidRecord] = field(default_factory=list)
    deposits: Dict[str, int] = field(default_factory=dict)
    user_bid_history: Dict[str, List[int]] = field(default_factory=dict)
    pending_refunds: Dict[str, int] = field(default_factory=dict)

    total_accepted: int = 0
    total_withdrawn: int = 0
    unsolicited_total: int = 0
    proceeds_paid: bool = False
    commission_paid: bool = False
    settled_amount: int = 0

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def held_balance(self) -> int:
        """All value currently held by the engine."""
        return self.total_accepted + self.unsolicited_total - self.total_withdrawn

    @property
    def locked_amount(self) -> int:
        """Part of the winner's deposit reserved for settlement."""
        return self.highest_bid - self.settled_amount

    @property
    def funds_withdrawn(self) -> bool:
        """Both settlement legs have been paid."""
        return self.proceeds_paid and self.commission_paid

    @property
    def auction_id(self) -> str:
        return auction_id(self.owner, self.created_time)

    def deposit_of(self, principal: str) -> int:
        return self.deposits.get(principal, 0)

    def pending_refund_of(self, principal: str) -> int:
        return self.pending_refunds.get(principal, 0)

    def phase(self, current_time: int) -> AuctionPhase:
        if self.finalized:
            return AuctionPhase.FINALIZED
        if current_time >= self.end_time:
            return AuctionPhase.ENDED
        if not self.bids:
            return AuctionPhase.CREATED
        return AuctionPhase.ACTIVE

    # =========================================================================
    # Snapshot / Restore
    # =========================================================================

    def snapshot(self) -> "AuctionState":
        """Deep copy of the current state."""
        return copy.deepcopy(self)

    def restore(self, snapshot: "AuctionState") -> None:
        """Replace the current state with a snapshot taken earlier."""
        self.__dict__.update(copy.deepcopy(snapshot.__dict__))

    # =========================================================================
    # Invariants
    # =========================================================================

    def check_invariants(self) -> None:
        """
        Verify the accounting invariants.

        Raises:
            InvariantViolation: describing the first broken invariant
        """
        expected_high = self.bids[-1].amount if self.bids else 0
        if self.highest_bid != expected_high:
            raise InvariantViolation(
                f"highest_bid {self.highest_bid} != latest accepted bid {expected_high}"
            )

        for principal, pending in self.pending_refunds.items():
            deposit = self.deposit_of(principal)
            if pending < 0 or pending > deposit:
                raise InvariantViolation(
                    f"pending refund {pending} outside [0, {deposit}] for {principal}"
                )

        for principal, deposit in self.deposits.items():
            if deposit < 0:
                raise InvariantViolation(f"negative deposit {deposit} for {principal}")

        total_deposits = sum(self.deposits.values())
        if total_deposits != self.total_accepted - self.total_withdrawn:
            raise InvariantViolation(
                f"deposits {total_deposits} != accepted {self.total_accepted} "
                f"- withdrawn {self.total_withdrawn}"
            )

        if self.settled_amount and not self.finalized:
            raise InvariantViolation("funds withdrawn before finalization")

        if not 0 <= self.settled_amount <= self.highest_bid:
            raise InvariantViolation(
                f"settled {self.settled_amount} outside [0, {self.highest_bid}]"
            )

    def stats(self) -> dict:
        """Get auction statistics."""
        return {
            "owner": self.owner,
            "end_time": self.end_time,
            "finalized": self.finalized,
            "commission_rate": self.commission_rate,
            "highest_bid": self.highest_bid,
            "highest_bidder": self.highest_bidder,
            "bid_count": len(self.bids),
            "bidder_count": len(self.user_bid_history),
            "total_deposits": sum(self.deposits.values()),
            "total_pending_refunds": sum(self.pending_refunds.values()),
            "held_balance": self.held_balance,
            "settled_amount": self.settled_amount,
            "funds_withdrawn": self.funds_withdrawn,
        }

    def __repr__(self) -> str:
        return (
            f"AuctionState(owner={self.owner[:10]}, end_time={self.end_time}, "
            f"bids={len(self.bids)}, highest={self.highest_bid}, finalized={self.finalized})"
        )
