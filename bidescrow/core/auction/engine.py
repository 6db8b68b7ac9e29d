"""
SettlementEngine - bidding, refund and settlement operations.

Lifecycle:
---------
    CREATED -> ACTIVE -> (ACTIVE, extended) -> ENDED -> FINALIZED

1. Bidders attach value to place_bid. Each accepted bid must beat the
   current highest by the minimum increment and becomes the new high.
2. A bid placed within the extension threshold of the end pushes the end
   out, any number of times.
3. A bidder who bids again may withdraw the value of its superseded bids
   at any time (partial refund).
4. After the end the owner finalizes. Losers then withdraw their deposits,
   the winner withdraws anything above its winning bid, and the owner
   collects the winning bid split into proceeds and commission.

Atomicity and re-entrancy:
-------------------------
Every mutating entry point runs inside `_atomic`:

- a global in-progress flag rejects any nested mutating call
  (ReentrantCall), e.g. from a recipient reacting to a transfer
- a snapshot is taken on entry and restored on any failure; a settlement
  leg whose transfer went through moves the snapshot forward (`_commit`)
- bookkeeping is updated before value leaves, so a nested view
  already sees the post-payment balances
- events are queued and published only after commit
"""

import functools
from typing import List, Optional, Tuple

from bidescrow.core.auction.errors import (
    AuctionError,
    AuctionException,
    InvariantViolation,
    OperationResult,
)
from bidescrow.core.auction.events import AuctionFinalized, BidAccepted, Event, EventBus
from bidescrow.core.auction.state import AuctionPhase, AuctionState, BidRecord
from bidescrow.core.bank import FundTransfer
from bidescrow.core.config import AuctionConfig
from bidescrow.crypto import short
from bidescrow.utils.logger import get_auction_logger
from bidescrow.utils.validation import validate_address, validate_amount, validate_timestamp

SECONDS_PER_MINUTE = 60


# =============================================================================
# Preconditions
# =============================================================================


def _require(condition: bool, error: AuctionError, message: str = "") -> None:
    if not condition:
        raise AuctionException(error, message)


def _require_principal(principal, name: str = "principal") -> None:
    valid, err = validate_address(principal, name)
    _require(valid, AuctionError.INVALID_PRINCIPAL, err)


def _require_amount(amount) -> None:
    valid, err = validate_amount(amount)
    _require(valid, AuctionError.INVALID_AMOUNT, err)


def _require_time(current_time) -> None:
    valid, err = validate_timestamp(current_time)
    _require(valid, AuctionError.INVALID_TIME, err)


def _atomic(method):
    """Run an entry point as one all-or-nothing, non-reentrant operation."""

    @functools.wraps(method)
    def wrapper(self: "SettlementEngine", *args, **kwargs) -> OperationResult:
        name = method.__name__
        if self._in_progress:
            self.log.warning(f"{name} rejected: called during {self._in_progress}")
            return OperationResult.failed(AuctionException(
                AuctionError.REENTRANT_CALL,
                f"{name} called while {self._in_progress} is in progress",
            ))

        start_end_time = self.state.end_time
        self._savepoint = self.state.snapshot()
        self._in_progress = name
        self._queued = []
        try:
            result = method(self, *args, **kwargs)
            if self.state.end_time < start_end_time:
                raise InvariantViolation("end_time decreased")
            self.state.check_invariants()
        except AuctionException as e:
            self.state.restore(self._savepoint)
            self._queued = []
            self.log.warning(f"{name} rejected: {e}")
            return OperationResult.failed(e)
        except Exception:
            self.state.restore(self._savepoint)
            self._queued = []
            raise
        finally:
            self._in_progress = None
            self._savepoint = None

        queued, self._queued = self._queued, []
        for event in queued:
            self.events.publish(event)
        return result

    return wrapper


# =============================================================================
# Settlement Engine
# =============================================================================


class SettlementEngine:
    """
    State-transition operations over one AuctionState.

    Attributes:
        state: Ledger data of the auction
        bank: Outgoing payment primitive
        config: Bidding and settlement parameters
        events: Notification bus
    """

    def __init__(
        self,
        state: AuctionState,
        bank: FundTransfer,
        config: Optional[AuctionConfig] = None,
        events: Optional[EventBus] = None,
    ):
        self.state = state
        self.bank = bank
        self.config = config or AuctionConfig()
        self.events = events or EventBus()

        self.log = get_auction_logger("engine", state.auction_id)

        self._in_progress: Optional[str] = None
        self._savepoint: Optional[AuctionState] = None
        self._queued: List[Event] = []

    @classmethod
    def create(
        cls,
        duration_minutes: int,
        creator: str,
        current_time: int,
        bank: FundTransfer,
        config: Optional[AuctionConfig] = None,
        events: Optional[EventBus] = None,
    ) -> "SettlementEngine":
        """
        Create an auction owned by `creator`.

        Args:
            duration_minutes: Bidding window length, must be > 0
            creator: Owner and beneficiary
            current_time: Ledger time of creation
            bank: Payment primitive
            config: Parameters (defaults to AuctionConfig())
            events: Notification bus

        Returns:
            Engine wrapping a fresh AuctionState

        Raises:
            AuctionException: INVALID_DURATION, INVALID_PRINCIPAL or INVALID_TIME
            ValueError: if the config is invalid
        """
        config = config or AuctionConfig()
        valid, err = config.validate()
        if not valid:
            raise ValueError(f"Invalid configuration: {err}")

        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
            raise AuctionException(AuctionError.INVALID_DURATION,
                                   f"duration must be int minutes, got {type(duration_minutes).__name__}")
        _require(duration_minutes > 0, AuctionError.INVALID_DURATION,
                 f"duration must be > 0 minutes, got {duration_minutes}")
        _require_principal(creator, "creator")
        _require_time(current_time)

        state = AuctionState(
            owner=creator,
            end_time=current_time + duration_minutes * SECONDS_PER_MINUTE,
            commission_rate=config.commission_rate,
            created_time=current_time,
        )

        engine = cls(state, bank, config=config, events=events)
        engine.log.info(f"Auction created by {short(creator)}, ends at {state.end_time} "
                        f"({duration_minutes} min), commission {state.commission_rate}%")
        return engine

    # =========================================================================
    # Bidding
    # =========================================================================

    def minimum_bid(self) -> int:
        """Smallest amount the next bid may carry (0 means any positive value)."""
        highest = self.state.highest_bid
        if highest == 0:
            return 0
        return highest + highest * self.config.min_increment_percent // 100

    @_atomic
    def place_bid(self, bidder: str, amount: int, current_time: int) -> OperationResult:
        """
        Place a bid with `amount` of attached value.

        Errors: AUCTION_CLOSED, ZERO_VALUE, BID_TOO_LOW
        """
        state = self.state
        _require_principal(bidder, "bidder")
        _require_amount(amount)
        _require_time(current_time)

        _require(not state.finalized, AuctionError.AUCTION_CLOSED, "Auction is finalized")
        _require(current_time < state.end_time, AuctionError.AUCTION_CLOSED,
                 f"Bidding ended at {state.end_time}")
        _require(amount > 0, AuctionError.ZERO_VALUE, "Bid must carry value")

        min_bid = self.minimum_bid()
        _require(amount >= min_bid, AuctionError.BID_TOO_LOW,
                 f"Bid {amount} below minimum {min_bid}")

        # Record the bid and take custody of the value
        state.bids.append(BidRecord(
            bidder=bidder,
            amount=amount,
            position=len(state.bids),
            timestamp=current_time,
        ))
        history = state.user_bid_history.setdefault(bidder, [])
        history.append(amount)
        state.deposits[bidder] = state.deposit_of(bidder) + amount
        state.total_accepted += amount

        # Earlier bids of this bidder become refundable
        if len(history) > 1:
            state.pending_refunds[bidder] = self._refundable(bidder, amount)

        state.highest_bid = amount
        state.highest_bidder = bidder

        # Anti-sniping
        if state.end_time - current_time <= self.config.extension_threshold:
            state.end_time += self.config.extension_seconds
            self.log.info(f"Late bid extended auction to {state.end_time}")

        time_left = state.end_time - current_time
        self._queued.append(BidAccepted(bidder=bidder, amount=amount, time_left=time_left))

        self.log.info(f"Bid accepted: {short(bidder)} bid {amount} (#{len(state.bids)}), "
                    f"{time_left}s left")
        return OperationResult.ok(amount=amount)

    def _refundable(self, bidder: str, amount: int) -> int:
        """
        Pending refund after `bidder` placed a repeat bid of `amount`.

        "outstanding": everything held for the bidder except the live bid.
        "replace": sum of all earlier bids, overwriting any unclaimed refund,
        capped so the live bid stays covered.
        """
        outstanding = self.state.deposit_of(bidder) - amount
        if self.config.refund_policy == "replace":
            earlier = sum(self.state.user_bid_history[bidder][:-1])
            return min(earlier, outstanding)
        return outstanding

    # =========================================================================
    # Refunds
    # =========================================================================

    @_atomic
    def withdraw_partial_refund(self, caller: str) -> OperationResult:
        """
        Withdraw the value of superseded bids.

        Errors: NO_PENDING_REFUND, TRANSFER_FAILED
        """
        state = self.state
        _require_principal(caller, "caller")

        pending = state.pending_refund_of(caller)
        _require(pending > 0, AuctionError.NO_PENDING_REFUND, "No pending refund")

        state.pending_refunds[caller] = 0
        state.deposits[caller] -= pending
        state.total_withdrawn += pending

        self._pay(caller, pending)

        self.log.info(f"Partial refund: {short(caller)} withdrew {pending}")
        return OperationResult.ok(amount=pending)

    # =========================================================================
    # Finalization
    # =========================================================================

    @_atomic
    def finalize_auction(self, caller: str, current_time: int) -> OperationResult:
        """
        Close the auction. Owner only, once, at or after end_time.

        Errors: UNAUTHORIZED, ALREADY_FINALIZED, AUCTION_NOT_ENDED
        """
        state = self.state
        _require_time(current_time)
        _require(caller == state.owner, AuctionError.UNAUTHORIZED, "Only the owner may finalize")
        _require(not state.finalized, AuctionError.ALREADY_FINALIZED, "Auction already finalized")
        _require(current_time >= state.end_time, AuctionError.AUCTION_NOT_ENDED,
                 f"Auction ends at {state.end_time}, now {current_time}")

        state.finalized = True
        self._queued.append(AuctionFinalized(winner=state.highest_bidder, amount=state.highest_bid))

        self.log.info(f"Auction finalized: winner={short(state.highest_bidder)} amount={state.highest_bid}")
        return OperationResult.ok(amount=state.highest_bid)

    # =========================================================================
    # Settlement
    # =========================================================================

    @_atomic
    def withdraw_deposit(self, caller: str) -> OperationResult:
        """
        Withdraw a deposit after finalization.

        Losers get their whole deposit. The winner only gets what exceeds
        the amount still locked for settlement.

        Errors: AUCTION_NOT_FINALIZED, NOTHING_TO_WITHDRAW,
                WINNER_RESTRICTED, NO_REMAINING_BALANCE, TRANSFER_FAILED
        """
        state = self.state
        _require_principal(caller, "caller")
        _require(state.finalized, AuctionError.AUCTION_NOT_FINALIZED, "Auction not finalized")

        deposit = state.deposit_of(caller)
        if caller == state.highest_bidder:
            locked = state.locked_amount
            _require(deposit > locked, AuctionError.WINNER_RESTRICTED,
                     f"Winner deposit {deposit} does not exceed locked {locked}")
            remaining = deposit - locked
            _require(remaining > 0, AuctionError.NO_REMAINING_BALANCE, "No remaining balance")
            state.deposits[caller] = locked
        else:
            _require(deposit > 0, AuctionError.NOTHING_TO_WITHDRAW, "Nothing to withdraw")
            remaining = deposit
            state.deposits[caller] = 0

        if caller in state.pending_refunds:
            state.pending_refunds[caller] = 0
        state.total_withdrawn += remaining

        self._pay(caller, remaining)

        self.log.info(f"Deposit withdrawn: {short(caller)} received {remaining}")
        return OperationResult.ok(amount=remaining)

    def settlement_split(self) -> Tuple[int, int]:
        """(owner proceeds, commission) for the current highest bid."""
        commission = self.state.highest_bid * self.state.commission_rate // 100
        return self.state.highest_bid - commission, commission

    @_atomic
    def withdraw_funds(self, caller: str) -> OperationResult:
        """
        Owner collects the winning bid: proceeds, then commission.

        The two legs are paid by separate transfers and each is committed
        once its transfer succeeds. If the commission transfer fails, the
        proceeds stay paid and a later call pays only the commission.

        Errors: UNAUTHORIZED, AUCTION_NOT_FINALIZED, FUNDS_ALREADY_WITHDRAWN,
                INSUFFICIENT_FUNDS, TRANSFER_FAILED
        """
        state = self.state
        _require(caller == state.owner, AuctionError.UNAUTHORIZED, "Only the owner may withdraw funds")
        _require(state.finalized, AuctionError.AUCTION_NOT_FINALIZED, "Auction not finalized")
        _require(not state.funds_withdrawn, AuctionError.FUNDS_ALREADY_WITHDRAWN,
                 "Funds already withdrawn")

        winner_amount, commission = self.settlement_split()
        recipient = self.config.commission_recipient or state.owner
        legs = []
        if not state.proceeds_paid:
            legs.append(("proceeds_paid", state.owner, winner_amount))
        if not state.commission_paid:
            legs.append(("commission_paid", recipient, commission))

        owed = sum(amount for _, _, amount in legs)
        _require(state.held_balance >= owed, AuctionError.INSUFFICIENT_FUNDS,
                 f"Holding {state.held_balance}, need {owed}")

        paid = 0
        for flag, to, amount in legs:
            self._settle_leg(flag, to, amount)
            paid += amount

        self.log.info(f"Funds withdrawn: owner {winner_amount}, commission {commission} "
                      f"to {short(recipient)} ({paid} paid by this call)")
        return OperationResult.ok(amount=paid)

    def _settle_leg(self, flag: str, to: str, amount: int) -> None:
        """Pay one settlement leg out of the winner's deposit and commit it."""
        state = self.state
        setattr(state, flag, True)
        if state.highest_bidder is not None:
            state.deposits[state.highest_bidder] -= amount
        state.settled_amount += amount
        state.total_withdrawn += amount

        if amount > 0:
            self._pay(to, amount)

        self._commit()

    def _commit(self) -> None:
        """Move the rollback point of the running operation to the current state."""
        self.state.check_invariants()
        self._savepoint = self.state.snapshot()

    # =========================================================================
    # Incoming value
    # =========================================================================

    @_atomic
    def receive(self, sender: str, amount: int) -> OperationResult:
        """
        Accept value sent outside of a bid.

        It is held but credited to nobody.
        """
        _require_principal(sender, "sender")
        _require_amount(amount)
        _require(amount > 0, AuctionError.ZERO_VALUE, "No value attached")

        self.state.unsolicited_total += amount
        self.log.debug(f"Received {amount} from {short(sender)} outside of a bid")
        return OperationResult.ok(amount=amount)

    def _pay(self, to: str, amount: int) -> None:
        if not self.bank.transfer(to, amount):
            raise AuctionException(AuctionError.TRANSFER_FAILED,
                                   f"Transfer of {amount} to {short(to)} failed")

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def owner(self) -> str:
        return self.state.owner

    @property
    def end_time(self) -> int:
        return self.state.end_time

    @property
    def held_balance(self) -> int:
        return self.state.held_balance

    def get_winner(self) -> Tuple[Optional[str], int]:
        """Current (highest_bidder, highest_bid)."""
        return self.state.highest_bidder, self.state.highest_bid

    def get_bids(self) -> List[BidRecord]:
        return list(self.state.bids)

    def get_user_bid_history(self, principal: str) -> List[int]:
        return list(self.state.user_bid_history.get(principal, []))

    def get_time_left(self, current_time: int) -> int:
        return max(0, self.state.end_time - current_time)

    def get_deposit(self, principal: str) -> int:
        return self.state.deposit_of(principal)

    def get_pending_refund(self, principal: str) -> int:
        return self.state.pending_refund_of(principal)

    def phase(self, current_time: int) -> AuctionPhase:
        return self.state.phase(current_time)

    def stats(self) -> dict:
        """Get engine statistics."""
        stats = self.state.stats()
        stats["minimum_bid"] = self.minimum_bid()
        stats["events_published"] = len(self.events.history)
        return stats

    def __repr__(self) -> str:
        return f"SettlementEngine({self.state!r})"
