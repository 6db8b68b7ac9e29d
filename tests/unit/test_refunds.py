"""
Unit tests for partial refunds of superseded bids.

Tests cover:
1. Pending refund bookkeeping on repeat bids
2. Single payout per accrued amount
3. Rollback on failed transfer
4. "outstanding" vs "replace" refund policies
"""

import pytest

from bidescrow.core.auction import AuctionError, SettlementEngine
from bidescrow.core.bank import InMemoryBank
from bidescrow.core.config import AuctionConfig
from bidescrow.crypto import address_from_seed


OWNER = address_from_seed("owner")
ALICE = address_from_seed("alice")
BOB = address_from_seed("bob")


def make_engine(**config_kwargs):
    bank = InMemoryBank()
    engine = SettlementEngine.create(
        60, OWNER, current_time=0, bank=bank, config=AuctionConfig(**config_kwargs)
    )
    return engine, bank


class TestPendingRefunds:
    """Tests for refund bookkeeping."""

    def test_first_bid_has_no_refund(self):
        engine, _ = make_engine()
        engine.place_bid(ALICE, 100, 0)
        assert engine.get_pending_refund(ALICE) == 0

    def test_scenario_b(self):
        """Bid 100 then 200; withdraw 100; deposit drops 300 -> 200."""
        engine, bank = make_engine()
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)

        assert engine.get_user_bid_history(ALICE) == [100, 200]
        assert engine.get_pending_refund(ALICE) == 100
        assert engine.get_deposit(ALICE) == 300

        result = engine.withdraw_partial_refund(ALICE)
        assert result.success
        assert result.amount == 100
        assert bank.balance_of(ALICE) == 100
        assert engine.get_deposit(ALICE) == 200
        assert engine.get_pending_refund(ALICE) == 0

    def test_second_withdrawal_fails(self):
        engine, bank = make_engine()
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)
        engine.withdraw_partial_refund(ALICE)

        result = engine.withdraw_partial_refund(ALICE)
        assert result.error == AuctionError.NO_PENDING_REFUND
        assert bank.balance_of(ALICE) == 100

    def test_no_refund_for_single_bidder(self):
        engine, _ = make_engine()
        engine.place_bid(ALICE, 100, 0)
        result = engine.withdraw_partial_refund(ALICE)
        assert result.error == AuctionError.NO_PENDING_REFUND

    def test_outbid_is_not_refundable_early(self):
        """Being outbid by someone else does not create a pending refund."""
        engine, _ = make_engine()
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(BOB, 200, 1)
        assert engine.get_pending_refund(ALICE) == 0
        assert engine.get_deposit(ALICE) == 100

    def test_refund_not_gated_on_finalization(self):
        engine, _ = make_engine()
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)
        engine.finalize_auction(OWNER, 3600)
        assert engine.withdraw_partial_refund(ALICE).success


class TestTransferFailure:
    """A failed payout rolls the whole withdrawal back."""

    def test_rollback(self):
        engine, bank = make_engine()
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)
        bank.fail_next()

        result = engine.withdraw_partial_refund(ALICE)
        assert result.error == AuctionError.TRANSFER_FAILED
        assert engine.get_pending_refund(ALICE) == 100
        assert engine.get_deposit(ALICE) == 300
        assert engine.state.total_withdrawn == 0
        assert bank.balance_of(ALICE) == 0

        # Retry succeeds
        assert engine.withdraw_partial_refund(ALICE).success
        assert bank.balance_of(ALICE) == 100


class TestRefundPolicies:
    """Third bids before withdrawing, under both policies."""

    def test_outstanding_keeps_unclaimed_refund(self):
        """100, 200, 300 without withdrawing: 300 refundable."""
        engine, _ = make_engine(refund_policy="outstanding")
        for t, amount in enumerate((100, 200, 300)):
            engine.place_bid(ALICE, amount, t)
        assert engine.get_pending_refund(ALICE) == 300
        assert engine.get_deposit(ALICE) == 600

    def test_outstanding_after_withdrawal(self):
        """100, 200, withdraw 100, 300: only 200 remains refundable."""
        engine, bank = make_engine(refund_policy="outstanding")
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)
        engine.withdraw_partial_refund(ALICE)
        engine.place_bid(ALICE, 300, 2)

        assert engine.get_pending_refund(ALICE) == 200
        engine.withdraw_partial_refund(ALICE)
        assert bank.balance_of(ALICE) == 300
        assert engine.get_deposit(ALICE) == 300

    def test_replace_overwrites_with_history_sum(self):
        """Without withdrawals both policies agree."""
        engine, _ = make_engine(refund_policy="replace")
        for t, amount in enumerate((100, 200, 300)):
            engine.place_bid(ALICE, amount, t)
        assert engine.get_pending_refund(ALICE) == 300

    def test_replace_is_capped_by_live_bid(self):
        """After a withdrawal the history sum would over-refund; it is capped."""
        engine, _ = make_engine(refund_policy="replace")
        engine.place_bid(ALICE, 100, 0)
        engine.place_bid(ALICE, 200, 1)
        engine.withdraw_partial_refund(ALICE)
        engine.place_bid(ALICE, 300, 2)

        # sum of earlier bids is 300 but only 200 is held beyond the live bid
        assert engine.get_pending_refund(ALICE) == 200
        assert engine.get_deposit(ALICE) == 500


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
