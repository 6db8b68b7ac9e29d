"""
Integration tests: full auction lifecycles.

Each test drives an auction from creation to full settlement and checks
that every unit of value ends up with the right principal.
"""

import pytest

from bidescrow.core.auction import AuctionError, AuctionPhase, SettlementEngine
from bidescrow.core.bank import InMemoryBank
from bidescrow.crypto import address_from_seed


OWNER = address_from_seed("owner")
ALICE = address_from_seed("alice")
BOB = address_from_seed("bob")
CAROL = address_from_seed("carol")


class TestLifecycle:
    """End-to-end auction runs."""

    def test_bidding_war_with_sniping(self):
        """Three bidders, late bids extend the window, everyone settles."""
        bank = InMemoryBank()
        engine = SettlementEngine.create(30, OWNER, current_time=1_000, bank=bank)
        end = 1_000 + 30 * 60

        assert engine.place_bid(ALICE, 1_000, 1_100).success
        assert engine.place_bid(BOB, 1_050, 1_200).success
        assert engine.place_bid(ALICE, 1_200, 1_300).success

        # Alice reclaims her superseded bid mid-auction
        assert engine.withdraw_partial_refund(ALICE).amount == 1_000

        # Carol snipes, Bob answers; both extend
        assert engine.place_bid(CAROL, 1_260, end - 30).success
        assert engine.end_time == end + 600
        assert engine.place_bid(BOB, 1_400, end + 590).success
        assert engine.end_time == end + 1_200

        assert engine.phase(end + 1_199) == AuctionPhase.ACTIVE
        assert engine.phase(end + 1_200) == AuctionPhase.ENDED
        assert engine.finalize_auction(OWNER, end + 1_200).success
        assert engine.get_winner() == (BOB, 1_400)

        # Bob's first bid of 1050 is excess over the winning 1400
        assert engine.withdraw_deposit(BOB).amount == 1_050
        assert engine.withdraw_deposit(ALICE).amount == 1_200
        assert engine.withdraw_deposit(CAROL).amount == 1_260
        assert engine.withdraw_funds(OWNER).amount == 1_400

        assert bank.balance_of(OWNER) == 1_400  # 1372 proceeds + 28 commission
        assert bank.balance_of(ALICE) == 2_200
        assert bank.balance_of(BOB) == 1_050
        assert bank.balance_of(CAROL) == 1_260
        assert bank.total_paid == engine.state.total_accepted
        assert engine.held_balance == 0

    def test_conservation_at_every_step(self):
        """sum(deposits) == accepted - withdrawn after each call."""
        bank = InMemoryBank()
        engine = SettlementEngine.create(60, OWNER, current_time=0, bank=bank)
        state = engine.state

        def check():
            assert sum(state.deposits.values()) == state.total_accepted - bank.total_paid
            for principal, pending in state.pending_refunds.items():
                assert 0 <= pending <= state.deposits[principal]

        steps = [
            lambda: engine.place_bid(ALICE, 100, 0),
            lambda: engine.place_bid(BOB, 105, 1),
            lambda: engine.place_bid(ALICE, 111, 2),
            lambda: engine.withdraw_partial_refund(ALICE),
            lambda: engine.place_bid(BOB, 200, 3),
            lambda: engine.place_bid(BOB, 210, 4),
            lambda: engine.finalize_auction(OWNER, 3600),
            lambda: engine.withdraw_deposit(ALICE),
            lambda: engine.withdraw_partial_refund(BOB),
            lambda: engine.withdraw_deposit(BOB),
            lambda: engine.withdraw_funds(OWNER),
        ]
        for step in steps:
            step()
            check()

        assert engine.held_balance == 0

    def test_no_bids(self):
        bank = InMemoryBank()
        engine = SettlementEngine.create(1, OWNER, current_time=0, bank=bank)
        assert engine.finalize_auction(OWNER, 60).success
        assert engine.withdraw_deposit(ALICE).error == AuctionError.NOTHING_TO_WITHDRAW
        assert engine.withdraw_funds(OWNER).success
        assert bank.total_paid == 0

    def test_terminal_state(self):
        """Once finalized, bidding and finalization stay rejected forever."""
        engine = SettlementEngine.create(60, OWNER, current_time=0, bank=InMemoryBank())
        engine.place_bid(ALICE, 10, 0)
        engine.finalize_auction(OWNER, 3600)
        for t in (3600, 10_000, 10**9):
            assert engine.place_bid(BOB, 10**6, t).error == AuctionError.AUCTION_CLOSED
            assert engine.finalize_auction(OWNER, t).error == AuctionError.ALREADY_FINALIZED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
