"""
Bank - fund-transfer collaborators for the settlement engine.

The engine never moves value itself; it asks a FundTransfer to pay a
principal and gets back a synchronous success flag. A transfer either
fully succeeds or fully fails.

InMemoryBank is the in-process implementation used by the CLI and tests.
It can be told to fail, and can run a hook while a transfer is in flight,
which is how a recipient that calls back into the engine is simulated.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set, runtime_checkable

from bidescrow.crypto import short
from bidescrow.utils.logger import get_logger

logger = get_logger("bank")


@runtime_checkable
class FundTransfer(Protocol):
    """Outgoing payment primitive."""

    def transfer(self, to: str, amount: int) -> bool:
        ...


@dataclass
class TransferRecord:
    """A payout attempt."""
    to: str
    amount: int
    success: bool


TransferHook = Callable[[str, int], None]


class InMemoryBank:
    """
    In-process FundTransfer.

    Attributes:
        received: principal -> total value successfully paid to it
        transfers: every attempt, in order
        fail_recipients: principals whose payouts always fail
    """

    def __init__(self, on_transfer: Optional[TransferHook] = None):
        self.received: Dict[str, int] = defaultdict(int)
        self.transfers: List[TransferRecord] = []
        self.fail_recipients: Set[str] = set()
        self._fail_next = 0
        self.on_transfer = on_transfer

    # =========================================================================
    # Failure injection
    # =========================================================================

    def fail_next(self, count: int = 1) -> None:
        """Make the next `count` transfers fail."""
        self._fail_next += count

    def reject(self, principal: str) -> None:
        """Make every payout to `principal` fail."""
        self.fail_recipients.add(principal)

    def clear_failures(self) -> None:
        """Drop pending failures and rejected recipients."""
        self._fail_next = 0
        self.fail_recipients.clear()

    # =========================================================================
    # FundTransfer
    # =========================================================================

    def transfer(self, to: str, amount: int) -> bool:
        """
        Pay `amount` to `to`.

        The hook runs before the payout completes, while the calling engine
        operation is still in progress.
        """
        if self.on_transfer:
            self.on_transfer(to, amount)

        if self._fail_next > 0 or to in self.fail_recipients:
            if self._fail_next > 0:
                self._fail_next -= 1
            self.transfers.append(TransferRecord(to=to, amount=amount, success=False))
            logger.warning(f"Transfer failed: to={short(to)} amount={amount}")
            return False

        self.received[to] += amount
        self.transfers.append(TransferRecord(to=to, amount=amount, success=True))
        logger.debug(f"Transfer ok: to={short(to)} amount={amount}")
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def balance_of(self, principal: str) -> int:
        """Total value paid to a principal."""
        return self.received.get(principal, 0)

    @property
    def total_paid(self) -> int:
        return sum(self.received.values())

    def stats(self) -> dict:
        """Get transfer statistics."""
        return {
            "transfers": len(self.transfers),
            "failed": sum(1 for t in self.transfers if not t.success),
            "total_paid": self.total_paid,
        }
