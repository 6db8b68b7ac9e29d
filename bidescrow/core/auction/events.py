"""
Events - notifications emitted to external observers.

The engine queues events while an operation runs and publishes them only
after the operation has committed, so a subscriber never sees a bid that
was rolled back and cannot re-enter the engine mid-operation.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from bidescrow.crypto import short
from bidescrow.utils.logger import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class BidAccepted:
    """A bid became the new highest bid."""
    bidder: str
    amount: int
    time_left: int  # end_time - current_time after any extension


@dataclass(frozen=True)
class AuctionFinalized:
    """The owner closed the auction."""
    winner: Optional[str]
    amount: int


Event = Union[BidAccepted, AuctionFinalized]
Subscriber = Callable[[Event], None]


@dataclass
class EventBus:
    """
    In-process publish/subscribe for auction notifications.

    Keeps the full history of published events.
    """
    history: List[Event] = field(default_factory=list)
    _subscribers: List[Subscriber] = field(default_factory=list)

    def subscribe(self, handler: Subscriber) -> None:
        """Register a callback for every published event."""
        self._subscribers.append(handler)

    def unsubscribe(self, handler: Subscriber) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def publish(self, event: Event) -> None:
        """Record an event and deliver it to all subscribers."""
        self.history.append(event)

        if isinstance(event, BidAccepted):
            logger.debug(f"BidAccepted bidder={short(event.bidder)} amount={event.amount} "
                         f"time_left={event.time_left}")
        else:
            logger.debug(f"AuctionFinalized winner={short(event.winner)} amount={event.amount}")

        for handler in list(self._subscribers):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Subscriber {getattr(handler, '__name__', handler)!r} failed: {e}")

    def of_type(self, event_type: type) -> List[Event]:
        """Published events of one type, in order."""
        return [e for e in self.history if isinstance(e, event_type)]
