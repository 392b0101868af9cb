"""
Event routing from normalized market data to the SignalEngine.
"""
from collections import Counter

from .errors import MalformedInput
from .logging import JsonlLogger
from .models import BookUpdate, MarketDataEvent, SignalSnapshot, Trade
from .signals import SignalEngine


class EventRouter:
    """Dispatches each event to the matching SignalEngine handler, in arrival order.

    No buffering, batching or reordering. Anything that is not a BookUpdate
    or Trade, or that the engine rejects, surfaces as MalformedInput; the
    router only counts it.

    Attributes:
        stats: Counter of routed ``book``/``trade`` events and ``rejected`` ones
    """

    def __init__(self, engine: SignalEngine, logger: JsonlLogger):
        self.engine = engine
        self.logger = logger
        self.stats: Counter = Counter()

    def route(self, event: MarketDataEvent) -> SignalSnapshot:
        """Forward one event and return the snapshot it produced.

        Raises:
            MalformedInput: unknown event type or invalid fields
        """
        try:
            if isinstance(event, BookUpdate):
                snap = self.engine.on_book_update(event.bids, event.asks, event.timestamp_ms)
                self.stats["book"] += 1
            elif isinstance(event, Trade):
                snap = self.engine.on_trade(event.price, event.size, event.side, event.timestamp_ms)
                self.stats["trade"] += 1
            else:
                raise MalformedInput(f"unsupported event type: {type(event).__name__}")
        except MalformedInput:
            self.stats["rejected"] += 1
            raise
        return snap
