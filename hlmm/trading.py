"""
Core decision pipeline and the live bot that drives it.

MarketMakerCore is the synchronous core: events in, snapshots and
risk-filtered quotes out, fills back in. MarketMakerBot wraps it with the
asyncio plumbing: feed task → single-consumer queue → core, plus a quote
loop on a fixed refresh interval.
"""
import asyncio
import datetime as dt
import time
from typing import List, Optional

import requests

from .errors import FeedDisconnected, InternalInvariantViolation, MalformedInput
from .feed import HyperliquidFeed
from .logging import DebugLogger, ErrorContext, JsonlLogger, log_at, performance_trace
from .models import MarketDataEvent, QuotePair, QuoteProposal, SignalSnapshot
from .quoting import QuoteLayerManager
from .risk import InventoryLedger, RiskManager
from .router import EventRouter
from .signals import SignalEngine, format_signal_line
from .types import BotConfig
from .utils import fmt


class MarketMakerCore:
    """Signal → quote → risk pipeline for one instrument.

    Operations:
        push_event: the sole ingestion entry point (arrival order is the caller's job)
        current_snapshot: latest SignalSnapshot, read-only
        next_quotes: quote proposals already passed through the risk gate
        report_fill: inventory feedback from the execution layer or simulator
    """

    def __init__(self, cfg: BotConfig, logger: JsonlLogger):
        self.cfg = cfg
        self.logger = logger
        self.engine = SignalEngine(cfg.signal, logger)
        self.router = EventRouter(self.engine, logger)
        self.quoter = QuoteLayerManager(cfg.quote)
        self.risk = RiskManager(cfg.risk, logger)

    def push_event(self, event: MarketDataEvent) -> SignalSnapshot:
        """Ingest one event.

        Raises:
            MalformedInput: after logging it; state is unchanged and the next
                event can be pushed normally.
        """
        try:
            return self.router.route(event)
        except MalformedInput as e:
            ErrorContext.log_operation_error(
                self.logger, "push_event", e,
                {"event_type": type(event).__name__, "rejected": self.router.stats["rejected"]},
            )
            raise

    def current_snapshot(self) -> SignalSnapshot:
        return self.engine.current

    @performance_trace()
    def next_quotes(self) -> Optional[QuotePair]:
        """Propose quotes from the current snapshot and filter them through risk.

        Returns:
            None while data is insufficient or when both legs are rejected;
            otherwise a QuotePair whose rejected leg (if any) is None.

        Raises:
            InternalInvariantViolation: the quote layer produced an invalid
                quote; logged at critical and re-raised.
        """
        snap = self.current_snapshot()
        try:
            pair = self.quoter.propose(snap)
        except InternalInvariantViolation as e:
            ErrorContext.log_operation_error(
                self.logger, "next_quotes", e, {"snapshot": snap.as_dict()}, level="CRITICAL")
            raise
        if pair is None:
            return None

        bid_d, ask_d = self.risk.evaluate_pair(pair.bid, pair.ask)
        self.logger.write("quote_decisions", {
            "snapshot_ts_ms": snap.timestamp_ms,
            "decisions": RiskManager.summarize([bid_d, ask_d]),
        })
        bid, ask = bid_d.approved_proposal, ask_d.approved_proposal
        if bid is None and ask is None:
            return None
        return QuotePair(bid=bid, ask=ask, decisions=(bid_d, ask_d))

    def report_fill(self, side, price: float, size: float) -> InventoryLedger:
        return self.risk.report_fill(side, price, size)

    @property
    def ledger(self) -> InventoryLedger:
        return self.risk.ledger


class InstantFillPolicy:
    """Named simplification: every approved leg fills instantly, in full, at its price.

    It goes through ``report_fill`` like any real execution layer would, so
    replacing it needs no change to the core.
    """

    name = "instant"

    def __init__(self, core: MarketMakerCore):
        self.core = core

    def on_quotes(self, pair: Optional[QuotePair]) -> List[QuoteProposal]:
        if pair is None:
            return []
        filled = []
        for q in pair.legs():
            self.core.report_fill(q.side, q.price, q.size)
            filled.append(q)
        return filled


def format_quote_line(pair: Optional[QuotePair], ledger: InventoryLedger) -> str:
    def leg(q: Optional[QuoteProposal]) -> str:
        return "-" if q is None else f"{fmt(q.size, 3)} @ {fmt(q.price, 2)}"

    bid = pair.bid if pair else None
    ask = pair.ask if pair else None
    return (
        f"[{dt.datetime.now().isoformat(timespec='seconds')}] "
        f"pos={fmt(ledger.net_position, 3)} avg={fmt(ledger.avg_entry_price, 2)} "
        f"| Bid: {leg(bid)} Ask: {leg(ask)}"
    )


class MarketMakerBot:
    """Live orchestration around MarketMakerCore.

    Tasks:
    1. Feed: seed the book over REST, stream WebSocket events into a queue,
       reconnect with exponential backoff after FeedDisconnected
    2. Consumer: drain the queue into ``core.push_event`` in arrival order
    3. Quote: every ``refresh_s`` compute risk-filtered quotes, print them
       and hand them to the fill policy; paused while the feed is down

    An InternalInvariantViolation from the quote loop stops the bot and is
    re-raised from ``run``.
    """

    def __init__(self, cfg: BotConfig, feed: Optional[HyperliquidFeed] = None):
        self.cfg = cfg

        if cfg.logging.level != "INFO" or cfg.logging.enable_performance:
            self.logger = DebugLogger(cfg.log_path, level=cfg.logging.level)
        else:
            self.logger = JsonlLogger(cfg.log_path)

        self.core = MarketMakerCore(cfg, self.logger)
        self.feed = feed if feed is not None else HyperliquidFeed(cfg.feed, self.logger)
        self.fill_policy = InstantFillPolicy(self.core) if cfg.fill_model == InstantFillPolicy.name else None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=cfg.feed.queue_maxsize)
        self._shutdown = asyncio.Event()
        self._last_print = 0.0
        self.quoting_paused = True

    async def shutdown(self):
        self._shutdown.set()

    async def _seed_book(self) -> None:
        try:
            await self._queue.put(await self.feed.snapshot())
        except (requests.RequestException, MalformedInput) as e:
            ErrorContext.log_operation_error(self.logger, "seed_book", e, {"coin": self.cfg.feed.coin},
                                             level="WARNING")

    async def _feed_loop(self) -> None:
        fc = self.cfg.feed
        delay = fc.reconnect_delay_s
        while not self._shutdown.is_set():
            if fc.seed_from_snapshot:
                await self._seed_book()
            try:
                async for event in self.feed.stream():
                    await self._queue.put(event)
                    delay = fc.reconnect_delay_s
                    if self._shutdown.is_set():
                        break
            except FeedDisconnected as e:
                log_at(self.logger, "ERROR", "feed_disconnected", {
                    "reason": e.reason, "n_disconnects": self.feed.n_disconnects, "retry_in_s": delay,
                })
                print(f"⚠️  Feed disconnected ({e.reason}); reconnecting in {delay:.1f}s")
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            delay = min(delay * 2.0, fc.max_reconnect_delay_s)

    async def _consume_loop(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.core.push_event(event)
            except MalformedInput:
                # push_event has already reported it; move on to the next event
                continue
            finally:
                self._queue.task_done()

    def _set_paused(self, paused: bool) -> None:
        if paused != self.quoting_paused:
            self.quoting_paused = paused
            self.logger.write("quoting_paused" if paused else "quoting_resumed", {})

    def quote_once(self) -> Optional[QuotePair]:
        """One decision cycle: quotes, console status, fill policy."""
        pair = self.core.next_quotes()
        if self.fill_policy is not None:
            self.fill_policy.on_quotes(pair)
        if time.time() - self._last_print > self.cfg.logging.print_interval_s:
            print(format_signal_line(self.core.current_snapshot()))
            print(format_quote_line(pair, self.core.ledger))
            self._last_print = time.time()
        return pair

    async def _quote_loop(self) -> None:
        while not self._shutdown.is_set():
            if not self.feed.connected:
                self._set_paused(True)
            else:
                self._set_paused(False)
                self.quote_once()
            await asyncio.sleep(self.cfg.quote.refresh_s)

    async def run(self):
        """Run feed, consumer and quote loops until shutdown or the first task failure.

        A failed task is logged at CRITICAL and its exception re-raised after the
        other tasks are cancelled and the shutdown record is written.
        """
        workers = {
            "feed_loop": asyncio.create_task(self._feed_loop()),
            "consume_loop": asyncio.create_task(self._consume_loop()),
            "quote_loop": asyncio.create_task(self._quote_loop()),
        }
        stop_task = asyncio.create_task(self._shutdown.wait())
        done, _ = await asyncio.wait({*workers.values(), stop_task}, return_when=asyncio.FIRST_COMPLETED)

        failure = None
        for name, task in workers.items():
            if task in done and not task.cancelled() and task.exception() is not None:
                failure = task.exception()
                ErrorContext.log_operation_error(self.logger, name, failure, level="CRITICAL")
                break

        for t in (*workers.values(), stop_task):
            t.cancel()
        await asyncio.gather(*workers.values(), stop_task, return_exceptions=True)

        self.logger.write("shutdown", {
            "events": dict(self.core.router.stats),
            "disconnects": self.feed.n_disconnects,
            **self.core.risk.position(),
        })
        self.logger.close()
        if failure is not None:
            raise failure
