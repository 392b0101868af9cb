"""
Hyperliquid market data transport.

Decodes the exchange's WebSocket ``l2Book`` and ``trades`` channels into
BookUpdate/Trade events and seeds the book from the REST ``/info``
endpoint. This is the only module that knows the wire format.

Message Formats:
    {"channel": "l2Book", "data": {"coin": "BTC", "time": 1703123456789,
        "levels": [[{"px": "100.0", "sz": "1.5", "n": 3}, ...],   # bids
                   [{"px": "100.5", "sz": "0.7", "n": 1}, ...]]}} # asks
    {"channel": "trades", "data": [{"coin": "BTC", "side": "B", "px": "100.2",
        "sz": "0.01", "time": 1703123456790, "tid": 1}, ...]}

Connectivity:
    A closed or failed socket ends ``stream()`` with FeedDisconnected. The
    feed never reconnects by itself; the caller sees the loss and decides
    (MarketMakerBot pauses quoting and retries with backoff).
"""
import asyncio
import json
from typing import Any, AsyncIterator, Dict, List

import requests
import websockets
from websockets.exceptions import WebSocketException

from .errors import FeedDisconnected, MalformedInput
from .logging import JsonlLogger, log_at
from .models import BookUpdate, MarketDataEvent, Side, Trade
from .types import FeedConfig


def _num(raw: Any, what: str) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise MalformedInput(f"{what}: not a number: {raw!r}") from None


def parse_levels(raw: Any, what: str) -> List[tuple]:
    if not isinstance(raw, list):
        raise MalformedInput(f"{what}: expected a list of levels")
    out = []
    for lvl in raw:
        if not isinstance(lvl, dict):
            raise MalformedInput(f"{what}: level is not an object: {lvl!r}")
        out.append((_num(lvl.get("px"), f"{what}.px"), _num(lvl.get("sz"), f"{what}.sz")))
    return out


def parse_book(data: Dict[str, Any]) -> BookUpdate:
    """Decode an l2Book payload (WebSocket ``data`` or REST response)."""
    try:
        bids_raw, asks_raw = data["levels"][:2]
        ts = int(data["time"])
    except (KeyError, TypeError, ValueError):
        raise MalformedInput(f"l2Book: bad payload: {str(data)[:200]}") from None
    return BookUpdate(
        bids=tuple(parse_levels(bids_raw, "bids")),
        asks=tuple(parse_levels(asks_raw, "asks")),
        timestamp_ms=ts,
    )


def parse_trades(data: Any) -> List[Trade]:
    if not isinstance(data, list):
        raise MalformedInput("trades: expected a list")
    out = []
    for t in data:
        try:
            side = Side.parse(t["side"])
            ts = int(t["time"])
        except (KeyError, TypeError, ValueError):
            raise MalformedInput(f"trades: bad trade: {str(t)[:200]}") from None
        out.append(Trade(price=_num(t.get("px"), "trade.px"), size=_num(t.get("sz"), "trade.sz"),
                         side=side, timestamp_ms=ts))
    return out


def parse_message(msg: Dict[str, Any]) -> List[MarketDataEvent]:
    """Decode one WebSocket message into zero or more events.

    Control messages (subscription acks, pongs) decode to an empty list.

    Raises:
        MalformedInput: a data message that cannot be decoded
    """
    channel = msg.get("channel")
    if channel == "l2Book":
        return [parse_book(msg.get("data"))]
    if channel == "trades":
        return list(parse_trades(msg.get("data")))
    return []


def fetch_l2_snapshot(cfg: FeedConfig) -> BookUpdate:
    """Fetch the current book over REST (blocking)."""
    resp = requests.post(cfg.info_url, json={"type": "l2Book", "coin": cfg.coin}, timeout=cfg.http_timeout_s)
    resp.raise_for_status()
    return parse_book(resp.json())


class HyperliquidFeed:
    """WebSocket feed for one coin's book and trades.

    Attributes:
        connected: True between a successful subscribe and the disconnect
        n_disconnects: Connections lost so far
        n_malformed: Messages that could not be decoded (logged, skipped)
    """

    def __init__(self, cfg: FeedConfig, logger: JsonlLogger):
        self.cfg = cfg
        self.logger = logger
        self.connected = False
        self.n_disconnects = 0
        self.n_malformed = 0

    def subscriptions(self) -> List[Dict[str, Any]]:
        coin = self.cfg.coin
        return [
            {"method": "subscribe", "subscription": {"type": "l2Book", "coin": coin}},
            {"method": "subscribe", "subscription": {"type": "trades", "coin": coin}},
        ]

    async def snapshot(self) -> BookUpdate:
        """REST book snapshot without blocking the event loop."""
        return await asyncio.to_thread(fetch_l2_snapshot, self.cfg)

    def decode(self, raw) -> List[MarketDataEvent]:
        """Decode one raw frame; undecodable frames are logged and dropped."""
        try:
            return parse_message(json.loads(raw))
        except (ValueError, AttributeError) as e:
            # MalformedInput is a ValueError, as is a JSON decode failure
            self.n_malformed += 1
            log_at(self.logger, "ERROR", "ws_malformed", {"err": str(e), "raw": str(raw)[:2000]})
            return []

    async def stream(self) -> AsyncIterator[MarketDataEvent]:
        """Yield events until the connection is lost.

        Raises:
            FeedDisconnected: always, when the stream ends for any transport reason
        """
        try:
            async with websockets.connect(
                self.cfg.wss_url,
                ping_interval=self.cfg.ping_interval_s,
                ping_timeout=self.cfg.ping_interval_s,
            ) as ws:
                for sub in self.subscriptions():
                    await ws.send(json.dumps(sub))
                    self.logger.write("ws_subscribe", {"payload": sub})
                self.connected = True
                async for raw in ws:
                    for event in self.decode(raw):
                        yield event
            raise FeedDisconnected("connection closed by server")
        except FeedDisconnected:
            self.n_disconnects += 1
            raise
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            self.n_disconnects += 1
            raise FeedDisconnected(f"{type(e).__name__}: {e}") from e
        finally:
            self.connected = False
