"""
Streaming signal computation for a single instrument.

The SignalEngine owns every piece of rolling state derived from market data
and turns it into an immutable SignalSnapshot after each event:

    BookUpdate → mid, depth imbalance, order-flow accumulator (slide), momentum
    Trade      → time-weighted TWAP window, realized volatility, liquidity

Decay Weighting:
    All decayed accumulators share one engine clock. On each event the clock
    advances by Δt (milliseconds) and every accumulator is multiplied by
    exp(-Δt/τ) with its own τ. Widely spaced updates therefore start almost
    fresh while rapid updates accumulate. A duplicate or out-of-order
    timestamp gives Δt = 0: no decay, no clock rewind, but the new
    observation is still recorded.

Insufficient Data:
    Until at least one trade and one book update have been seen, twap and/or
    mid are NaN and the snapshot reports ``insufficient_data``. Nothing here
    divides by a zero TWAP.

Thread Safety:
    Single writer. Events for one instrument must be fed in arrival order
    from one consumer.
"""
import math
from collections import deque
from typing import Deque, Optional, Sequence, Tuple

from .errors import MalformedInput
from .logging import JsonlLogger, log_at, performance_trace
from .models import Level, Side, SignalSnapshot
from .types import SignalConfig
from .utils import clip, decay_weight, fmt, is_finite

FADE_BREAKOUT = "Fade breakout"
SCALP_RETRACEMENT = "Scalp retracement"
NEUTRAL = "Neutral"


def interpret_mean_reversion(deviation: float, threshold: float) -> str:
    """Label the TWAP deviation: above +threshold fade it, below -threshold scalp it."""
    if math.isnan(deviation):
        return NEUTRAL
    if deviation > threshold:
        return FADE_BREAKOUT
    if deviation < -threshold:
        return SCALP_RETRACEMENT
    return NEUTRAL


def format_signal_line(s: SignalSnapshot) -> str:
    """One-line console rendering of a snapshot."""
    return (
        f"[Signal] Trend: {fmt(s.trend, 3)} | TWAP: {fmt(s.twap, 2)} | Slide: {fmt(s.slide, 3)} "
        f"| NormSlide: {fmt(s.norm_slide, 3)} | FillScore: {fmt(s.fill_score, 2)} "
        f"| Dev: {fmt(s.deviation, 4)} | Vol: {fmt(s.volatility, 2)} | Aggro: {str(s.aggressive).lower()}"
    )


def _check_timestamp(ts_ms) -> int:
    if isinstance(ts_ms, bool) or not is_finite(ts_ms) or float(ts_ms) < 0:
        raise MalformedInput(f"invalid timestamp: {ts_ms!r}")
    return int(float(ts_ms))


def _check_levels(levels: Sequence[Level], name: str) -> Tuple[Tuple[float, float], ...]:
    if levels is None:
        raise MalformedInput(f"{name}: missing")
    try:
        items = list(levels)
    except TypeError:
        raise MalformedInput(f"{name}: expected a sequence of levels, got {levels!r}") from None
    out = []
    for i, lvl in enumerate(items):
        try:
            px, sz = lvl
        except (TypeError, ValueError):
            raise MalformedInput(f"{name}[{i}]: expected (price, size), got {lvl!r}") from None
        if not is_finite(px, sz):
            raise MalformedInput(f"{name}[{i}]: non-finite level ({px!r}, {sz!r})")
        px, sz = float(px), float(sz)
        if px <= 0 or sz < 0:
            raise MalformedInput(f"{name}[{i}]: out-of-range level ({px}, {sz})")
        out.append((px, sz))
    if not out:
        raise MalformedInput(f"{name}: empty side")
    return tuple(out)


class SignalEngine:
    """Rolling signal state for one instrument.

    Args:
        cfg: Decay constants, window lengths and thresholds
        logger: Event logger (per-event dumps only at DEBUG)

    Attributes:
        n_book_updates: Book updates accepted
        n_trades: Trades accepted
        n_out_of_order: Events whose timestamp was behind the engine clock
    """

    def __init__(self, cfg: SignalConfig, logger: JsonlLogger):
        self.cfg = cfg
        self.logger = logger

        self.best_bid = math.nan
        self.best_ask = math.nan
        self.mid = math.nan
        self._mids: Deque[float] = deque(maxlen=max(cfg.mid_history, cfg.momentum_window + 1))

        # (effective timestamp, price) of recent trades for the TWAP window
        self._trades: Deque[Tuple[int, float]] = deque(maxlen=max(cfg.twap_max_samples, 1))
        self._last_trade_price: Optional[float] = None
        self._last_trade_ts: Optional[int] = None

        self._imbalance: Optional[float] = None
        self._slide = 0.0
        self._sq_ret_sum = 0.0
        self._sq_ret_weight = 0.0
        self._liquidity = 0.0

        self._last_ts: Optional[int] = None
        self.n_book_updates = 0
        self.n_trades = 0
        self.n_out_of_order = 0
        self._current = SignalSnapshot.empty()

    # ------------------------------------------------------------------
    # clock and decay

    def _advance(self, ts_ms: int) -> float:
        """Move the engine clock to ts_ms, decay accumulators, return Δt in ms."""
        if self._last_ts is None:
            self._last_ts = ts_ms
            return 0.0
        dt_ms = ts_ms - self._last_ts
        if dt_ms <= 0:
            if dt_ms < 0:
                self.n_out_of_order += 1
                log_at(self.logger, "WARNING", "out_of_order_event", {
                    "event_ts_ms": ts_ms, "clock_ts_ms": self._last_ts, "lag_ms": -dt_ms,
                })
            return 0.0
        self._last_ts = ts_ms
        self._slide *= decay_weight(dt_ms, self.cfg.flow_tau_s)
        self._liquidity *= decay_weight(dt_ms, self.cfg.fill_tau_s)
        w_vol = decay_weight(dt_ms, self.cfg.vol_tau_s)
        self._sq_ret_sum *= w_vol
        self._sq_ret_weight *= w_vol
        return float(dt_ms)

    # ------------------------------------------------------------------
    # event handlers

    def on_book_update(self, bids: Sequence[Level], asks: Sequence[Level], ts_ms: int) -> SignalSnapshot:
        """Apply an order book update and return the new snapshot.

        Raises:
            MalformedInput: non-finite or out-of-range levels, an empty side or a
                crossed top of book. State is left untouched.
        """
        ts_ms = _check_timestamp(ts_ms)
        bids = _check_levels(bids, "bids")
        asks = _check_levels(asks, "asks")
        best_bid, best_ask = bids[0][0], asks[0][0]
        if best_bid >= best_ask:
            raise MalformedInput(f"crossed book: bid {best_bid} >= ask {best_ask}")

        depth = self.cfg.book_depth
        bid_vol = sum(sz for _, sz in bids[:depth])
        ask_vol = sum(sz for _, sz in asks[:depth])
        total = bid_vol + ask_vol
        imbalance = (bid_vol - ask_vol) / total if total > 0 else 0.0

        self._advance(ts_ms)
        prev = self._imbalance if self._imbalance is not None else 0.0
        self._slide += imbalance - prev
        self._imbalance = imbalance

        self.best_bid, self.best_ask = best_bid, best_ask
        self.mid = 0.5 * (best_bid + best_ask)
        self._mids.append(self.mid)
        self.n_book_updates += 1
        return self._emit()

    def on_trade(self, price: float, size: float, side, ts_ms: int) -> SignalSnapshot:
        """Apply a public trade and return the new snapshot.

        Raises:
            MalformedInput: non-finite or non-positive price/size or unknown side.
        """
        ts_ms = _check_timestamp(ts_ms)
        if not is_finite(price, size):
            raise MalformedInput(f"non-finite trade: price={price!r} size={size!r}")
        price, size = float(price), float(size)
        if price <= 0 or size <= 0:
            raise MalformedInput(f"out-of-range trade: price={price} size={size}")
        try:
            side = Side.parse(side)
        except ValueError as e:
            raise MalformedInput(str(e)) from None

        self._advance(ts_ms)

        if self._last_trade_price is not None:
            r = math.log(price / self._last_trade_price)
            self._sq_ret_sum += r * r
            self._sq_ret_weight += 1.0
        self._liquidity += size

        # Trades never move backwards in the TWAP window
        eff_ts = ts_ms if self._last_trade_ts is None else max(ts_ms, self._last_trade_ts)
        self._trades.append((eff_ts, price))
        self._last_trade_price = price
        self._last_trade_ts = eff_ts
        self._prune_trades()
        self.n_trades += 1
        return self._emit()

    # ------------------------------------------------------------------
    # derived signals

    def _window_start(self) -> int:
        return self._last_ts - int(self.cfg.twap_window_s * 1000)

    def _prune_trades(self) -> None:
        # Drop trades whose live interval ended before the window; always keep the latest
        start = self._window_start()
        while len(self._trades) > 1 and self._trades[1][0] <= start:
            self._trades.popleft()

    def twap(self) -> float:
        """Time-weighted average trade price over the window, NaN without trades.

        Each price is weighted by how long it remained the last traded price,
        clipped to [now - window, now].
        """
        if not self._trades:
            return math.nan
        now = self._last_ts
        start = self._window_start()
        items = list(self._trades)
        acc = 0.0
        total = 0.0
        for i, (ts, px) in enumerate(items):
            end = items[i + 1][0] if i + 1 < len(items) else now
            lo = max(ts, start)
            w = max(end, lo) - lo
            acc += w * px
            total += w
        if total > 0:
            return acc / total
        # Every live interval has zero length (e.g. one trade at the current instant)
        live = [px for ts, px in items if ts >= start] or [items[-1][1]]
        return sum(live) / len(live)

    def momentum(self) -> float:
        """Sum of the last ``momentum_window`` mid changes."""
        if len(self._mids) < 2:
            return 0.0
        k = min(self.cfg.momentum_window, len(self._mids) - 1)
        return self._mids[-1] - self._mids[-1 - k]

    def volatility(self) -> float:
        """Decay-weighted RMS of trade-to-trade log returns, in basis points."""
        if self._sq_ret_weight <= 0:
            return 0.0
        return math.sqrt(max(self._sq_ret_sum / self._sq_ret_weight, 0.0)) * 1e4

    def fill_score(self) -> float:
        """Recent traded size mapped to [0, 1): L / (L + fill_ref_size)."""
        liq = max(self._liquidity, 0.0)
        ref = max(self.cfg.fill_ref_size, 1e-12)
        return liq / (liq + ref)

    def norm_slide(self, volatility: float) -> float:
        """Squash the raw slide into [-1, 1]; higher volatility compresses it."""
        denom = max(self.cfg.slide_scale, 1e-12) * (1.0 + self.cfg.slide_vol_k * volatility)
        return clip(math.tanh(self._slide / denom), -1.0, 1.0)

    @performance_trace()
    def snapshot(self) -> SignalSnapshot:
        """Derive a fresh snapshot from the current state without mutating it."""
        vol = self.volatility()
        twap = self.twap()
        mid = self.mid
        if math.isnan(twap) or math.isnan(mid) or twap == 0:
            deviation = math.nan
        else:
            deviation = (mid - twap) / twap
        norm = self.norm_slide(vol)
        fill = self.fill_score()
        aggressive = (abs(norm) > self.cfg.aggressive_slide_threshold
                      and fill > self.cfg.aggressive_fill_threshold)
        return SignalSnapshot(
            trend=self.momentum(),
            twap=twap,
            slide=self._slide,
            norm_slide=norm,
            fill_score=fill,
            deviation=deviation,
            volatility=vol,
            aggressive=aggressive,
            timestamp_ms=self._last_ts if self._last_ts is not None else 0,
            mid=mid,
            best_bid=self.best_bid,
            best_ask=self.best_ask,
            imbalance=self._imbalance if self._imbalance is not None else 0.0,
            mean_reversion=interpret_mean_reversion(deviation, self.cfg.deviation_threshold),
            n_trades=self.n_trades,
        )

    def _emit(self) -> SignalSnapshot:
        self._current = self.snapshot()
        log_at(self.logger, "DEBUG", "signal_update", self._current.as_dict())
        return self._current

    @property
    def current(self) -> SignalSnapshot:
        """The latest snapshot (the only "current" one)."""
        return self._current
