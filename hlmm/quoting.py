"""
Quote construction: SignalSnapshot → (bid, ask) proposals.
"""
import math
from typing import Optional

from .errors import InternalInvariantViolation
from .models import QuotePair, QuoteProposal, Side, SignalSnapshot
from .types import QuoteConfig
from .utils import ceil_to_tick, clip, floor_to_tick, sign


class QuoteLayerManager:
    """Turns the latest signal snapshot into a two-sided quote.

    The quoting process:
    1. Hold (return None) while the snapshot reports insufficient data
    2. Widen the configured minimum spread with volatility
    3. Centre on TWAP; in aggressive mode skew the centre against norm_slide
    4. Size from the base size, down with volatility, up with fill_score
    5. Snap to tick, clamp positive, never cross

    ``propose`` is a pure function of the snapshot and the configuration.
    """

    def __init__(self, cfg: QuoteConfig):
        self.cfg = cfg

    def spread(self, s: SignalSnapshot) -> float:
        """Full quoted spread in price units."""
        c = self.cfg
        mult = clip(1.0 + c.spread_vol_k * s.volatility, 1.0, max(c.max_spread_mult, 1.0))
        return c.min_spread * mult

    def center(self, s: SignalSnapshot, spread: float) -> float:
        """Quote centre: TWAP, shifted against order-flow pressure when aggressive.

        Buy pressure (norm_slide > 0) moves the centre down so the ask leans
        into the flow and the bid backs off.
        """
        if not s.aggressive:
            return s.twap
        return s.twap - sign(s.norm_slide) * self.cfg.skew_fraction * spread

    def size(self, s: SignalSnapshot) -> float:
        c = self.cfg
        raw = c.base_size * (1.0 + c.size_fill_k * s.fill_score) / (1.0 + c.size_vol_k * s.volatility)
        return clip(raw, c.min_size, c.max_size)

    def propose(self, s: SignalSnapshot, ts_ms: Optional[int] = None) -> Optional[QuotePair]:
        """Build bid/ask proposals, or None while there is not enough data to quote.

        Raises:
            InternalInvariantViolation: the computed quote is non-finite or crossed
                after clamping (a defect, never a valid output).
        """
        if s.insufficient_data:
            return None

        c = self.cfg
        spread = self.spread(s)
        center = self.center(s, spread)
        size = self.size(s)

        bid_px = floor_to_tick(center - spread / 2.0, c.tick_size)
        ask_px = ceil_to_tick(center + spread / 2.0, c.tick_size)

        # Clamp positive and un-cross
        step = c.tick_size if c.tick_size > 0 else max(c.min_price, 1e-12)
        floor_px = c.tick_size if c.tick_size > 0 else c.min_price
        if bid_px < floor_px:
            bid_px = floor_px
        if ask_px <= bid_px:
            ask_px = bid_px + step

        if not (math.isfinite(bid_px) and math.isfinite(ask_px) and math.isfinite(size)):
            raise InternalInvariantViolation(
                f"non-finite quote: bid={bid_px} ask={ask_px} size={size}")
        if not (0 < bid_px < ask_px) or size <= 0:
            raise InternalInvariantViolation(
                f"crossed or non-positive quote: bid={bid_px} ask={ask_px} size={size}")

        t = s.timestamp_ms if ts_ms is None else ts_ms
        return QuotePair(
            bid=QuoteProposal(Side.BUY, bid_px, size, t, s.timestamp_ms),
            ask=QuoteProposal(Side.SELL, ask_px, size, t, s.timestamp_ms),
        )
